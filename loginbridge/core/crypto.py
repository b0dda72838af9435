from __future__ import annotations

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from loginbridge.core.errors import MissingSessionSecretError

_NONCE_BYTES = 12
_KDF_INFO = b"loginbridge session seal v1"


class SealError(ValueError):
    pass


def derive_key(secret: str) -> bytes:
    if not secret:
        raise MissingSessionSecretError()
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=_KDF_INFO)
    return hkdf.derive(secret.encode("utf-8"))


def seal(*, key: bytes, plaintext: bytes, aad: bytes) -> str:
    nonce = os.urandom(_NONCE_BYTES)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, aad)
    # URL-safe base64 without padding so the value is cookie-safe.
    return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii").rstrip("=")


def unseal(*, key: bytes, sealed: str, aad: bytes) -> bytes:
    try:
        blob = base64.urlsafe_b64decode(sealed + "=" * (-len(sealed) % 4))
    except (ValueError, TypeError) as e:
        raise SealError("Sealed value is not valid base64") from e

    if len(blob) <= _NONCE_BYTES:
        raise SealError("Sealed value is too short")

    nonce = blob[:_NONCE_BYTES]
    ciphertext = blob[_NONCE_BYTES:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, aad)
    except InvalidTag as e:
        raise SealError("Sealed value failed authentication") from e
