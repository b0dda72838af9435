from __future__ import annotations

from functools import lru_cache
from urllib.parse import urlsplit

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_SESSION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    # Resolved once per process and injected; never mutated after startup.
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    VERSION: str = "0.1.0"
    APP_ENV: str = "dev"  # dev|test|prod

    API_BASE_URL: str = "http://localhost:8000"
    CLIENT_ORIGIN: str = "http://localhost:3000"
    CORS_ORIGINS: str = "http://localhost:3000"

    # Sealed session cookie
    SESSION_SECRET: str = ""
    SESSION_COOKIE_NAME: str = "lb_session"
    SESSION_TTL_SECONDS: int = 60 * 60 * 24 * 7  # 7 days

    # None means "secure unless running in dev".
    COOKIE_SECURE: bool | None = None
    COOKIE_SAMESITE: str = "lax"  # lax|strict|none
    COOKIE_DOMAIN: str | None = None

    OAUTH_STATE_TTL_SECONDS: int = 60 * 5

    # AT Protocol
    ATPROTO_OAUTH_SCOPE: str = "atproto transition:generic"
    SLINGSHOT_HOST: str = "slingshot.microcosm.blue"
    BSKY_CDN_URL: str = "https://cdn.bsky.app"

    # GitHub
    GITHUB_CLIENT_ID: str = ""
    GITHUB_CLIENT_SECRET: str = ""
    GITHUB_OAUTH_SCOPE: str = "public_repo"

    USER_AGENT: str = "loginbridge"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    REQUEST_ID_HEADER: str = "x-request-id"
    RATE_LIMIT_REQUESTS_PER_MINUTE: int = 120
    ENABLE_PROMETHEUS_METRICS: bool = True
    PROMETHEUS_METRICS_PATH: str = "/metrics"
    ENABLE_OTEL_TRACING: bool = False
    OTEL_SERVICE_NAME: str = "loginbridge-api"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str = "http://localhost:4318/v1/traces"
    OTEL_EXPORTER_OTLP_HEADERS: str = ""
    OTEL_TRACE_SAMPLE_RATIO: float = 1.0
    OTEL_EXCLUDED_URLS: str = "/healthz,/readyz,/metrics"
    CONTENT_SECURITY_POLICY: str = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"

    @field_validator("COOKIE_DOMAIN", "COOKIE_SECURE", mode="before")
    @classmethod
    def _empty_to_none(cls, v: object) -> object:
        if v == "":
            return None
        return v

    @field_validator("CLIENT_ORIGIN", "API_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("OTEL_TRACE_SAMPLE_RATIO")
    @classmethod
    def _validate_otel_sample_ratio(cls, v: float) -> float:
        if v < 0 or v > 1:
            raise ValueError("OTEL_TRACE_SAMPLE_RATIO must be between 0 and 1")
        return v

    @property
    def is_dev(self) -> bool:
        return self.APP_ENV == "dev"

    @property
    def cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is not None:
            return self.COOKIE_SECURE
        return not self.is_dev

    @property
    def trusted_origin(self) -> str:
        parts = urlsplit(self.CLIENT_ORIGIN)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def session_secret_configured(self) -> bool:
        return len(self.SESSION_SECRET) >= MIN_SESSION_SECRET_LENGTH

    @property
    def github_configured(self) -> bool:
        return bool(self.GITHUB_CLIENT_ID and self.GITHUB_CLIENT_SECRET)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
