from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any

from fastapi import FastAPI

from loginbridge.core.config import Settings
from loginbridge.core.middleware import AUTH_PATH_PREFIX

logger = logging.getLogger("loginbridge.api")

REDACTED = "[redacted]"


@dataclass(frozen=True)
class OTelSetupResult:
    enabled: bool
    reason: str


_TRACER_PROVIDER: Any | None = None
_TRACER_PROVIDER_LOCK = Lock()


def setup_otel(*, app: FastAPI, settings: Settings) -> OTelSetupResult:
    if not settings.ENABLE_OTEL_TRACING:
        return OTelSetupResult(enabled=False, reason="disabled")

    endpoint = settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT.strip()
    if not endpoint:
        logger.warning(
            "OpenTelemetry tracing is enabled but OTEL_EXPORTER_OTLP_TRACES_ENDPOINT is empty."
        )
        return OTelSetupResult(enabled=False, reason="missing_endpoint")

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        provider = _get_or_create_provider(settings=settings, endpoint=endpoint)
    except ImportError as exc:
        # Tracing packages ship in the optional "otel" extra.
        logger.warning("OpenTelemetry tracing setup skipped: %s", exc)
        return OTelSetupResult(enabled=False, reason="dependency_missing")

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=provider,
        excluded_urls=settings.OTEL_EXCLUDED_URLS,
        server_request_hook=scrub_auth_query,
    )

    logger.info(
        "OpenTelemetry tracing enabled for service=%s endpoint=%s",
        settings.OTEL_SERVICE_NAME,
        endpoint,
    )

    return OTelSetupResult(enabled=True, reason="enabled")


def scrub_auth_query(span: Any, scope: dict[str, Any]) -> None:
    """Keep OAuth codes and state out of exported spans."""
    if span is None or not span.is_recording():
        return
    path = scope.get("path") or ""
    if not path.startswith(AUTH_PATH_PREFIX) or not scope.get("query_string"):
        return

    span.set_attribute("http.target", path)
    span.set_attribute("url.query", REDACTED)
    host, port = scope.get("server") or ("", None)
    netloc = f"{host}:{port}" if port else host
    span.set_attribute("http.url", f"{scope.get('scheme', 'http')}://{netloc}{path}")


def _get_or_create_provider(*, settings: Settings, endpoint: str) -> Any:
    global _TRACER_PROVIDER
    with _TRACER_PROVIDER_LOCK:
        if _TRACER_PROVIDER is not None:
            return _TRACER_PROVIDER

        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

        provider = TracerProvider(
            resource=Resource.create(
                {
                    SERVICE_NAME: settings.OTEL_SERVICE_NAME,
                    SERVICE_VERSION: settings.VERSION,
                    "deployment.environment": settings.APP_ENV,
                }
            ),
            sampler=ParentBased(TraceIdRatioBased(settings.OTEL_TRACE_SAMPLE_RATIO)),
        )

        exporter_kwargs: dict[str, Any] = {"endpoint": endpoint}
        otlp_headers = parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS)
        if otlp_headers:
            exporter_kwargs["headers"] = otlp_headers
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))

        trace.set_tracer_provider(provider)
        _TRACER_PROVIDER = provider
        return provider


def parse_otlp_headers(raw_headers: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for token in raw_headers.split(","):
        piece = token.strip()
        if not piece:
            continue
        key, sep, value = piece.partition("=")
        if not sep or not key.strip() or not value.strip():
            # Never log the token itself; it usually carries a credential.
            logger.warning("Ignoring malformed OTLP header entry")
            continue
        out[key.strip()] = value.strip()
    return out
