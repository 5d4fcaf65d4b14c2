"""Logging and tracing setup for the repair desk API.

Order workflow and notification modules log through ``logging.getLogger(__name__)``,
so their records land under ``apps.repairdesk.orders`` and
``apps.repairdesk.notifications``. The notification tree takes its level from
``notification_log_level`` when set.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from apps.repairdesk.core.config import Settings

APP_LOGGER = "apps.repairdesk"
ORDERS_LOGGER = f"{APP_LOGGER}.orders"
NOTIFICATIONS_LOGGER = f"{APP_LOGGER}.notifications"

_TRACER_INITIALISED = False


def _level(name: str | None, default: int) -> int:
    if not name:
        return default
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else default


def parse_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` OTLP header strings."""

    if not header_string:
        return {}
    headers: dict[str, str] = {}
    for item in header_string.split(","):
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers


def build_logging_config(settings: Settings) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for the API process."""

    level = _level(settings.log_level, logging.INFO)
    notification_level = _level(settings.notification_log_level, level)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": settings.log_format},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            }
        },
        "root": {"handlers": ["default"], "level": logging.WARNING},
        "loggers": {
            APP_LOGGER: {"level": level},
            ORDERS_LOGGER: {"level": level},
            NOTIFICATIONS_LOGGER: {"level": notification_level},
            "sqlalchemy.engine": {"level": logging.INFO if settings.database_echo else logging.WARNING},
        },
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure handlers and levels and return the application logger."""

    dictConfig(build_logging_config(settings))
    logger = logging.getLogger(APP_LOGGER)
    logger.info("Logging configured for %s (%s)", settings.app_name, settings.environment)
    return logger


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP tracer provider when tracing is enabled."""

    global _TRACER_INITIALISED

    if _TRACER_INITIALISED or not settings.otel_enabled:
        return None

    resource = Resource(
        attributes={
            "service.name": settings.otel_service_name,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)

    exporter_kwargs: dict[str, object] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_headers(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers

    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))
    trace.set_tracer_provider(provider)
    _TRACER_INITIALISED = True
    logging.getLogger(APP_LOGGER).info("Tracing enabled for service %s", settings.otel_service_name)
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    if provider is None:
        return

    global _TRACER_INITIALISED
    provider.shutdown()
    _TRACER_INITIALISED = False
