from __future__ import annotations

import os
from typing import Dict

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.semconv.resource import ResourceAttributes

_CONFIGURED = False
_TRACER_NAME = "studio_engagement"


def _parse_headers(raw: str | None) -> Dict[str, str] | None:
    if not raw:
        return None
    headers: Dict[str, str] = {}
    for pair in raw.split(","):
        if "=" not in pair:
            continue
        key, value = pair.split("=", 1)
        headers[key.strip()] = value.strip()
    return headers or None


def _build_exporter() -> SpanExporter:
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        return OTLPSpanExporter(endpoint=endpoint, headers=_parse_headers(os.getenv("OTEL_EXPORTER_OTLP_HEADERS")))
    return ConsoleSpanExporter()


def configure_tracing(*, service_name: str, service_version: str, environment: str) -> None:
    """Install the tracer provider used by engagement jobs and log correlation."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: service_name,
            ResourceAttributes.SERVICE_VERSION: service_version,
            ResourceAttributes.DEPLOYMENT_ENVIRONMENT: environment,
        }
    )
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(_build_exporter()))
    trace.set_tracer_provider(tracer_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)
    _CONFIGURED = True


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(_TRACER_NAME)


__all__ = ["configure_tracing", "get_tracer"]
