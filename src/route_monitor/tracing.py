"""OpenTelemetry conventions and span helpers for outbound API calls."""

from __future__ import annotations

from typing import Any, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer

TRACER_NAME = "route_monitor"

# Attribute keys
HTTP_METHOD = "http.request.method"
HTTP_STATUS_CODE = "http.response.status_code"
URL_PATH = "url.path"
SERVER_ADDRESS = "server.address"
CLUSTER_ID = "route_monitor.cluster_id"
MONITOR_ENTITY_ID = "route_monitor.monitor.entity_id"


def get_tracer(tracer: Optional[Tracer] = None) -> Tracer:
    """Return *tracer*, or the global one (a no-op until an SDK is installed)."""
    return tracer if tracer is not None else trace.get_tracer(TRACER_NAME)


def start_api_call_span(
    tracer: Tracer,
    service: str,
    method: str,
    path: str,
    **kwargs: Any,
) -> Span:
    """Start a span for one HTTP request against *service*.

    Extra keyword arguments are set as span attributes.
    """
    span = tracer.start_span(f"{service} {method} {path}")
    span.set_attribute(HTTP_METHOD, method)
    span.set_attribute(URL_PATH, path)
    for key, value in kwargs.items():
        span.set_attribute(key, value)
    return span


def record_status(span: Span, status_code: int, ok: bool) -> None:
    span.set_attribute(HTTP_STATUS_CODE, status_code)
    if not ok:
        span.set_status(Status(StatusCode.ERROR, f"unexpected status code {status_code}"))


def record_failure(span: Span, exc: BaseException) -> None:
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, str(exc)))
