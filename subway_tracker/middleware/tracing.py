"""OpenTelemetry span per request."""

from __future__ import annotations

from fastapi import Request
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

TRACER_NAME = "subway_tracker.http"


class TracingMiddleware(BaseHTTPMiddleware):
    """Wrap handler execution in a server span named after the route template."""

    def __init__(self, app, tracer: trace.Tracer | None = None) -> None:
        super().__init__(app)
        self._tracer = tracer or trace.get_tracer(TRACER_NAME)

    async def dispatch(self, request: Request, call_next) -> Response:
        with self._tracer.start_as_current_span(
            f"{request.method} {request.url.path}", kind=trace.SpanKind.SERVER
        ) as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.target", request.url.path)
            correlation_id = getattr(request.state, "correlation_id", None)
            if correlation_id:
                span.set_attribute("correlation_id", correlation_id)
            try:
                response = await call_next(request)
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR))
                raise

            route = request.scope.get("route")
            route_path = getattr(route, "path", None)
            if route_path:
                span.update_name(f"{request.method} {route_path}")
                span.set_attribute("http.route", route_path)
            span.set_attribute("http.status_code", response.status_code)
            failed = response.status_code >= 500
            span.set_status(Status(StatusCode.ERROR if failed else StatusCode.OK))
            return response
