"""Middleware package exports."""

from subway_tracker.middleware.correlation_id import CorrelationIdMiddleware
from subway_tracker.middleware.logging import LoggingMiddleware
from subway_tracker.middleware.metrics import MetricsMiddleware, build_metrics_endpoint
from subway_tracker.middleware.rate_limit import RateLimitMiddleware
from subway_tracker.middleware.security_headers import SecurityHeadersMiddleware
from subway_tracker.middleware.tracing import TracingMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "LoggingMiddleware",
    "MetricsMiddleware",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "TracingMiddleware",
    "build_metrics_endpoint",
]
