"""Prometheus text-format request metrics."""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field
from threading import Lock
from time import perf_counter

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse, Response

_PREFIX = "subway_tracker_http"
_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

# Upper bounds in seconds; SQLite-backed requests sit well under 100ms.
DURATION_BUCKETS: tuple[float, ...] = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)

LabelSet = tuple[str, str, str]


@dataclass
class _Histogram:
    bucket_counts: list[int] = field(default_factory=lambda: [0] * len(DURATION_BUCKETS))
    count: int = 0
    total_seconds: float = 0.0

    def observe(self, seconds: float) -> None:
        index = bisect_left(DURATION_BUCKETS, seconds)
        if index < len(DURATION_BUCKETS):
            self.bucket_counts[index] += 1
        self.count += 1
        self.total_seconds += seconds


class MetricsRegistry:
    """Request counters, duration histograms and an in-flight gauge.

    Series are labelled by (method, route template, status) so that
    ``/api/visited/{station_id}`` stays one series regardless of station.
    """

    def __init__(self) -> None:
        self._request_counts: dict[LabelSet, int] = {}
        self._histograms: dict[LabelSet, _Histogram] = {}
        self._in_flight = 0
        self._lock = Lock()

    def started(self) -> None:
        with self._lock:
            self._in_flight += 1

    def record(self, method: str, path: str, status: str, duration_seconds: float) -> None:
        """Count one finished request and observe its duration."""
        key = (method, path, status)
        with self._lock:
            self._in_flight = max(self._in_flight - 1, 0)
            self._request_counts[key] = self._request_counts.get(key, 0) + 1
            self._histograms.setdefault(key, _Histogram()).observe(duration_seconds)

    def request_count(self, method: str, path: str, status: str) -> int:
        """Counter value for one label set; 0 when never observed."""
        with self._lock:
            return self._request_counts.get((method, path, status), 0)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def render_prometheus_text(self) -> str:
        """Render every series in Prometheus exposition format."""
        with self._lock:
            counts = dict(self._request_counts)
            histograms = {
                key: (list(hist.bucket_counts), hist.count, hist.total_seconds)
                for key, hist in self._histograms.items()
            }
            in_flight = self._in_flight

        lines = [
            f"# HELP {_PREFIX}_requests_total Total HTTP requests handled.",
            f"# TYPE {_PREFIX}_requests_total counter",
        ]
        lines.extend(
            f"{_PREFIX}_requests_total{{{_format_labels(key)}}} {counts[key]}"
            for key in sorted(counts)
        )

        name = f"{_PREFIX}_request_duration_seconds"
        lines.append(f"# HELP {name} HTTP request duration in seconds.")
        lines.append(f"# TYPE {name} histogram")
        for key in sorted(histograms):
            bucket_counts, count, total_seconds = histograms[key]
            labels = _format_labels(key)
            cumulative = 0
            for bound, bucket_count in zip(DURATION_BUCKETS, bucket_counts):
                cumulative += bucket_count
                lines.append(f'{name}_bucket{{{labels},le="{bound}"}} {cumulative}')
            lines.append(f'{name}_bucket{{{labels},le="+Inf"}} {count}')
            lines.append(f"{name}_count{{{labels}}} {count}")
            lines.append(f"{name}_sum{{{labels}}} {total_seconds}")

        lines.append(f"# HELP {_PREFIX}_requests_in_flight Requests currently being served.")
        lines.append(f"# TYPE {_PREFIX}_requests_in_flight gauge")
        lines.append(f"{_PREFIX}_requests_in_flight {in_flight}")
        return "\n".join(lines) + "\n"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_labels(key: LabelSet) -> str:
    method, path, status = key
    return f'method="{_escape(method)}",path="{_escape(path)}",status="{_escape(status)}"'


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count every response, labelled by route template rather than raw path."""

    def __init__(self, app, registry: MetricsRegistry | None = None) -> None:
        super().__init__(app)
        self._registry = registry if registry is not None else MetricsRegistry()

    @property
    def registry(self) -> MetricsRegistry:
        return self._registry

    async def dispatch(self, request: Request, call_next) -> Response:
        self._registry.started()
        start = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            # Unmatched paths (404s, rate-limited requests) fall back to the raw path.
            route = request.scope.get("route")
            self._registry.record(
                method=request.method,
                path=getattr(route, "path", None) or request.url.path,
                status=str(status_code),
                duration_seconds=perf_counter() - start,
            )


def build_metrics_endpoint(registry: MetricsRegistry):
    """Build a FastAPI endpoint serving the registry as Prometheus text."""

    async def metrics_endpoint() -> PlainTextResponse:
        return PlainTextResponse(registry.render_prometheus_text(), media_type=_CONTENT_TYPE)

    return metrics_endpoint
