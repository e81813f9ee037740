"""Prometheus metrics for the application."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from cfp_engine import __version__

# --- Metrics ---

APP_INFO = Info("cfp_engine", "CFP engine application info")
APP_INFO.info({"version": __version__, "name": "cfp_engine"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

LLM_QUERIES = Counter(
    "llm_queries_total",
    "LLM gateway queries by outcome (success / cached / error)",
    ["model", "outcome"],
)

LLM_QUERY_DURATION = Histogram(
    "llm_query_duration_seconds",
    "LLM gateway request duration in seconds",
    ["model"],
    buckets=[0.25, 0.5, 1, 2.5, 5, 10, 20, 30, 60],
)

CFP_RUNS = Counter(
    "cfp_runs_total",
    "CFP orchestration runs by outcome",
    ["outcome"],
)

SCHEDULER_BUSINESSES = Counter(
    "scheduler_businesses_total",
    "Businesses handled by the automation scheduler",
    ["outcome"],
)


# --- Middleware ---


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = request.url.path

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
