from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

auth_logins_total = Counter(
    "auth_logins_total",
    "Login attempts by outcome",
    ["outcome"],
)

auth_refresh_total = Counter(
    "auth_refresh_total",
    "Refresh token redemptions by outcome",
    ["outcome"],
)

leads_created_total = Counter(
    "leads_created_total",
    "Leads captured by source type",
    ["source_type"],
)


_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    return _INT_RE.sub("/{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_login(outcome: str) -> None:
    auth_logins_total.labels(outcome=outcome).inc()


def observe_refresh(outcome: str) -> None:
    auth_refresh_total.labels(outcome=outcome).inc()


def observe_lead_created(source_type: str) -> None:
    leads_created_total.labels(source_type=source_type).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
