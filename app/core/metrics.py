"""Prometheus instruments for the API and the background workers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from time import perf_counter

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

HTTP_REQUESTS_TOTAL = Counter(
    "mentorship_http_requests_total",
    "Total number of HTTP requests handled by the API.",
    ["method", "path", "status_code"],
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "mentorship_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

SESSION_TRANSITIONS_TOTAL = Counter(
    "mentorship_session_transitions_total",
    "Session status transitions applied.",
    ["from_status", "to_status"],
)
SLOT_CLAIMS_TOTAL = Counter(
    "mentorship_slot_claims_total",
    "Slot claim attempts by outcome.",
    ["outcome"],
)
PAYOUT_RELEASES_TOTAL = Counter(
    "mentorship_payout_releases_total",
    "Payout release job outcomes.",
    ["outcome"],
)
OUTBOX_EVENTS_TOTAL = Counter(
    "mentorship_outbox_events_total",
    "Outbox relay results per event.",
    ["outcome"],
)
SCHEDULED_JOBS_TOTAL = Counter(
    "mentorship_scheduled_jobs_total",
    "Scheduled job executions by type and outcome.",
    ["job_type", "outcome"],
)
DEPENDENCY_UP = Gauge(
    "mentorship_dependency_up",
    "1 when the last readiness probe reached the dependency.",
    ["dependency"],
)


def _route_template(request: Request) -> str:
    # Templated route keeps label cardinality bounded by the route table.
    route = request.scope.get("route")
    return str(getattr(route, "path", None) or request.url.path)


async def instrument_http_request(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Middleware recording count and latency per route; crashes count as 500."""
    started = perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        method = request.method.upper()
        path = _route_template(request)
        HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status_code=str(status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(perf_counter() - started)


def record_session_transition(from_status: str, to_status: str) -> None:
    SESSION_TRANSITIONS_TOTAL.labels(from_status=str(from_status), to_status=str(to_status)).inc()


def record_slot_claim(outcome: str) -> None:
    SLOT_CLAIMS_TOTAL.labels(outcome=outcome).inc()


def record_payout_release(outcome: str) -> None:
    PAYOUT_RELEASES_TOTAL.labels(outcome=outcome).inc()


def record_outbox_results(stats: dict[str, int]) -> None:
    for outcome, count in stats.items():
        if count:
            OUTBOX_EVENTS_TOTAL.labels(outcome=outcome).inc(count)


def record_scheduled_job(job_type: str, outcome: str) -> None:
    SCHEDULED_JOBS_TOTAL.labels(job_type=str(job_type), outcome=outcome).inc()


def set_dependency_up(dependency: str, is_up: bool) -> None:
    DEPENDENCY_UP.labels(dependency=dependency).set(1 if is_up else 0)


def build_metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
