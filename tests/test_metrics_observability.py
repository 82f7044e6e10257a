from __future__ import annotations

import pytest
from fastapi import Request, Response

import app.main as main_module
from app.core.enums import SessionStatusEnum
from app.core.metrics import (
    build_metrics_response,
    instrument_http_request,
    record_payout_release,
    record_session_transition,
    record_slot_claim,
)


def _request(path: str, method: str = "GET") -> Request:
    return Request(
        {
            "type": "http",
            "method": method,
            "path": path,
            "headers": [],
            "client": ("127.0.0.1", 40000),
            "scheme": "http",
            "server": ("testserver", 80),
            "query_string": b"",
        },
    )


def _scrape() -> str:
    return build_metrics_response().body.decode("utf-8")


@pytest.mark.asyncio
async def test_http_requests_are_counted_by_path_and_status() -> None:
    async def _conflict(_: Request) -> Response:
        return Response(status_code=409)

    await instrument_http_request(_request("/api/v1/sessions", method="post"), _conflict)

    payload = _scrape()
    assert "mentorship_http_requests_total" in payload
    assert 'method="POST"' in payload
    assert 'path="/api/v1/sessions"' in payload
    assert 'status_code="409"' in payload


@pytest.mark.asyncio
async def test_failed_handler_is_counted_as_500() -> None:
    async def _explode(_: Request) -> Response:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await instrument_http_request(_request("/explode"), _explode)

    assert 'path="/explode",status_code="500"' in _scrape()


def test_domain_counters_are_exported() -> None:
    record_session_transition(SessionStatusEnum.CONFIRMED, SessionStatusEnum.IN_PROGRESS)
    record_slot_claim("lost")
    record_payout_release("deferred")

    payload = _scrape()
    assert 'mentorship_session_transitions_total{from_status="confirmed",to_status="in_progress"}' in payload
    assert 'mentorship_slot_claims_total{outcome="lost"}' in payload
    assert 'mentorship_payout_releases_total{outcome="deferred"}' in payload


@pytest.mark.asyncio
async def test_metrics_endpoint_serves_prometheus_text() -> None:
    response = await main_module.metrics_endpoint(_request("/metrics"))

    assert response.status_code == 200
    assert response.media_type.startswith("text/plain")
    assert "mentorship_http_requests_total" in response.body.decode("utf-8")
