"""Post-deploy smoke checks executed from the app container."""

from __future__ import annotations

import os
import sys
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import httpx

BASE_URL = os.getenv("SMOKE_BASE_URL", "http://localhost:8000")
API_PREFIX = "/api/v1"


def _actor_headers(actor_id: str, roles: str) -> dict[str, str]:
    return {"X-Actor-Id": actor_id, "X-Actor-Roles": roles}


def expect(response: httpx.Response, expected: int) -> httpx.Response:
    if response.status_code != expected:
        raise RuntimeError(
            f"{response.request.method} {response.request.url.path} -> "
            f"{response.status_code}, expected {expected}: {response.text}",
        )
    return response


def main() -> int:
    mentor_id = str(uuid4())
    admin_id = str(uuid4())

    with httpx.Client(base_url=BASE_URL, timeout=30) as client:
        for endpoint in ["/health", "/ready", "/docs", "/metrics"]:
            expect(client.get(endpoint), 200)

        expect(client.get(f"{API_PREFIX}/sessions"), 401)

        expect(
            client.put(
                f"{API_PREFIX}/mentors/{mentor_id}/rates",
                json={"rate_30_min": "35.00", "rate_60_min": "60.00"},
                headers=_actor_headers(admin_id, "admin"),
            ),
            200,
        )
        start_at = (datetime.now(UTC) + timedelta(days=3)).replace(minute=0, second=0, microsecond=0)
        slot = expect(
            client.post(
                f"{API_PREFIX}/scheduling/slots",
                json={"start_at": start_at.isoformat(), "duration_minutes": 60},
                headers=_actor_headers(mentor_id, "mentor"),
            ),
            201,
        ).json()
        expect(
            client.delete(
                f"{API_PREFIX}/scheduling/slots/{slot['id']}",
                headers=_actor_headers(mentor_id, "mentor"),
            ),
            204,
        )

    print("Smoke checks passed.")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except (RuntimeError, httpx.HTTPError) as exc:
        print(f"Smoke checks failed: {exc}")
        sys.exit(1)
