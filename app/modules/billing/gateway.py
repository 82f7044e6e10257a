"""Payment gateway adapters.

The core only needs three calls: open an intent, confirm it, refund a
capture. Card and wallet protocol details stay with the provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import uuid4

import httpx

from app.core.config import Settings, get_settings
from app.shared.exceptions import PaymentFailedException

logger = logging.getLogger(__name__)

CAPTURED = "captured"


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    intent_id: str
    client_secret: str | None = None


@dataclass(frozen=True, slots=True)
class GatewayCharge:
    status: str
    amount: Decimal
    transaction_id: str | None

    @property
    def is_captured(self) -> bool:
        return self.status == CAPTURED


class PaymentGateway(Protocol):
    name: str

    async def create_intent(self, amount: Decimal, currency: str, reference: str) -> PaymentIntent:
        """Open a payment intent for the given amount."""

    async def confirm(self, intent_id: str) -> GatewayCharge:
        """Return the provider's view of the intent after confirmation."""

    async def refund(self, transaction_id: str, amount: Decimal) -> str:
        """Refund part or all of a capture; returns the provider refund id."""


class HttpPaymentGateway:
    """JSON-over-HTTP gateway client."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout_seconds,
            transport=self.transport,
        )

    async def _post(self, path: str, body: dict) -> dict:
        try:
            async with self._client() as client:
                response = await client.post(path, json=body)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as exc:
            logger.warning("Payment gateway call %s failed: %s", path, exc)
            raise PaymentFailedException(
                "Payment provider request failed",
                context={"guard": "provider_available", "operation": path},
            ) from exc

    async def create_intent(self, amount: Decimal, currency: str, reference: str) -> PaymentIntent:
        data = await self._post(
            "/intents",
            {"amount": str(amount), "currency": currency, "reference": reference},
        )
        return PaymentIntent(intent_id=str(data["id"]), client_secret=data.get("client_secret"))

    async def confirm(self, intent_id: str) -> GatewayCharge:
        data = await self._post(f"/intents/{intent_id}/confirm", {})
        return GatewayCharge(
            status=str(data["status"]).lower(),
            amount=Decimal(str(data["amount"])),
            transaction_id=data.get("transaction_id"),
        )

    async def refund(self, transaction_id: str, amount: Decimal) -> str:
        data = await self._post("/refunds", {"transaction_id": transaction_id, "amount": str(amount)})
        return str(data["id"])


class SandboxPaymentGateway:
    """In-process gateway for local development; every intent captures in full."""

    name = "sandbox"

    def __init__(self) -> None:
        self._intents: dict[str, Decimal] = {}

    async def create_intent(self, amount: Decimal, currency: str, reference: str) -> PaymentIntent:
        intent_id = f"sandbox_pi_{uuid4().hex}"
        self._intents[intent_id] = amount
        return PaymentIntent(intent_id=intent_id, client_secret=f"{intent_id}_secret")

    async def confirm(self, intent_id: str) -> GatewayCharge:
        amount = self._intents.get(intent_id)
        if amount is None:
            return GatewayCharge(status="failed", amount=Decimal("0.00"), transaction_id=None)
        return GatewayCharge(status=CAPTURED, amount=amount, transaction_id=f"sandbox_tx_{intent_id}")

    async def refund(self, transaction_id: str, amount: Decimal) -> str:
        return f"sandbox_re_{uuid4().hex}"


_sandbox_gateway = SandboxPaymentGateway()


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    if settings.payment_gateway_url:
        return HttpPaymentGateway(
            settings.payment_gateway_url,
            api_key=settings.payment_gateway_api_key,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
        )
    return _sandbox_gateway


def get_payment_gateway() -> PaymentGateway:
    """Dependency provider for the configured gateway."""
    return build_payment_gateway(get_settings())
