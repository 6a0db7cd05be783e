"""Payment collaborator client.

The market service never speaks a payment protocol itself: it asks the
payments service for an intent, asks it to confirm, and stores the answer.
"""

from typing import Optional, Protocol

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.service_client import internal_post
from services.market_service.models import PaymentStatus

logger = get_logger(__name__)

CALLING_SERVICE = "market"


class PaymentGatewayError(Exception):
    """The payments service could not be reached or refused the call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class PaymentGateway(Protocol):
    async def create_payment_intent(self, amount_cents: int, currency: str) -> str:
        ...

    async def confirm(self, intent_id: str) -> PaymentStatus:
        ...


class HttpPaymentGateway:
    """Talks to the payments service over HTTP with a bounded timeout."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.PAYMENTS_SERVICE_URL
        self.timeout = timeout or settings.PAYMENT_TIMEOUT_SECONDS
        self._transport = transport

    async def _post(self, path: str, json: Optional[dict] = None) -> dict:
        try:
            response = await internal_post(
                service_url=self.base_url,
                path=path,
                calling_service=CALLING_SERVICE,
                json=json,
                timeout=self.timeout,
                transport=self._transport,
            )
        except httpx.TimeoutException as e:
            raise PaymentGatewayError(f"Payments service timed out: {e}") from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Payments service unreachable: {e}") from e

        if not response.is_success:
            raise PaymentGatewayError(
                f"Payments service returned {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise PaymentGatewayError("Payments service sent invalid JSON") from e

    async def create_payment_intent(self, amount_cents: int, currency: str) -> str:
        data = await self._post(
            "/internal/payment-intents",
            json={"amount": amount_cents, "currency": currency},
        )
        intent_id = data.get("id")
        if not intent_id:
            raise PaymentGatewayError("Payments service returned no intent id")
        return str(intent_id)

    async def confirm(self, intent_id: str) -> PaymentStatus:
        data = await self._post(f"/internal/payment-intents/{intent_id}/confirm")
        if data.get("status") == PaymentStatus.PAID.value:
            return PaymentStatus.PAID
        return PaymentStatus.FAILED


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; overridden in tests."""
    return HttpPaymentGateway()
