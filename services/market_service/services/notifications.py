"""Order events and the notification collaborator client.

Delivery is best effort: failures are logged and never reach the caller.
"""

import uuid
from dataclasses import asdict, dataclass
from datetime import date
from typing import ClassVar, Optional, Protocol, Union

import httpx
from fastapi.encoders import jsonable_encoder
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.service_client import internal_post
from services.market_service.models import Order, OrderStatus

logger = get_logger(__name__)

CALLING_SERVICE = "market"

AUDIENCE_CUSTOMER = "customer"
AUDIENCE_PRODUCER = "producer"


@dataclass(frozen=True)
class OrderCreated:
    event_type: ClassVar[str] = "order.created"
    audiences: ClassVar[tuple[str, ...]] = (AUDIENCE_CUSTOMER, AUDIENCE_PRODUCER)

    order_id: uuid.UUID
    order_number: str
    checkout_id: uuid.UUID
    customer_id: uuid.UUID
    producer_id: uuid.UUID
    total_cents: int
    currency: str
    pickup_point: str
    pickup_date: Optional[date] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderCreated":
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            checkout_id=order.checkout_id,
            customer_id=order.customer_id,
            producer_id=order.producer_id,
            total_cents=order.total_cents,
            currency=order.currency,
            pickup_point=order.pickup_point,
            pickup_date=order.pickup_date,
        )


@dataclass(frozen=True)
class OrderStatusChanged:
    event_type: ClassVar[str] = "order.status_changed"
    audiences: ClassVar[tuple[str, ...]] = (AUDIENCE_CUSTOMER,)

    order_id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    producer_id: uuid.UUID
    from_status: OrderStatus
    to_status: OrderStatus

    @classmethod
    def from_order(
        cls, order: Order, from_status: OrderStatus, to_status: OrderStatus
    ) -> "OrderStatusChanged":
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            producer_id=order.producer_id,
            from_status=from_status,
            to_status=to_status,
        )


OrderEvent = Union[OrderCreated, OrderStatusChanged]


def event_payload(event: OrderEvent) -> dict:
    return {
        "event_type": event.event_type,
        "audiences": list(event.audiences),
        "data": jsonable_encoder(asdict(event)),
    }


class Notifier(Protocol):
    async def notify(self, event: OrderEvent) -> None:
        ...


class LoggingNotifier:
    """Used when no notifications service is configured."""

    async def notify(self, event: OrderEvent) -> None:
        logger.info(
            "Order event %s for order %s (audiences: %s)",
            event.event_type,
            event.order_number,
            ", ".join(event.audiences),
        )


class HttpNotifier:
    """Posts events to the notifications service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.NOTIFICATIONS_SERVICE_URL
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self._transport = transport

    async def notify(self, event: OrderEvent) -> None:
        try:
            response = await internal_post(
                service_url=self.base_url,
                path="/internal/events",
                calling_service=CALLING_SERVICE,
                json=event_payload(event),
                timeout=self.timeout,
                transport=self._transport,
            )
        except httpx.HTTPError as e:
            logger.error(
                "Failed to deliver %s for order %s: %s",
                event.event_type,
                event.order_number,
                e,
            )
            return

        if not response.is_success:
            logger.error(
                "Notifications service returned %s for %s on order %s",
                response.status_code,
                event.event_type,
                event.order_number,
            )


def get_notifier() -> Notifier:
    """FastAPI dependency; overridden in tests."""
    settings = get_settings()
    if settings.NOTIFICATIONS_SERVICE_URL:
        return HttpNotifier()
    return LoggingNotifier()
