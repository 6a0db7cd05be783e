"""Read-side order views for customers and producers.

Nothing in this module writes; every function is safe to call repeatedly
and reflects the latest committed state.
"""

import uuid
from typing import Optional

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.currency import from_cents
from libs.common.datetime_utils import format_date
from services.market_service.errors import OrderNotFoundError
from services.market_service.models import (
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    Producer,
)
from services.market_service.schemas import (
    CustomerOrderResponse,
    OrderDetailResponse,
    OrderItemResponse,
    ProducerOrderResponse,
    ProducerOrderStatsResponse,
    TopProductResponse,
)
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

TOP_PRODUCTS_LIMIT = 5
UNKNOWN_PRODUCER = "Unknown producer"
UNKNOWN_CUSTOMER = "Customer"


def producer_display_name(producer: Optional[Producer]) -> str:
    """First active shop name, else the producer's own display name."""
    if producer is None:
        return UNKNOWN_PRODUCER
    for shop in producer.shops:
        if shop.is_active:
            return shop.name
    return producer.display_name


def customer_display_name(customer: Optional[Customer]) -> str:
    if customer is None:
        return UNKNOWN_CUSTOMER
    return customer.display_name


def _base_fields(order: Order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "checkout_id": order.checkout_id,
        "customer_id": order.customer_id,
        "producer_id": order.producer_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "total_cents": order.total_cents,
        "total": from_cents(order.total_cents),
        "currency": order.currency,
        "pickup_point": order.pickup_point,
        "pickup_date": format_date(order.pickup_date),
        "order_date": format_date(order.created_at),
        "notes": order.notes,
        "items": [OrderItemResponse.model_validate(item) for item in order.items],
    }


def _customer_fields(customer: Optional[Customer]) -> dict:
    return {
        "customer_name": customer_display_name(customer),
        "customer_email": customer.email if customer else None,
        "customer_phone": customer.phone if customer else None,
    }


def customer_order_view(order: Order) -> CustomerOrderResponse:
    """Needs ``items`` and ``producer.shops`` loaded."""
    return CustomerOrderResponse(
        **_base_fields(order),
        producer_name=producer_display_name(order.producer),
    )


def producer_order_view(order: Order) -> ProducerOrderResponse:
    """Needs ``items`` and ``customer`` loaded."""
    return ProducerOrderResponse(
        **_base_fields(order),
        **_customer_fields(order.customer),
    )


def _order_query():
    return select(Order).options(
        selectinload(Order.items),
        selectinload(Order.producer).selectinload(Producer.shops),
        selectinload(Order.customer),
    )


async def load_orders(db: AsyncSession, order_ids: list[uuid.UUID]) -> list[Order]:
    """Reload orders with everything the views need, keeping ``order_ids`` order."""
    if not order_ids:
        return []
    result = await db.execute(
        _order_query()
        .where(Order.id.in_(order_ids))
        .execution_options(populate_existing=True)
    )
    by_id = {order.id: order for order in result.scalars().all()}
    return [by_id[order_id] for order_id in order_ids if order_id in by_id]


async def list_customer_orders(
    db: AsyncSession, customer: AuthUser
) -> list[CustomerOrderResponse]:
    """Orders placed by ``customer``, newest first."""
    result = await db.execute(
        _order_query()
        .where(Order.customer_id == customer.user_id)
        .order_by(Order.created_at.desc(), Order.order_number.desc())
        .execution_options(populate_existing=True)
    )
    return [customer_order_view(order) for order in result.scalars().all()]


async def list_producer_orders(
    db: AsyncSession,
    producer: AuthUser,
    status: Optional[OrderStatus] = None,
) -> list[ProducerOrderResponse]:
    """Orders to fulfil for ``producer``, newest first, optionally by status."""
    query = _order_query().where(Order.producer_id == producer.user_id)
    if status is not None:
        query = query.where(Order.status == status)

    result = await db.execute(
        query.order_by(Order.created_at.desc(), Order.order_number.desc())
        .execution_options(populate_existing=True)
    )
    return [producer_order_view(order) for order in result.scalars().all()]


async def get_order_view(
    db: AsyncSession, order_id: uuid.UUID, actor: AuthUser
) -> OrderDetailResponse:
    """One order, visible only to its customer and its producer."""
    orders = await load_orders(db, [order_id])
    if not orders:
        raise OrderNotFoundError(order_id=order_id)

    order = orders[0]
    owner_id = order.producer_id if actor.is_producer else order.customer_id
    if owner_id != actor.user_id:
        raise OrderNotFoundError(order_id=order_id)

    return OrderDetailResponse(
        **_base_fields(order),
        **_customer_fields(order.customer),
        producer_name=producer_display_name(order.producer),
        payment_intent_id=order.payment_intent_id,
        fulfilled_at=order.fulfilled_at,
        cancelled_at=order.cancelled_at,
    )


async def producer_order_stats(
    db: AsyncSession, producer: AuthUser
) -> ProducerOrderStatsResponse:
    """Order counts, picked-up revenue and best sellers for one producer."""
    counts_result = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.producer_id == producer.user_id)
        .group_by(Order.status)
    )
    status_counts = {status: 0 for status in OrderStatus}
    for status, count in counts_result.all():
        status_counts[status] = count

    revenue_result = await db.execute(
        select(
            func.coalesce(func.sum(Order.total_cents), 0),
            func.count(Order.id),
        ).where(
            Order.producer_id == producer.user_id,
            Order.status == OrderStatus.PICKED_UP,
        )
    )
    revenue_cents, picked_up = revenue_result.one()
    revenue_cents = int(revenue_cents)
    # Integer cents, rounded half up
    average_cents = (revenue_cents * 2 + picked_up) // (picked_up * 2) if picked_up else 0

    customers_result = await db.execute(
        select(func.count(distinct(Order.customer_id))).where(
            Order.producer_id == producer.user_id
        )
    )
    distinct_customers = customers_result.scalar_one()

    revenue_col = func.sum(OrderItem.line_total_cents)
    top_result = await db.execute(
        select(
            OrderItem.product_id,
            func.max(OrderItem.product_name),
            func.sum(OrderItem.quantity),
            revenue_col,
        )
        .join(Order, OrderItem.order_id == Order.id)
        .where(
            Order.producer_id == producer.user_id,
            Order.status == OrderStatus.PICKED_UP,
        )
        .group_by(OrderItem.product_id)
        .order_by(revenue_col.desc())
        .limit(TOP_PRODUCTS_LIMIT)
    )
    top_products = [
        TopProductResponse(
            product_id=product_id,
            product_name=name,
            quantity=int(quantity),
            revenue_cents=int(revenue),
            revenue=from_cents(int(revenue)),
        )
        for product_id, name, quantity, revenue in top_result.all()
    ]

    return ProducerOrderStatsResponse(
        total_orders=sum(status_counts.values()),
        status_counts=status_counts,
        revenue_cents=revenue_cents,
        revenue=from_cents(revenue_cents),
        average_order_cents=average_cents,
        average_order=from_cents(average_cents),
        distinct_customers=distinct_customers,
        top_products=top_products,
        currency=get_settings().CURRENCY,
    )
