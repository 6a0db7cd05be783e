"""Market orders router: checkout and the customer's orders."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user, require_customer
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.market_service.schemas import (
    CheckoutFailureResponse,
    CheckoutRequest,
    CheckoutResponse,
    CustomerOrderResponse,
    OrderDetailResponse,
)
from services.market_service.services import fulfillment_queries, order_lifecycle
from services.market_service.services.cart_store import CartLine
from services.market_service.services.notifications import Notifier, get_notifier
from services.market_service.services.payments import (
    PaymentGateway,
    get_payment_gateway,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["orders"])


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def checkout(
    checkout_in: CheckoutRequest,
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    """Create one order per producer in the cart.

    Producer groups that cannot be fulfilled are listed under ``failures``;
    if none succeeds the first failure is returned as the error.
    """
    items = None
    if checkout_in.items is not None:
        items = [CartLine(line.product_id, line.quantity) for line in checkout_in.items]

    result = await order_lifecycle.checkout(
        db,
        current_user,
        items=items,
        pickup_points={p.producer_id: p.pickup_point for p in checkout_in.pickups},
        pickup_point=checkout_in.pickup_point,
        pickup_date=checkout_in.pickup_date,
        notes=checkout_in.notes,
        payment_method_id=checkout_in.payment_method_id,
        payment_intent_id=checkout_in.payment_intent_id,
        payment_confirmed=checkout_in.payment_confirmed,
        gateway=gateway,
        notifier=notifier,
    )

    orders = await fulfillment_queries.load_orders(
        db, [order.id for order in result.orders]
    )
    return CheckoutResponse(
        checkout_id=result.checkout_id,
        orders=[fulfillment_queries.customer_order_view(order) for order in orders],
        failures=[
            CheckoutFailureResponse(
                kind=failure.kind,
                message=failure.message,
                producer_id=failure.producer_id,
                product_id=failure.product_id,
            )
            for failure in result.failures
        ],
    )


@router.get("/orders", response_model=list[CustomerOrderResponse])
async def list_my_orders(
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
):
    """The customer's orders, newest first."""
    return await fulfillment_queries.list_customer_orders(db, current_user)


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """One order, for its customer or its producer."""
    return await fulfillment_queries.get_order_view(db, order_id, current_user)


@router.post("/orders/{order_id}/cancel", response_model=OrderDetailResponse)
async def cancel_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Cancel a pending order; its stock goes back on the shelf."""
    await order_lifecycle.cancel_by_customer(
        db, order_id, current_user, notifier=notifier
    )
    return await fulfillment_queries.get_order_view(db, order_id, current_user)


@router.post("/orders/{order_id}/pay", response_model=OrderDetailResponse)
async def pay_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Settle (or retry settling) an order's payment."""
    await order_lifecycle.settle_payment(db, order_id, current_user, gateway)
    return await fulfillment_queries.get_order_view(db, order_id, current_user)
