"""Order lifecycle: checkout commit, status transitions, payment settlement.

Stock is only ever changed here, always through a conditional UPDATE so the
database re-checks ``stock >= quantity`` atomically. Each producer group of a
checkout is committed inside its own SAVEPOINT: a group that loses a stock
race is rolled back on its own while the others keep their orders.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping, Optional

from libs.auth.models import AuthUser, Role
from libs.common.config import get_settings
from libs.common.currency import format_amount
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.market_service.errors import (
    EmptyCartError,
    InsufficientStockError,
    InvalidTransitionError,
    OrderNotFoundError,
    UnauthorizedTransitionError,
)
from services.market_service.models import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusChange,
    PaymentStatus,
    TERMINAL_STATUSES,
    Product,
    can_transition,
)
from services.market_service.services import cart_store
from services.market_service.services.cart_store import CartLine, LocalCart
from services.market_service.services.notifications import (
    Notifier,
    OrderCreated,
    OrderEvent,
    OrderStatusChanged,
)
from services.market_service.services.partitioner import (
    GroupFailure,
    OrderDraft,
    ProductSnapshot,
    partition,
)
from services.market_service.services.payments import (
    PaymentGateway,
    PaymentGatewayError,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    checkout_id: uuid.UUID
    orders: list[Order] = field(default_factory=list)
    failures: list[GroupFailure] = field(default_factory=list)


async def _emit(notifier: Optional[Notifier], event: OrderEvent) -> None:
    if notifier is None:
        return
    try:
        await notifier.notify(event)
    except Exception as e:
        logger.error(
            "Notifier failed on %s for order %s: %s",
            event.event_type,
            event.order_number,
            e,
        )


# ---------------------------------------------------------------------------
# Stock guard
# ---------------------------------------------------------------------------


async def _decrement_stock(
    db: AsyncSession, product_id: uuid.UUID, quantity: int
) -> None:
    """Take ``quantity`` units, or raise if that would make stock negative."""
    result = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStockError(
            "Stock changed while checking out", product_id=product_id, requested=quantity
        )


async def _restore_stock(db: AsyncSession, order: Order) -> None:
    for item in order.items:
        await db.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(stock=Product.stock + item.quantity, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
    order.stock_restored = True


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


async def _lock_catalog(
    db: AsyncSession, product_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, ProductSnapshot]:
    """Lock product rows in id order (no lock-order deadlocks) and snapshot them."""
    result = await db.execute(
        select(Product)
        .where(Product.id.in_(list(product_ids)))
        .options(selectinload(Product.shop))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {
        product.id: ProductSnapshot.from_product(product)
        for product in result.scalars().all()
    }


def resolve_pickup_point(
    draft: OrderDraft,
    pickup_points: Mapping[uuid.UUID, str],
    default_pickup_point: Optional[str],
) -> str:
    """Per-producer choice, then the checkout default, then the shop's own spot."""
    return (
        pickup_points.get(draft.producer_id)
        or default_pickup_point
        or draft.pickup_location
        or get_settings().DEFAULT_PICKUP_POINT
    )


async def _confirmed_payment_status(
    gateway: Optional[PaymentGateway],
    payment_intent_id: Optional[str],
    payment_confirmed: bool,
) -> PaymentStatus:
    if not payment_confirmed:
        return PaymentStatus.PENDING
    if not payment_intent_id or gateway is None:
        logger.warning(
            "Checkout claimed a confirmed payment without an intent to verify (intent=%s)",
            payment_intent_id,
        )
        return PaymentStatus.PENDING

    try:
        return await gateway.confirm(payment_intent_id)
    except PaymentGatewayError as e:
        # Unknown outcome, settle_payment can retry the same intent
        logger.warning(
            "Could not confirm payment intent %s at checkout: %s", payment_intent_id, e
        )
        return PaymentStatus.PENDING


async def _commit_draft(
    db: AsyncSession,
    draft: OrderDraft,
    *,
    customer: AuthUser,
    checkout_id: uuid.UUID,
    pickup_point: str,
    pickup_date: Optional[date],
    notes: Optional[str],
    payment_method_id: Optional[str],
    payment_intent_id: Optional[str],
    payment_status: PaymentStatus,
) -> Order:
    for line in draft.lines:
        await _decrement_stock(db, line.product_id, line.quantity)

    order = Order(
        order_number=Order.generate_order_number(),
        checkout_id=checkout_id,
        customer_id=customer.user_id,
        producer_id=draft.producer_id,
        total_cents=draft.total_cents,
        currency=get_settings().CURRENCY,
        status=OrderStatus.PENDING,
        payment_status=payment_status,
        payment_method_id=payment_method_id,
        payment_intent_id=payment_intent_id,
        pickup_point=pickup_point,
        pickup_date=pickup_date,
        notes=notes,
        items=[
            OrderItem(
                product_id=line.product_id,
                position=position,
                product_name=line.product_name,
                unit=line.unit,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.line_total_cents,
            )
            for position, line in enumerate(draft.lines)
        ],
    )
    db.add(order)
    await db.flush()
    return order


async def checkout(
    db: AsyncSession,
    customer: AuthUser,
    *,
    items: Optional[Iterable[CartLine]] = None,
    pickup_points: Optional[Mapping[uuid.UUID, str]] = None,
    pickup_point: Optional[str] = None,
    pickup_date: Optional[date] = None,
    notes: Optional[str] = None,
    payment_method_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
    payment_confirmed: bool = False,
    gateway: Optional[PaymentGateway] = None,
    notifier: Optional[Notifier] = None,
) -> CheckoutResult:
    """Turn a cart into one PENDING order per producer.

    Lines come from ``items`` when given, otherwise from the customer's
    server cart. Groups that fail (unavailable product, not enough stock)
    are reported in ``failures`` and their lines stay in the cart. When no
    order at all could be created the first failure is raised.

    A client-side ``payment_confirmed`` only counts once ``gateway`` confirms
    ``payment_intent_id``; the check runs before any row is locked.
    """
    if items is None:
        lines = await cart_store.list_lines(db, customer)
    else:
        lines = LocalCart(items).list()

    if not lines:
        raise EmptyCartError()

    payment_status = await _confirmed_payment_status(
        gateway, payment_intent_id, payment_confirmed
    )
    catalog = await _lock_catalog(db, {line.product_id for line in lines})
    plan = partition(lines, catalog)

    result = CheckoutResult(checkout_id=uuid.uuid4(), failures=list(plan.failures))
    for draft in plan.drafts:
        try:
            async with db.begin_nested():
                order = await _commit_draft(
                    db,
                    draft,
                    customer=customer,
                    checkout_id=result.checkout_id,
                    pickup_point=resolve_pickup_point(
                        draft, pickup_points or {}, pickup_point
                    ),
                    pickup_date=pickup_date,
                    notes=notes,
                    payment_method_id=payment_method_id,
                    payment_intent_id=payment_intent_id,
                    payment_status=payment_status,
                )
        except InsufficientStockError as e:
            logger.warning(
                "Checkout %s: producer %s group rolled back, stock guard failed for %s",
                result.checkout_id,
                draft.producer_id,
                e.context.get("product_id"),
            )
            e.context["producer_id"] = draft.producer_id
            result.failures.append(
                GroupFailure(e, draft.producer_id, e.context.get("product_id"))
            )
            continue
        result.orders.append(order)

    for failure in plan.failures:
        logger.warning(
            "Checkout %s: %s (producer=%s, product=%s)",
            result.checkout_id,
            failure.kind,
            failure.producer_id,
            failure.product_id,
        )

    if not result.orders:
        raise result.failures[0].error

    ordered = {item.product_id for order in result.orders for item in order.items}
    await cart_store.discard_lines(db, customer, ordered)
    await db.commit()

    logger.info(
        "Checkout %s for customer %s: %d orders created, %d groups failed",
        result.checkout_id,
        customer.user_id,
        len(result.orders),
        len(result.failures),
    )

    for order in result.orders:
        await _emit(notifier, OrderCreated.from_order(order))
    return result


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


async def _load_order(
    db: AsyncSession, order_id: uuid.UUID, *, for_update: bool = False
) -> Order:
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError(order_id=order_id)
    return order


def _authorize_transition(order: Order, target: OrderStatus, actor: AuthUser) -> None:
    owner_id = order.producer_id if actor.is_producer else order.customer_id
    if owner_id != actor.user_id:
        raise UnauthorizedTransitionError(
            "Order belongs to someone else", order_id=order.id
        )

    if order.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"Order is already {order.status.value}",
            order_id=order.id,
            from_status=order.status.value,
            to_status=target.value,
        )
    if not can_transition(order.status, target):
        raise InvalidTransitionError(
            f"Cannot move order from {order.status.value} to {target.value}",
            order_id=order.id,
            from_status=order.status.value,
            to_status=target.value,
        )

    if actor.is_customer and not (
        order.status == OrderStatus.PENDING and target == OrderStatus.CANCELLED
    ):
        raise UnauthorizedTransitionError(
            "Customers may only cancel a pending order", order_id=order.id
        )


def _should_restore_stock(
    order: Order,
    target: OrderStatus,
    actor: AuthUser,
    restore_stock: Optional[bool],
) -> bool:
    if target != OrderStatus.CANCELLED or order.stock_restored:
        return False
    if actor.is_customer:
        return True
    if restore_stock is not None:
        return restore_stock
    return get_settings().PRODUCER_CANCEL_RESTORES_STOCK


async def transition_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    target: OrderStatus,
    actor: AuthUser,
    *,
    restore_stock: Optional[bool] = None,
    notifier: Optional[Notifier] = None,
) -> Order:
    """Move an order along one edge of the status graph.

    The owning producer drives the pipeline; the owning customer may only
    cancel while the order is still PENDING, which puts the stock back.
    A producer cancellation puts stock back when ``restore_stock`` says so,
    or, when it is None, per ``PRODUCER_CANCEL_RESTORES_STOCK``.
    """
    order = await _load_order(db, order_id, for_update=True)
    _authorize_transition(order, target, actor)

    from_status = order.status
    restocked = _should_restore_stock(order, target, actor, restore_stock)
    if restocked:
        await _restore_stock(db, order)

    now = utc_now()
    order.status = target
    if target == OrderStatus.PICKED_UP:
        order.fulfilled_at = now
    elif target == OrderStatus.CANCELLED:
        order.cancelled_at = now

    db.add(
        OrderStatusChange(
            order_id=order.id,
            from_status=from_status,
            to_status=target,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            stock_restored=restocked,
        )
    )
    await db.commit()

    logger.info(
        "Order %s: %s -> %s by %s %s (stock restored: %s)",
        order.order_number,
        from_status.value,
        target.value,
        actor.role.value,
        actor.user_id,
        restocked,
    )
    await _emit(notifier, OrderStatusChanged.from_order(order, from_status, target))
    return order


async def cancel_by_customer(
    db: AsyncSession,
    order_id: uuid.UUID,
    customer: AuthUser,
    *,
    notifier: Optional[Notifier] = None,
) -> Order:
    if customer.role != Role.CUSTOMER:
        raise UnauthorizedTransitionError(
            "Only the ordering customer may cancel here", order_id=order_id
        )
    return await transition_order(
        db, order_id, OrderStatus.CANCELLED, customer, notifier=notifier
    )


# ---------------------------------------------------------------------------
# Payment settlement
# ---------------------------------------------------------------------------


def _check_payer(order: Order, customer: AuthUser) -> None:
    if not customer.is_customer or order.customer_id != customer.user_id:
        raise UnauthorizedTransitionError(
            "Order belongs to someone else", order_id=order.id
        )


async def settle_payment(
    db: AsyncSession,
    order_id: uuid.UUID,
    customer: AuthUser,
    gateway: PaymentGateway,
) -> Order:
    """Ask the payments service to collect an order's total.

    The gateway is called with no row lock held: the order is read, the
    read transaction ends, and only the outcome is applied under lock after
    re-checking the order. A timeout or refusal only marks the payment
    failed; the order itself is kept and settlement can be retried. Paid
    orders are returned untouched.
    """
    order = await _load_order(db, order_id)
    _check_payer(order, customer)
    if order.payment_status == PaymentStatus.PAID:
        return order
    if order.status == OrderStatus.CANCELLED:
        raise InvalidTransitionError(
            "Cannot pay for a cancelled order",
            order_id=order.id,
            from_status=order.status.value,
        )

    intent_id = order.payment_intent_id
    amount_cents, currency = order.total_cents, order.currency
    await db.commit()

    try:
        if not intent_id:
            intent_id = await gateway.create_payment_intent(amount_cents, currency)
        outcome = await gateway.confirm(intent_id)
    except PaymentGatewayError as e:
        logger.warning(
            "Payment for order %s failed at the gateway: %s", order.order_number, e
        )
        outcome = PaymentStatus.FAILED

    order = await _load_order(db, order_id, for_update=True)
    if order.payment_status == PaymentStatus.PAID:
        # Settled by a concurrent request while the gateway was busy
        await db.commit()
        return order

    if intent_id and not order.payment_intent_id:
        order.payment_intent_id = intent_id
    if order.status == OrderStatus.CANCELLED:
        logger.warning(
            "Order %s was cancelled during payment; recording %s for intent %s",
            order.order_number,
            outcome.value,
            intent_id,
        )
    order.payment_status = outcome
    await db.commit()

    logger.info(
        "Order %s payment of %s %s (intent %s)",
        order.order_number,
        format_amount(order.total_cents, order.currency),
        outcome.value,
        order.payment_intent_id,
    )
    return order
