"""Merge an anonymous client cart into the customer's server cart at login."""

import uuid
from dataclasses import dataclass, field
from typing import Iterable, Optional

from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.market_service.models import CartItem, Product
from services.market_service.services.cart_store import (
    CartLine,
    LocalCart,
    cart_lines,
    get_or_create_cart,
    select_orderable,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

DROP_INVALID_QUANTITY = "invalid_quantity"
DROP_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DroppedLine:
    product_id: uuid.UUID
    quantity: int
    reason: str


@dataclass
class ReconciliationResult:
    lines: list[CartLine]
    dropped: list[DroppedLine] = field(default_factory=list)
    # True when the sync key was already applied and nothing changed
    replayed: bool = False


async def reconcile_cart(
    db: AsyncSession,
    customer: AuthUser,
    local_lines: Iterable[CartLine],
    sync_key: Optional[str] = None,
) -> ReconciliationResult:
    """Union ``local_lines`` into the server cart, summing shared products.

    Lines with a non-positive quantity or pointing at a product that is gone
    or unavailable are dropped and reported; the rest of the merge goes on.
    Once this returns, the client's local cart is obsolete.
    """
    cart = await get_or_create_cart(db, customer)

    if sync_key and cart.last_sync_key == sync_key:
        logger.info(
            "Cart sync %s for customer %s already applied", sync_key, customer.user_id
        )
        return ReconciliationResult(lines=cart_lines(cart), replayed=True)

    dropped: list[DroppedLine] = []
    local = LocalCart()
    for line in local_lines:
        if (
            isinstance(line.quantity, bool)
            or not isinstance(line.quantity, int)
            or line.quantity <= 0
        ):
            dropped.append(
                DroppedLine(line.product_id, line.quantity, DROP_INVALID_QUANTITY)
            )
            continue
        local.add_line(line.product_id, line.quantity)

    incoming = local.list()
    orderable: set[uuid.UUID] = set()
    if incoming:
        result = await db.execute(
            select_orderable(Product.id).where(
                Product.id.in_([line.product_id for line in incoming])
            )
        )
        orderable = set(result.scalars().all())

    existing = {item.product_id: item for item in cart.items}
    for line in incoming:
        if line.product_id not in orderable:
            dropped.append(DroppedLine(line.product_id, line.quantity, DROP_UNAVAILABLE))
            continue

        item = existing.get(line.product_id)
        if item:
            item.quantity += line.quantity
        else:
            item = CartItem(product_id=line.product_id, quantity=line.quantity)
            cart.items.append(item)
            existing[line.product_id] = item

    for line in dropped:
        logger.warning(
            "Dropped local cart line %s x%s for customer %s: %s",
            line.product_id,
            line.quantity,
            customer.user_id,
            line.reason,
        )

    if sync_key:
        cart.last_sync_key = sync_key
    cart.updated_at = utc_now()
    await db.commit()

    logger.info(
        "Reconciled cart for customer %s: %d local lines merged, %d dropped",
        customer.user_id,
        len(incoming) - sum(1 for d in dropped if d.reason == DROP_UNAVAILABLE),
        len(dropped),
    )
    return ReconciliationResult(lines=cart_lines(cart), dropped=dropped)
