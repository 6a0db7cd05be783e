"""Cart store: in-memory carts for anonymous clients and the server cart.

Both flavours honour the same contract: one line per product, quantities
add on repeated ``add_line`` and a quantity of zero removes the line.
Server cart functions commit their own transaction.
"""

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.currency import from_cents, line_total
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.market_service.errors import (
    CartLineNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    ProductUnavailableError,
)
from services.market_service.models import Cart, CartItem, Product, Shop
from services.market_service.schemas import CartItemResponse, CartResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


@dataclass(frozen=True)
class CartLine:
    product_id: uuid.UUID
    quantity: int


def _check_quantity(quantity: int, *, allow_zero: bool = False) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(quantity=quantity)
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise InvalidQuantityError(quantity=quantity)


# ============================================================================
# LOCAL CART
# ============================================================================


class LocalCart:
    """In-memory cart keyed by product id, in insertion order."""

    def __init__(self, lines: Iterable[CartLine] = ()):
        self._lines: dict[uuid.UUID, int] = {}
        for line in lines:
            self.add_line(line.product_id, line.quantity)

    def add_line(self, product_id: uuid.UUID, quantity: int) -> None:
        _check_quantity(quantity)
        self._lines[product_id] = self._lines.get(product_id, 0) + quantity

    def set_quantity(self, product_id: uuid.UUID, quantity: int) -> None:
        _check_quantity(quantity, allow_zero=True)
        if product_id not in self._lines:
            raise CartLineNotFoundError(product_id=product_id)
        if quantity == 0:
            del self._lines[product_id]
        else:
            self._lines[product_id] = quantity

    def remove_line(self, product_id: uuid.UUID) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def list(self) -> list[CartLine]:
        return [CartLine(pid, qty) for pid, qty in self._lines.items()]

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._lines


# ============================================================================
# SERVER CART
# ============================================================================


async def get_cart(db: AsyncSession, customer: AuthUser) -> Optional[Cart]:
    """Return the customer's cart with its items loaded, if one exists."""
    result = await db.execute(
        select(Cart)
        .where(Cart.customer_id == customer.user_id)
        .options(selectinload(Cart.items))
    )
    return result.scalar_one_or_none()


async def get_or_create_cart(db: AsyncSession, customer: AuthUser) -> Cart:
    """Get the customer's cart, creating an empty one (flushed, not committed)."""
    cart = await get_cart(db, customer)
    if cart:
        return cart

    cart = Cart(customer_id=customer.user_id, items=[])
    db.add(cart)
    await db.flush()
    return cart


def _find_item(cart: Optional[Cart], product_id: uuid.UUID) -> Optional[CartItem]:
    if cart is None:
        return None
    for item in cart.items:
        if item.product_id == product_id:
            return item
    return None


def cart_lines(cart: Optional[Cart]) -> list[CartLine]:
    if cart is None:
        return []
    return [CartLine(item.product_id, item.quantity) for item in cart.items]


def select_orderable(*columns):
    """SELECT over products a customer may order (``Product.is_orderable`` in SQL)."""
    return (
        select(*(columns or (Product,)))
        .join(Shop, Product.shop_id == Shop.id)
        .where(Product.is_available.is_(True), Shop.is_active.is_(True))
    )


async def _get_orderable_product(db: AsyncSession, product_id: uuid.UUID) -> Product:
    result = await db.execute(
        select_orderable()
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise ProductUnavailableError(product_id=product_id)
    return product


async def add_line(
    db: AsyncSession,
    customer: AuthUser,
    product_id: uuid.UUID,
    quantity: int,
) -> list[CartLine]:
    """Add ``quantity`` units of a product, merging into an existing line.

    The stock check here is advisory; checkout re-checks under lock.
    """
    _check_quantity(quantity)
    product = await _get_orderable_product(db, product_id)

    cart = await get_or_create_cart(db, customer)
    item = _find_item(cart, product_id)
    new_quantity = (item.quantity if item else 0) + quantity
    if new_quantity > product.stock:
        raise InsufficientStockError(
            product_id=product_id, requested=new_quantity, available=product.stock
        )

    if item:
        item.quantity = new_quantity
    else:
        cart.items.append(CartItem(product_id=product_id, quantity=quantity))
    cart.updated_at = utc_now()

    await db.commit()
    logger.info(
        "Customer %s added %d x %s to cart (line now %d)",
        customer.user_id,
        quantity,
        product_id,
        new_quantity,
    )
    return cart_lines(cart)


async def set_quantity(
    db: AsyncSession,
    customer: AuthUser,
    product_id: uuid.UUID,
    quantity: int,
) -> list[CartLine]:
    """Replace a line's quantity; zero removes the line."""
    _check_quantity(quantity, allow_zero=True)

    cart = await get_cart(db, customer)
    item = _find_item(cart, product_id)
    if item is None:
        raise CartLineNotFoundError(product_id=product_id)

    if quantity == 0:
        cart.items.remove(item)
    else:
        product = await _get_orderable_product(db, product_id)
        if quantity > product.stock:
            raise InsufficientStockError(
                product_id=product_id, requested=quantity, available=product.stock
            )
        item.quantity = quantity
    cart.updated_at = utc_now()

    await db.commit()
    return cart_lines(cart)


async def remove_line(
    db: AsyncSession, customer: AuthUser, product_id: uuid.UUID
) -> list[CartLine]:
    cart = await get_cart(db, customer)
    item = _find_item(cart, product_id)
    if item is None:
        raise CartLineNotFoundError(product_id=product_id)

    cart.items.remove(item)
    cart.updated_at = utc_now()
    await db.commit()
    return cart_lines(cart)


async def clear_cart(db: AsyncSession, customer: AuthUser) -> None:
    cart = await get_cart(db, customer)
    if cart is None or not cart.items:
        return
    cart.items.clear()
    cart.updated_at = utc_now()
    await db.commit()


async def list_lines(db: AsyncSession, customer: AuthUser) -> list[CartLine]:
    return cart_lines(await get_cart(db, customer))


async def discard_lines(
    db: AsyncSession, customer: AuthUser, product_ids: Iterable[uuid.UUID]
) -> int:
    """Drop lines for the given products. The caller commits.

    Used by checkout to empty the ordered part of the cart in the same
    transaction that created the orders.
    """
    cart = await get_cart(db, customer)
    if cart is None:
        return 0

    wanted = set(product_ids)
    doomed = [item for item in cart.items if item.product_id in wanted]
    for item in doomed:
        cart.items.remove(item)
    if doomed:
        cart.updated_at = utc_now()
    return len(doomed)


async def cart_view(db: AsyncSession, customer: AuthUser) -> CartResponse:
    """Cart enriched with product details and totals."""
    settings = get_settings()
    lines = await list_lines(db, customer)
    if not lines:
        return CartResponse(currency=settings.CURRENCY)

    result = await db.execute(
        select(Product)
        .where(Product.id.in_([line.product_id for line in lines]))
        .options(selectinload(Product.shop))
    )
    products = {product.id: product for product in result.scalars().all()}

    items = []
    total_cents = 0
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            # Product deleted since it was added; checkout will report it
            continue
        amount = line_total(line.quantity, product.price_cents)
        total_cents += amount
        items.append(
            CartItemResponse(
                product_id=product.id,
                quantity=line.quantity,
                product_name=product.name,
                unit=product.unit,
                producer_id=product.shop.producer_id,
                unit_price_cents=product.price_cents,
                unit_price=from_cents(product.price_cents),
                line_total_cents=amount,
                line_total=from_cents(amount),
                is_available=product.is_orderable,
            )
        )

    return CartResponse(
        items=items,
        currency=settings.CURRENCY,
        total_cents=total_cents,
        total=from_cents(total_cents),
    )
