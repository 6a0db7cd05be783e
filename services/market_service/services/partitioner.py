"""Split a multi-producer cart into one order draft per producer.

Pure functions over plain dataclasses: nothing here touches the database,
so the commit step can roll a group back without invalidating the drafts.
"""

import uuid
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from libs.common.currency import line_total
from services.market_service.errors import (
    EmptyCartError,
    InsufficientStockError,
    MarketError,
    ProductUnavailableError,
)
from services.market_service.services.cart_store import CartLine, LocalCart


@dataclass(frozen=True)
class ProductSnapshot:
    """Catalog facts about a product at checkout time."""

    product_id: uuid.UUID
    producer_id: uuid.UUID
    name: str
    unit: str
    price_cents: int
    stock: int
    is_available: bool = True
    pickup_location: Optional[str] = None

    @classmethod
    def from_product(cls, product) -> "ProductSnapshot":
        """Build from a ``Product`` whose ``shop`` is loaded."""
        shop = product.shop
        return cls(
            product_id=product.id,
            producer_id=shop.producer_id,
            name=product.name,
            unit=product.unit,
            price_cents=product.price_cents,
            stock=product.stock,
            is_available=product.is_orderable,
            pickup_location=shop.pickup_location,
        )


@dataclass(frozen=True)
class DraftLine:
    product_id: uuid.UUID
    product_name: str
    unit: str
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return line_total(self.quantity, self.unit_price_cents)


@dataclass
class OrderDraft:
    producer_id: uuid.UUID
    lines: list[DraftLine]
    pickup_location: Optional[str] = None

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    @property
    def product_ids(self) -> list[uuid.UUID]:
        return [line.product_id for line in self.lines]


@dataclass
class GroupFailure:
    """A producer group (or orphan line) that could not become an order."""

    error: MarketError
    producer_id: Optional[uuid.UUID] = None
    product_id: Optional[uuid.UUID] = None

    @property
    def kind(self) -> str:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.message


@dataclass
class PartitionResult:
    drafts: list[OrderDraft] = field(default_factory=list)
    failures: list[GroupFailure] = field(default_factory=list)


def _check_group(
    producer_id: uuid.UUID,
    lines: Sequence[CartLine],
    catalog: Mapping[uuid.UUID, ProductSnapshot],
) -> Optional[GroupFailure]:
    for line in lines:
        product = catalog[line.product_id]
        if not product.is_available:
            error = ProductUnavailableError(
                f"{product.name} is no longer available",
                product_id=line.product_id,
                producer_id=producer_id,
            )
            return GroupFailure(error, producer_id, line.product_id)
        if line.quantity > product.stock:
            error = InsufficientStockError(
                f"Only {product.stock} {product.unit} of {product.name} left",
                product_id=line.product_id,
                producer_id=producer_id,
                requested=line.quantity,
                available=product.stock,
            )
            return GroupFailure(error, producer_id, line.product_id)
    return None


def partition(
    lines: Sequence[CartLine], catalog: Mapping[uuid.UUID, ProductSnapshot]
) -> PartitionResult:
    """Group ``lines`` by each product's own producer.

    A group with an unavailable product or a line above current stock fails
    as a whole; other groups are unaffected. Lines whose product is absent
    from ``catalog`` fail on their own. Producers keep the order in which
    they first appear in the cart.
    """
    if not lines:
        raise EmptyCartError()

    # Collapses duplicate product lines and rejects non-positive quantities
    normalized = LocalCart(lines).list()

    result = PartitionResult()
    groups: dict[uuid.UUID, list[CartLine]] = {}
    for line in normalized:
        product = catalog.get(line.product_id)
        if product is None:
            error = ProductUnavailableError(
                "Product no longer exists", product_id=line.product_id
            )
            result.failures.append(GroupFailure(error, None, line.product_id))
            continue
        groups.setdefault(product.producer_id, []).append(line)

    for producer_id, group_lines in groups.items():
        failure = _check_group(producer_id, group_lines, catalog)
        if failure:
            result.failures.append(failure)
            continue

        draft_lines = []
        for line in group_lines:
            product = catalog[line.product_id]
            draft_lines.append(
                DraftLine(
                    product_id=line.product_id,
                    product_name=product.name,
                    unit=product.unit,
                    quantity=line.quantity,
                    unit_price_cents=product.price_cents,
                )
            )
        result.drafts.append(
            OrderDraft(
                producer_id=producer_id,
                lines=draft_lines,
                pickup_location=catalog[group_lines[0].product_id].pickup_location,
            )
        )

    return result
