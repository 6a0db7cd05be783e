"""Market catalog models: producers, customers, shops, products."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer
from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# IDENTITY REFERENCE MODELS (profiles owned by the identity service)
# ============================================================================


class Producer(Base):
    """Producer profile, keyed by the identity service's producer id."""

    __tablename__ = "producers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    shops = relationship("Shop", back_populates="producer", order_by="Shop.created_at")

    def __repr__(self):
        return f"<Producer {self.display_name}>"


class Customer(Base):
    """Customer profile, keyed by the identity service's customer id."""

    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full_name or self.email or "Customer"

    def __repr__(self):
        return f"<Customer {self.display_name}>"


# ============================================================================
# CATALOG MODELS
# ============================================================================


class Shop(Base):
    """A producer's shop; products hang off a shop, never off a producer."""

    __tablename__ = "shops"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    producer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("producers.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Where customers collect their orders, e.g. "Farm gate, 12 rue des Lilas"
    pickup_location: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="1"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    # Relationships
    producer = relationship("Producer", back_populates="shops")
    products = relationship("Product", back_populates="shop")

    def __repr__(self):
        return f"<Shop {self.name}>"


class Product(Base):
    """Products sold by a shop.

    ``stock`` is only ever changed by the order lifecycle (checkout commit and
    stock-restoring cancellation), always through a conditional UPDATE.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shops.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(50), nullable=False, default="unit")

    # Price in cents
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    is_available: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="1"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("price_cents > 0", name="positive_price"),
        CheckConstraint("stock >= 0", name="non_negative_stock"),
    )

    # Relationships
    shop = relationship("Shop", back_populates="products")

    @property
    def is_orderable(self) -> bool:
        """Available and sold by an active shop. Needs ``shop`` loaded."""
        return bool(self.is_available and self.shop.is_active)

    def __repr__(self):
        return f"<Product {self.name} stock={self.stock}>"
