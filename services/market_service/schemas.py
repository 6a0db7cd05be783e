"""Pydantic schemas for market service."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.market_service.models import OrderStatus, PaymentStatus

# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartLineIn(BaseModel):
    """A line as submitted by a client (local cart or explicit checkout)."""

    product_id: uuid.UUID
    # Range is checked by the cart store so it can answer InvalidQuantityError
    quantity: int


class CartItemCreate(BaseModel):
    product_id: uuid.UUID
    quantity: int = 1


class CartItemUpdate(BaseModel):
    quantity: int


class CartItemResponse(BaseModel):
    product_id: uuid.UUID
    quantity: int

    # Enriched from product
    product_name: str
    unit: str
    producer_id: uuid.UUID
    unit_price_cents: int
    unit_price: Decimal
    line_total_cents: int
    line_total: Decimal
    is_available: bool = True


class CartResponse(BaseModel):
    items: list[CartItemResponse] = []
    currency: str

    # Calculated totals
    total_cents: int = 0
    total: Decimal = Decimal("0.00")


class CartSyncRequest(BaseModel):
    """Anonymous cart sent by the client right after login."""

    items: list[CartLineIn] = []
    # Same key on a retried login makes the sync a no-op
    sync_key: Optional[str] = Field(None, max_length=100)


class DroppedLineResponse(BaseModel):
    product_id: uuid.UUID
    quantity: int
    reason: str


class CartSyncResponse(BaseModel):
    cart: CartResponse
    dropped: list[DroppedLineResponse] = []
    replayed: bool = False
    # Client must discard its local cart once this is true
    clear_local_cart: bool = True


# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class ProducerPickup(BaseModel):
    producer_id: uuid.UUID
    pickup_point: str = Field(..., max_length=500)


class CheckoutRequest(BaseModel):
    """Check out the server cart, or an explicit list of lines."""

    items: Optional[list[CartLineIn]] = None
    pickups: list[ProducerPickup] = []
    pickup_point: Optional[str] = Field(None, max_length=500)
    pickup_date: Optional[date] = None
    notes: Optional[str] = None

    # Opaque references from the payments service
    payment_method_id: Optional[str] = Field(None, max_length=100)
    payment_intent_id: Optional[str] = Field(None, max_length=100)
    # Only honoured once the payment gateway confirms payment_intent_id
    payment_confirmed: bool = False


class CheckoutFailureResponse(BaseModel):
    kind: str
    message: str
    producer_id: Optional[uuid.UUID] = None
    product_id: Optional[uuid.UUID] = None


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: uuid.UUID
    product_name: str
    unit: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int


class OrderResponse(BaseModel):
    """Fields shared by every order view."""

    id: uuid.UUID
    order_number: str
    checkout_id: uuid.UUID
    customer_id: uuid.UUID
    producer_id: uuid.UUID
    status: OrderStatus
    payment_status: PaymentStatus
    total_cents: int
    total: Decimal
    currency: str
    pickup_point: str
    # Dates are always YYYY-MM-DD
    pickup_date: Optional[str] = None
    order_date: str
    notes: Optional[str] = None
    items: list[OrderItemResponse] = []


class CustomerOrderResponse(OrderResponse):
    producer_name: str


class ProducerOrderResponse(OrderResponse):
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


class OrderDetailResponse(OrderResponse):
    producer_name: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_intent_id: Optional[str] = None
    fulfilled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class CheckoutResponse(BaseModel):
    checkout_id: uuid.UUID
    orders: list[CustomerOrderResponse] = []
    failures: list[CheckoutFailureResponse] = []


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    # None falls back to PRODUCER_CANCEL_RESTORES_STOCK
    restore_stock: Optional[bool] = None


# ============================================================================
# STATS SCHEMAS
# ============================================================================


class TopProductResponse(BaseModel):
    product_id: uuid.UUID
    product_name: str
    quantity: int
    revenue_cents: int
    revenue: Decimal


class ProducerOrderStatsResponse(BaseModel):
    total_orders: int
    status_counts: dict[OrderStatus, int]
    revenue_cents: int
    revenue: Decimal
    average_order_cents: int
    average_order: Decimal
    distinct_customers: int
    top_products: list[TopProductResponse] = []
    currency: str
