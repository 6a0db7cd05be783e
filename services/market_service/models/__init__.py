"""Market Service models package."""

from services.market_service.models.catalog import Customer, Producer, Product, Shop
from services.market_service.models.commerce import (
    Cart,
    CartItem,
    Order,
    OrderItem,
    OrderStatusChange,
)
from services.market_service.models.enums import (
    ORDER_TRANSITIONS,
    TERMINAL_STATUSES,
    OrderStatus,
    PaymentStatus,
    can_transition,
)

__all__ = [
    "Cart",
    "CartItem",
    "Customer",
    "ORDER_TRANSITIONS",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusChange",
    "PaymentStatus",
    "Producer",
    "Product",
    "Shop",
    "TERMINAL_STATUSES",
    "can_transition",
]
