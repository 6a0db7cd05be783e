"""Market service routers package."""

from services.market_service.routers.cart import router as cart_router
from services.market_service.routers.orders import router as orders_router
from services.market_service.routers.producer_orders import (
    router as producer_orders_router,
)

__all__ = [
    "cart_router",
    "orders_router",
    "producer_orders_router",
]
