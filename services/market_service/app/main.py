"""FastAPI application for the Market Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.market_service.errors import add_exception_handlers
from services.market_service.routers import (
    cart_router,
    orders_router,
    producer_orders_router,
)


def create_app() -> FastAPI:
    """Create and configure the Market Service FastAPI app."""
    app = FastAPI(
        title="Market Service",
        version="0.1.0",
        description="Local-pickup marketplace: carts, multi-producer checkout, order fulfilment.",
    )
    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "market"}

    # Customer routes (cart, checkout, my orders)
    app.include_router(cart_router, prefix="/market")
    app.include_router(orders_router, prefix="/market")

    # Producer routes (orders to fulfil, stats, status pipeline)
    app.include_router(producer_orders_router, prefix="/market")

    return app


app = create_app()
