"""Domain errors for the market service and their HTTP rendering."""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from libs.common.logging import get_logger

logger = get_logger(__name__)


class MarketError(Exception):
    """Base class for user-facing market errors.

    ``context`` carries identifiers (product id, order id, ...) that are
    returned to the client alongside the message.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message = "Market operation failed"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.kind, "message": self.message}
        payload.update(self.context)
        return payload


class InvalidQuantityError(MarketError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Quantity must be a positive integer"


class EmptyCartError(MarketError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Cart is empty"


class InsufficientStockError(MarketError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Insufficient stock"


class ProductUnavailableError(MarketError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Product is not available"


class CartLineNotFoundError(MarketError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Product is not in the cart"


class OrderNotFoundError(MarketError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Order not found"


class InvalidTransitionError(MarketError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Invalid order status transition"


class UnauthorizedTransitionError(MarketError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed to change this order"


async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    logger.info(
        "%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message
    )
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def add_exception_handlers(app: FastAPI) -> None:
    """Render every ``MarketError`` as ``{"detail": kind, "message": ...}``."""
    app.add_exception_handler(MarketError, market_error_handler)
