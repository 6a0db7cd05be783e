"""Market cart router: server cart and login reconciliation."""

import uuid

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_customer
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.market_service.schemas import (
    CartItemCreate,
    CartItemUpdate,
    CartResponse,
    CartSyncRequest,
    CartSyncResponse,
    DroppedLineResponse,
)
from services.market_service.services import cart_store
from services.market_service.services.cart_reconciliation import reconcile_cart
from services.market_service.services.cart_store import CartLine
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["cart"])


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
):
    """Current server cart with product details and totals."""
    return await cart_store.cart_view(db, current_user)


@router.post("/cart/items", response_model=CartResponse)
async def add_cart_item(
    item_in: CartItemCreate,
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
):
    """Add a product to the cart; an existing line gets the quantity added."""
    await cart_store.add_line(db, current_user, item_in.product_id, item_in.quantity)
    return await cart_store.cart_view(db, current_user)


@router.put("/cart/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: uuid.UUID,
    item_in: CartItemUpdate,
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
):
    """Set a line's quantity. Zero removes the line."""
    await cart_store.set_quantity(db, current_user, product_id, item_in.quantity)
    return await cart_store.cart_view(db, current_user)


@router.delete("/cart/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(
    product_id: uuid.UUID,
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
):
    await cart_store.remove_line(db, current_user, product_id)
    return await cart_store.cart_view(db, current_user)


@router.delete("/cart", response_model=CartResponse)
async def clear_cart(
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
):
    await cart_store.clear_cart(db, current_user)
    return await cart_store.cart_view(db, current_user)


@router.post("/cart/sync", response_model=CartSyncResponse)
async def sync_cart(
    sync_in: CartSyncRequest,
    current_user: AuthUser = Depends(require_customer),
    db: AsyncSession = Depends(get_async_db),
):
    """Merge the anonymous cart the client kept before login.

    The client should drop its local cart once this succeeds.
    """
    result = await reconcile_cart(
        db,
        current_user,
        [CartLine(line.product_id, line.quantity) for line in sync_in.items],
        sync_key=sync_in.sync_key,
    )
    return CartSyncResponse(
        cart=await cart_store.cart_view(db, current_user),
        dropped=[
            DroppedLineResponse(
                product_id=line.product_id, quantity=line.quantity, reason=line.reason
            )
            for line in result.dropped
        ],
        replayed=result.replayed,
    )
