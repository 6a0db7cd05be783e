"""Market producer router: orders to fulfil and their status pipeline."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_producer
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.market_service.models import OrderStatus
from services.market_service.schemas import (
    OrderDetailResponse,
    OrderStatusUpdate,
    ProducerOrderResponse,
    ProducerOrderStatsResponse,
)
from services.market_service.services import fulfillment_queries, order_lifecycle
from services.market_service.services.notifications import Notifier, get_notifier
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/producer", tags=["producer"])


@router.get("/orders", response_model=list[ProducerOrderResponse])
async def list_orders_to_fulfil(
    status: Optional[OrderStatus] = Query(None),
    current_user: AuthUser = Depends(require_producer),
    db: AsyncSession = Depends(get_async_db),
):
    """Orders placed with this producer, newest first."""
    return await fulfillment_queries.list_producer_orders(
        db, current_user, status=status
    )


@router.get("/orders/stats", response_model=ProducerOrderStatsResponse)
async def get_order_stats(
    current_user: AuthUser = Depends(require_producer),
    db: AsyncSession = Depends(get_async_db),
):
    return await fulfillment_queries.producer_order_stats(db, current_user)


@router.patch("/orders/{order_id}/status", response_model=OrderDetailResponse)
async def update_order_status(
    order_id: uuid.UUID,
    update_in: OrderStatusUpdate,
    current_user: AuthUser = Depends(require_producer),
    db: AsyncSession = Depends(get_async_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Move an order to its next status (or cancel it)."""
    await order_lifecycle.transition_order(
        db,
        order_id,
        update_in.status,
        current_user,
        restore_stock=update_in.restore_stock,
        notifier=notifier,
    )
    return await fulfillment_queries.get_order_view(db, order_id, current_user)
