from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.db import get_db
from app.schemas.auth_schemas import RESTAURANT_OWNER
from app.schemas.deal_schemas import RestaurantIdIn
from app.schemas.order_schemas import (
    OrderCreate,
    OrderStatusUpdate,
    SendMessageIn,
    MarkMessageReadIn,
    OrderIdIn,
    OrderOut,
    OrderStatsOut,
    CountOut,
)
from app.services import order_service
from app.utils.check_roles import require_role
from app.utils.get_user import get_current_user

router = APIRouter(prefix="/rpc", tags=["Orders"])


# ---------------------------
# CREATE
# ---------------------------
@router.post("/orders.create", response_model=OrderOut)
async def route_create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Place a dine-in or pickup order; totals are computed server side."""
    return await order_service.create_order(db, payload, _user)


# ---------------------------
# STATUS
# ---------------------------
@router.post("/orders.updateStatus", response_model=OrderOut)
@require_role([RESTAURANT_OWNER])
async def route_update_status(
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Move an order one step along
    pending -> accepted -> preparing -> ready -> completed,
    or reject it while pending, or cancel it while pending/accepted.
    """
    return await order_service.update_status(db, payload.id, payload.status, _user, payload.estimated_time)


@router.post("/orders.cancel", response_model=OrderOut)
async def route_cancel_order(
    payload: OrderIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await order_service.cancel_order(db, payload.id, _user)


# ---------------------------
# MESSAGES
# ---------------------------
@router.post("/orders.sendMessage", response_model=OrderOut)
async def route_send_message(
    payload: SendMessageIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await order_service.send_message(db, payload.order_id, payload.message, payload.sender_type, _user)


@router.post("/orders.markMessageRead", response_model=OrderOut)
async def route_mark_message_read(
    payload: MarkMessageReadIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await order_service.mark_message_read(db, payload.order_id, payload.message_id, _user)


# ---------------------------
# RETRIEVAL
# ---------------------------
@router.post("/orders.getById", response_model=OrderOut)
async def route_get_order(
    payload: OrderIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await order_service.get_order(db, payload.id, _user)


@router.post("/orders.mine", response_model=List[OrderOut])
async def route_my_orders(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await order_service.get_customer_orders(db, _user)


@router.post("/orders.getByRestaurant", response_model=List[OrderOut])
@require_role([RESTAURANT_OWNER])
async def route_restaurant_orders(
    payload: RestaurantIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await order_service.get_restaurant_orders(db, payload.restaurant_id, _user)


@router.post("/orders.pendingCount", response_model=CountOut)
@require_role([RESTAURANT_OWNER])
async def route_pending_count(
    payload: RestaurantIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    count = await order_service.get_pending_count(db, payload.restaurant_id, _user)
    return {"count": count}


@router.post("/orders.stats", response_model=OrderStatsOut)
@require_role([RESTAURANT_OWNER])
async def route_order_stats(
    payload: RestaurantIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await order_service.get_order_stats(db, payload.restaurant_id, _user)
