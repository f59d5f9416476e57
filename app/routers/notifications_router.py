from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.db import get_db
from app.schemas.auth_schemas import MessageResponse
from app.schemas.notification_schemas import NotificationIdIn, NotificationOut, FavoriteIn, FavoriteOut
from app.schemas.order_schemas import CountOut
from app.services import notification_service, favorite_service
from app.utils.get_user import get_current_user

router = APIRouter(prefix="/rpc", tags=["Notifications"])


@router.post("/notifications.list", response_model=List[NotificationOut])
async def route_list_notifications(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await notification_service.list_notifications(db, _user)


@router.post("/notifications.unreadCount", response_model=CountOut)
async def route_unread_count(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return {"count": await notification_service.unread_count(db, _user)}


@router.post("/notifications.markAsRead", response_model=NotificationOut)
async def route_mark_as_read(
    payload: NotificationIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await notification_service.mark_as_read(db, _user, payload.id)


@router.post("/notifications.markAllAsRead", response_model=MessageResponse)
async def route_mark_all_as_read(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    updated = await notification_service.mark_all_as_read(db, _user)
    return {"message": f"{updated} notifications marked as read"}


# ---------------------------
# FAVORITES (drive the offer fan-out)
# ---------------------------
@router.post("/favorites.add", response_model=FavoriteOut)
async def route_add_favorite(
    payload: FavoriteIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await favorite_service.add_favorite(db, _user, payload.restaurant_id)


@router.post("/favorites.remove", response_model=MessageResponse)
async def route_remove_favorite(
    payload: FavoriteIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    removed = await favorite_service.remove_favorite(db, _user, payload.restaurant_id)
    return {"message": "Removed from favorites" if removed else "Restaurant was not a favorite"}


@router.post("/favorites.list", response_model=List[FavoriteOut])
async def route_list_favorites(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await favorite_service.list_favorites(db, _user)
