# app/services/notification_service.py
import logging

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.models.notification_models import Notification, NotificationType
from app.models.user_models import Favorite
from app.schemas.auth_schemas import CallerContext

logger = logging.getLogger(__name__)


# -----------------------
# FAN-OUT (best effort)
# -----------------------
async def _write_notifications(db: AsyncSession, user_ids: list[int], event_key: str, **fields) -> int:
    if not user_ids:
        return 0

    # Skip recipients that already got this event
    existing = await db.execute(
        select(Notification.user_id).where(
            Notification.event_key == event_key,
            Notification.user_id.in_(user_ids),
        )
    )
    already = set(existing.scalars().all())

    created = 0
    for user_id in user_ids:
        if user_id in already:
            continue
        db.add(Notification(user_id=user_id, event_key=event_key, **fields))
        created += 1

    await db.commit()
    return created


async def notify_favorites(
    db: AsyncSession,
    restaurant_id: int,
    restaurant_name: str,
    title: str,
    message: str,
    event_key: str,
) -> int:
    """
    Write one offer notification per user who favorited the restaurant.
    Rerunning with the same event_key only fills in missing recipients.
    Failures are logged and never propagate: the caller's write already committed.
    """
    try:
        result = await db.execute(
            select(Favorite.user_id).where(Favorite.restaurant_id == restaurant_id).order_by(Favorite.user_id)
        )
        user_ids = list(result.scalars().all())
        created = await _write_notifications(
            db,
            user_ids,
            event_key,
            restaurant_id=restaurant_id,
            restaurant_name=restaurant_name,
            title=title,
            message=message,
            type=NotificationType.OFFER.value,
        )
        logger.info("Fan-out %s: %d of %d favoriting users notified", event_key, created, len(user_ids))
        return created
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Fan-out %s for restaurant %s failed", event_key, restaurant_id)
        return 0


async def notify_user(
    db: AsyncSession,
    user_id: int,
    restaurant_id: int | None,
    title: str,
    message: str,
    event_key: str,
    type: str = NotificationType.BOOKING.value,
    restaurant_name: str = "",
) -> bool:
    try:
        created = await _write_notifications(
            db,
            [user_id],
            event_key,
            restaurant_id=restaurant_id,
            restaurant_name=restaurant_name,
            title=title,
            message=message,
            type=type,
        )
        return created == 1
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Notification %s for user %s failed", event_key, user_id)
        return False


# -----------------------
# READ / MARK
# -----------------------
async def list_notifications(db: AsyncSession, caller: CallerContext, limit: int = 50):
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == caller.user_id)
        .order_by(Notification.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def unread_count(db: AsyncSession, caller: CallerContext) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == caller.user_id,
            Notification.read == False,
        )
    )
    return result.scalar() or 0


async def mark_as_read(db: AsyncSession, caller: CallerContext, notification_id: int) -> Notification:
    notification = await db.get(Notification, notification_id)
    # Someone else's notification looks the same as a missing one
    if not notification or notification.user_id != caller.user_id:
        raise NotFoundError("Notification not found")

    if not notification.read:
        notification.read = True
        await db.commit()
        await db.refresh(notification)
    return notification


async def mark_all_as_read(db: AsyncSession, caller: CallerContext) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == caller.user_id, Notification.read == False)
        .values(read=True)
    )
    await db.commit()
    return result.rowcount
