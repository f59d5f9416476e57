from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.models.restaurant_models import Restaurant
from app.models.user_models import Favorite
from app.schemas.auth_schemas import CallerContext


async def add_favorite(db: AsyncSession, caller: CallerContext, restaurant_id: int) -> Favorite:
    restaurant = await db.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFoundError("Restaurant not found")

    existing = await db.execute(
        select(Favorite).where(Favorite.user_id == caller.user_id, Favorite.restaurant_id == restaurant_id)
    )
    favorite = existing.scalar_one_or_none()
    if favorite:
        return favorite

    favorite = Favorite(user_id=caller.user_id, restaurant_id=restaurant_id)
    db.add(favorite)
    try:
        await db.commit()
    except IntegrityError:
        # Added concurrently by another request
        await db.rollback()
        existing = await db.execute(
            select(Favorite).where(Favorite.user_id == caller.user_id, Favorite.restaurant_id == restaurant_id)
        )
        return existing.scalar_one()
    await db.refresh(favorite)
    return favorite


async def remove_favorite(db: AsyncSession, caller: CallerContext, restaurant_id: int) -> bool:
    result = await db.execute(
        delete(Favorite).where(Favorite.user_id == caller.user_id, Favorite.restaurant_id == restaurant_id)
    )
    await db.commit()
    return result.rowcount > 0


async def list_favorites(db: AsyncSession, caller: CallerContext):
    result = await db.execute(
        select(Favorite).where(Favorite.user_id == caller.user_id).order_by(Favorite.created_at.desc())
    )
    return result.scalars().all()
