# app/services/deal_service.py
import logging
from datetime import date, datetime, timezone

from sqlalchemy import select, update, case, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ForbiddenError, ValidationError
from app.models.deal_models import Deal, OfferType
from app.models.restaurant_models import Restaurant
from app.schemas.auth_schemas import CallerContext
from app.schemas.deal_schemas import DealCreate, DealUpdate, DealSearch
from app.services.notification_service import notify_favorites

logger = logging.getLogger(__name__)

HOT_DEAL_MIN_DISCOUNT = 30
HOT_DEAL_LIMIT = 10
CLEARABLE_FIELDS = {"start_time", "end_time", "terms_conditions"}


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _live_filters():
    return [Deal.is_deleted == False, Deal.is_active == True, Deal.valid_till >= _today()]


async def _announce(db: AsyncSession, deal: Deal) -> int:
    """Fan the deal out to everyone who favorited its restaurant, once per activation."""
    return await notify_favorites(
        db,
        restaurant_id=deal.restaurant_id,
        restaurant_name=deal.restaurant_name,
        title="New Offer Available!",
        message=f"{deal.restaurant_name} just launched: {deal.title}",
        event_key=f"deal:{deal.id}:activation:{deal.activation_count}",
    )


async def _reload_deal(db: AsyncSession, deal_id: int) -> Deal:
    result = await db.execute(
        select(Deal)
        .where(Deal.id == deal_id, Deal.is_deleted == False)
        .execution_options(populate_existing=True)
    )
    deal = result.scalar_one_or_none()
    if not deal:
        raise NotFoundError("Deal not found")
    return deal


async def _get_owned_deal(db: AsyncSession, deal_id: int, caller: CallerContext) -> Deal:
    deal = await get_deal_by_id(db, deal_id)
    if not caller.owns_restaurant(deal.restaurant_id):
        raise ForbiddenError("Only the restaurant that owns this deal can change it")
    return deal


# -----------------------
# CREATE
# -----------------------
async def create_deal(db: AsyncSession, payload: DealCreate, caller: CallerContext) -> Deal:
    if not caller.owns_restaurant(payload.restaurant_id):
        raise ForbiddenError("You can only create deals for your own restaurant")

    restaurant = await db.get(Restaurant, payload.restaurant_id)
    if not restaurant:
        raise NotFoundError("Restaurant not found")

    if payload.valid_till < _today():
        raise ValidationError("valid_till must not be in the past")

    deal = Deal(
        **payload.model_dump(),
        restaurant_name=restaurant.name,
        restaurant_image=restaurant.logo,
        claimed_coupons=0,
        activation_count=1 if payload.is_active else 0,
    )
    db.add(deal)
    await db.commit()
    await db.refresh(deal)
    logger.info("Deal %s created for restaurant %s (active=%s)", deal.id, deal.restaurant_id, deal.is_active)

    deal_id = deal.id
    if deal.is_active:
        await _announce(db, deal)
    return await get_deal_by_id(db, deal_id)


# -----------------------
# READ
# -----------------------
async def get_deal_by_id(db: AsyncSession, deal_id: int) -> Deal:
    result = await db.execute(select(Deal).where(Deal.id == deal_id, Deal.is_deleted == False))
    deal = result.scalar_one_or_none()
    if not deal:
        raise NotFoundError("Deal not found")
    return deal


async def get_active_deals(db: AsyncSession):
    result = await db.execute(select(Deal).where(and_(*_live_filters())).order_by(Deal.created_at.desc(), Deal.id.desc()))
    return result.scalars().all()


async def get_deals_by_restaurant(db: AsyncSession, restaurant_id: int):
    result = await db.execute(
        select(Deal)
        .where(Deal.restaurant_id == restaurant_id, Deal.is_deleted == False)
        .order_by(Deal.id.desc())
    )
    return result.scalars().all()


async def get_hot_deals(db: AsyncSession):
    result = await db.execute(
        select(Deal)
        .where(and_(*_live_filters()), Deal.discount_percent >= HOT_DEAL_MIN_DISCOUNT)
        .order_by(Deal.discount_percent.desc(), Deal.id.desc())
        .limit(HOT_DEAL_LIMIT)
    )
    return result.scalars().all()


async def search_deals(db: AsyncSession, params: DealSearch):
    filters = _live_filters()

    if params.query:
        pattern = f"%{params.query}%"
        filters.append(
            or_(
                Deal.title.ilike(pattern),
                Deal.description.ilike(pattern),
                Deal.restaurant_name.ilike(pattern),
            )
        )

    # A "both" deal matches either order type
    if params.offer_type:
        filters.append(Deal.offer_type.in_([params.offer_type, OfferType.BOTH.value]))

    if params.min_discount is not None:
        filters.append(Deal.discount_percent >= params.min_discount)
    if params.max_discount is not None:
        filters.append(Deal.discount_percent <= params.max_discount)

    result = await db.execute(select(Deal).where(and_(*filters)).order_by(Deal.discount_percent.desc(), Deal.id.desc()))
    return result.scalars().all()


# -----------------------
# UPDATE
# -----------------------
async def update_deal(db: AsyncSession, payload: DealUpdate, caller: CallerContext) -> Deal:
    deal = await _get_owned_deal(db, payload.id, caller)

    update_data = payload.model_dump(exclude_unset=True, exclude={"id"})
    nulls = [key for key, value in update_data.items() if value is None and key not in CLEARABLE_FIELDS]
    if nulls:
        raise ValidationError(f"{', '.join(nulls)} cannot be null")

    if "max_coupons" in update_data and update_data["max_coupons"] < deal.claimed_coupons:
        raise ValidationError(
            f"max_coupons cannot drop below the {deal.claimed_coupons} coupons already claimed"
        )
    if not update_data:
        return deal

    deal_id = deal.id
    activations_before = deal.activation_count

    # Claims keep landing while we patch: guard the cap and the activation in the statement itself
    conditions = [Deal.id == deal_id, Deal.is_deleted == False]
    values = dict(update_data)
    if "max_coupons" in update_data:
        conditions.append(Deal.claimed_coupons <= update_data["max_coupons"])
    if update_data.get("is_active") is True:
        values["activation_count"] = case(
            (Deal.is_active == False, Deal.activation_count + 1),
            else_=Deal.activation_count,
        )

    result = await db.execute(
        update(Deal).where(*conditions).values(**values).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        current = await _reload_deal(db, deal_id)
        raise ValidationError(
            f"max_coupons cannot drop below the {current.claimed_coupons} coupons already claimed"
        )

    await db.commit()
    deal = await _reload_deal(db, deal_id)
    logger.info("Deal %s updated: %s", deal_id, ", ".join(sorted(update_data)))

    if deal.activation_count > activations_before:
        await _announce(db, deal)
    return await get_deal_by_id(db, deal_id)


async def toggle_active(db: AsyncSession, deal_id: int, caller: CallerContext) -> Deal:
    deal = await _get_owned_deal(db, deal_id, caller)

    deal.is_active = not deal.is_active
    if deal.is_active:
        deal.activation_count += 1

    await db.commit()
    await db.refresh(deal)
    logger.info("Deal %s toggled, active=%s", deal.id, deal.is_active)

    # Re-activation is a fresh announcement
    if deal.is_active:
        await _announce(db, deal)
    return await get_deal_by_id(db, deal_id)


# -----------------------
# SOFT DELETE
# -----------------------
async def delete_deal(db: AsyncSession, deal_id: int, caller: CallerContext) -> Deal:
    deal = await _get_owned_deal(db, deal_id, caller)

    # Claimed coupons keep pointing at a row that still exists
    deal.is_deleted = True
    deal.is_active = False

    await db.commit()
    await db.refresh(deal)
    logger.info("Deal %s soft-deleted", deal.id)
    return deal
