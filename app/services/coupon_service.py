# app/services/coupon_service.py
import logging
import string
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import COUPON_CODE_MAX_ATTEMPTS, CLAIM_REWARD_POINTS
from app.core.errors import (
    NotFoundError,
    InactiveDealError,
    ExhaustedError,
    ExpiredError,
    AlreadyUsedError,
    ForbiddenError,
    ConflictError,
)
from app.models.coupon_models import Coupon, CouponStatus
from app.models.deal_models import Deal
from app.models.user_models import User
from app.schemas.auth_schemas import CallerContext
from app.schemas.coupon_schemas import CouponVerifyOut, CouponOut

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_uppercase


# --------------------------
# Helpers
# --------------------------
def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def generate_coupon_code(deal_id: int, now_millis: int | None = None) -> str:
    """<first 4 chars of the deal id><base36 of the current epoch millis>, uppercased."""
    if now_millis is None:
        now_millis = int(time.time() * 1000)
    return f"{str(deal_id)[:4]}{to_base36(now_millis)}".upper()


def expiry_for(valid_till) -> datetime:
    # A deal is valid through the whole of its valid_till day (UTC)
    return datetime.combine(valid_till + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _classify_claim_failure(db: AsyncSession, deal_id: int) -> Exception:
    """The conditional increment touched no row; re-read the deal to say why."""
    result = await db.execute(
        select(Deal).where(Deal.id == deal_id).execution_options(populate_existing=True)
    )
    deal = result.scalar_one_or_none()
    if not deal or deal.is_deleted:
        return NotFoundError("Deal not found")
    if not deal.is_active:
        return InactiveDealError()
    return ExhaustedError()


# --------------------------
# CLAIM
# --------------------------
async def claim_coupon(db: AsyncSession, deal_id: int, caller: CallerContext) -> Coupon:
    result = await db.execute(select(Deal).where(Deal.id == deal_id, Deal.is_deleted == False))
    deal = result.scalar_one_or_none()
    if not deal:
        raise NotFoundError("Deal not found")
    if not deal.is_active:
        raise InactiveDealError()
    if deal.valid_till < _now().date():
        raise ExpiredError("This deal has expired")
    if deal.claimed_coupons >= deal.max_coupons:
        raise ExhaustedError()

    # Snapshot before any rollback expires the instance
    snapshot = dict(
        deal_id=deal.id,
        deal_title=deal.title,
        restaurant_id=deal.restaurant_id,
        restaurant_name=deal.restaurant_name,
        restaurant_image=deal.restaurant_image,
        discount_percent=deal.discount_percent,
        expires_at=expiry_for(deal.valid_till),
    )
    base_millis = int(time.time() * 1000)

    for attempt in range(COUPON_CODE_MAX_ATTEMPTS):
        # Claim a slot only while one is left; zero rows means we lost the race
        incremented = await db.execute(
            update(Deal)
            .where(
                Deal.id == deal_id,
                Deal.is_deleted == False,
                Deal.is_active == True,
                Deal.claimed_coupons < Deal.max_coupons,
            )
            .values(claimed_coupons=Deal.claimed_coupons + 1)
            .execution_options(synchronize_session=False)
        )
        if incremented.rowcount == 0:
            await db.rollback()
            error = await _classify_claim_failure(db, deal_id)
            logger.info("Claim on deal %s by user %s rejected: %s", deal_id, caller.user_id, error.kind)
            raise error

        coupon = Coupon(
            **snapshot,
            user_id=caller.user_id,
            status=CouponStatus.ACTIVE.value,
            code=generate_coupon_code(deal_id, base_millis + attempt),
            claimed_at=_now(),
        )
        db.add(coupon)
        await db.execute(
            update(User)
            .where(User.id == caller.user_id)
            .values(points=User.points + CLAIM_REWARD_POINTS)
            .execution_options(synchronize_session=False)
        )

        try:
            await db.commit()
        except IntegrityError:
            # Code collision: the increment rolls back with it, try a fresh code
            await db.rollback()
            logger.warning("Coupon code collision on deal %s (attempt %d)", deal_id, attempt + 1)
            continue

        await db.refresh(coupon)
        logger.info("User %s claimed coupon %s on deal %s", caller.user_id, coupon.code, deal_id)
        return coupon

    raise ConflictError("Could not allocate a unique coupon code, please try again")


# --------------------------
# READ
# --------------------------
async def get_coupon_by_code(db: AsyncSession, code: str) -> Coupon:
    result = await db.execute(select(Coupon).where(Coupon.code == code.strip().upper()))
    coupon = result.scalar_one_or_none()
    if not coupon:
        raise NotFoundError("Coupon not found")
    return coupon


async def get_coupon(db: AsyncSession, coupon_id: int, caller: CallerContext) -> Coupon:
    coupon = await db.get(Coupon, coupon_id)
    if not coupon or not _may_handle(coupon, caller):
        raise NotFoundError("Coupon not found")
    return coupon


async def get_user_coupons(db: AsyncSession, caller: CallerContext):
    result = await db.execute(
        select(Coupon).where(Coupon.user_id == caller.user_id).order_by(Coupon.claimed_at.desc(), Coupon.id.desc())
    )
    return result.scalars().all()


async def verify_coupon(db: AsyncSession, code: str) -> CouponVerifyOut:
    """Public check used by the scan screen; reports instead of raising."""
    result = await db.execute(select(Coupon).where(Coupon.code == code.strip().upper()))
    coupon = result.scalar_one_or_none()
    if not coupon:
        return CouponVerifyOut(valid=False, message="Coupon not found")

    coupon_out = CouponOut.model_validate(coupon)
    if coupon.status != CouponStatus.ACTIVE.value:
        return CouponVerifyOut(valid=False, message=f"Coupon has already been {coupon.status}", coupon=coupon_out)
    if coupon.is_expired():
        return CouponVerifyOut(valid=False, message="Coupon has expired", coupon=coupon_out)

    return CouponVerifyOut(
        valid=True,
        message=f"{coupon.discount_percent}% discount available",
        coupon=coupon_out,
    )


# --------------------------
# USE / REDEEM
# --------------------------
def _may_handle(coupon: Coupon, caller: CallerContext) -> bool:
    return coupon.user_id == caller.user_id or caller.owns_restaurant(coupon.restaurant_id)


async def _mark_used(db: AsyncSession, coupon: Coupon, caller: CallerContext) -> Coupon:
    if not _may_handle(coupon, caller):
        raise ForbiddenError("Only the coupon holder or its restaurant can redeem it")
    if coupon.status != CouponStatus.ACTIVE.value:
        raise AlreadyUsedError(f"This coupon has already been {coupon.status}")
    # Stored status may still say active; the clock decides
    if coupon.is_expired():
        raise ExpiredError()

    coupon_id = coupon.id
    used_at = _now()
    result = await db.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id, Coupon.status == CouponStatus.ACTIVE.value)
        .values(status=CouponStatus.USED.value, used_at=used_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount == 0:
        raise AlreadyUsedError()

    refreshed = await db.execute(
        select(Coupon).where(Coupon.id == coupon_id).execution_options(populate_existing=True)
    )
    coupon = refreshed.scalar_one()
    logger.info("Coupon %s redeemed by user %s", coupon.code, caller.user_id)
    return coupon


async def redeem_coupon(db: AsyncSession, code: str, caller: CallerContext) -> Coupon:
    coupon = await get_coupon_by_code(db, code)
    return await _mark_used(db, coupon, caller)


async def use_coupon(db: AsyncSession, coupon_id: int, caller: CallerContext) -> Coupon:
    coupon = await db.get(Coupon, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found")
    return await _mark_used(db, coupon, caller)
