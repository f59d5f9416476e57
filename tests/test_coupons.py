import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select, func

from app.core.errors import (
    NotFoundError,
    InactiveDealError,
    ExhaustedError,
    ExpiredError,
    AlreadyUsedError,
    ForbiddenError,
)
from app.models.coupon_models import Coupon
from app.models.deal_models import Deal
from app.models.user_models import User
from app.schemas.coupon_schemas import CouponOut
from app.schemas.deal_schemas import DealUpdate
from app.services import coupon_service, deal_service


async def load_deal(session_factory, deal_id):
    async with session_factory() as session:
        return await session.get(Deal, deal_id)


async def coupon_count(session_factory, deal_id):
    async with session_factory() as session:
        result = await session.execute(select(func.count(Coupon.id)).where(Coupon.deal_id == deal_id))
        return result.scalar()


async def attempt_claim(session_factory, deal_id, caller):
    async with session_factory() as session:
        try:
            return await coupon_service.claim_coupon(session, deal_id, caller)
        except ExhaustedError as exc:
            return exc


# --------------------------
# code generation
# --------------------------
def test_base36():
    assert coupon_service.to_base36(0) == "0"
    assert coupon_service.to_base36(35) == "Z"
    assert coupon_service.to_base36(36) == "10"


def test_code_is_deal_prefix_plus_base36_millis():
    assert coupon_service.generate_coupon_code(123456, 36 * 36) == "1234100"
    assert coupon_service.generate_coupon_code(7, 1_700_000_000_000) == "7" + coupon_service.to_base36(1_700_000_000_000)


def test_expiry_covers_whole_valid_till_day():
    assert coupon_service.expiry_for(date(2026, 3, 1)) == datetime(2026, 3, 2, tzinfo=timezone.utc)


# --------------------------
# claim
# --------------------------
async def test_claim_creates_active_coupon(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id, discount_percent=40)

    async with session_factory() as session:
        coupon = await coupon_service.claim_coupon(session, deal_id, world.alice)

    assert coupon.status == "active"
    assert coupon.user_id == world.alice.user_id
    assert coupon.discount_percent == 40
    assert coupon.deal_title == "Half price pasta"
    assert coupon.code == coupon.code.upper()
    assert coupon.code.startswith(str(deal_id)[:4])
    assert coupon.used_at is None

    deal = await load_deal(session_factory, deal_id)
    assert deal.claimed_coupons == 1

    async with session_factory() as session:
        alice = await session.get(User, world.alice.user_id)
        assert alice.points == 10


async def test_claim_missing_deal(db, world):
    with pytest.raises(NotFoundError):
        await coupon_service.claim_coupon(db, 31337, world.alice)


async def test_claim_inactive_deal(db, world, make_deal):
    deal_id = await make_deal(world.bistro_id, is_active=False)
    with pytest.raises(InactiveDealError):
        await coupon_service.claim_coupon(db, deal_id, world.alice)


async def test_claim_exhausted_deal(db, world, make_deal):
    deal_id = await make_deal(world.bistro_id, max_coupons=2, claimed_coupons=2)
    with pytest.raises(ExhaustedError):
        await coupon_service.claim_coupon(db, deal_id, world.alice)


async def test_claim_past_valid_till(db, world, make_deal):
    deal_id = await make_deal(world.bistro_id, valid_till=date.today() - timedelta(days=2))
    with pytest.raises(ExpiredError):
        await coupon_service.claim_coupon(db, deal_id, world.alice)


async def test_two_concurrent_claims_for_last_coupon(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id, max_coupons=1)

    results = await asyncio.gather(
        attempt_claim(session_factory, deal_id, world.alice),
        attempt_claim(session_factory, deal_id, world.bob),
    )

    winners = [r for r in results if isinstance(r, Coupon)]
    losers = [r for r in results if isinstance(r, ExhaustedError)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert (await load_deal(session_factory, deal_id)).claimed_coupons == 1
    assert await coupon_count(session_factory, deal_id) == 1


async def test_claims_never_exceed_max(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id, max_coupons=5, claimed_coupons=2)
    callers = [world.alice, world.bob, world.carol, world.alice, world.bob, world.carol]

    results = await asyncio.gather(*[attempt_claim(session_factory, deal_id, c) for c in callers])

    assert sum(isinstance(r, Coupon) for r in results) == 3
    assert sum(isinstance(r, ExhaustedError) for r in results) == 3
    assert (await load_deal(session_factory, deal_id)).claimed_coupons == 5
    assert await coupon_count(session_factory, deal_id) == 3


async def test_code_collision_retries_without_double_counting(session_factory, world, make_deal, monkeypatch):
    deal_id = await make_deal(world.bistro_id)
    frozen_millis = 1_750_000_000_000
    monkeypatch.setattr(coupon_service.time, "time", lambda: frozen_millis / 1000)

    taken = coupon_service.generate_coupon_code(deal_id, frozen_millis)
    async with session_factory() as session:
        session.add(Coupon(
            deal_id=deal_id,
            user_id=world.carol.user_id,
            deal_title="older claim",
            restaurant_id=world.bistro_id,
            restaurant_name="Bistro Uno",
            discount_percent=50,
            code=taken,
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        ))
        await session.commit()

    async with session_factory() as session:
        coupon = await coupon_service.claim_coupon(session, deal_id, world.alice)

    assert coupon.code == coupon_service.generate_coupon_code(deal_id, frozen_millis + 1)
    assert (await load_deal(session_factory, deal_id)).claimed_coupons == 1


# --------------------------
# verify / redeem
# --------------------------
async def test_verify_keeps_claim_time_discount(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id, discount_percent=25)

    async with session_factory() as session:
        coupon = await coupon_service.claim_coupon(session, deal_id, world.alice)
    async with session_factory() as session:
        await deal_service.update_deal(session, DealUpdate(id=deal_id, discount_percent=60), world.owner)

    async with session_factory() as session:
        result = await coupon_service.verify_coupon(session, coupon.code)

    assert result.valid is True
    assert result.coupon.discount_percent == 25
    assert result.message == "25% discount available"


async def test_stale_active_coupon_reads_as_expired(db, world):
    db.add(Coupon(
        deal_id=1,
        user_id=world.alice.user_id,
        deal_title="Yesterday's deal",
        restaurant_id=world.bistro_id,
        restaurant_name="Bistro Uno",
        discount_percent=30,
        status="active",
        code="STALE1",
        expires_at=datetime.now(timezone.utc) - timedelta(days=1),
    ))
    await db.commit()

    result = await coupon_service.verify_coupon(db, "STALE1")
    assert result.valid is False
    assert "expired" in result.message
    assert result.coupon.status == "expired"

    with pytest.raises(ExpiredError):
        await coupon_service.redeem_coupon(db, "STALE1", world.alice)

    stored = await db.execute(select(Coupon.status).where(Coupon.code == "STALE1"))
    assert stored.scalar() == "active"


async def test_coupon_out_reports_expired(db, world):
    coupon = Coupon(
        id=1,
        deal_id=1,
        user_id=world.alice.user_id,
        deal_title="Gone",
        restaurant_id=world.bistro_id,
        restaurant_name="Bistro Uno",
        discount_percent=10,
        status="active",
        code="GONE01",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        claimed_at=datetime.now(timezone.utc) - timedelta(days=3),
    )
    assert CouponOut.model_validate(coupon).status == "expired"


async def test_redeem_once_only(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id)
    async with session_factory() as session:
        coupon = await coupon_service.claim_coupon(session, deal_id, world.alice)

    async with session_factory() as session:
        used = await coupon_service.redeem_coupon(session, coupon.code.lower(), world.owner)
        assert used.status == "used"
        assert used.used_at is not None

    async with session_factory() as session:
        with pytest.raises(AlreadyUsedError):
            await coupon_service.use_coupon(session, coupon.id, world.alice)

        result = await coupon_service.verify_coupon(session, coupon.code)
        assert result.valid is False
        assert result.message == "Coupon has already been used"


async def test_redeem_unknown_code(db, world):
    with pytest.raises(NotFoundError):
        await coupon_service.redeem_coupon(db, "NOPE", world.alice)

    result = await coupon_service.verify_coupon(db, "NOPE")
    assert result.valid is False
    assert result.coupon is None


async def test_strangers_cannot_redeem(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id)
    async with session_factory() as session:
        coupon = await coupon_service.claim_coupon(session, deal_id, world.alice)

    async with session_factory() as session:
        with pytest.raises(ForbiddenError):
            await coupon_service.redeem_coupon(session, coupon.code, world.bob)
        with pytest.raises(ForbiddenError):
            await coupon_service.redeem_coupon(session, coupon.code, world.rival)
