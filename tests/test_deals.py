from datetime import date, timedelta

import pytest
from pydantic import ValidationError as SchemaError
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from app.core.errors import ForbiddenError, NotFoundError, ValidationError
from app.models.deal_models import Deal
from app.models.notification_models import Notification
from app.schemas.deal_schemas import DealCreate, DealUpdate, DealSearch
from app.services import coupon_service, deal_service, notification_service


def new_deal(restaurant_id, **overrides):
    fields = dict(
        restaurant_id=restaurant_id,
        title="Taco Tuesday",
        description="Two tacos for one",
        discount_percent=50,
        offer_type="pickup",
        max_coupons=20,
        valid_till=date.today() + timedelta(days=30),
        days_available=["tue"],
        start_time="11:00",
        end_time="22:00",
        is_active=True,
    )
    fields.update(overrides)
    return DealCreate(**fields)


async def offer_recipients(db):
    result = await db.execute(
        select(Notification.user_id).where(Notification.type == "offer").order_by(Notification.user_id)
    )
    return result.scalars().all()


# --------------------------
# create + fan-out
# --------------------------
async def test_create_active_deal_notifies_favorites(db, world):
    deal = await deal_service.create_deal(db, new_deal(world.bistro_id), world.owner)

    assert deal.claimed_coupons == 0
    assert deal.restaurant_name == "Bistro Uno"
    assert deal.restaurant_image == "https://img.test/uno.png"

    assert await offer_recipients(db) == sorted([world.alice.user_id, world.bob.user_id])
    result = await db.execute(select(Notification.message).where(Notification.type == "offer"))
    assert set(result.scalars().all()) == {"Bistro Uno just launched: Taco Tuesday"}


async def test_create_inactive_deal_is_silent(db, world):
    await deal_service.create_deal(db, new_deal(world.bistro_id, is_active=False), world.owner)
    assert await offer_recipients(db) == []


async def test_cannot_create_for_someone_elses_restaurant(db, world):
    with pytest.raises(ForbiddenError):
        await deal_service.create_deal(db, new_deal(world.bistro_id), world.rival)
    with pytest.raises(ForbiddenError):
        await deal_service.create_deal(db, new_deal(world.bistro_id), world.alice)


async def test_discount_percent_range_is_schema_checked(world):
    with pytest.raises(SchemaError):
        new_deal(world.bistro_id, discount_percent=0)
    with pytest.raises(SchemaError):
        new_deal(world.bistro_id, discount_percent=101)
    with pytest.raises(SchemaError):
        new_deal(world.bistro_id, offer_type="delivery")


async def test_each_activation_announces_again(db, world):
    deal = await deal_service.create_deal(db, new_deal(world.bistro_id, is_active=False), world.owner)

    deal = await deal_service.toggle_active(db, deal.id, world.owner)
    assert deal.is_active is True
    assert len(await offer_recipients(db)) == 2

    deal = await deal_service.toggle_active(db, deal.id, world.owner)
    assert deal.is_active is False
    assert len(await offer_recipients(db)) == 2

    await deal_service.toggle_active(db, deal.id, world.owner)
    assert len(await offer_recipients(db)) == 4


async def test_update_to_active_announces(db, world):
    deal = await deal_service.create_deal(db, new_deal(world.bistro_id, is_active=False), world.owner)
    await deal_service.update_deal(db, DealUpdate(id=deal.id, is_active=True), world.owner)
    assert len(await offer_recipients(db)) == 2


async def test_fan_out_is_idempotent_per_event(db, world):
    first = await notification_service.notify_favorites(
        db, world.bistro_id, "Bistro Uno", "New Offer Available!", "hello", event_key="deal:99:activation:1"
    )
    again = await notification_service.notify_favorites(
        db, world.bistro_id, "Bistro Uno", "New Offer Available!", "hello", event_key="deal:99:activation:1"
    )
    assert (first, again) == (2, 0)
    assert len(await offer_recipients(db)) == 2


async def test_fan_out_failure_does_not_undo_the_deal(db, world, monkeypatch):
    async def broken(*args, **kwargs):
        raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))

    monkeypatch.setattr(notification_service, "_write_notifications", broken)

    deal = await deal_service.create_deal(db, new_deal(world.bistro_id), world.owner)

    assert deal.id is not None
    assert (await deal_service.get_deal_by_id(db, deal.id)).title == "Taco Tuesday"


# --------------------------
# update / delete
# --------------------------
def test_patch_rejects_immutable_fields():
    with pytest.raises(SchemaError):
        DealUpdate(id=1, claimed_coupons=0)
    with pytest.raises(SchemaError):
        DealUpdate(id=1, restaurant_id=2)


async def test_max_coupons_cannot_drop_below_claimed(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id, max_coupons=5, claimed_coupons=3)

    async with session_factory() as session:
        with pytest.raises(ValidationError):
            await deal_service.update_deal(session, DealUpdate(id=deal_id, max_coupons=2), world.owner)

    async with session_factory() as session:
        deal = await deal_service.update_deal(session, DealUpdate(id=deal_id, max_coupons=3, title="Last few"), world.owner)
        assert (deal.max_coupons, deal.title) == (3, "Last few")


async def test_cap_is_checked_against_claims_landing_mid_update(db, world, make_deal, monkeypatch):
    deal_id = await make_deal(world.bistro_id, max_coupons=10, claimed_coupons=3)
    get_owned = deal_service._get_owned_deal

    async def load_then_claim(session, deal_id, caller):
        deal = await get_owned(session, deal_id, caller)
        # Two claims commit after the owner's read
        await session.execute(
            update(Deal)
            .where(Deal.id == deal_id)
            .values(claimed_coupons=Deal.claimed_coupons + 2)
            .execution_options(synchronize_session=False)
        )
        return deal

    monkeypatch.setattr(deal_service, "_get_owned_deal", load_then_claim)
    with pytest.raises(ValidationError):
        await deal_service.update_deal(db, DealUpdate(id=deal_id, max_coupons=4), world.owner)
    monkeypatch.undo()

    deal = await deal_service.get_deal_by_id(db, deal_id)
    assert deal.max_coupons == 10


async def test_activating_an_active_deal_does_not_announce(db, world):
    deal = await deal_service.create_deal(db, new_deal(world.bistro_id), world.owner)
    assert len(await offer_recipients(db)) == 2

    updated = await deal_service.update_deal(db, DealUpdate(id=deal.id, is_active=True, title="Taco Wednesday"), world.owner)

    assert (updated.activation_count, updated.title) == (1, "Taco Wednesday")
    assert len(await offer_recipients(db)) == 2


async def test_update_rejects_null_for_required_field(db, world, make_deal):
    deal_id = await make_deal(world.bistro_id)
    with pytest.raises(ValidationError):
        await deal_service.update_deal(db, DealUpdate(id=deal_id, title=None), world.owner)


async def test_delete_is_soft_and_keeps_coupons_valid(session_factory, world, make_deal):
    deal_id = await make_deal(world.bistro_id)
    async with session_factory() as session:
        coupon = await coupon_service.claim_coupon(session, deal_id, world.alice)

    async with session_factory() as session:
        with pytest.raises(ForbiddenError):
            await deal_service.delete_deal(session, deal_id, world.rival)
        await deal_service.delete_deal(session, deal_id, world.owner)

    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await deal_service.get_deal_by_id(session, deal_id)
        assert await deal_service.get_active_deals(session) == []
        with pytest.raises(NotFoundError):
            await coupon_service.claim_coupon(session, deal_id, world.bob)

        result = await coupon_service.verify_coupon(session, coupon.code)
        assert result.valid is True


# --------------------------
# listings
# --------------------------
async def test_search_and_hot_deals(db, world, make_deal):
    await make_deal(world.bistro_id, title="Pickup pizza", offer_type="pickup", discount_percent=20)
    await make_deal(world.bistro_id, title="Anything goes", offer_type="both", discount_percent=35)
    await make_deal(world.grill_id, title="Dine-in steak", offer_type="dinein", discount_percent=60,
                    restaurant_name="Grill Dos")
    await make_deal(world.grill_id, title="Old news", discount_percent=90,
                    valid_till=date.today() - timedelta(days=1), restaurant_name="Grill Dos")

    pickup = await deal_service.search_deals(db, DealSearch(offer_type="pickup"))
    assert [d.title for d in pickup] == ["Anything goes", "Pickup pizza"]

    by_text = await deal_service.search_deals(db, DealSearch(query="grill"))
    assert [d.title for d in by_text] == ["Dine-in steak"]

    ranged = await deal_service.search_deals(db, DealSearch(min_discount=30, max_discount=50))
    assert [d.title for d in ranged] == ["Anything goes"]

    hot = await deal_service.get_hot_deals(db)
    assert [d.title for d in hot] == ["Dine-in steak", "Anything goes"]

    by_restaurant = await deal_service.get_deals_by_restaurant(db, world.grill_id)
    assert {d.title for d in by_restaurant} == {"Dine-in steak", "Old news"}
