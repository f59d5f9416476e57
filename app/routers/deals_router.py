from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.db import get_db
from app.schemas.auth_schemas import RESTAURANT_OWNER
from app.schemas.coupon_schemas import ClaimIn, CouponOut
from app.schemas.deal_schemas import DealCreate, DealUpdate, DealIdIn, DealOut, DealSearch, RestaurantIdIn
from app.services import coupon_service, deal_service
from app.utils.check_roles import require_role
from app.utils.get_user import get_current_user

router = APIRouter(prefix="/rpc", tags=["Deals"])


# ---------------------------
# QUERIES (public)
# ---------------------------
@router.post("/deals.getById", response_model=DealOut)
async def route_get_deal(payload: DealIdIn, db: AsyncSession = Depends(get_db)):
    return await deal_service.get_deal_by_id(db, payload.id)


@router.post("/deals.getActive", response_model=List[DealOut])
async def route_get_active_deals(db: AsyncSession = Depends(get_db)):
    return await deal_service.get_active_deals(db)


@router.post("/deals.getByRestaurant", response_model=List[DealOut])
async def route_get_restaurant_deals(payload: RestaurantIdIn, db: AsyncSession = Depends(get_db)):
    return await deal_service.get_deals_by_restaurant(db, payload.restaurant_id)


@router.post("/deals.getHot", response_model=List[DealOut])
async def route_get_hot_deals(db: AsyncSession = Depends(get_db)):
    """Top active deals with at least 30% off."""
    return await deal_service.get_hot_deals(db)


@router.post("/deals.search", response_model=List[DealOut])
async def route_search_deals(payload: DealSearch, db: AsyncSession = Depends(get_db)):
    """
    Search live deals.
    `offer_type` of dinein or pickup also matches deals offered as both.
    """
    return await deal_service.search_deals(db, payload)


# ---------------------------
# MUTATIONS (restaurant owners)
# ---------------------------
@router.post("/deals.create", response_model=DealOut)
@require_role([RESTAURANT_OWNER])
async def route_create_deal(
    payload: DealCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Create a deal; an active deal is announced to everyone who favorited the restaurant."""
    return await deal_service.create_deal(db, payload, _user)


@router.post("/deals.update", response_model=DealOut)
@require_role([RESTAURANT_OWNER])
async def route_update_deal(
    payload: DealUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await deal_service.update_deal(db, payload, _user)


@router.post("/deals.toggleActive", response_model=DealOut)
@require_role([RESTAURANT_OWNER])
async def route_toggle_deal(
    payload: DealIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await deal_service.toggle_active(db, payload.id, _user)


@router.post("/deals.delete", response_model=DealOut)
@require_role([RESTAURANT_OWNER])
async def route_delete_deal(
    payload: DealIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Soft delete: the deal disappears from listings, claimed coupons stay valid."""
    return await deal_service.delete_deal(db, payload.id, _user)


# ---------------------------
# CLAIM (any signed-in user)
# ---------------------------
@router.post("/deals.claim", response_model=CouponOut)
async def route_claim_deal(
    payload: ClaimIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await coupon_service.claim_coupon(db, payload.deal_id, _user)
