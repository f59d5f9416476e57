from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.db import get_db
from app.schemas.coupon_schemas import CouponCodeIn, CouponIdIn, CouponOut, CouponVerifyOut
from app.services import coupon_service
from app.utils.get_user import get_current_user, get_optional_user

router = APIRouter(prefix="/rpc", tags=["Coupons"])


@router.post("/coupons.verify", response_model=CouponVerifyOut)
async def route_verify_coupon(
    payload: CouponCodeIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_optional_user),
):
    """Public: reports whether a code can be redeemed right now."""
    return await coupon_service.verify_coupon(db, payload.code)


@router.post("/coupons.redeem", response_model=CouponOut)
async def route_redeem_coupon(
    payload: CouponCodeIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await coupon_service.redeem_coupon(db, payload.code, _user)


@router.post("/coupons.use", response_model=CouponOut)
async def route_use_coupon(
    payload: CouponIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await coupon_service.use_coupon(db, payload.id, _user)


@router.post("/coupons.mine", response_model=List[CouponOut])
async def route_my_coupons(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await coupon_service.get_user_coupons(db, _user)


@router.post("/coupons.getById", response_model=CouponOut)
async def route_get_coupon(
    payload: CouponIdIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await coupon_service.get_coupon(db, payload.id, _user)


@router.post("/coupons.getByCode", response_model=CouponOut)
async def route_get_coupon_by_code(
    payload: CouponCodeIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_optional_user),
):
    return await coupon_service.get_coupon_by_code(db, payload.code)
