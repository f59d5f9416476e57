from pydantic import AliasChoices, BaseModel, Field
from typing import Literal, Optional
from datetime import datetime


class ClaimIn(BaseModel):
    deal_id: int


class CouponCodeIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class CouponIdIn(BaseModel):
    id: int


class CouponOut(BaseModel):
    id: int
    deal_id: int
    user_id: int
    deal_title: str
    restaurant_id: int
    restaurant_name: str
    restaurant_image: Optional[str] = None
    discount_percent: int
    # Read through Coupon.effective_status so expiry is always reported
    status: Literal["active", "used", "expired"] = Field(
        validation_alias=AliasChoices("effective_status", "status")
    )
    code: str
    claimed_at: datetime
    used_at: Optional[datetime] = None
    expires_at: datetime

    class Config:
        from_attributes = True


class CouponVerifyOut(BaseModel):
    valid: bool
    message: str
    coupon: Optional[CouponOut] = None
