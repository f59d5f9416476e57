from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional
from typing_extensions import Annotated
from datetime import date, datetime
from decimal import Decimal

NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=10, decimal_places=2)]
Percent = Annotated[int, Field(ge=1, le=100)]
ClockTime = Annotated[str, Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]
OfferTypeField = Literal["dinein", "pickup", "both"]


class DealBase(BaseModel):
    title: Annotated[str, Field(min_length=1, max_length=150)]
    description: str = ""
    discount_percent: Percent
    offer_type: OfferTypeField = "both"
    max_coupons: Annotated[int, Field(ge=1)]
    min_order: NonNegativeDecimal = Decimal("0")
    valid_till: date
    days_available: List[str] = Field(default_factory=list)
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    terms_conditions: Optional[str] = None


class DealCreate(DealBase):
    restaurant_id: int
    is_active: bool = True


class DealUpdate(BaseModel):
    """Fields a restaurant may change after creation. Anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    id: int
    title: Optional[Annotated[str, Field(min_length=1, max_length=150)]] = None
    description: Optional[str] = None
    discount_percent: Optional[Percent] = None
    offer_type: Optional[OfferTypeField] = None
    max_coupons: Optional[Annotated[int, Field(ge=1)]] = None
    min_order: Optional[NonNegativeDecimal] = None
    valid_till: Optional[date] = None
    days_available: Optional[List[str]] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    is_active: Optional[bool] = None
    terms_conditions: Optional[str] = None


class DealIdIn(BaseModel):
    id: int


class RestaurantIdIn(BaseModel):
    restaurant_id: int


class DealSearch(BaseModel):
    query: Optional[str] = None
    offer_type: Optional[OfferTypeField] = None
    min_discount: Optional[Percent] = None
    max_discount: Optional[Percent] = None


class DealOut(DealBase):
    id: int
    restaurant_id: int
    restaurant_name: str
    restaurant_image: Optional[str] = None
    claimed_coupons: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
