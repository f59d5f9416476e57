import enum
from sqlalchemy import Column, Integer, String, Numeric, Date, Boolean, DateTime, ForeignKey, JSON, Text, CheckConstraint
from sqlalchemy.sql import func
from app.core.db import Base


class OfferType(str, enum.Enum):
    DINEIN = "dinein"
    PICKUP = "pickup"
    BOTH = "both"


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (
        CheckConstraint("claimed_coupons >= 0", name="ck_deal_claimed_non_negative"),
        CheckConstraint("claimed_coupons <= max_coupons", name="ck_deal_claimed_within_max"),
    )

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)

    # Snapshot of the restaurant at creation time
    restaurant_name = Column(String(150), nullable=False)
    restaurant_image = Column(String, nullable=True)

    title = Column(String(150), nullable=False)
    description = Column(Text, nullable=False, default="")
    discount_percent = Column(Integer, nullable=False)
    offer_type = Column(String(10), nullable=False, default=OfferType.BOTH.value)
    max_coupons = Column(Integer, nullable=False)
    claimed_coupons = Column(Integer, nullable=False, default=0)
    min_order = Column(Numeric(10, 2), nullable=False, default=0)
    valid_till = Column(Date, nullable=False)
    days_available = Column(JSON, nullable=False, default=list)
    start_time = Column(String(5), nullable=True)  # "HH:MM"
    end_time = Column(String(5), nullable=True)
    terms_conditions = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    # Bumped on every activation; keys the favorites fan-out
    activation_count = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
