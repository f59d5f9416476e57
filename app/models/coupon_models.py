import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from app.core.db import Base


class CouponStatus(str, enum.Enum):
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    # Weak reference: no FK so a deal can go away without touching the ledger
    deal_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Snapshot of the deal at claim time
    deal_title = Column(String(150), nullable=False)
    restaurant_id = Column(Integer, nullable=False, index=True)
    restaurant_name = Column(String(150), nullable=False)
    restaurant_image = Column(String, nullable=True)
    discount_percent = Column(Integer, nullable=False)

    status = Column(String(10), nullable=False, default=CouponStatus.ACTIVE.value)
    code = Column(String(32), unique=True, nullable=False, index=True)

    claimed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    used_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return as_utc(self.expires_at) <= now

    @property
    def effective_status(self) -> str:
        """Stored status, except an unused coupon past its expiry reads as expired."""
        if self.status == CouponStatus.ACTIVE.value and self.is_expired():
            return CouponStatus.EXPIRED.value
        return self.status
