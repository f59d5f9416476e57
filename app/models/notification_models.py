import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.core.db import Base


class NotificationType(str, enum.Enum):
    OFFER = "offer"
    BOOKING = "booking"
    GENERAL = "general"


class Notification(Base):
    __tablename__ = "notifications"
    # One row per recipient per event: replaying a fan-out is a no-op
    __table_args__ = (UniqueConstraint("user_id", "event_key", name="uq_notification_user_event"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    restaurant_id = Column(Integer, nullable=True, index=True)
    restaurant_name = Column(String(150), nullable=False, default="")
    title = Column(String(150), nullable=False)
    message = Column(String, nullable=False)
    type = Column(String(10), nullable=False, default=NotificationType.GENERAL.value)
    event_key = Column(String(120), nullable=False)
    read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
