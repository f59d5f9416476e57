from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class NotificationIdIn(BaseModel):
    id: int


class NotificationOut(BaseModel):
    id: int
    user_id: int
    restaurant_id: Optional[int] = None
    restaurant_name: str
    title: str
    message: str
    type: str
    read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FavoriteIn(BaseModel):
    restaurant_id: int


class FavoriteOut(BaseModel):
    restaurant_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
