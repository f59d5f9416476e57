from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from typing_extensions import Annotated
from datetime import datetime
from decimal import Decimal

from app.models.order_models import OrderStatus

NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]


class OrderItemIn(BaseModel):
    item_id: Annotated[str, Field(min_length=1, max_length=64)]
    name: Annotated[str, Field(min_length=1, max_length=150)]
    quantity: Annotated[int, Field(gt=0)]
    price: NonNegativeDecimal
    notes: Optional[str] = None


class OrderCreate(BaseModel):
    restaurant_id: int
    order_type: Literal["dinein", "pickup"]
    items: Annotated[List[OrderItemIn], Field(min_length=1)]
    table_number: Optional[str] = None
    pickup_time: Optional[str] = None
    special_instructions: Optional[str] = None
    discount: NonNegativeDecimal = Decimal("0")


class OrderStatusUpdate(BaseModel):
    id: int
    status: OrderStatus
    estimated_time: Optional[Annotated[int, Field(gt=0, le=24 * 60)]] = None


class SendMessageIn(BaseModel):
    order_id: int
    message: Annotated[str, Field(min_length=1, max_length=1000)]
    sender_type: Literal["customer", "restaurant"]


class MarkMessageReadIn(BaseModel):
    order_id: int
    message_id: int


class OrderIdIn(BaseModel):
    id: int


class OrderItemOut(BaseModel):
    item_id: str
    name: str
    quantity: int
    price: Decimal
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class OrderMessageOut(BaseModel):
    id: int
    order_id: int
    sender_id: Optional[int] = None
    sender_type: str
    message: str
    timestamp: datetime
    read: bool

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    restaurant_id: int
    customer_id: int
    restaurant_name: str = ""
    customer_name: str
    customer_phone: Optional[str] = None
    order_type: str
    items: List[OrderItemOut]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    status: OrderStatus
    table_number: Optional[str] = None
    pickup_time: Optional[str] = None
    special_instructions: Optional[str] = None
    estimated_time: Optional[int] = None
    messages: List[OrderMessageOut] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderStatsOut(BaseModel):
    total: int
    today_count: int
    today_revenue: Decimal
    pending: int
    preparing: int
    completed: int
    cancelled: int


class CountOut(BaseModel):
    count: int
