# app/schemas/auth_schemas.py
from pydantic import BaseModel
from typing import Optional

CUSTOMER = "customer"
RESTAURANT_OWNER = "restaurant_owner"


class CallerContext(BaseModel):
    """Identity of whoever is making the call, resolved once per request."""

    user_id: int
    role: str
    restaurant_id: Optional[int] = None

    @property
    def is_restaurant_owner(self) -> bool:
        return self.role == RESTAURANT_OWNER and self.restaurant_id is not None

    def owns_restaurant(self, restaurant_id: int) -> bool:
        return self.is_restaurant_owner and self.restaurant_id == restaurant_id


class MessageResponse(BaseModel):
    message: str
