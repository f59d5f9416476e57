# app/routers/__init__.py

from .coupons_router import router as coupons_router
from .deals_router import router as deals_router
from .notifications_router import router as notifications_router
from .orders_router import router as orders_router

__all__ = [
    "coupons_router",
    "deals_router",
    "notifications_router",
    "orders_router",
]
