# app/models/__init__.py
from app.models.restaurant_models import Restaurant
from app.models.user_models import User, Favorite
from app.models.deal_models import Deal, OfferType
from app.models.coupon_models import Coupon, CouponStatus
from app.models.order_models import Order, OrderItem, OrderMessage, OrderStatus, OrderType, SenderType
from app.models.notification_models import Notification, NotificationType
