# app/services/order_service.py
import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import OPTIMISTIC_RETRY_ATTEMPTS
from app.core.errors import (
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    ForbiddenError,
    ConflictError,
)
from app.models.order_models import Order, OrderItem, OrderMessage, OrderStatus, OrderType, SenderType
from app.models.restaurant_models import Restaurant
from app.models.user_models import User
from app.schemas.auth_schemas import CallerContext
from app.schemas.order_schemas import OrderCreate, OrderStatsOut
from app.services.notification_service import notify_user

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Direct successors; anything missing here is terminal
TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED}),
}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.REJECTED, OrderStatus.CANCELLED})

STATUS_MESSAGES = {
    OrderStatus.ACCEPTED: "Your order has been accepted",
    OrderStatus.PREPARING: "Your order is being prepared",
    OrderStatus.READY: "Your order is ready",
    OrderStatus.COMPLETED: "Order completed",
    OrderStatus.REJECTED: "Your order has been rejected",
    OrderStatus.CANCELLED: "Order cancelled",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def compute_totals(items, discount: Decimal) -> tuple[Decimal, Decimal]:
    subtotal = sum((Decimal(item.price) * item.quantity for item in items), Decimal("0")).quantize(CENT)
    discount = Decimal(discount).quantize(CENT)
    if discount > subtotal:
        raise ValidationError("Discount cannot exceed the order subtotal")
    return subtotal, subtotal - discount


async def _load_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order not found")
    return order


def _is_party(order: Order, caller: CallerContext) -> bool:
    return order.customer_id == caller.user_id or caller.owns_restaurant(order.restaurant_id)


# =====================================================
# CREATE ORDER
# =====================================================
async def create_order(db: AsyncSession, payload: OrderCreate, caller: CallerContext) -> Order:
    if not payload.items:
        raise ValidationError("An order needs at least one item")
    if any(item.quantity <= 0 for item in payload.items):
        raise ValidationError("Item quantities must be greater than zero")
    if payload.order_type == OrderType.DINEIN.value and not payload.table_number:
        raise ValidationError("Dine-in orders need a table number")
    if payload.order_type == OrderType.PICKUP.value and not payload.pickup_time:
        raise ValidationError("Pickup orders need a pickup time")

    customer = await db.get(User, caller.user_id)
    if not customer:
        raise NotFoundError("User not found")

    restaurant = await db.get(Restaurant, payload.restaurant_id)
    if not restaurant or not restaurant.is_active:
        raise NotFoundError("Restaurant not found")

    subtotal, total = compute_totals(payload.items, payload.discount)
    now = _now()

    order = Order(
        restaurant_id=restaurant.id,
        customer_id=customer.id,
        restaurant_name=restaurant.name,
        customer_name=customer.name,
        customer_phone=customer.phone,
        order_type=payload.order_type,
        subtotal=subtotal,
        discount=Decimal(payload.discount).quantize(CENT),
        total=total,
        status=OrderStatus.PENDING.value,
        table_number=payload.table_number if payload.order_type == OrderType.DINEIN.value else None,
        pickup_time=payload.pickup_time if payload.order_type == OrderType.PICKUP.value else None,
        special_instructions=payload.special_instructions,
        created_at=now,
        updated_at=now,
    )
    order.items = [
        OrderItem(
            position=position,
            item_id=item.item_id,
            name=item.name,
            quantity=item.quantity,
            price=item.price,
            notes=item.notes,
        )
        for position, item in enumerate(payload.items)
    ]

    db.add(order)
    await db.commit()
    order_id = order.id
    logger.info("Order %s placed by user %s at restaurant %s (total %s)", order_id, customer.id, restaurant.id, total)

    await notify_user(
        db,
        user_id=customer.id,
        restaurant_id=restaurant.id,
        restaurant_name=restaurant.name,
        title="Order Placed",
        message=f"Your order #{order_id} has been placed successfully",
        event_key=f"order:{order_id}:{OrderStatus.PENDING.value}",
    )
    return await _load_order(db, order_id)


# =====================================================
# UPDATE STATUS
# =====================================================
def _check_authority(order: Order, target: OrderStatus, caller: CallerContext) -> None:
    if caller.owns_restaurant(order.restaurant_id):
        return
    # The customer may only back out of their own order
    if target == OrderStatus.CANCELLED and order.customer_id == caller.user_id:
        return
    raise ForbiddenError("Only the restaurant handling this order can change its status")


async def update_status(
    db: AsyncSession,
    order_id: int,
    new_status: OrderStatus,
    caller: CallerContext,
    estimated_time: int | None = None,
) -> Order:
    new_status = OrderStatus(new_status)

    for attempt in range(OPTIMISTIC_RETRY_ATTEMPTS):
        order = await _load_order(db, order_id)
        _check_authority(order, new_status, caller)

        current = OrderStatus(order.status)
        if not can_transition(current, new_status):
            raise InvalidTransitionError(
                f"Cannot move an order from {current.value} to {new_status.value}"
            )

        values = {"status": new_status.value, "updated_at": _now()}
        if estimated_time is not None:
            values["estimated_time"] = estimated_time

        # Only lands if nobody moved the order since we read it
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount == 1:
            break
        logger.info("Order %s changed underneath status update (attempt %d)", order_id, attempt + 1)
    else:
        raise ConflictError()

    logger.info("Order %s: %s -> %s by user %s", order_id, current.value, new_status.value, caller.user_id)

    await notify_user(
        db,
        user_id=order.customer_id,
        restaurant_id=order.restaurant_id,
        restaurant_name=order.restaurant_name,
        title="Order Update",
        message=STATUS_MESSAGES[new_status],
        event_key=f"order:{order_id}:{new_status.value}",
    )
    return await _load_order(db, order_id)


async def cancel_order(db: AsyncSession, order_id: int, caller: CallerContext) -> Order:
    return await update_status(db, order_id, OrderStatus.CANCELLED, caller)


# =====================================================
# MESSAGES
# =====================================================
async def send_message(
    db: AsyncSession,
    order_id: int,
    text: str,
    sender_type: SenderType,
    caller: CallerContext,
) -> Order:
    sender_type = SenderType(sender_type)
    order = await _load_order(db, order_id)

    if sender_type == SenderType.CUSTOMER and order.customer_id != caller.user_id:
        raise ForbiddenError("Only the customer who placed this order can message as the customer")
    if sender_type == SenderType.RESTAURANT and not caller.owns_restaurant(order.restaurant_id):
        raise ForbiddenError("Only the restaurant handling this order can message as the restaurant")
    if is_terminal(OrderStatus(order.status)):
        raise InvalidTransitionError(f"This order is {order.status} and no longer accepts messages")

    text = text.strip()
    if not text:
        raise ValidationError("Message cannot be empty")

    # Touch the order only while it is still open; the status read above may be stale
    now = _now()
    still_open = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status.notin_([s.value for s in TERMINAL_STATUSES]))
        .values(updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if still_open.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError("This order was closed and no longer accepts messages")

    # Appending inserts one row; concurrent senders never overwrite each other
    order.messages.append(OrderMessage(
        sender_id=caller.user_id,
        sender_type=sender_type.value,
        message=text,
        timestamp=now,
        read=False,
    ))
    await db.commit()
    return await _load_order(db, order_id)


def _is_recipient(order: Order, message: OrderMessage, caller: CallerContext) -> bool:
    if message.sender_type == SenderType.CUSTOMER.value:
        return caller.owns_restaurant(order.restaurant_id)
    return order.customer_id == caller.user_id


async def mark_message_read(db: AsyncSession, order_id: int, message_id: int, caller: CallerContext) -> Order:
    """
    Read receipts are set by the receiving side only. They are allowed on
    closed orders too: the receipt is not part of the order's state.
    """
    order = await _load_order(db, order_id)
    if not _is_party(order, caller):
        raise ForbiddenError("You are not part of this order")

    # Missing message, own message or already read: nothing to do
    message = next((m for m in order.messages if m.id == message_id), None)
    if message is not None and not message.read and _is_recipient(order, message, caller):
        message.read = True
        await db.commit()
    return await _load_order(db, order_id)


# =====================================================
# RETRIEVAL
# =====================================================
async def get_order(db: AsyncSession, order_id: int, caller: CallerContext) -> Order:
    order = await _load_order(db, order_id)
    if not _is_party(order, caller):
        raise NotFoundError("Order not found")
    return order


async def get_customer_orders(db: AsyncSession, caller: CallerContext):
    result = await db.execute(
        select(Order).where(Order.customer_id == caller.user_id).order_by(Order.created_at.desc(), Order.id.desc())
    )
    return result.scalars().all()


async def get_restaurant_orders(db: AsyncSession, restaurant_id: int, caller: CallerContext):
    if not caller.owns_restaurant(restaurant_id):
        raise ForbiddenError("You can only view orders for your own restaurant")
    result = await db.execute(
        select(Order).where(Order.restaurant_id == restaurant_id).order_by(Order.created_at.desc(), Order.id.desc())
    )
    return result.scalars().all()


async def get_pending_count(db: AsyncSession, restaurant_id: int, caller: CallerContext) -> int:
    if not caller.owns_restaurant(restaurant_id):
        raise ForbiddenError("You can only view orders for your own restaurant")
    result = await db.execute(
        select(func.count(Order.id)).where(
            Order.restaurant_id == restaurant_id,
            Order.status == OrderStatus.PENDING.value,
        )
    )
    return result.scalar() or 0


async def get_order_stats(db: AsyncSession, restaurant_id: int, caller: CallerContext) -> OrderStatsOut:
    if not caller.owns_restaurant(restaurant_id):
        raise ForbiddenError("You can only view orders for your own restaurant")

    start_of_day = _now().replace(hour=0, minute=0, second=0, microsecond=0)
    is_today = Order.created_at >= start_of_day

    def count_where(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    result = await db.execute(
        select(
            func.count(Order.id),
            count_where(is_today),
            func.coalesce(
                func.sum(case((is_today & (Order.status == OrderStatus.COMPLETED.value), Order.total), else_=0)),
                0,
            ),
            count_where(Order.status == OrderStatus.PENDING.value),
            count_where(Order.status == OrderStatus.PREPARING.value),
            count_where(Order.status == OrderStatus.COMPLETED.value),
            count_where(Order.status.in_([OrderStatus.REJECTED.value, OrderStatus.CANCELLED.value])),
        ).where(Order.restaurant_id == restaurant_id)
    )
    total, today_count, today_revenue, pending, preparing, completed, cancelled = result.one()

    return OrderStatsOut(
        total=total,
        today_count=today_count,
        today_revenue=Decimal(str(today_revenue)).quantize(CENT),
        pending=pending,
        preparing=preparing,
        completed=completed,
        cancelled=cancelled,
    )
