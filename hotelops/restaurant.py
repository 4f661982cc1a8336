"""Restaurant orders, kitchen dashboards and table status."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .config import get_settings
from .database import atomic
from .errors import NotFound, ValidationFailed
from .models import (
    BookingStatus,
    Kitchen,
    MenuItem,
    Order,
    OrderItem,
    OrderItemStatus,
    OrderStatus,
    OrderStatusLog,
    OrderType,
    ReservationStatus,
    RestaurantTable,
    RoleEnum,
    RoomBooking,
    TableReservation,
    User,
)
from .reservations import make_reference
from .schemas import OrderLineIn
from .statuses import (
    ACTIVE_RESERVATION_STATUSES,
    OPEN_ORDER_STATUSES,
    ORDER_ITEM_TRANSITIONS,
    ORDER_TRANSITIONS,
    ensure_transition,
)

logger = logging.getLogger(__name__)
settings = get_settings()

FINISHED_ITEM_STATUSES = frozenset({OrderItemStatus.READY, OrderItemStatus.SERVED})


def _build_items(db: Session, lines: Iterable[OrderLineIn]) -> List[OrderItem]:
    items = []
    for line in lines:
        menu_item = db.get(MenuItem, line.menu_item_id)
        if menu_item is None:
            raise NotFound(f"Menu item {line.menu_item_id} not found")
        if not menu_item.is_available:
            raise ValidationFailed(f"{menu_item.name} is not available")
        items.append(
            OrderItem(
                menu_item_id=menu_item.id,
                menu_item=menu_item,
                quantity=line.quantity,
                unit_price=menu_item.price,
                total_price=round(menu_item.price * line.quantity, 2),
                special_instructions=line.special_instructions,
            )
        )
    return items


def recalculate_totals(order: Order) -> None:
    subtotal = round(sum(item.total_price for item in order.items), 2)
    order.subtotal = subtotal
    order.tax_amount = round(subtotal * settings.order_tax_rate, 2)
    order.total_amount = round(subtotal + order.tax_amount, 2)


def _log_status(db: Session, order: Order, from_status: Optional[OrderStatus], changed_by: Optional[int]) -> None:
    db.add(OrderStatusLog(order=order, from_status=from_status, to_status=order.status, changed_by=changed_by))


def _resolve_context(
    db: Session,
    order_type: OrderType,
    table_id: Optional[int],
    table_reservation_id: Optional[int],
    room_booking_id: Optional[int],
) -> Dict[str, Any]:
    if order_type == OrderType.DINE_IN:
        if table_id is None:
            raise ValidationFailed("Dine-in orders require a table")
        table = db.get(RestaurantTable, table_id)
        if table is None or not table.is_active:
            raise NotFound("Table not found or not available")
        if table_reservation_id is not None:
            reservation = db.get(TableReservation, table_reservation_id)
            if reservation is None or reservation.table_id != table.id:
                raise ValidationFailed("Reservation does not belong to this table")
            if reservation.status not in ACTIVE_RESERVATION_STATUSES:
                raise ValidationFailed(f"Reservation is {reservation.status.value}")
        return {"table_id": table.id, "table_reservation_id": table_reservation_id, "kitchen_id": table.kitchen_id}

    if table_id is not None or table_reservation_id is not None:
        raise ValidationFailed(f"{order_type.value} orders cannot reference a table")

    if order_type == OrderType.ROOM_SERVICE:
        if room_booking_id is None:
            raise ValidationFailed("Room service orders require a room booking")
        booking = db.get(RoomBooking, room_booking_id)
        if booking is None:
            raise NotFound("Room booking not found")
        if booking.status != BookingStatus.CHECKED_IN:
            raise ValidationFailed("Room service is only available to checked-in guests")
        return {"room_booking_id": booking.id}

    if room_booking_id is not None:
        raise ValidationFailed("Takeaway orders cannot reference a room booking")
    return {}


def create_order(
    db: Session,
    *,
    user: User,
    order_type: OrderType,
    lines: Iterable[OrderLineIn],
    table_id: Optional[int] = None,
    table_reservation_id: Optional[int] = None,
    room_booking_id: Optional[int] = None,
    kitchen_id: Optional[int] = None,
    special_instructions: Optional[str] = None,
) -> Order:
    """Price the lines from the menu and persist a pending order."""

    with atomic(db):
        context = _resolve_context(db, order_type, table_id, table_reservation_id, room_booking_id)
        items = _build_items(db, lines)
        if kitchen_id is None:
            kitchen_id = context.pop("kitchen_id", None) or items[0].menu_item.kitchen_id
        else:
            context.pop("kitchen_id", None)
        if kitchen_id is not None and db.get(Kitchen, kitchen_id) is None:
            raise NotFound("Kitchen not found")
        order = Order(
            order_number=make_reference("ORD"),
            order_type=order_type,
            user_id=user.id,
            waiter_id=user.id if user.role == RoleEnum.WAITER else None,
            kitchen_id=kitchen_id,
            special_instructions=special_instructions,
            status=OrderStatus.PENDING,
            items=items,
            **context,
        )
        recalculate_totals(order)
        db.add(order)
        _log_status(db, order, None, user.id)
    db.refresh(order)
    logger.info("Order %s placed (%s, total %.2f)", order.order_number, order_type.value, order.total_amount)
    return order


def add_order_items(db: Session, order: Order, lines: Iterable[OrderLineIn]) -> Order:
    if order.status not in (OrderStatus.PENDING, OrderStatus.PREPARING):
        raise ValidationFailed(f"Cannot add items to a {order.status.value} order")
    with atomic(db):
        order.items.extend(_build_items(db, lines))
        recalculate_totals(order)
        order.updated_at = datetime.utcnow()
    db.refresh(order)
    return order


def _apply_order_status(db: Session, order: Order, target: OrderStatus, changed_by: Optional[int]) -> None:
    ensure_transition(ORDER_TRANSITIONS, order.status, target)
    previous = order.status
    now = datetime.utcnow()
    order.status = target
    order.updated_at = now
    if target == OrderStatus.PREPARING:
        order.started_at = now
    elif target == OrderStatus.READY:
        order.ready_at = now
    elif target == OrderStatus.SERVED:
        order.served_at = now
        for item in order.items:
            if item.status == OrderItemStatus.READY:
                item.status = OrderItemStatus.SERVED
    _log_status(db, order, previous, changed_by)


def transition_order(
    db: Session,
    order: Order,
    target: OrderStatus,
    changed_by: Optional[int] = None,
    estimated_time: Optional[int] = None,
) -> Order:
    with atomic(db):
        _apply_order_status(db, order, target, changed_by)
        if estimated_time is not None:
            order.estimated_preparation_time = estimated_time
    db.refresh(order)
    logger.info("Order %s moved to %s", order.order_number, target.value)
    return order


def transition_order_item(
    db: Session,
    order: Order,
    item: OrderItem,
    target: OrderItemStatus,
    changed_by: Optional[int] = None,
) -> Order:
    """Advance one line; the order follows once the kitchen starts or finishes it."""

    if order.status not in OPEN_ORDER_STATUSES:
        raise ValidationFailed(f"Order is {order.status.value}")
    ensure_transition(ORDER_ITEM_TRANSITIONS, item.status, target)
    with atomic(db):
        now = datetime.utcnow()
        item.status = target
        if target == OrderItemStatus.PREPARING:
            item.started_at = now
            if order.status == OrderStatus.PENDING:
                _apply_order_status(db, order, OrderStatus.PREPARING, changed_by)
        elif target == OrderItemStatus.READY:
            item.completed_at = now
        if order.status == OrderStatus.PREPARING and all(i.status in FINISHED_ITEM_STATUSES for i in order.items):
            _apply_order_status(db, order, OrderStatus.READY, changed_by)
    db.refresh(order)
    return order


def kitchen_dashboard(db: Session, kitchen: Kitchen) -> Dict[str, Any]:
    since = datetime.combine(date.today(), time.min)
    status_counts = dict(
        db.query(Order.status, func.count(Order.id))
        .filter(Order.kitchen_id == kitchen.id)
        .group_by(Order.status)
        .all()
    )
    today = (
        db.query(func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.kitchen_id == kitchen.id, Order.placed_at >= since, Order.status != OrderStatus.CANCELLED)
        .one()
    )
    open_orders = (
        db.query(Order)
        .filter(Order.kitchen_id == kitchen.id, Order.status.in_(OPEN_ORDER_STATUSES))
        .order_by(Order.placed_at)
        .limit(10)
        .all()
    )
    activity = (
        db.query(OrderStatusLog, Order.order_number)
        .join(Order, OrderStatusLog.order_id == Order.id)
        .filter(Order.kitchen_id == kitchen.id)
        .order_by(OrderStatusLog.changed_at.desc(), OrderStatusLog.id.desc())
        .limit(12)
        .all()
    )
    return {
        "kitchen": {"id": kitchen.id, "name": kitchen.name, "kind": kitchen.kind.value},
        "stats": {
            "orders_today": today[0],
            "revenue_today": round(float(today[1]), 2),
            "staff_count": len(kitchen.staff),
        },
        "status_counts": {status.value: status_counts.get(status, 0) for status in OrderStatus},
        "open_orders": [
            {
                "id": order.id,
                "order_number": order.order_number,
                "status": order.status.value,
                "order_type": order.order_type.value,
                "placed_at": order.placed_at,
                "items": len(order.items),
            }
            for order in open_orders
        ],
        "recent_activity": [
            {
                "order_number": order_number,
                "from_status": log.from_status.value if log.from_status else None,
                "to_status": log.to_status.value,
                "changed_by": log.changed_by,
                "changed_at": log.changed_at,
            }
            for log, order_number in activity
        ],
    }


def table_status(db: Session, table: RestaurantTable, on: Optional[date] = None) -> Dict[str, Any]:
    """Unified floor status: occupied if seated or an order is open, reserved if confirmed."""

    day = on or date.today()
    start = datetime.combine(day, time.min)
    reservation = (
        db.query(TableReservation)
        .filter(
            TableReservation.table_id == table.id,
            TableReservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            TableReservation.start_time >= start,
            TableReservation.start_time < start + timedelta(days=1),
        )
        .order_by(TableReservation.start_time)
        .first()
    )
    has_active_orders = db.query(
        db.query(Order)
        .filter(Order.table_id == table.id, Order.status.in_(OPEN_ORDER_STATUSES))
        .exists()
    ).scalar()

    unified = "available"
    if has_active_orders or (reservation is not None and reservation.status == ReservationStatus.SEATED):
        unified = "occupied"
    elif reservation is not None:
        unified = "reserved"
    return {
        "table_id": table.id,
        "booking_status": "booked" if reservation else "available",
        "unified_status": unified,
        "reservation": reservation,
        "has_active_orders": bool(has_active_orders),
    }
