"""Aggregate queries behind the dashboard and the management reports.

Report ranges are inclusive business dates: ``start_date=2024-01-10`` and
``end_date=2024-01-11`` cover the nights of the 10th and the 11th.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from .availability import validate_interval
from .models import (
    FRONT_OFFICE_ROLES,
    MANAGEMENT_ROLES,
    BookingStatus,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusLog,
    Payment,
    PaymentStatus,
    RoleEnum,
    Room,
    RoomBooking,
    RoomStatus,
    RoomType,
    User,
)
from .statuses import ACTIVE_BOOKING_STATUSES, OPEN_ORDER_STATUSES

# Bookings that produced revenue, including stays already finished.
REVENUE_BOOKING_STATUSES = ACTIVE_BOOKING_STATUSES | {BookingStatus.CHECKED_OUT}
ORDER_METRIC_ROLES = MANAGEMENT_ROLES + (RoleEnum.WAITER, RoleEnum.CHEF, RoleEnum.BARTENDER)


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _nights_in_range(booking: RoomBooking, start: date, end_exclusive: date) -> int:
    first = max(booking.check_in_date, start)
    last = min(booking.check_out_date, end_exclusive)
    return max((last - first).days, 0)


def _nightly_rate(booking: RoomBooking) -> float:
    return booking.total_amount / booking.nights if booking.nights else 0.0


def _bookable_room_count(db: Session) -> int:
    return (
        db.query(func.count(Room.id))
        .join(RoomType, Room.room_type_id == RoomType.id)
        .filter(RoomType.is_active.is_(True))
        .scalar()
    )


def _rooms_in_use(db: Session, day: date) -> set[int]:
    rows = (
        db.query(RoomBooking.room_id)
        .filter(
            RoomBooking.status.in_(ACTIVE_BOOKING_STATUSES),
            RoomBooking.check_in_date <= day,
            RoomBooking.check_out_date > day,
        )
        .distinct()
        .all()
    )
    return {room_id for (room_id,) in rows}


def dashboard_metrics(db: Session, user: User, today: Optional[date] = None) -> Dict[str, Any]:
    """Headline numbers for the landing dashboard, sectioned by role."""

    today = today or date.today()
    day_start, _ = _day_bounds(today)
    week_start = day_start - timedelta(days=7)
    month_start = day_start - timedelta(days=30)

    if user.role == RoleEnum.CUSTOMER:
        rows = (
            db.query(RoomBooking.status, func.count(RoomBooking.id))
            .filter(RoomBooking.user_id == user.id)
            .group_by(RoomBooking.status)
            .all()
        )
        counts = {status.value: count for status, count in rows}
        upcoming = (
            db.query(func.count(RoomBooking.id))
            .filter(
                RoomBooking.user_id == user.id,
                RoomBooking.status.in_(ACTIVE_BOOKING_STATUSES),
                RoomBooking.check_out_date > today,
            )
            .scalar()
        )
        return {"bookings": {"total": sum(counts.values()), "upcoming": upcoming, "by_status": counts}}

    metrics: Dict[str, Any] = {}
    if user.role in FRONT_OFFICE_ROLES:
        revenue = (
            db.query(
                func.coalesce(func.sum(case((RoomBooking.created_at >= day_start, RoomBooking.total_amount), else_=0)), 0),
                func.coalesce(func.sum(case((RoomBooking.created_at >= week_start, RoomBooking.total_amount), else_=0)), 0),
                func.coalesce(func.sum(case((RoomBooking.created_at >= month_start, RoomBooking.total_amount), else_=0)), 0),
            )
            .filter(RoomBooking.status.in_(REVENUE_BOOKING_STATUSES))
            .one()
        )
        metrics["revenue"] = {
            "today": round(float(revenue[0]), 2),
            "this_week": round(float(revenue[1]), 2),
            "this_month": round(float(revenue[2]), 2),
        }
        bookings = db.query(
            func.count(case((RoomBooking.created_at >= day_start, RoomBooking.id))),
            func.count(case((RoomBooking.created_at >= week_start, RoomBooking.id))),
            func.count(case((RoomBooking.created_at >= month_start, RoomBooking.id))),
        ).one()
        total_rooms = _bookable_room_count(db)
        booked = len(_rooms_in_use(db, today))
        metrics["bookings"] = {
            "today": bookings[0],
            "this_week": bookings[1],
            "this_month": bookings[2],
            "occupancy_rate": round(booked / total_rooms * 100, 1) if total_rooms else 0.0,
        }
        metrics["rooms"] = {
            "total": total_rooms,
            "booked": booked,
            "available": max(total_rooms - booked, 0),
            "room_types": db.query(func.count(RoomType.id)).filter(RoomType.is_active.is_(True)).scalar(),
        }

    if user.role in ORDER_METRIC_ROLES:
        orders = (
            db.query(
                func.count(Order.id),
                func.count(case((Order.status == OrderStatus.SERVED, Order.id))),
                func.coalesce(func.avg(Order.total_amount), 0),
            )
            .filter(Order.placed_at >= day_start)
            .one()
        )
        pending = db.query(func.count(Order.id)).filter(Order.status == OrderStatus.PENDING).scalar()
        metrics["orders"] = {
            "today": orders[0],
            "served_today": orders[1],
            "pending": pending,
            "average_order_value": round(float(orders[2]), 2),
        }

    if user.role in MANAGEMENT_ROLES:
        customers = (
            db.query(func.count(User.id), func.count(case((User.created_at >= month_start, User.id))))
            .filter(User.role == RoleEnum.CUSTOMER, User.is_active.is_(True))
            .one()
        )
        metrics["customers"] = {"total": customers[0], "new_this_month": customers[1]}
    return metrics


def occupancy_report(db: Session, on: Optional[date] = None) -> Dict[str, Any]:
    """Occupancy for one night, comparing cached room status with bookings."""

    day = on or date.today()
    in_use = _rooms_in_use(db, day)
    rooms = (
        db.query(Room)
        .join(RoomType, Room.room_type_id == RoomType.id)
        .filter(RoomType.is_active.is_(True))
        .order_by(Room.room_number)
        .all()
    )
    by_status = {status.value: 0 for status in RoomStatus}
    by_type: Dict[str, Dict[str, int]] = {}
    mismatches = []
    for room in rooms:
        by_status[room.status.value] += 1
        type_counts = by_type.setdefault(room.room_type.name, {"total": 0, "booked": 0})
        type_counts["total"] += 1
        booked = room.id in in_use
        if booked:
            type_counts["booked"] += 1
        if (room.status == RoomStatus.OCCUPIED) != booked and room.status != RoomStatus.MAINTENANCE:
            mismatches.append(
                {"room_id": room.id, "room_number": room.room_number, "cached_status": room.status.value, "booked": booked}
            )
    total = len(rooms)
    return {
        "date": day,
        "total_rooms": total,
        "booked_rooms": len(in_use),
        "occupancy_rate": round(len(in_use) / total * 100, 1) if total else 0.0,
        "by_status": by_status,
        "by_room_type": by_type,
        "status_mismatches": mismatches,
    }


def night_audit(db: Session, business_date: date) -> Dict[str, Any]:
    """End-of-day reconciliation of front office and restaurant activity."""

    day_start, day_end = _day_bounds(business_date)
    arrivals = (
        db.query(func.count(RoomBooking.id))
        .filter(RoomBooking.check_in_date == business_date, RoomBooking.status != BookingStatus.CANCELLED)
        .scalar()
    )
    departures = (
        db.query(func.count(RoomBooking.id))
        .filter(RoomBooking.check_out_date == business_date, RoomBooking.status != BookingStatus.CANCELLED)
        .scalar()
    )
    cancellations = (
        db.query(func.count(RoomBooking.id))
        .filter(RoomBooking.cancelled_at >= day_start, RoomBooking.cancelled_at < day_end)
        .scalar()
    )
    no_shows = (
        db.query(func.count(RoomBooking.id))
        .filter(RoomBooking.check_in_date == business_date, RoomBooking.status == BookingStatus.CONFIRMED)
        .scalar()
    )
    staying = (
        db.query(RoomBooking)
        .filter(
            RoomBooking.status.in_(REVENUE_BOOKING_STATUSES),
            RoomBooking.check_in_date <= business_date,
            RoomBooking.check_out_date > business_date,
        )
        .all()
    )
    room_revenue = round(sum(_nightly_rate(booking) for booking in staying), 2)

    served = (
        db.query(func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.status == OrderStatus.SERVED, Order.served_at >= day_start, Order.served_at < day_end)
        .one()
    )
    cancelled_orders = (
        db.query(func.count(func.distinct(OrderStatusLog.order_id)))
        .filter(
            OrderStatusLog.to_status == OrderStatus.CANCELLED,
            OrderStatusLog.changed_at >= day_start,
            OrderStatusLog.changed_at < day_end,
        )
        .scalar()
    )
    open_orders = db.query(func.count(Order.id)).filter(Order.status.in_(OPEN_ORDER_STATUSES)).scalar()
    payments = (
        db.query(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.created_at >= day_start, Payment.created_at < day_end)
        .group_by(Payment.status)
        .all()
    )
    payment_summary = {status.value: {"count": 0, "amount": 0.0} for status in PaymentStatus}
    for status, count, amount in payments:
        payment_summary[status.value] = {"count": count, "amount": round(float(amount), 2)}

    return {
        "business_date": business_date,
        "rooms": {
            "arrivals": arrivals,
            "departures": departures,
            "in_house": len(staying),
            "cancellations": cancellations,
            "pending_arrivals": no_shows,
            "room_revenue": room_revenue,
        },
        "restaurant": {
            "orders_served": served[0],
            "revenue": round(float(served[1]), 2),
            "orders_cancelled": cancelled_orders,
            "orders_open": open_orders,
        },
        "payments": payment_summary,
        "total_revenue": round(room_revenue + float(served[1]), 2),
    }


def statistics_report(db: Session, start_date: date, end_date: date) -> Dict[str, Any]:
    """Occupancy, ADR and RevPAR over an inclusive date range."""

    end_exclusive = end_date + timedelta(days=1)
    validate_interval(start_date, end_exclusive)
    days = (end_exclusive - start_date).days
    room_count = _bookable_room_count(db)
    nights_available = room_count * days

    bookings = (
        db.query(RoomBooking)
        .filter(
            RoomBooking.status.in_(REVENUE_BOOKING_STATUSES),
            RoomBooking.check_in_date < end_exclusive,
            RoomBooking.check_out_date > start_date,
        )
        .all()
    )
    nights_sold = 0
    room_revenue = 0.0
    by_platform: Dict[str, int] = {}
    for booking in bookings:
        nights = _nights_in_range(booking, start_date, end_exclusive)
        nights_sold += nights
        room_revenue += nights * _nightly_rate(booking)
        by_platform[booking.platform.value] = by_platform.get(booking.platform.value, 0) + 1

    range_start, _ = _day_bounds(start_date)
    _, range_end = _day_bounds(end_date)
    cancellations = (
        db.query(func.count(RoomBooking.id))
        .filter(RoomBooking.cancelled_at >= range_start, RoomBooking.cancelled_at < range_end)
        .scalar()
    )
    fb_revenue = (
        db.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.status == OrderStatus.SERVED, Order.served_at >= range_start, Order.served_at < range_end)
        .scalar()
    )
    room_revenue = round(room_revenue, 2)
    return {
        "start_date": start_date,
        "end_date": end_date,
        "room_nights_available": nights_available,
        "room_nights_sold": nights_sold,
        "occupancy_rate": round(nights_sold / nights_available * 100, 1) if nights_available else 0.0,
        "room_revenue": room_revenue,
        "average_daily_rate": round(room_revenue / nights_sold, 2) if nights_sold else 0.0,
        "revpar": round(room_revenue / nights_available, 2) if nights_available else 0.0,
        "fb_revenue": round(float(fb_revenue), 2),
        "bookings_by_platform": by_platform,
        "cancellations": cancellations,
    }


def restaurant_report(db: Session, start_date: date, end_date: date) -> Dict[str, Any]:
    validate_interval(start_date, end_date + timedelta(days=1))
    range_start, _ = _day_bounds(start_date)
    _, range_end = _day_bounds(end_date)
    in_range = (Order.placed_at >= range_start, Order.placed_at < range_end)

    by_status = dict(db.query(Order.status, func.count(Order.id)).filter(*in_range).group_by(Order.status).all())
    by_type = dict(db.query(Order.order_type, func.count(Order.id)).filter(*in_range).group_by(Order.order_type).all())
    totals = (
        db.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.subtotal), 0),
            func.coalesce(func.sum(Order.tax_amount), 0),
            func.coalesce(func.sum(Order.total_amount), 0),
        )
        .filter(*in_range, Order.status != OrderStatus.CANCELLED)
        .one()
    )
    top_items = (
        db.query(MenuItem.id, MenuItem.name, func.sum(OrderItem.quantity).label("quantity"))
        .join(OrderItem, OrderItem.menu_item_id == MenuItem.id)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(*in_range, Order.status != OrderStatus.CANCELLED)
        .group_by(MenuItem.id, MenuItem.name)
        .order_by(func.sum(OrderItem.quantity).desc())
        .limit(10)
        .all()
    )
    return {
        "start_date": start_date,
        "end_date": end_date,
        "orders": totals[0],
        "subtotal": round(float(totals[1]), 2),
        "tax": round(float(totals[2]), 2),
        "revenue": round(float(totals[3]), 2),
        "average_order_value": round(float(totals[3]) / totals[0], 2) if totals[0] else 0.0,
        "by_status": {status.value: count for status, count in by_status.items()},
        "by_type": {order_type.value: count for order_type, count in by_type.items()},
        "top_items": [
            {"menu_item_id": item_id, "name": name, "quantity": int(quantity)} for item_id, name, quantity in top_items
        ],
    }


def room_popularity(db: Session, limit: int = 5) -> List[Dict[str, Any]]:
    rows = (
        db.query(Room.id, Room.room_number, func.count(RoomBooking.id).label("booking_count"))
        .outerjoin(
            RoomBooking,
            (RoomBooking.room_id == Room.id) & (RoomBooking.status != BookingStatus.CANCELLED),
        )
        .group_by(Room.id, Room.room_number)
        .order_by(func.count(RoomBooking.id).desc(), Room.room_number)
        .limit(limit)
        .all()
    )
    return [
        {"room_id": room_id, "room_number": room_number, "booking_count": booking_count}
        for room_id, room_number, booking_count in rows
    ]


def user_activity(db: Session, limit: int = 5) -> List[Dict[str, Any]]:
    rows = (
        db.query(User.id, User.username, func.count(RoomBooking.id).label("booking_count"))
        .outerjoin(RoomBooking, RoomBooking.user_id == User.id)
        .group_by(User.id, User.username)
        .order_by(func.count(RoomBooking.id).desc(), User.username)
        .limit(limit)
        .all()
    )
    return [
        {"user_id": user_id, "username": username, "booking_count": booking_count}
        for user_id, username, booking_count in rows
    ]
