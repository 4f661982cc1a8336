"""Atomic write paths for room bookings and table reservations.

Each function locks the resource row, re-runs the overlap check and writes
in a single transaction, so two requests racing for the same interval cannot
both succeed.
"""
from __future__ import annotations

import logging
import secrets
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .availability import (
    available_rooms,
    available_tables,
    ensure_room_still_available,
    ensure_table_still_available,
    is_room_available,
    is_table_available,
    lock_room,
    lock_table,
    validate_interval,
)
from .database import atomic
from .errors import NotFound, ResourceUnavailable, ValidationFailed
from .models import (
    BookingPlatform,
    BookingStatus,
    ReservationStatus,
    Room,
    RoomBooking,
    RoomStatus,
    RoomType,
    TableReservation,
)
from .statuses import (
    ACTIVE_BOOKING_STATUSES,
    ACTIVE_RESERVATION_STATUSES,
    BOOKING_TRANSITIONS,
    RESERVATION_TRANSITIONS,
    ROOM_STATUS_ON_BOOKING,
    ensure_transition,
)

logger = logging.getLogger(__name__)

INITIAL_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
INITIAL_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


def make_reference(prefix: str) -> str:
    return f"{prefix}{datetime.utcnow():%Y%m%d}{secrets.token_hex(3).upper()}"


def _check_occupancy(room_type: RoomType, guests: int) -> None:
    if guests > room_type.max_occupancy:
        raise ValidationFailed(f"Room capacity exceeded. Maximum occupancy: {room_type.max_occupancy}")


def _room_alternatives(db: Session, room: Room, check_in: date, check_out: date, guests: int) -> list[int]:
    return [
        candidate.id
        for candidate in available_rooms(db, check_in, check_out, guests=guests, room_type_id=room.room_type_id)
        if candidate.id != room.id
    ]


def _claim_specific_room(
    db: Session,
    room_id: int,
    check_in: date,
    check_out: date,
    guests: int,
    exclude_booking_id: Optional[int] = None,
) -> Room:
    room = lock_room(db, room_id)
    if room.status == RoomStatus.MAINTENANCE:
        raise ResourceUnavailable(
            "Room is under maintenance",
            alternatives=_room_alternatives(db, room, check_in, check_out, guests),
        )
    if not room.room_type.is_active:
        raise ValidationFailed("Room type is not available for booking")
    _check_occupancy(room.room_type, guests)
    if not is_room_available(db, room.id, check_in, check_out, exclude_booking_id=exclude_booking_id):
        raise ResourceUnavailable(
            "Room not available for the selected dates",
            alternatives=_room_alternatives(db, room, check_in, check_out, guests),
        )
    return room


def _claim_room_of_type(db: Session, room_type_id: int, check_in: date, check_out: date, guests: int) -> Room:
    room_type = db.get(RoomType, room_type_id)
    if room_type is None:
        raise NotFound("Room type not found")
    if not room_type.is_active:
        raise ValidationFailed("Room type is not available for booking")
    _check_occupancy(room_type, guests)
    for candidate in available_rooms(db, check_in, check_out, room_type_id=room_type_id, for_update=True):
        # The candidate query may have waited on another writer's lock; its
        # EXISTS was evaluated against the older snapshot.
        if is_room_available(db, candidate.id, check_in, check_out):
            return candidate
    raise ResourceUnavailable("No rooms available for the selected dates")


def book_room(
    db: Session,
    *,
    user_id: int,
    check_in: date,
    check_out: date,
    adults: int = 1,
    children: int = 0,
    room_id: Optional[int] = None,
    room_type_id: Optional[int] = None,
    status: BookingStatus = BookingStatus.CONFIRMED,
    platform: BookingPlatform = BookingPlatform.DIRECT,
    special_requests: Optional[str] = None,
    guest_info: Optional[Dict[str, Any]] = None,
) -> RoomBooking:
    """Create a booking for a specific room or the first free room of a type."""

    validate_interval(check_in, check_out)
    if status not in INITIAL_BOOKING_STATUSES:
        raise ValidationFailed("New bookings must be pending or confirmed")
    if room_id is None and room_type_id is None:
        raise ValidationFailed("Either room_id or room_type_id is required")
    guests = adults + children

    with atomic(db):
        if room_id is not None:
            room = _claim_specific_room(db, room_id, check_in, check_out, guests)
        else:
            room = _claim_room_of_type(db, room_type_id, check_in, check_out, guests)
        nights = (check_out - check_in).days
        booking = RoomBooking(
            booking_reference=make_reference("BK"),
            user_id=user_id,
            room_id=room.id,
            check_in_date=check_in,
            check_out_date=check_out,
            adults=adults,
            children=children,
            total_amount=round(nights * room.room_type.base_price, 2),
            status=status,
            platform=platform,
            special_requests=special_requests,
            guest_info=guest_info,
        )
        db.add(booking)
    db.refresh(booking)
    logger.info("Booked room %s for %s..%s as %s", booking.room_id, check_in, check_out, booking.booking_reference)
    return booking


def reschedule_booking(
    db: Session,
    booking: RoomBooking,
    *,
    room_id: Optional[int] = None,
    check_in: Optional[date] = None,
    check_out: Optional[date] = None,
    adults: Optional[int] = None,
    children: Optional[int] = None,
    special_requests: Optional[str] = None,
    guest_info: Optional[Dict[str, Any]] = None,
) -> RoomBooking:
    if booking.status not in INITIAL_BOOKING_STATUSES:
        raise ValidationFailed(f"A {booking.status.value} booking cannot be changed")
    new_room_id = room_id if room_id is not None else booking.room_id
    new_check_in = check_in or booking.check_in_date
    new_check_out = check_out or booking.check_out_date
    new_adults = adults if adults is not None else booking.adults
    new_children = children if children is not None else booking.children
    validate_interval(new_check_in, new_check_out)

    with atomic(db):
        room = _claim_specific_room(
            db,
            new_room_id,
            new_check_in,
            new_check_out,
            new_adults + new_children,
            exclude_booking_id=booking.id,
        )
        booking.room_id = room.id
        booking.check_in_date = new_check_in
        booking.check_out_date = new_check_out
        booking.adults = new_adults
        booking.children = new_children
        booking.total_amount = round((new_check_out - new_check_in).days * room.room_type.base_price, 2)
        if special_requests is not None:
            booking.special_requests = special_requests
        if guest_info is not None:
            booking.guest_info = guest_info
        booking.updated_at = datetime.utcnow()
    db.refresh(booking)
    return booking


def transition_booking(
    db: Session,
    booking: RoomBooking,
    target: BookingStatus,
    reason: Optional[str] = None,
) -> RoomBooking:
    """Move a booking through its lifecycle, re-checking conflicts on activation."""

    ensure_transition(BOOKING_TRANSITIONS, booking.status, target)
    with atomic(db):
        if target in ACTIVE_BOOKING_STATUSES and booking.status not in ACTIVE_BOOKING_STATUSES:
            room = ensure_room_still_available(
                db, booking.room_id, booking.check_in_date, booking.check_out_date, exclude_booking_id=booking.id
            )
        else:
            room = lock_room(db, booking.room_id)
        now = datetime.utcnow()
        booking.status = target
        booking.updated_at = now
        if target == BookingStatus.CANCELLED:
            booking.cancelled_at = now
            booking.cancellation_reason = reason
        elif target == BookingStatus.CHECKED_IN:
            booking.checked_in_at = now
        elif target == BookingStatus.CHECKED_OUT:
            booking.checked_out_at = now
        room_status = ROOM_STATUS_ON_BOOKING[target]
        if room_status is not None:
            room.status = room_status
            room.updated_at = now
    db.refresh(booking)
    logger.info("Booking %s moved to %s", booking.booking_reference, target.value)
    return booking


def reserve_table(
    db: Session,
    *,
    user_id: int,
    table_id: int,
    start_time: datetime,
    party_size: int,
    duration_minutes: int,
    status: ReservationStatus = ReservationStatus.CONFIRMED,
    special_requests: Optional[str] = None,
) -> TableReservation:
    end_time = start_time + timedelta(minutes=duration_minutes)
    validate_interval(start_time, end_time)
    if status not in INITIAL_RESERVATION_STATUSES:
        raise ValidationFailed("New reservations must be pending or confirmed")

    with atomic(db):
        table = lock_table(db, table_id)
        if not table.is_active:
            raise NotFound("Table not found or not available")
        if table.capacity < party_size:
            raise ValidationFailed(f"Table can only accommodate {table.capacity} guests")
        if not is_table_available(db, table.id, start_time, end_time):
            alternatives = [
                candidate.id
                for candidate in available_tables(db, start_time, end_time, party_size=party_size)
                if candidate.id != table.id
            ]
            raise ResourceUnavailable("Table is already reserved for this time", alternatives=alternatives)
        reservation = TableReservation(
            reservation_reference=make_reference("RS"),
            user_id=user_id,
            table_id=table.id,
            start_time=start_time,
            end_time=end_time,
            party_size=party_size,
            special_requests=special_requests,
            status=status,
        )
        db.add(reservation)
    db.refresh(reservation)
    return reservation


def transition_reservation(db: Session, reservation: TableReservation, target: ReservationStatus) -> TableReservation:
    ensure_transition(RESERVATION_TRANSITIONS, reservation.status, target)
    with atomic(db):
        if target in ACTIVE_RESERVATION_STATUSES and reservation.status not in ACTIVE_RESERVATION_STATUSES:
            ensure_table_still_available(
                db, reservation.table_id, reservation.start_time, reservation.end_time,
                exclude_reservation_id=reservation.id,
            )
        else:
            lock_table(db, reservation.table_id)
        reservation.status = target
        reservation.updated_at = datetime.utcnow()
    db.refresh(reservation)
    return reservation
