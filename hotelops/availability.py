"""Room and table availability.

Every check uses half-open intervals: a booking occupying ``[start, end)``
conflicts with a request ``[s, e)`` only when ``start < e and s < end``, so a
guest checking out on day N never blocks a guest checking in on day N.

The predicates here read committed state and take no locks. Write paths must
call :func:`lock_room` / :func:`lock_table` first and re-check inside the
same transaction (see :mod:`hotelops.reservations`).
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NotFound, ResourceUnavailable, ValidationFailed
from .models import RestaurantTable, Room, RoomBooking, RoomStatus, RoomType, TableReservation
from .statuses import ACTIVE_BOOKING_STATUSES, ACTIVE_RESERVATION_STATUSES

Instant = Union[date, datetime]


def validate_interval(start: Instant, end: Instant) -> None:
    if start is None or end is None:
        raise ValidationFailed("Both start and end of the interval are required")
    if end <= start:
        raise ValidationFailed("End of the interval must be after its start")


def intervals_overlap(a_start: Instant, a_end: Instant, b_start: Instant, b_end: Instant) -> bool:
    return a_start < b_end and b_start < a_end


def _room_overlap_exists(check_in: date, check_out: date, exclude_booking_id: Optional[int] = None):
    # Correlates against Room in the enclosing query.
    subquery = select(RoomBooking.id).where(
        RoomBooking.room_id == Room.id,
        RoomBooking.status.in_(ACTIVE_BOOKING_STATUSES),
        RoomBooking.check_in_date < check_out,
        RoomBooking.check_out_date > check_in,
    )
    if exclude_booking_id is not None:
        subquery = subquery.where(RoomBooking.id != exclude_booking_id)
    return subquery.exists()


def _table_overlap_exists(start: datetime, end: datetime, exclude_reservation_id: Optional[int] = None):
    subquery = select(TableReservation.id).where(
        TableReservation.table_id == RestaurantTable.id,
        TableReservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        TableReservation.start_time < end,
        TableReservation.end_time > start,
    )
    if exclude_reservation_id is not None:
        subquery = subquery.where(TableReservation.id != exclude_reservation_id)
    return subquery.exists()


def is_room_available(
    db: Session,
    room_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    validate_interval(check_in, check_out)
    overlap = db.query(RoomBooking).filter(
        RoomBooking.room_id == room_id,
        RoomBooking.status.in_(ACTIVE_BOOKING_STATUSES),
        RoomBooking.check_in_date < check_out,
        RoomBooking.check_out_date > check_in,
    )
    if exclude_booking_id is not None:
        overlap = overlap.filter(RoomBooking.id != exclude_booking_id)
    return not db.query(overlap.exists()).scalar()


def is_table_available(
    db: Session,
    table_id: int,
    start: datetime,
    end: datetime,
    exclude_reservation_id: Optional[int] = None,
) -> bool:
    validate_interval(start, end)
    overlap = db.query(TableReservation).filter(
        TableReservation.table_id == table_id,
        TableReservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        TableReservation.start_time < end,
        TableReservation.end_time > start,
    )
    if exclude_reservation_id is not None:
        overlap = overlap.filter(TableReservation.id != exclude_reservation_id)
    return not db.query(overlap.exists()).scalar()


def available_rooms(
    db: Session,
    check_in: date,
    check_out: date,
    guests: Optional[int] = None,
    room_type_id: Optional[int] = None,
    exclude_booking_id: Optional[int] = None,
    for_update: bool = False,
) -> List[Room]:
    """Bookable rooms for the stay, ordered by room number.

    Rooms under maintenance and rooms of inactive types are never offered.
    The cached ``occupied``/``cleaning`` statuses describe today's
    housekeeping state, not the requested window, so they do not filter.
    """

    validate_interval(check_in, check_out)
    query = (
        db.query(Room)
        .join(RoomType, Room.room_type_id == RoomType.id)
        .filter(
            RoomType.is_active.is_(True),
            Room.status != RoomStatus.MAINTENANCE,
            ~_room_overlap_exists(check_in, check_out, exclude_booking_id),
        )
    )
    if guests is not None:
        query = query.filter(RoomType.max_occupancy >= guests)
    if room_type_id is not None:
        query = query.filter(Room.room_type_id == room_type_id)
    query = query.order_by(Room.room_number)
    if for_update:
        query = query.with_for_update(of=Room)
    return query.all()


def available_tables(
    db: Session,
    start: datetime,
    end: datetime,
    party_size: Optional[int] = None,
    location: Optional[str] = None,
) -> List[RestaurantTable]:
    validate_interval(start, end)
    query = db.query(RestaurantTable).filter(
        RestaurantTable.is_active.is_(True),
        ~_table_overlap_exists(start, end),
    )
    if party_size is not None:
        query = query.filter(RestaurantTable.capacity >= party_size)
    if location:
        query = query.filter(RestaurantTable.location == location)
    return query.order_by(RestaurantTable.location, RestaurantTable.table_number).all()


def lock_room(db: Session, room_id: int) -> Room:
    """Load the room row with a write lock held until the transaction ends."""

    room = db.query(Room).filter(Room.id == room_id).with_for_update().first()
    if room is None:
        raise NotFound("Room not found")
    return room


def lock_table(db: Session, table_id: int) -> RestaurantTable:
    table = db.query(RestaurantTable).filter(RestaurantTable.id == table_id).with_for_update().first()
    if table is None:
        raise NotFound("Table not found")
    return table


def ensure_room_still_available(
    db: Session,
    room_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> Room:
    """Lock the room and fail if an active booking now overlaps the stay."""

    room = lock_room(db, room_id)
    if not is_room_available(db, room.id, check_in, check_out, exclude_booking_id=exclude_booking_id):
        raise ResourceUnavailable("Room was booked by someone else for these dates")
    return room


def ensure_table_still_available(
    db: Session,
    table_id: int,
    start: datetime,
    end: datetime,
    exclude_reservation_id: Optional[int] = None,
) -> RestaurantTable:
    table = lock_table(db, table_id)
    if not is_table_available(db, table.id, start, end, exclude_reservation_id=exclude_reservation_id):
        raise ResourceUnavailable("Table was reserved by someone else for this time")
    return table
