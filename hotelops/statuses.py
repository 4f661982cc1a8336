"""Lifecycle transition tables for every status enum.

Each table has one entry per enum member so a new member without a row fails
the import-time check below instead of silently allowing nothing.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Type, TypeVar

from .errors import InvalidTransition
from .models import (
    BookingStatus,
    OrderItemStatus,
    OrderStatus,
    ReservationStatus,
    RoomStatus,
)

S = TypeVar("S", bound=Enum)

BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.CANCELLED}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
    BookingStatus.CHECKED_OUT: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

RESERVATION_TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.SEATED, ReservationStatus.CANCELLED}),
    ReservationStatus.SEATED: frozenset({ReservationStatus.COMPLETED}),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SERVED}),
    OrderStatus.SERVED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

ORDER_ITEM_TRANSITIONS: Dict[OrderItemStatus, FrozenSet[OrderItemStatus]] = {
    OrderItemStatus.PENDING: frozenset({OrderItemStatus.PREPARING}),
    OrderItemStatus.PREPARING: frozenset({OrderItemStatus.READY}),
    OrderItemStatus.READY: frozenset({OrderItemStatus.SERVED}),
    OrderItemStatus.SERVED: frozenset(),
}

# Statuses that hold the resource for conflict detection.
ACTIVE_BOOKING_STATUSES: FrozenSet[BookingStatus] = frozenset({BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN})
ACTIVE_RESERVATION_STATUSES: FrozenSet[ReservationStatus] = frozenset(
    {ReservationStatus.CONFIRMED, ReservationStatus.SEATED}
)
OPEN_ORDER_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY}
)

# Housekeeping status a room takes when a booking enters each status; None
# leaves the cached status alone.
ROOM_STATUS_ON_BOOKING: Dict[BookingStatus, Optional[RoomStatus]] = {
    BookingStatus.PENDING: None,
    BookingStatus.CONFIRMED: None,
    BookingStatus.CHECKED_IN: RoomStatus.OCCUPIED,
    BookingStatus.CHECKED_OUT: RoomStatus.CLEANING,
    BookingStatus.CANCELLED: None,
}


def _check_exhaustive(enum_cls: Type[Enum], table: Mapping) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} transition table is missing {sorted(m.value for m in missing)}")


for _enum_cls, _table in (
    (BookingStatus, BOOKING_TRANSITIONS),
    (ReservationStatus, RESERVATION_TRANSITIONS),
    (OrderStatus, ORDER_TRANSITIONS),
    (OrderItemStatus, ORDER_ITEM_TRANSITIONS),
    (BookingStatus, ROOM_STATUS_ON_BOOKING),
):
    _check_exhaustive(_enum_cls, _table)


def can_transition(table: Mapping[S, FrozenSet[S]], current: S, target: S) -> bool:
    return target in table[current]


def ensure_transition(table: Mapping[S, FrozenSet[S]], current: S, target: S) -> None:
    """Raise :class:`InvalidTransition` unless ``current -> target`` is allowed."""

    if not can_transition(table, current, target):
        raise InvalidTransition(f"Cannot move from {current.value} to {target.value}")
