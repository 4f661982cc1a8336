import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session, joinedload

from hotelops.app_factory import create_service_app, limiter
from hotelops.availability import is_room_available, validate_interval
from hotelops.config import get_settings
from hotelops.database import get_db
from hotelops.dependencies import allow_roles, ensure_owner_or_roles, get_current_active_user
from hotelops.errors import ValidationFailed
from hotelops.models import (
    FRONT_OFFICE_ROLES,
    BookingPlatform,
    BookingStatus,
    RoleEnum,
    Room,
    RoomBooking,
    User,
)
from hotelops.notifications import deliver_notifications, queue_booking_notifications
from hotelops.reservations import book_room, reschedule_booking, transition_booking
from hotelops.schemas import (
    AvailabilityRead,
    BookingCancel,
    BookingPage,
    BookingStatusUpdate,
    RoomBookingCreate,
    RoomBookingRead,
    RoomBookingUpdate,
)

settings = get_settings()

app = create_service_app("Bookings Service", "bookings")

require_front_office = allow_roles(*FRONT_OFFICE_ROLES)


def _is_front_office(user: User) -> bool:
    return user.role in FRONT_OFFICE_ROLES


def _get_booking_or_404(db: Session, booking_id: int) -> RoomBooking:
    booking = db.query(RoomBooking).filter(RoomBooking.id == booking_id).first()
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


def _get_accessible_booking(db: Session, booking_id: int, current_user: User) -> RoomBooking:
    booking = _get_booking_or_404(db, booking_id)
    ensure_owner_or_roles(current_user, booking.user_id, FRONT_OFFICE_ROLES)
    return booking


def _reject_past_check_in(check_in: date) -> None:
    if check_in < date.today():
        raise ValidationFailed("Check-in date cannot be in the past")


def _respond_and_notify(
    db: Session,
    booking: RoomBooking,
    template: str,
    background_tasks: BackgroundTasks,
) -> RoomBookingRead:
    # Serialize before queueing: queueing commits, and the session must stay
    # idle afterwards so delivery can take the write lock.
    payload = RoomBookingRead.model_validate(booking)
    notification_ids = queue_booking_notifications(db, booking, template)
    if notification_ids:
        background_tasks.add_task(deliver_notifications, notification_ids)
    return payload


@app.post("/bookings", response_model=RoomBookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: RoomBookingCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> RoomBookingRead:
    _reject_past_check_in(booking_in.check_in_date)
    if current_user.role == RoleEnum.CUSTOMER and booking_in.platform != BookingPlatform.DIRECT:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only staff can record OTA bookings")

    booking = book_room(
        db,
        user_id=current_user.id,
        room_id=booking_in.room_id,
        room_type_id=booking_in.room_type_id,
        check_in=booking_in.check_in_date,
        check_out=booking_in.check_out_date,
        adults=booking_in.adults,
        children=booking_in.children,
        status=booking_in.status,
        platform=booking_in.platform,
        special_requests=booking_in.special_requests,
        guest_info=booking_in.guest_info,
    )
    if booking.status == BookingStatus.CONFIRMED:
        return _respond_and_notify(db, booking, "booking_confirmation", background_tasks)
    return RoomBookingRead.model_validate(booking)


@app.get("/bookings", response_model=BookingPage)
@limiter.limit("30/minute")
def list_bookings(
    request: Request,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    platform: Optional[BookingPlatform] = None,
    room_type_id: Optional[int] = None,
    check_in_from: Optional[date] = None,
    check_in_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_front_office),
    db: Session = Depends(get_db),
) -> BookingPage:
    query = db.query(RoomBooking)
    if booking_status is not None:
        query = query.filter(RoomBooking.status == booking_status)
    if platform is not None:
        query = query.filter(RoomBooking.platform == platform)
    if room_type_id is not None:
        query = query.join(Room, RoomBooking.room_id == Room.id).filter(Room.room_type_id == room_type_id)
    if check_in_from is not None:
        query = query.filter(RoomBooking.check_in_date >= check_in_from)
    if check_in_to is not None:
        query = query.filter(RoomBooking.check_in_date <= check_in_to)

    total = query.count()
    bookings = (
        query.order_by(RoomBooking.check_in_date.desc(), RoomBooking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return BookingPage(
        items=[RoomBookingRead.model_validate(booking) for booking in bookings],
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit) if total else 0,
    )


@app.get("/bookings/me", response_model=List[RoomBookingRead])
@limiter.limit("30/minute")
def my_bookings(
    request: Request,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[RoomBooking]:
    query = db.query(RoomBooking).filter(RoomBooking.user_id == current_user.id)
    if booking_status is not None:
        query = query.filter(RoomBooking.status == booking_status)
    return query.order_by(RoomBooking.check_in_date.desc()).all()


@app.get("/bookings/availability", response_model=AvailabilityRead)
@limiter.limit("40/minute")
def check_availability(
    request: Request,
    room_id: int,
    check_in: date = Query(...),
    check_out: date = Query(...),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    if not db.query(Room).filter(Room.id == room_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return AvailabilityRead(
        resource_id=room_id,
        available=is_room_available(db, room_id, check_in, check_out),
        start=check_in,
        end=check_out,
    )


@app.get("/bookings/calendar")
@limiter.limit("30/minute")
def booking_calendar(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    room_type_id: Optional[int] = None,
    current_user: User = Depends(require_front_office),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    """Rooms with the active and pending stays overlapping ``[start_date, end_date)``."""

    validate_interval(start_date, end_date)
    if (end_date - start_date) > timedelta(days=92):
        raise ValidationFailed("Calendar window cannot exceed 92 days")

    rooms_query = db.query(Room).options(joinedload(Room.room_type))
    if room_type_id is not None:
        rooms_query = rooms_query.filter(Room.room_type_id == room_type_id)
    rooms = rooms_query.order_by(Room.room_number).all()

    bookings = (
        db.query(RoomBooking)
        .options(joinedload(RoomBooking.user))
        .filter(
            RoomBooking.room_id.in_([room.id for room in rooms]),
            RoomBooking.status.in_((BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN)),
            RoomBooking.check_in_date < end_date,
            RoomBooking.check_out_date > start_date,
        )
        .order_by(RoomBooking.check_in_date)
        .all()
    )
    by_room: Dict[int, List[Dict[str, Any]]] = {}
    for booking in bookings:
        by_room.setdefault(booking.room_id, []).append(
            {
                "id": booking.id,
                "booking_reference": booking.booking_reference,
                "check_in_date": booking.check_in_date,
                "check_out_date": booking.check_out_date,
                "status": booking.status.value,
                "guest": booking.user.name,
            }
        )
    return [
        {
            "room_id": room.id,
            "room_number": room.room_number,
            "room_type": room.room_type.name,
            "status": room.status.value,
            "bookings": by_room.get(room.id, []),
        }
        for room in rooms
    ]


@app.get("/bookings/{booking_id}", response_model=RoomBookingRead)
@limiter.limit("60/minute")
def get_booking(
    request: Request,
    booking_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> RoomBooking:
    return _get_accessible_booking(db, booking_id, current_user)


@app.put("/bookings/{booking_id}", response_model=RoomBookingRead)
@limiter.limit("20/minute")
def update_booking(
    request: Request,
    booking_id: int,
    booking_update: RoomBookingUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> RoomBooking:
    booking = _get_accessible_booking(db, booking_id, current_user)
    data = booking_update.model_dump(exclude_unset=True)
    if "check_in_date" in data and data["check_in_date"] != booking.check_in_date:
        _reject_past_check_in(data["check_in_date"])
    return reschedule_booking(
        db,
        booking,
        room_id=data.get("room_id"),
        check_in=data.get("check_in_date"),
        check_out=data.get("check_out_date"),
        adults=data.get("adults"),
        children=data.get("children"),
        special_requests=data.get("special_requests"),
        guest_info=data.get("guest_info"),
    )


@app.patch("/bookings/{booking_id}/status", response_model=RoomBookingRead)
@limiter.limit("30/minute")
def update_booking_status(
    request: Request,
    booking_id: int,
    status_update: BookingStatusUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_front_office),
    db: Session = Depends(get_db),
) -> RoomBookingRead:
    booking = _get_booking_or_404(db, booking_id)
    booking = transition_booking(db, booking, status_update.status, reason=status_update.reason)
    if booking.status == BookingStatus.CONFIRMED:
        return _respond_and_notify(db, booking, "booking_confirmation", background_tasks)
    if booking.status == BookingStatus.CANCELLED:
        return _respond_and_notify(db, booking, "booking_cancellation", background_tasks)
    return RoomBookingRead.model_validate(booking)


@app.post("/bookings/{booking_id}/cancel", response_model=RoomBookingRead)
@limiter.limit("20/minute")
def cancel_booking(
    request: Request,
    booking_id: int,
    background_tasks: BackgroundTasks,
    cancel_in: Optional[BookingCancel] = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> RoomBookingRead:
    booking = _get_accessible_booking(db, booking_id, current_user)
    if not _is_front_office(current_user):
        cutoff = datetime.combine(booking.check_in_date, datetime.min.time()) - timedelta(
            hours=settings.cancellation_cutoff_hours
        )
        if datetime.now() > cutoff:
            raise ValidationFailed(
                f"Bookings can only be cancelled at least {settings.cancellation_cutoff_hours} hours before check-in"
            )
    reason = cancel_in.reason if cancel_in else None
    booking = transition_booking(db, booking, BookingStatus.CANCELLED, reason=reason)
    return _respond_and_notify(db, booking, "booking_cancellation", background_tasks)
