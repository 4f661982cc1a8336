from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from hotelops.app_factory import create_service_app, limiter
from hotelops.availability import available_rooms
from hotelops.cache import KeyedTTLCache
from hotelops.config import get_settings
from hotelops.database import get_db
from hotelops.dependencies import allow_roles
from hotelops.errors import ValidationFailed
from hotelops.models import FRONT_OFFICE_ROLES, MANAGEMENT_ROLES, Room, RoomBooking, RoomStatus, RoomType, User
from hotelops.schemas import (
    RoomCreate,
    RoomRead,
    RoomStatusRead,
    RoomStatusUpdate,
    RoomTypeCreate,
    RoomTypeRead,
    RoomTypeUpdate,
    RoomUpdate,
)
from hotelops.statuses import ACTIVE_BOOKING_STATUSES

settings = get_settings()
room_status_cache: KeyedTTLCache[RoomStatusRead] = KeyedTTLCache("room-status", ttl=settings.room_cache_ttl)

app = create_service_app("Rooms Service", "rooms")

require_manager = allow_roles(*MANAGEMENT_ROLES)
require_front_office = allow_roles(*FRONT_OFFICE_ROLES)


def _get_room_or_404(db: Session, room_id: int) -> Room:
    room = db.query(Room).filter(Room.id == room_id).first()
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


def _get_room_type_or_404(db: Session, room_type_id: int) -> RoomType:
    room_type = db.query(RoomType).filter(RoomType.id == room_type_id).first()
    if not room_type:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room type not found")
    return room_type


@app.post("/room-types", response_model=RoomTypeRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_room_type(
    request: Request,
    room_type_in: RoomTypeCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> RoomType:
    if db.query(RoomType).filter(RoomType.name == room_type_in.name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Room type already exists")
    room_type = RoomType(**room_type_in.model_dump())
    db.add(room_type)
    db.commit()
    db.refresh(room_type)
    return room_type


@app.get("/room-types", response_model=List[RoomTypeRead])
@limiter.limit("60/minute")
def list_room_types(request: Request, include_inactive: bool = False, db: Session = Depends(get_db)) -> List[RoomType]:
    query = db.query(RoomType)
    if not include_inactive:
        query = query.filter(RoomType.is_active.is_(True))
    return query.order_by(RoomType.base_price).all()


@app.put("/room-types/{room_type_id}", response_model=RoomTypeRead)
@limiter.limit("15/minute")
def update_room_type(
    request: Request,
    room_type_id: int,
    room_type_update: RoomTypeUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> RoomType:
    room_type = _get_room_type_or_404(db, room_type_id)
    for key, value in room_type_update.model_dump(exclude_unset=True).items():
        setattr(room_type, key, value)
    db.commit()
    db.refresh(room_type)
    return room_type


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Room:
    _get_room_type_or_404(db, room_in.room_type_id)
    if db.query(Room).filter(Room.room_number == room_in.room_number).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Room number already exists")
    room = Room(**room_in.model_dump())
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@app.get("/rooms", response_model=List[RoomRead])
@limiter.limit("60/minute")
def list_rooms(
    request: Request,
    room_type_id: Optional[int] = None,
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    floor: Optional[int] = None,
    db: Session = Depends(get_db),
) -> List[Room]:
    query = db.query(Room)
    if room_type_id is not None:
        query = query.filter(Room.room_type_id == room_type_id)
    if room_status is not None:
        query = query.filter(Room.status == room_status)
    if floor is not None:
        query = query.filter(Room.floor == floor)
    return query.order_by(Room.room_number).all()


@app.get("/rooms/available", response_model=List[RoomRead])
@limiter.limit("60/minute")
def search_available_rooms(
    request: Request,
    check_in: date = Query(...),
    check_out: date = Query(...),
    guests: Optional[int] = Query(None, ge=1),
    room_type_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> List[Room]:
    return available_rooms(db, check_in, check_out, guests=guests, room_type_id=room_type_id)


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(request: Request, room_id: int, db: Session = Depends(get_db)) -> Room:
    return _get_room_or_404(db, room_id)


@app.put("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Room:
    room = _get_room_or_404(db, room_id)
    update_data = room_update.model_dump(exclude_unset=True)
    if "room_type_id" in update_data:
        _get_room_type_or_404(db, update_data["room_type_id"])
    for key, value in update_data.items():
        setattr(room, key, value)
    room.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(room)
    room_status_cache.invalidate(room.id)
    return room


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: int,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> None:
    room = _get_room_or_404(db, room_id)
    if db.query(RoomBooking).filter(RoomBooking.room_id == room.id).first():
        raise ValidationFailed("Room has booking history; set it to maintenance instead")
    db.delete(room)
    db.commit()
    room_status_cache.invalidate(room_id)


def _compute_room_status(db: Session, room: Room) -> RoomStatusRead:
    today = date.today()
    occupied_today = bool(
        db.query(
            db.query(RoomBooking)
            .filter(
                RoomBooking.room_id == room.id,
                RoomBooking.status.in_(ACTIVE_BOOKING_STATUSES),
                RoomBooking.check_in_date <= today,
                RoomBooking.check_out_date > today,
            )
            .exists()
        ).scalar()
    )
    return RoomStatusRead(
        room_id=room.id,
        cached_status=room.status,
        occupied_today=occupied_today,
        consistent=(room.status == RoomStatus.OCCUPIED) == occupied_today,
        checked_at=datetime.utcnow(),
    )


@app.get("/rooms/{room_id}/status", response_model=RoomStatusRead)
@limiter.limit("30/minute")
def room_status(
    request: Request,
    room_id: int,
    force_refresh: bool = False,
    db: Session = Depends(get_db),
) -> RoomStatusRead:
    room = _get_room_or_404(db, room_id)
    return room_status_cache.get_or_compute(room_id, lambda: _compute_room_status(db, room), refresh=force_refresh)


@app.patch("/rooms/{room_id}/status", response_model=RoomRead)
@limiter.limit("30/minute")
def set_room_status(
    request: Request,
    room_id: int,
    status_update: RoomStatusUpdate,
    current_user: User = Depends(require_front_office),
    db: Session = Depends(get_db),
) -> Room:
    room = _get_room_or_404(db, room_id)
    room.status = status_update.status
    room.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(room)
    room_status_cache.invalidate(room.id)
    return room
