"""Pydantic schemas shared across the services."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import (
    BookingPlatform,
    BookingStatus,
    DeliveryStatus,
    KitchenKind,
    NotificationChannel,
    OrderItemStatus,
    OrderStatus,
    OrderType,
    PaymentStatus,
    ReservationStatus,
    RoleEnum,
    RoomStatus,
)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserBase(BaseModel):
    name: str = Field(..., max_length=100)
    username: str = Field(..., max_length=50)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    role: RoleEnum = RoleEnum.CUSTOMER


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=8)


class UserRead(UserBase):
    id: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# Rooms


class RoomTypeBase(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = None
    base_price: float = Field(..., ge=0)
    max_occupancy: int = Field(..., ge=1)
    amenities: List[str] = Field(default_factory=list)
    is_active: bool = True


class RoomTypeCreate(RoomTypeBase):
    pass


class RoomTypeUpdate(BaseModel):
    description: Optional[str] = None
    base_price: Optional[float] = Field(None, ge=0)
    max_occupancy: Optional[int] = Field(None, ge=1)
    amenities: Optional[List[str]] = None
    is_active: Optional[bool] = None


class RoomTypeRead(RoomTypeBase):
    id: int

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    room_number: str = Field(..., max_length=10)
    floor: int = 1
    room_type_id: int
    status: RoomStatus = RoomStatus.AVAILABLE


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    floor: Optional[int] = None
    room_type_id: Optional[int] = None
    status: Optional[RoomStatus] = None


class RoomRead(RoomBase):
    id: int
    room_type: RoomTypeRead

    model_config = {"from_attributes": True}


class RoomStatusUpdate(BaseModel):
    status: RoomStatus


class RoomStatusRead(BaseModel):
    room_id: int
    cached_status: RoomStatus
    occupied_today: bool
    consistent: bool
    checked_at: datetime


# Bookings


class RoomBookingCreate(BaseModel):
    room_id: Optional[int] = None
    room_type_id: Optional[int] = None
    check_in_date: date
    check_out_date: date
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    status: BookingStatus = BookingStatus.CONFIRMED
    platform: BookingPlatform = BookingPlatform.DIRECT
    special_requests: Optional[str] = Field(None, max_length=1000)
    guest_info: Optional[Dict[str, Any]] = None


class RoomBookingUpdate(BaseModel):
    room_id: Optional[int] = None
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    adults: Optional[int] = Field(None, ge=1)
    children: Optional[int] = Field(None, ge=0)
    special_requests: Optional[str] = Field(None, max_length=1000)
    guest_info: Optional[Dict[str, Any]] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    reason: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RoomBookingRead(BaseModel):
    id: int
    booking_reference: str
    room_id: int
    user_id: int
    check_in_date: date
    check_out_date: date
    nights: int
    adults: int
    children: int
    total_amount: float
    status: BookingStatus
    platform: BookingPlatform
    special_requests: Optional[str] = None
    guest_info: Optional[Dict[str, Any]] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingPage(BaseModel):
    items: List[RoomBookingRead]
    page: int
    limit: int
    total: int
    pages: int


class AvailabilityRead(BaseModel):
    resource_id: int
    available: bool
    start: datetime | date
    end: datetime | date


# Restaurant


class KitchenCreate(BaseModel):
    name: str = Field(..., max_length=100)
    kind: KitchenKind = KitchenKind.KITCHEN
    is_active: bool = True


class KitchenRead(KitchenCreate):
    id: int

    model_config = {"from_attributes": True}


class KitchenStaffAssign(BaseModel):
    user_id: int


class TableBase(BaseModel):
    table_number: str = Field(..., max_length=10)
    capacity: int = Field(..., ge=1)
    location: Optional[str] = Field(None, max_length=50)
    kitchen_id: Optional[int] = None
    is_active: bool = True


class TableCreate(TableBase):
    pass


class TableUpdate(BaseModel):
    capacity: Optional[int] = Field(None, ge=1)
    location: Optional[str] = Field(None, max_length=50)
    kitchen_id: Optional[int] = None
    is_active: Optional[bool] = None


class TableRead(TableBase):
    id: int

    model_config = {"from_attributes": True}


class ReservationCreate(BaseModel):
    table_id: int
    start_time: datetime
    party_size: int = Field(..., ge=1)
    duration_minutes: Optional[int] = Field(None, gt=0, le=720)
    status: ReservationStatus = ReservationStatus.CONFIRMED
    special_requests: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_time")
    @classmethod
    def _to_local_naive(cls, value: datetime) -> datetime:
        """Reservation times are stored as naive local wall-clock times."""
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationRead(BaseModel):
    id: int
    reservation_reference: str
    table_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    party_size: int
    status: ReservationStatus
    special_requests: Optional[str] = None

    model_config = {"from_attributes": True}


class TableStatusRead(BaseModel):
    table_id: int
    booking_status: str
    unified_status: str
    reservation: Optional[ReservationRead] = None
    has_active_orders: bool


class MenuItemBase(BaseModel):
    name: str = Field(..., max_length=100)
    category: str = Field(..., max_length=50)
    price: float = Field(..., ge=0)
    kitchen_id: Optional[int] = None
    is_available: bool = True


class MenuItemCreate(MenuItemBase):
    pass


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=50)
    price: Optional[float] = Field(None, ge=0)
    kitchen_id: Optional[int] = None
    is_available: Optional[bool] = None


class MenuItemRead(MenuItemBase):
    id: int

    model_config = {"from_attributes": True}


class OrderLineIn(BaseModel):
    menu_item_id: int
    quantity: int = Field(..., ge=1, le=100)
    special_instructions: Optional[str] = Field(None, max_length=500)


class OrderCreate(BaseModel):
    order_type: OrderType
    table_id: Optional[int] = None
    table_reservation_id: Optional[int] = None
    room_booking_id: Optional[int] = None
    kitchen_id: Optional[int] = None
    items: List[OrderLineIn] = Field(..., min_length=1)
    special_instructions: Optional[str] = Field(None, max_length=1000)


class OrderItemsAdd(BaseModel):
    items: List[OrderLineIn] = Field(..., min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    estimated_time: Optional[int] = Field(None, ge=0)


class OrderItemStatusUpdate(BaseModel):
    status: OrderItemStatus


class OrderItemRead(BaseModel):
    id: int
    menu_item_id: int
    quantity: int
    unit_price: float
    total_price: float
    status: OrderItemStatus
    special_instructions: Optional[str] = None

    model_config = {"from_attributes": True}


class OrderRead(BaseModel):
    id: int
    order_number: str
    order_type: OrderType
    user_id: int
    waiter_id: Optional[int] = None
    table_id: Optional[int] = None
    table_reservation_id: Optional[int] = None
    room_booking_id: Optional[int] = None
    kitchen_id: Optional[int] = None
    subtotal: float
    tax_amount: float
    total_amount: float
    status: OrderStatus
    special_instructions: Optional[str] = None
    estimated_preparation_time: Optional[int] = None
    placed_at: datetime
    started_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    items: List[OrderItemRead] = Field(default_factory=list)

    model_config = {"from_attributes": True}


# Integrations


class PaymentCreate(BaseModel):
    gateway: str
    booking_id: Optional[int] = None
    order_id: Optional[int] = None
    method: Optional[str] = None


class PaymentRead(BaseModel):
    id: int
    gateway: str
    method: Optional[str] = None
    booking_id: Optional[int] = None
    order_id: Optional[int] = None
    amount: float
    currency: str
    status: PaymentStatus
    provider_reference: Optional[str] = None
    attempts: int
    last_error: Optional[str] = None

    model_config = {"from_attributes": True}


class NotificationRead(BaseModel):
    id: int
    user_id: int
    booking_id: Optional[int] = None
    channel: NotificationChannel
    template: str
    recipient: str
    status: DeliveryStatus
    provider: Optional[str] = None
    attempts: int
    last_error: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AvailabilitySyncRequest(BaseModel):
    start_date: date
    end_date: date
    room_type_id: Optional[int] = None


class DeliveryRead(BaseModel):
    provider: str
    success: bool
    attempts: int
    status_code: Optional[int] = None
    error: Optional[str] = None
