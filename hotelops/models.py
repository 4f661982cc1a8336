"""SQLAlchemy models shared across all services."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

Money = Numeric(10, 2, asdecimal=False)


class RoleEnum(str, Enum):
    CUSTOMER = "customer"
    RECEPTIONIST = "receptionist"
    WAITER = "waiter"
    CHEF = "chef"
    BARTENDER = "bartender"
    MANAGER = "manager"
    ADMIN = "admin"


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class BookingPlatform(str, Enum):
    DIRECT = "direct"
    MAKEMYTRIP = "makemytrip"
    BOOKING_COM = "booking_com"
    AIRBNB = "airbnb"
    YATRA = "yatra"
    EASEMYTRIP = "easemytrip"
    TRIVAGO = "trivago"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class KitchenKind(str, Enum):
    KITCHEN = "kitchen"
    BAR = "bar"


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    ROOM_SERVICE = "room_service"
    TAKEAWAY = "takeaway"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class OrderItemStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"


class NotificationChannel(str, Enum):
    SMS = "sms"
    EMAIL = "email"


class DeliveryStatus(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


STAFF_ROLES = (
    RoleEnum.RECEPTIONIST,
    RoleEnum.WAITER,
    RoleEnum.CHEF,
    RoleEnum.BARTENDER,
    RoleEnum.MANAGER,
    RoleEnum.ADMIN,
)
FRONT_OFFICE_ROLES = (RoleEnum.RECEPTIONIST, RoleEnum.MANAGER, RoleEnum.ADMIN)
MANAGEMENT_ROLES = (RoleEnum.MANAGER, RoleEnum.ADMIN)
KITCHEN_ROLES = (RoleEnum.CHEF, RoleEnum.BARTENDER)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), default=None)
    role: Mapped[RoleEnum] = mapped_column(SqlEnum(RoleEnum), default=RoleEnum.CUSTOMER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    bookings: Mapped[List["RoomBooking"]] = relationship(back_populates="user")
    reservations: Mapped[List["TableReservation"]] = relationship(back_populates="user")


class RoomType(Base):
    __tablename__ = "room_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    base_price: Mapped[float] = mapped_column(Money)
    max_occupancy: Mapped[int] = mapped_column(Integer)
    amenities: Mapped[list[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    rooms: Mapped[List["Room"]] = relationship(back_populates="room_type")


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    room_number: Mapped[str] = mapped_column(String(10), unique=True)
    floor: Mapped[int] = mapped_column(Integer, default=1)
    room_type_id: Mapped[int] = mapped_column(ForeignKey("room_types.id"), index=True)
    status: Mapped[RoomStatus] = mapped_column(SqlEnum(RoomStatus), default=RoomStatus.AVAILABLE)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    room_type: Mapped[RoomType] = relationship(back_populates="rooms")
    bookings: Mapped[List["RoomBooking"]] = relationship(back_populates="room")


class RoomBooking(Base):
    __tablename__ = "room_bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    booking_reference: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[float] = mapped_column(Money, default=0)
    status: Mapped[BookingStatus] = mapped_column(SqlEnum(BookingStatus), default=BookingStatus.CONFIRMED, index=True)
    platform: Mapped[BookingPlatform] = mapped_column(SqlEnum(BookingPlatform), default=BookingPlatform.DIRECT)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, default=None)
    guest_info: Mapped[Optional[dict]] = mapped_column(JSON, default=None)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    checked_out_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    user: Mapped[User] = relationship(back_populates="bookings")
    room: Mapped[Room] = relationship(back_populates="bookings")

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days


class Kitchen(Base):
    __tablename__ = "kitchens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    kind: Mapped[KitchenKind] = mapped_column(SqlEnum(KitchenKind), default=KitchenKind.KITCHEN)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    staff: Mapped[List["KitchenStaff"]] = relationship(back_populates="kitchen", cascade="all, delete-orphan")


class KitchenStaff(Base):
    __tablename__ = "kitchen_staff"
    __table_args__ = (UniqueConstraint("kitchen_id", "user_id", name="uq_kitchen_staff"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    kitchen_id: Mapped[int] = mapped_column(ForeignKey("kitchens.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    kitchen: Mapped[Kitchen] = relationship(back_populates="staff")
    user: Mapped[User] = relationship()


class RestaurantTable(Base):
    __tablename__ = "restaurant_tables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    table_number: Mapped[str] = mapped_column(String(10), unique=True)
    capacity: Mapped[int] = mapped_column(Integer, index=True)
    location: Mapped[Optional[str]] = mapped_column(String(50), default=None, index=True)
    kitchen_id: Mapped[Optional[int]] = mapped_column(ForeignKey("kitchens.id"), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    reservations: Mapped[List["TableReservation"]] = relationship(back_populates="table")


class TableReservation(Base):
    __tablename__ = "table_reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    reservation_reference: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    table_id: Mapped[int] = mapped_column(ForeignKey("restaurant_tables.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    party_size: Mapped[int] = mapped_column(Integer)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, default=None)
    status: Mapped[ReservationStatus] = mapped_column(
        SqlEnum(ReservationStatus), default=ReservationStatus.CONFIRMED, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    table: Mapped[RestaurantTable] = relationship(back_populates="reservations")
    user: Mapped[User] = relationship(back_populates="reservations")


class MenuItem(Base):
    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    category: Mapped[str] = mapped_column(String(50), index=True)
    price: Mapped[float] = mapped_column(Money)
    kitchen_id: Mapped[Optional[int]] = mapped_column(ForeignKey("kitchens.id"), default=None)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_number: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    order_type: Mapped[OrderType] = mapped_column(SqlEnum(OrderType))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    waiter_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), default=None)
    table_id: Mapped[Optional[int]] = mapped_column(ForeignKey("restaurant_tables.id"), default=None, index=True)
    table_reservation_id: Mapped[Optional[int]] = mapped_column(ForeignKey("table_reservations.id"), default=None)
    room_booking_id: Mapped[Optional[int]] = mapped_column(ForeignKey("room_bookings.id"), default=None)
    kitchen_id: Mapped[Optional[int]] = mapped_column(ForeignKey("kitchens.id"), default=None, index=True)
    subtotal: Mapped[float] = mapped_column(Money, default=0)
    tax_amount: Mapped[float] = mapped_column(Money, default=0)
    total_amount: Mapped[float] = mapped_column(Money, default=0)
    status: Mapped[OrderStatus] = mapped_column(SqlEnum(OrderStatus), default=OrderStatus.PENDING, index=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, default=None)
    estimated_preparation_time: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    placed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    ready_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    served_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    items: Mapped[List["OrderItem"]] = relationship(back_populates="order", cascade="all, delete-orphan")
    logs: Mapped[List["OrderStatusLog"]] = relationship(back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    menu_item_id: Mapped[int] = mapped_column(ForeignKey("menu_items.id"))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[float] = mapped_column(Money)
    total_price: Mapped[float] = mapped_column(Money)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, default=None)
    status: Mapped[OrderItemStatus] = mapped_column(SqlEnum(OrderItemStatus), default=OrderItemStatus.PENDING)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    order: Mapped[Order] = relationship(back_populates="items")
    menu_item: Mapped[MenuItem] = relationship()


class OrderStatusLog(Base):
    __tablename__ = "order_status_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    from_status: Mapped[Optional[OrderStatus]] = mapped_column(SqlEnum(OrderStatus), default=None)
    to_status: Mapped[OrderStatus] = mapped_column(SqlEnum(OrderStatus))
    changed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), default=None)
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    order: Mapped[Order] = relationship(back_populates="logs")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    booking_id: Mapped[Optional[int]] = mapped_column(ForeignKey("room_bookings.id", ondelete="SET NULL"), default=None)
    channel: Mapped[NotificationChannel] = mapped_column(SqlEnum(NotificationChannel))
    template: Mapped[str] = mapped_column(String(50))
    recipient: Mapped[str] = mapped_column(String(255))
    body: Mapped[str] = mapped_column(Text)
    status: Mapped[DeliveryStatus] = mapped_column(SqlEnum(DeliveryStatus), default=DeliveryStatus.QUEUED)
    provider: Mapped[Optional[str]] = mapped_column(String(30), default=None)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    booking_id: Mapped[Optional[int]] = mapped_column(ForeignKey("room_bookings.id"), default=None)
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"), default=None)
    gateway: Mapped[str] = mapped_column(String(30))
    method: Mapped[Optional[str]] = mapped_column(String(30), default=None)
    amount: Mapped[float] = mapped_column(Money)
    currency: Mapped[str] = mapped_column(String(3))
    status: Mapped[PaymentStatus] = mapped_column(SqlEnum(PaymentStatus), default=PaymentStatus.PENDING)
    provider_reference: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
