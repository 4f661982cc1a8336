from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from hotelops.app_factory import create_service_app, limiter
from hotelops.availability import available_tables
from hotelops.config import get_settings
from hotelops.database import get_db
from hotelops.dependencies import allow_roles, ensure_owner_or_roles, get_current_active_user, is_staff, require_staff
from hotelops.errors import ValidationFailed
from hotelops.models import (
    FRONT_OFFICE_ROLES,
    KITCHEN_ROLES,
    MANAGEMENT_ROLES,
    Kitchen,
    KitchenStaff,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    ReservationStatus,
    RestaurantTable,
    RoleEnum,
    RoomBooking,
    TableReservation,
    User,
)
from hotelops.reservations import reserve_table, transition_reservation
from hotelops.restaurant import (
    add_order_items,
    create_order,
    kitchen_dashboard,
    table_status,
    transition_order,
    transition_order_item,
)
from hotelops.schemas import (
    KitchenCreate,
    KitchenRead,
    KitchenStaffAssign,
    MenuItemCreate,
    MenuItemRead,
    MenuItemUpdate,
    OrderCreate,
    OrderItemsAdd,
    OrderItemStatusUpdate,
    OrderRead,
    OrderStatusUpdate,
    ReservationCreate,
    ReservationRead,
    ReservationStatusUpdate,
    TableCreate,
    TableRead,
    TableStatusRead,
    TableUpdate,
)

settings = get_settings()

app = create_service_app("Restaurant Service", "restaurant")

FLOOR_ROLES = FRONT_OFFICE_ROLES + (RoleEnum.WAITER,)
ORDER_HANDLING_ROLES = MANAGEMENT_ROLES + KITCHEN_ROLES + (RoleEnum.WAITER,)

require_manager = allow_roles(*MANAGEMENT_ROLES)
require_floor_staff = allow_roles(*FLOOR_ROLES)
require_order_staff = allow_roles(*ORDER_HANDLING_ROLES)


def _get_or_404(db: Session, model: Any, object_id: int, label: str) -> Any:
    instance = db.get(model, object_id)
    if instance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return instance


# Kitchens


@app.post("/kitchens", response_model=KitchenRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_kitchen(
    request: Request,
    kitchen_in: KitchenCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Kitchen:
    if db.query(Kitchen).filter(Kitchen.name == kitchen_in.name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Kitchen already exists")
    kitchen = Kitchen(**kitchen_in.model_dump())
    db.add(kitchen)
    db.commit()
    db.refresh(kitchen)
    return kitchen


@app.get("/kitchens", response_model=List[KitchenRead])
@limiter.limit("30/minute")
def list_kitchens(
    request: Request,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> List[Kitchen]:
    query = db.query(Kitchen).filter(Kitchen.is_active.is_(True))
    if current_user.role in KITCHEN_ROLES:
        query = query.join(KitchenStaff, KitchenStaff.kitchen_id == Kitchen.id).filter(
            KitchenStaff.user_id == current_user.id
        )
    return query.order_by(Kitchen.name).all()


@app.post("/kitchens/{kitchen_id}/staff", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def assign_kitchen_staff(
    request: Request,
    kitchen_id: int,
    assignment: KitchenStaffAssign,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    kitchen = _get_or_404(db, Kitchen, kitchen_id, "Kitchen")
    user = _get_or_404(db, User, assignment.user_id, "User")
    if user.role not in KITCHEN_ROLES:
        raise ValidationFailed("Only chefs and bartenders can be assigned to a kitchen")
    existing = (
        db.query(KitchenStaff)
        .filter(KitchenStaff.kitchen_id == kitchen.id, KitchenStaff.user_id == user.id)
        .first()
    )
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already assigned to this kitchen")
    db.add(KitchenStaff(kitchen_id=kitchen.id, user_id=user.id))
    db.commit()
    return {"kitchen_id": kitchen_id, "user_id": assignment.user_id}


@app.delete("/kitchens/{kitchen_id}/staff/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
def remove_kitchen_staff(
    request: Request,
    kitchen_id: int,
    user_id: int,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> None:
    assignment = (
        db.query(KitchenStaff)
        .filter(KitchenStaff.kitchen_id == kitchen_id, KitchenStaff.user_id == user_id)
        .first()
    )
    if not assignment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff assignment not found")
    db.delete(assignment)
    db.commit()


@app.get("/kitchens/{kitchen_id}/dashboard")
@limiter.limit("60/minute")
def get_kitchen_dashboard(
    request: Request,
    kitchen_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    kitchen = _get_or_404(db, Kitchen, kitchen_id, "Kitchen")
    if current_user.role not in MANAGEMENT_ROLES:
        if current_user.role not in KITCHEN_ROLES:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Kitchen staff only")
        assigned = (
            db.query(KitchenStaff)
            .filter(KitchenStaff.kitchen_id == kitchen.id, KitchenStaff.user_id == current_user.id)
            .first()
        )
        if not assigned:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this kitchen")
    return kitchen_dashboard(db, kitchen)


# Tables


@app.post("/tables", response_model=TableRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_table(
    request: Request,
    table_in: TableCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> RestaurantTable:
    if db.query(RestaurantTable).filter(RestaurantTable.table_number == table_in.table_number).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Table number already exists")
    if table_in.kitchen_id is not None:
        _get_or_404(db, Kitchen, table_in.kitchen_id, "Kitchen")
    table = RestaurantTable(**table_in.model_dump())
    db.add(table)
    db.commit()
    db.refresh(table)
    return table


@app.get("/tables", response_model=List[TableRead])
@limiter.limit("60/minute")
def list_tables(
    request: Request,
    location: Optional[str] = None,
    min_capacity: Optional[int] = Query(None, ge=1),
    include_inactive: bool = False,
    db: Session = Depends(get_db),
) -> List[RestaurantTable]:
    query = db.query(RestaurantTable)
    if not include_inactive:
        query = query.filter(RestaurantTable.is_active.is_(True))
    if location:
        query = query.filter(RestaurantTable.location == location)
    if min_capacity is not None:
        query = query.filter(RestaurantTable.capacity >= min_capacity)
    return query.order_by(RestaurantTable.location, RestaurantTable.table_number).all()


@app.put("/tables/{table_id}", response_model=TableRead)
@limiter.limit("15/minute")
def update_table(
    request: Request,
    table_id: int,
    table_update: TableUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> RestaurantTable:
    table = _get_or_404(db, RestaurantTable, table_id, "Table")
    for key, value in table_update.model_dump(exclude_unset=True).items():
        setattr(table, key, value)
    table.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(table)
    return table


@app.get("/tables/{table_id}/status", response_model=TableStatusRead)
@limiter.limit("60/minute")
def get_table_status(
    request: Request,
    table_id: int,
    on: Optional[date] = None,
    current_user: User = Depends(require_floor_staff),
    db: Session = Depends(get_db),
) -> TableStatusRead:
    table = _get_or_404(db, RestaurantTable, table_id, "Table")
    summary = table_status(db, table, on)
    reservation = summary.pop("reservation")
    return TableStatusRead(
        **summary,
        reservation=ReservationRead.model_validate(reservation) if reservation is not None else None,
    )


@app.get("/restaurant/availability", response_model=List[TableRead])
@limiter.limit("60/minute")
def search_available_tables(
    request: Request,
    day: date = Query(..., alias="date"),
    at: time = Query(..., alias="time"),
    party_size: int = Query(..., ge=1),
    location: Optional[str] = None,
    duration_minutes: Optional[int] = Query(None, gt=0, le=720),
    db: Session = Depends(get_db),
) -> List[RestaurantTable]:
    start = datetime.combine(day, at)
    end = start + timedelta(minutes=duration_minutes or settings.table_reservation_minutes)
    return available_tables(db, start, end, party_size=party_size, location=location)


# Reservations


@app.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_reservation(
    request: Request,
    reservation_in: ReservationCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> TableReservation:
    if reservation_in.start_time < datetime.now():
        raise ValidationFailed("Reservation time cannot be in the past")
    return reserve_table(
        db,
        user_id=current_user.id,
        table_id=reservation_in.table_id,
        start_time=reservation_in.start_time,
        party_size=reservation_in.party_size,
        duration_minutes=reservation_in.duration_minutes or settings.table_reservation_minutes,
        status=reservation_in.status,
        special_requests=reservation_in.special_requests,
    )


@app.get("/reservations", response_model=List[ReservationRead])
@limiter.limit("30/minute")
def list_reservations(
    request: Request,
    on: Optional[date] = Query(None, alias="date"),
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    table_id: Optional[int] = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[TableReservation]:
    query = db.query(TableReservation)
    if current_user.role not in FLOOR_ROLES:
        query = query.filter(TableReservation.user_id == current_user.id)
    if on is not None:
        day_start = datetime.combine(on, time.min)
        query = query.filter(
            TableReservation.start_time >= day_start,
            TableReservation.start_time < day_start + timedelta(days=1),
        )
    if reservation_status is not None:
        query = query.filter(TableReservation.status == reservation_status)
    if table_id is not None:
        query = query.filter(TableReservation.table_id == table_id)
    return query.order_by(TableReservation.start_time).all()


@app.patch("/reservations/{reservation_id}/status", response_model=ReservationRead)
@limiter.limit("30/minute")
def update_reservation_status(
    request: Request,
    reservation_id: int,
    status_update: ReservationStatusUpdate,
    current_user: User = Depends(require_floor_staff),
    db: Session = Depends(get_db),
) -> TableReservation:
    reservation = _get_or_404(db, TableReservation, reservation_id, "Reservation")
    return transition_reservation(db, reservation, status_update.status)


@app.post("/reservations/{reservation_id}/cancel", response_model=ReservationRead)
@limiter.limit("20/minute")
def cancel_reservation(
    request: Request,
    reservation_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> TableReservation:
    reservation = _get_or_404(db, TableReservation, reservation_id, "Reservation")
    ensure_owner_or_roles(current_user, reservation.user_id, FLOOR_ROLES)
    return transition_reservation(db, reservation, ReservationStatus.CANCELLED)


# Menu


@app.post("/menu-items", response_model=MenuItemRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_menu_item(
    request: Request,
    item_in: MenuItemCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> MenuItem:
    if item_in.kitchen_id is not None:
        _get_or_404(db, Kitchen, item_in.kitchen_id, "Kitchen")
    item = MenuItem(**item_in.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@app.get("/menu-items", response_model=List[MenuItemRead])
@limiter.limit("60/minute")
def list_menu_items(
    request: Request,
    category: Optional[str] = None,
    kitchen_id: Optional[int] = None,
    available_only: bool = True,
    db: Session = Depends(get_db),
) -> List[MenuItem]:
    query = db.query(MenuItem)
    if category:
        query = query.filter(MenuItem.category == category)
    if kitchen_id is not None:
        query = query.filter(MenuItem.kitchen_id == kitchen_id)
    if available_only:
        query = query.filter(MenuItem.is_available.is_(True))
    return query.order_by(MenuItem.category, MenuItem.name).all()


@app.put("/menu-items/{item_id}", response_model=MenuItemRead)
@limiter.limit("20/minute")
def update_menu_item(
    request: Request,
    item_id: int,
    item_update: MenuItemUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> MenuItem:
    item = _get_or_404(db, MenuItem, item_id, "Menu item")
    for key, value in item_update.model_dump(exclude_unset=True).items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return item


# Orders


@app.post("/orders", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def place_order(
    request: Request,
    order_in: OrderCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Order:
    if current_user.role == RoleEnum.CUSTOMER:
        if order_in.order_type == OrderType.DINE_IN:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Dine-in orders are placed by staff")
        if order_in.room_booking_id is not None:
            booking = _get_or_404(db, RoomBooking, order_in.room_booking_id, "Room booking")
            if booking.user_id != current_user.id:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return create_order(
        db,
        user=current_user,
        order_type=order_in.order_type,
        lines=order_in.items,
        table_id=order_in.table_id,
        table_reservation_id=order_in.table_reservation_id,
        room_booking_id=order_in.room_booking_id,
        kitchen_id=order_in.kitchen_id,
        special_instructions=order_in.special_instructions,
    )


@app.get("/orders", response_model=List[OrderRead])
@limiter.limit("60/minute")
def list_orders(
    request: Request,
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    order_type: Optional[OrderType] = None,
    kitchen_id: Optional[int] = None,
    table_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[Order]:
    query = db.query(Order)
    if not is_staff(current_user):
        query = query.filter(Order.user_id == current_user.id)
    if order_status is not None:
        query = query.filter(Order.status == order_status)
    if order_type is not None:
        query = query.filter(Order.order_type == order_type)
    if kitchen_id is not None:
        query = query.filter(Order.kitchen_id == kitchen_id)
    if table_id is not None:
        query = query.filter(Order.table_id == table_id)
    return query.order_by(Order.placed_at.desc(), Order.id.desc()).limit(limit).all()


@app.get("/orders/{order_id}", response_model=OrderRead)
@limiter.limit("60/minute")
def get_order(
    request: Request,
    order_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Order:
    order = _get_or_404(db, Order, order_id, "Order")
    ensure_owner_or_roles(current_user, order.user_id)
    return order


@app.post("/orders/{order_id}/items", response_model=OrderRead)
@limiter.limit("30/minute")
def add_items(
    request: Request,
    order_id: int,
    items_in: OrderItemsAdd,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Order:
    order = _get_or_404(db, Order, order_id, "Order")
    ensure_owner_or_roles(current_user, order.user_id)
    return add_order_items(db, order, items_in.items)


@app.patch("/orders/{order_id}/status", response_model=OrderRead)
@limiter.limit("60/minute")
def update_order_status(
    request: Request,
    order_id: int,
    status_update: OrderStatusUpdate,
    current_user: User = Depends(require_order_staff),
    db: Session = Depends(get_db),
) -> Order:
    order = _get_or_404(db, Order, order_id, "Order")
    return transition_order(
        db,
        order,
        status_update.status,
        changed_by=current_user.id,
        estimated_time=status_update.estimated_time,
    )


@app.patch("/orders/{order_id}/items/{item_id}/status", response_model=OrderRead)
@limiter.limit("120/minute")
def update_order_item_status(
    request: Request,
    order_id: int,
    item_id: int,
    status_update: OrderItemStatusUpdate,
    current_user: User = Depends(require_order_staff),
    db: Session = Depends(get_db),
) -> Order:
    order = _get_or_404(db, Order, order_id, "Order")
    item = db.query(OrderItem).filter(OrderItem.id == item_id, OrderItem.order_id == order.id).first()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order item not found")
    return transition_order_item(db, order, item, status_update.status, changed_by=current_user.id)
