import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from hotelops.app_factory import create_service_app, limiter
from hotelops.availability import available_rooms, validate_interval
from hotelops.config import get_settings
from hotelops.database import get_db
from hotelops.dependencies import allow_roles, ensure_owner_or_roles, get_current_active_user
from hotelops.errors import Conflict, ValidationFailed
from hotelops.integrations import PROVIDERS, OutboundClient, ProviderKind, build_client, catalogue
from hotelops.models import (
    FRONT_OFFICE_ROLES,
    MANAGEMENT_ROLES,
    BookingStatus,
    DeliveryStatus,
    Notification,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
    RoomBooking,
    RoomType,
    User,
)
from hotelops.schemas import AvailabilitySyncRequest, DeliveryRead, NotificationRead, PaymentCreate, PaymentRead

logger = logging.getLogger(__name__)
settings = get_settings()

app = create_service_app("Integrations Service", "integrations")

require_manager = allow_roles(*MANAGEMENT_ROLES)

MAX_SYNC_DAYS = 31

ClientBuilder = Callable[[str], OutboundClient]


def get_client_builder() -> ClientBuilder:
    """Dependency returning the outbound client constructor; overridden in tests."""

    return build_client


def _provider_or_404(name: str, kind: ProviderKind):
    spec = PROVIDERS.get(name)
    if spec is None or spec.kind != kind:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown {kind.value} provider: {name}")
    return spec


@app.get("/integrations")
@limiter.limit("30/minute")
def list_integrations(
    request: Request,
    kind: Optional[ProviderKind] = None,
    current_user: User = Depends(require_manager),
) -> List[Dict[str, Any]]:
    entries = catalogue()
    if kind is not None:
        entries = [entry for entry in entries if entry["kind"] == kind.value]
    return entries


def _availability_payload(db: Session, sync_in: AvailabilitySyncRequest) -> List[Dict[str, Any]]:
    room_types = db.query(RoomType).filter(RoomType.is_active.is_(True))
    if sync_in.room_type_id is not None:
        room_types = room_types.filter(RoomType.id == sync_in.room_type_id)
    records = []
    night = sync_in.start_date
    while night < sync_in.end_date:
        for room_type in room_types.order_by(RoomType.id).all():
            free = available_rooms(db, night, night + timedelta(days=1), room_type_id=room_type.id)
            records.append(
                {
                    "date": night.isoformat(),
                    "room_type": room_type.name,
                    "available": len(free),
                    "rate": room_type.base_price,
                    "currency": settings.currency,
                }
            )
        night += timedelta(days=1)
    return records


@app.post("/integrations/{provider}/sync")
@limiter.limit("10/minute")
def sync_availability(
    request: Request,
    provider: str,
    sync_in: AvailabilitySyncRequest,
    current_user: User = Depends(require_manager),
    client_builder: ClientBuilder = Depends(get_client_builder),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Push per-night room type availability to an OTA."""

    spec = _provider_or_404(provider, ProviderKind.OTA)
    if "availability" not in spec.endpoints:
        raise ValidationFailed(f"{provider} does not accept availability updates")
    validate_interval(sync_in.start_date, sync_in.end_date)
    if (sync_in.end_date - sync_in.start_date).days > MAX_SYNC_DAYS:
        raise ValidationFailed(f"Sync window cannot exceed {MAX_SYNC_DAYS} days")

    records = _availability_payload(db, sync_in)
    # End the read transaction before calling out.
    db.rollback()
    result = client_builder(provider).send("availability", {"hotel": settings.hotel_name, "records": records})
    if not result.success:
        logger.warning("Availability sync to %s failed: %s", provider, result.error)
    return {
        "delivery": DeliveryRead(
            provider=result.provider,
            success=result.success,
            attempts=result.attempts,
            status_code=result.status_code,
            error=result.error,
        ),
        "records": len(records),
    }


def _payable_amount(db: Session, payment_in: PaymentCreate, current_user: User) -> float:
    if (payment_in.booking_id is None) == (payment_in.order_id is None):
        raise ValidationFailed("Provide exactly one of booking_id or order_id")
    if payment_in.booking_id is not None:
        booking = db.query(RoomBooking).filter(RoomBooking.id == payment_in.booking_id).with_for_update().first()
        if booking is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
        owner_id, amount = booking.user_id, booking.total_amount
        if booking.status == BookingStatus.CANCELLED:
            raise ValidationFailed("Cannot pay for a cancelled booking")
        already_paid = Payment.booking_id == booking.id
    else:
        order = db.query(Order).filter(Order.id == payment_in.order_id).with_for_update().first()
        if order is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
        owner_id, amount = order.user_id, order.total_amount
        if order.status == OrderStatus.CANCELLED:
            raise ValidationFailed("Cannot pay for a cancelled order")
        already_paid = Payment.order_id == order.id
    ensure_owner_or_roles(current_user, owner_id)
    previous = {
        payment.status for payment in db.query(Payment).filter(already_paid, Payment.status != PaymentStatus.FAILED)
    }
    if PaymentStatus.SUCCEEDED in previous:
        raise ValidationFailed("Already paid")
    # A pending row means another request is still waiting on the gateway.
    if PaymentStatus.PENDING in previous:
        raise Conflict("Payment in progress", code="PAYMENT_IN_PROGRESS")
    return amount


@app.post("/payments", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_payment(
    request: Request,
    payment_in: PaymentCreate,
    current_user: User = Depends(get_current_active_user),
    client_builder: ClientBuilder = Depends(get_client_builder),
    db: Session = Depends(get_db),
) -> Payment:
    spec = _provider_or_404(payment_in.gateway, ProviderKind.PAYMENT)
    if payment_in.method and payment_in.method not in spec.methods:
        raise ValidationFailed(f"{spec.name} does not support {payment_in.method}")
    amount = _payable_amount(db, payment_in, current_user)

    payment = Payment(
        user_id=current_user.id,
        booking_id=payment_in.booking_id,
        order_id=payment_in.order_id,
        gateway=spec.name,
        method=payment_in.method,
        amount=amount,
        currency=settings.currency,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    charge = {
        "amount": round(amount * 100),
        "currency": settings.currency,
        "method": payment_in.method,
        "reference": f"PAY{payment.id}",
        "description": settings.hotel_name,
    }
    db.rollback()

    result = client_builder(spec.name).send("charge", charge)
    payment.attempts = result.attempts
    payment.updated_at = datetime.utcnow()
    if result.success:
        payment.status = PaymentStatus.SUCCEEDED
        if isinstance(result.body, dict):
            payment.provider_reference = str(result.body.get("id") or "") or None
    else:
        payment.status = PaymentStatus.FAILED
        payment.last_error = result.error
        logger.warning("Payment %s via %s failed: %s", payment.id, spec.name, result.error)
    db.commit()
    db.refresh(payment)
    return payment


@app.get("/payments/{payment_id}", response_model=PaymentRead)
@limiter.limit("30/minute")
def get_payment(
    request: Request,
    payment_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Payment:
    payment = db.get(Payment, payment_id)
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    ensure_owner_or_roles(current_user, payment.user_id)
    return payment


@app.get("/notifications", response_model=List[NotificationRead])
@limiter.limit("30/minute")
def list_notifications(
    request: Request,
    delivery_status: Optional[DeliveryStatus] = Query(None, alias="status"),
    booking_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[Notification]:
    query = db.query(Notification)
    if current_user.role not in FRONT_OFFICE_ROLES:
        query = query.filter(Notification.user_id == current_user.id)
    if delivery_status is not None:
        query = query.filter(Notification.status == delivery_status)
    if booking_id is not None:
        query = query.filter(Notification.booking_id == booking_id)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
