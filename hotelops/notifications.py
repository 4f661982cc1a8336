"""Guest notifications queued on booking events and delivered off the request path."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from .config import get_settings
from .database import SessionLocal
from .integrations import OutboundClient, ProviderKind, first_enabled_client
from .models import DeliveryStatus, Notification, NotificationChannel, RoomBooking

logger = logging.getLogger(__name__)
settings = get_settings()

TEMPLATES = {
    "booking_confirmation": {
        NotificationChannel.SMS: (
            "Your booking at {hotel} is confirmed. Booking ID: {reference}. Check-in: {check_in}."
        ),
        NotificationChannel.EMAIL: (
            "Dear {name},\n\nYour booking {reference} at {hotel} is confirmed for "
            "{check_in} to {check_out} ({nights} night(s)). Total: {currency} {total:.2f}.\n"
        ),
    },
    "booking_cancellation": {
        NotificationChannel.SMS: "Your booking {reference} at {hotel} has been cancelled.",
        NotificationChannel.EMAIL: "Dear {name},\n\nYour booking {reference} at {hotel} has been cancelled.\n",
    },
}

SUBJECTS = {
    "booking_confirmation": "Booking Confirmation - {hotel}",
    "booking_cancellation": "Booking Cancelled - {hotel}",
}

_CHANNEL_PROVIDERS = {
    NotificationChannel.SMS: ProviderKind.SMS,
    NotificationChannel.EMAIL: ProviderKind.EMAIL,
}

ClientFactory = Callable[[NotificationChannel], Optional[OutboundClient]]


def _default_client_factory(channel: NotificationChannel) -> Optional[OutboundClient]:
    return first_enabled_client(_CHANNEL_PROVIDERS[channel])


def queue_booking_notifications(db: Session, booking: RoomBooking, template: str) -> List[int]:
    """Persist one notification per reachable channel and return their ids."""

    user = booking.user
    context = {
        "hotel": settings.hotel_name,
        "name": user.name,
        "reference": booking.booking_reference,
        "check_in": booking.check_in_date.isoformat(),
        "check_out": booking.check_out_date.isoformat(),
        "nights": booking.nights,
        "currency": settings.currency,
        "total": booking.total_amount,
    }
    recipients = {NotificationChannel.EMAIL: user.email, NotificationChannel.SMS: user.phone}
    notifications = []
    for channel, body in TEMPLATES[template].items():
        recipient = recipients[channel]
        if not recipient:
            continue
        notification = Notification(
            user_id=user.id,
            booking_id=booking.id,
            channel=channel,
            template=template,
            recipient=recipient,
            body=body.format(**context),
        )
        db.add(notification)
        notifications.append(notification)
    db.flush()
    notification_ids = [notification.id for notification in notifications]
    db.commit()
    return notification_ids


def deliver_notification(
    db: Session,
    notification: Notification,
    client_factory: ClientFactory = _default_client_factory,
) -> Notification:
    client = client_factory(notification.channel)
    if client is None:
        notification.status = DeliveryStatus.SKIPPED
        notification.last_error = f"No {notification.channel.value} provider enabled"
        db.commit()
        return notification

    payload = {"to": notification.recipient, "body": notification.body}
    if notification.channel == NotificationChannel.EMAIL:
        payload["subject"] = SUBJECTS[notification.template].format(hotel=settings.hotel_name)
    # Release the write lock before calling out.
    db.commit()
    result = client.send("send", payload)

    notification.provider = result.provider
    notification.attempts += result.attempts
    if result.success:
        notification.status = DeliveryStatus.SENT
        notification.delivered_at = datetime.utcnow()
        notification.last_error = None
    else:
        notification.status = DeliveryStatus.FAILED
        notification.last_error = result.error
        logger.warning("Notification %s via %s failed: %s", notification.id, result.provider, result.error)
    db.commit()
    return notification


def deliver_notifications(notification_ids: Iterable[int], client_factory: ClientFactory = _default_client_factory) -> None:
    """Background-task entry point; uses its own session."""

    db = SessionLocal()
    try:
        for notification_id in notification_ids:
            notification = db.get(Notification, notification_id)
            if notification is None or notification.status != DeliveryStatus.QUEUED:
                continue
            deliver_notification(db, notification, client_factory)
    finally:
        db.close()
