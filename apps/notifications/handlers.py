"""
Booking event handlers.

Each handler turns a booking event into queued messages. They run inside
the transaction that changed the booking, so a job exists if and only if
the change committed. One job per template and booking: the dedupe key
keeps a redelivered event from queueing the same message twice.
"""

from __future__ import annotations

import logging

from django.conf import settings  # type: ignore

from apps.bookings.domain.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingDisputed,
    BookingPaymentFailed,
    BookingRefunded,
    BookingReminderDue,
    FollowUpRequired,
    PaymentConflictDetected,
)
from apps.bookings.models import Booking

from .dispatcher import booking_context, dispatcher

logger = logging.getLogger(__name__)


def _notify(template: str, booking: Booking, *, to_customer: bool, dedupe_key: str = "", **extra) -> None:
    context = booking_context(booking)
    context.update(extra)
    dispatcher.enqueue(
        template,
        recipient=booking.customer_email if to_customer else settings.OPERATIONS_EMAIL,
        context=context,
        booking_reference=booking.reference,
        dedupe_key=dedupe_key or f"{template}:{booking.reference}",
    )


def _booking(event) -> Booking:
    return Booking.objects.select_related("item").get(reference=event.booking_reference)


def on_booking_confirmed(event: BookingConfirmed) -> None:
    booking = _booking(event)
    _notify("booking_confirmed", booking, to_customer=True)
    _notify("ops_new_booking", booking, to_customer=False)


def on_payment_failed(event: BookingPaymentFailed) -> None:
    _notify("payment_failed", _booking(event), to_customer=True, reason=event.reason)


def on_booking_cancelled(event: BookingCancelled) -> None:
    _notify("booking_cancelled", _booking(event), to_customer=True, reason=event.reason)


def on_booking_refunded(event: BookingRefunded) -> None:
    _notify("refund_processed", _booking(event), to_customer=True, refund_reference=event.refund_reference)


def on_booking_disputed(event: BookingDisputed) -> None:
    logger.warning(f"Dispute {event.dispute_reference} opened on {event.booking_reference}")
    _notify("ops_dispute_alert", _booking(event), to_customer=False, dispute_reference=event.dispute_reference)


def on_follow_up_required(event: FollowUpRequired) -> None:
    _notify(
        "ops_follow_up",
        _booking(event),
        to_customer=False,
        reason=event.reason,
        follow_up_minutes=settings.BOOKING_FOLLOW_UP_MINUTES,
    )


def on_payment_conflict(event: PaymentConflictDetected) -> None:
    _notify("ops_payment_conflict", _booking(event), to_customer=False, reason=event.reason)


def on_reminder_due(event: BookingReminderDue) -> None:
    _notify(
        "booking_reminder",
        _booking(event),
        to_customer=True,
        dedupe_key=f"booking_reminder:{event.hours_until}:{event.booking_reference}",
        hours_until=event.hours_until,
    )


HANDLERS = {
    BookingConfirmed: [on_booking_confirmed],
    BookingPaymentFailed: [on_payment_failed],
    BookingCancelled: [on_booking_cancelled],
    BookingRefunded: [on_booking_refunded],
    BookingDisputed: [on_booking_disputed],
    FollowUpRequired: [on_follow_up_required],
    PaymentConflictDetected: [on_payment_conflict],
    BookingReminderDue: [on_reminder_due],
}


def register_handlers(bus) -> None:
    for event_type, handlers in HANDLERS.items():
        for handler in handlers:
            bus.register_event_handler(event_type, handler)
