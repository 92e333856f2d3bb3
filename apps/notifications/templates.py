"""Message templates and the booking states each one is still valid for."""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

from shared.domain.exceptions import ValidationError

PAID = frozenset({"confirmed", "completed"})
UNPAID = frozenset({"pending-payment", "payment-processing"})


class _Blank(dict):
    def __missing__(self, key):
        return ""


@dataclass(frozen=True)
class MessageTemplate:
    name: str
    channel: str
    subject: str
    body: str
    valid_statuses: Optional[FrozenSet[str]] = None

    def is_current(self, booking_status: str) -> bool:
        """False once the booking moved to a state the message no longer describes."""
        return self.valid_statuses is None or booking_status in self.valid_statuses

    def render(self, context: dict):
        data = _Blank(context)
        return self.subject.format_map(data), self.body.format_map(data)


TEMPLATES = {
    t.name: t
    for t in [
        MessageTemplate(
            name="booking_confirmed",
            channel="email",
            subject="Booking confirmed - {item_name} | Midas The Lifestyle",
            body=(
                "Dear {customer_name},\n\n"
                "Your reservation {booking_reference} is confirmed.\n"
                "{item_name}, {location}\n"
                "From {start_date} to {end_date}\n"
                "Total paid: {currency} {total}\n\n"
                "Your concierge will be in touch before your rental begins.\n"
            ),
            valid_statuses=PAID,
        ),
        MessageTemplate(
            name="payment_failed",
            channel="email",
            subject="Payment issue - {item_name} | Midas The Lifestyle",
            body=(
                "Dear {customer_name},\n\n"
                "We could not complete the payment for reservation {booking_reference} "
                "and the dates have been released.\n"
                "You can book again at any time, or reply to this message and our "
                "concierge team will help you complete the reservation with another "
                "payment method.\n"
            ),
            valid_statuses=frozenset({"cancelled"}),
        ),
        MessageTemplate(
            name="booking_reminder",
            channel="email",
            subject="Your {item_name} awaits in {hours_until} hours | Midas The Lifestyle",
            body=(
                "Dear {customer_name},\n\n"
                "A reminder that reservation {booking_reference} begins on {start_date}.\n"
                "{item_name}, {location}\n"
                "Your concierge will meet you at the agreed time. Reply to this message "
                "if anything has changed.\n"
            ),
            valid_statuses=PAID,
        ),
        MessageTemplate(
            name="booking_cancelled",
            channel="email",
            subject="Reservation released - {item_name} | Midas The Lifestyle",
            body=(
                "Dear {customer_name},\n\n"
                "Reservation {booking_reference} for {item_name} ({start_date} to {end_date}) "
                "has been cancelled ({reason}). No payment was taken.\n"
            ),
            valid_statuses=frozenset({"cancelled"}),
        ),
        MessageTemplate(
            name="refund_processed",
            channel="email",
            subject="Refund processed - {item_name} | Midas The Lifestyle",
            body=(
                "Dear {customer_name},\n\n"
                "A refund of {currency} {total} for reservation {booking_reference} has been "
                "issued. Depending on your bank it can take 5-10 business days to appear.\n"
            ),
            valid_statuses=frozenset({"refunded"}),
        ),
        MessageTemplate(
            name="ops_new_booking",
            channel="ops",
            subject="NEW BOOKING - {item_name} | Concierge Alert",
            body=(
                "Booking {booking_reference} confirmed.\n"
                "Item: {item_name} ({item_id}), {location}, tier {service_tier}\n"
                "Dates: {start_date} to {end_date}\n"
                "Customer: {customer_name} {customer_phone}\n"
                "Total: {currency} {total}\n"
            ),
            valid_statuses=PAID,
        ),
        MessageTemplate(
            name="ops_follow_up",
            channel="ops",
            subject="FOLLOW UP - {booking_reference} | Concierge Alert",
            body=(
                "Booking {booking_reference} needs a call within {follow_up_minutes} minutes ({reason}).\n"
                "Item: {item_name}, {start_date} to {end_date}\n"
                "Customer: {customer_name} {customer_phone}\n"
            ),
            valid_statuses=UNPAID,
        ),
        MessageTemplate(
            name="ops_dispute_alert",
            channel="ops",
            subject="URGENT: DISPUTE OPENED - {booking_reference}",
            body=(
                "A chargeback was opened on booking {booking_reference} ({dispute_reference}).\n"
                "Item: {item_name}, {start_date} to {end_date}\n"
                "Amount: {currency} {total}\n"
                "Review the evidence in the payment dashboard.\n"
            ),
        ),
        MessageTemplate(
            name="ops_payment_conflict",
            channel="ops",
            subject="URGENT: PAID BOOKING WITHOUT DATES - {booking_reference}",
            body=(
                "Payment for {booking_reference} succeeded but the booking cannot be honoured "
                "({reason}).\n"
                "Item: {item_name}, {start_date} to {end_date}\n"
                "Customer: {customer_name} {customer_phone}\n"
                "Refund or re-accommodate the customer.\n"
            ),
        ),
        MessageTemplate(
            name="ops_delivery_failed",
            channel="ops",
            subject="Notification undeliverable - {failed_template}",
            body=(
                "Message {failed_template} for booking {booking_reference} to {recipient} "
                "failed {attempts} times and was dead-lettered.\n"
                "Last error: {last_error}\n"
            ),
        ),
    ]
}


def get_template(name: str) -> MessageTemplate:
    try:
        return TEMPLATES[name]
    except KeyError:
        raise ValidationError(f"Unknown notification template: {name}", field="template")
