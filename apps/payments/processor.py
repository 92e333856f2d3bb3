"""
Payment event processor.

Applies verified gateway events to the booking state machine:

    | event      | valid from                          | result           |
    |------------|-------------------------------------|------------------|
    | processing | pending-payment                     | processing, held |
    | succeeded  | pending-payment, payment-processing | confirmed        |
    | succeeded  | cancelled                           | flagged only     |
    | failed     | pending-payment, payment-processing | cancelled        |
    | refunded   | confirmed, completed                | refunded         |
    | dispute    | confirmed, completed                | flagged only     |

Anything else is recorded and ignored. Each event id is applied at most
once; the event row, the booking change, the calendar change and the
notification jobs raised by the booking all commit in one transaction.
"""

from __future__ import annotations

import logging

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.availability import services as calendar
from apps.bookings.domain.entities import BookingStatus, InvalidTransition
from apps.bookings.repository import booking_repository
from shared.application.uow import DjangoUnitOfWork
from shared.domain.exceptions import ConflictError
from shared.infrastructure.locking import lock_queryset_if_possible

from .gateway import EventKind, GatewayEvent
from .models import PaymentEvent, PaymentIntent

logger = logging.getLogger(__name__)

REPLAYED = "replayed"

_PAYABLE = (BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_PROCESSING)


class PaymentEventProcessor:

    def __init__(self, repository=None, message_bus=None):
        self.repository = repository or booking_repository
        self.message_bus = message_bus

    def process(self, event: GatewayEvent) -> str:
        """Apply `event` once. Returns the recorded outcome, or REPLAYED."""

        with DjangoUnitOfWork(self.message_bus) as uow:
            record, created = lock_queryset_if_possible(PaymentEvent.objects.all()).get_or_create(
                event_id=event.event_id,
                defaults={
                    "provider": event.provider,
                    "type": event.type,
                    "booking_reference": event.booking_reference,
                    "payload": event.payload,
                },
            )
            if record.processed_at is not None:
                logger.info(f"Event {event.event_id} already processed ({record.outcome}), skipping")
                return REPLAYED

            outcome = self._apply(event, record, uow)

            record.outcome = outcome
            record.processed_at = timezone.now()
            record.save(update_fields=["booking_reference", "outcome", "processed_at"])

        logger.info(f"Event {event.event_id} ({event.type}) processed: {outcome}")
        return outcome

    def _find_booking(self, event: GatewayEvent):
        booking = None
        if event.booking_reference:
            booking = self.repository.get(event.booking_reference, lock=True)
        if booking is None:
            booking = self.repository.get_by_payment_intent(event.payment_intent_id, lock=True)
        return booking

    def _apply(self, event: GatewayEvent, record: PaymentEvent, uow) -> str:
        if event.kind == EventKind.UNSUPPORTED:
            return PaymentEvent.Outcome.UNSUPPORTED

        booking = self._find_booking(event)
        if booking is None:
            logger.warning(
                f"Event {event.event_id} ({event.type}) matches no booking "
                f"(reference={event.booking_reference!r}, intent={event.payment_intent_id!r})"
            )
            return PaymentEvent.Outcome.UNMATCHED
        record.booking_reference = booking.reference

        lifecycle = self.repository.to_aggregate(booking)
        outcome = PaymentEvent.Outcome.APPLIED
        try:
            if event.kind == EventKind.PROCESSING:
                lifecycle.start_processing()
                self._keep_dates_while_processing(booking)

            elif event.kind == EventKind.SUCCEEDED and lifecycle.status == BookingStatus.CANCELLED:
                logger.error(f"Payment {event.event_id} succeeded for cancelled booking {booking.reference}")
                lifecycle.flag_payment_after_cancellation()
                outcome = PaymentEvent.Outcome.FLAGGED

            elif event.kind == EventKind.SUCCEEDED:
                if lifecycle.status not in _PAYABLE:
                    raise InvalidTransition(booking.reference, lifecycle.status, BookingStatus.CONFIRMED.value)
                try:
                    calendar.confirm_hold(booking.reference, booking.item_id, booking.start_date, booking.end_date)
                except ConflictError:
                    logger.error(f"Payment {event.event_id} succeeded but {booking.reference} lost its dates")
                    lifecycle.reject_late_payment()
                    calendar.release(booking.reference)
                    outcome = PaymentEvent.Outcome.FLAGGED
                else:
                    lifecycle.confirm_payment(event.payment_intent_id or event.object_id)

            elif event.kind == EventKind.FAILED:
                lifecycle.fail_payment(reason=event.type)
                calendar.release(booking.reference)

            elif event.kind == EventKind.REFUNDED:
                lifecycle.refund(event.object_id)
                calendar.release(booking.reference)

            elif event.kind == EventKind.DISPUTE:
                lifecycle.flag_dispute(event.object_id)
                outcome = PaymentEvent.Outcome.FLAGGED

        except InvalidTransition as e:
            logger.warning(f"Ignoring {event.type} ({event.event_id}): {e}")
            return PaymentEvent.Outcome.IGNORED

        uow.collect_events(lifecycle)
        self.repository.save(booking, lifecycle, source=f"{event.provider}:{event.event_id}", reason=event.type)
        return outcome

    def _keep_dates_while_processing(self, booking) -> None:
        """Bank transfers can take days to settle; the dates stay held meanwhile."""
        try:
            hold = calendar.extend_hold(
                booking.reference,
                booking.item_id,
                booking.start_date,
                booking.end_date,
                ttl_minutes=settings.BOOKING_PROCESSING_HOLD_MINUTES,
            )
        except ConflictError:
            logger.warning(f"Dates of {booking.reference} were taken before its payment started processing")
            return
        booking.hold_expires_at = hold.expires_at
        booking.save(update_fields=["hold_expires_at", "updated_at"])


payment_event_processor = PaymentEventProcessor()


@transaction.atomic
def record_intent(booking, intent, *, provider: str = "stripe", amount_minor: int, currency: str):
    """Persist the gateway intent and link it to the booking."""

    payment_intent, _ = PaymentIntent.objects.update_or_create(
        external_id=intent.id,
        defaults={
            "booking": booking,
            "provider": provider,
            "amount_minor": amount_minor,
            "currency": currency,
            "idempotency_key": booking.reference,
            "client_secret": intent.client_secret,
            "status": intent.status,
        },
    )
    booking.payment_intent_ref = intent.id
    booking.save(update_fields=["payment_intent_ref", "updated_at"])
    return payment_intent
