"""
Booking Command Handlers

These are the use cases for the booking domain.
They orchestrate domain operations within transactions.

Commands:
- ReserveBookingCommand: Hold dates, price them and open a payment intent
- CancelBookingCommand: Cancel an unpaid booking
- RefundBookingCommand: Ask the gateway to refund a paid booking
- ExpireUnpaidBookingsCommand: Cancel bookings whose hold lapsed unpaid
- CompleteFinishedBookingsCommand: Complete paid bookings whose rental ended
- SendBookingRemindersCommand: Remind customers of upcoming confirmed rentals
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional
import logging
import re

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from shared.application.uow import DjangoUnitOfWork
from shared.domain.exceptions import (
    ConflictError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from shared.domain.value_objects import Money
from apps.availability import services as calendar
from apps.bookings.domain.entities import BookingStatus, InvalidTransition
from apps.bookings.models import Booking
from apps.bookings.repository import booking_repository
from apps.payments.gateway import StripeGateway
from apps.payments.processor import record_intent
from apps.pricing import engine as pricing

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

REQUIRED_FIELDS = (
    ('item_id', 'itemId'),
    ('start_date', 'startDate'),
    ('end_date', 'endDate'),
    ('customer_name', 'customerName'),
    ('customer_email', 'customerEmail'),
    ('location', 'location'),
)


def mask_email(email: str) -> str:
    """ab***@domain.com, for log lines"""
    local, _, domain = email.partition('@')
    return f"{local[:2]}***@{domain}"


def _parse_date(value, field_name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO date (YYYY-MM-DD)", field=field_name)


# ===== Commands =====

@dataclass
class ReserveBookingCommand:
    """
    Command to reserve an item

    This is the primary entry point for creating bookings. Dates may be
    ISO strings as received from the client.
    """
    item_id: str
    start_date: object
    end_date: object
    customer_name: str
    customer_email: str
    location: str
    customer_phone: str = ''
    service_tier: str = 'standard'
    add_ons: List[str] = field(default_factory=list)
    client_token: Optional[str] = None
    client_identity: str = ''
    expected_version: Optional[int] = None


@dataclass
class ReservationResult:
    booking: Booking
    client_secret: str
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            'bookingId': self.booking.reference,
            'status': self.booking.status,
            'paymentIntentClientSecret': self.client_secret,
            'holdExpiresAt': self.booking.hold_expires_at.isoformat() if self.booking.hold_expires_at else None,
            'pricing': self.booking.pricing,
        }


@dataclass
class CancelBookingCommand:
    """Command to cancel a booking that has not been paid"""
    reference: str
    reason: str
    source: str = 'staff'


@dataclass
class RefundBookingCommand:
    """Command to refund a paid booking through the gateway"""
    reference: str
    source: str = 'staff'


@dataclass
class ExpireUnpaidBookingsCommand:
    now: Optional[datetime] = None


@dataclass
class CompleteFinishedBookingsCommand:
    today: Optional[date] = None


@dataclass
class SendBookingRemindersCommand:
    now: Optional[datetime] = None


# ===== Command Handlers =====

class ReserveBookingHandler:
    """
    Handler for ReserveBooking command

    Steps:
    1. Validate input (fields -> dates -> email -> item/location -> price)
    2. In one transaction: place the calendar hold and persist the booking
    3. Outside the transaction: create the payment intent keyed by the
       booking reference, so a retried request never charges twice
    4. Gateway down: keep the booking pending, ask operations to follow up
    """

    def __init__(self, gateway=None, repository=None, message_bus=None):
        self.gateway = gateway or StripeGateway()
        self.repository = repository or booking_repository
        self.message_bus = message_bus

    def handle(self, command: ReserveBookingCommand, *, today: Optional[date] = None) -> ReservationResult:
        if command.client_token:
            existing = Booking.objects.filter(client_token=command.client_token).first()
            if existing is not None:
                return self._replay(existing)

        start, end = self.validate(command, today=today or timezone.localdate())
        item = calendar.get_item(command.item_id)
        if not item.supports_location(command.location):
            raise ValidationError(
                f"{item.name} is not offered in {command.location}",
                field='location',
            )

        breakdown = pricing.price(item, start, end, command.location, command.service_tier, command.add_ons)
        if breakdown.total.amount <= 0:
            raise ValidationError("Computed total must be greater than zero", field='itemId')

        logger.info(
            f"Reserving {item.pk} {start}..{end} for {mask_email(command.customer_email)} "
            f"({breakdown.currency} {breakdown.total.amount})"
        )

        try:
            with DjangoUnitOfWork(self.message_bus):
                reference = Booking.generate_reference()
                hold = calendar.create_hold(
                    item.pk,
                    start,
                    end,
                    reference,
                    expected_version=command.expected_version,
                    today=today,
                )
                booking = Booking.objects.create(
                    reference=reference,
                    item=item,
                    start_date=start,
                    end_date=end,
                    customer_name=command.customer_name.strip(),
                    customer_email=command.customer_email.strip(),
                    customer_phone=command.customer_phone,
                    location=command.location,
                    service_tier=breakdown.tier,
                    add_ons=list(command.add_ons),
                    pricing=breakdown.to_dict(),
                    total_amount=breakdown.total.amount,
                    currency=breakdown.currency,
                    client_token=command.client_token or None,
                    client_identity=command.client_identity,
                    hold_expires_at=hold.expires_at,
                )
        except IntegrityError:
            existing = Booking.objects.filter(client_token=command.client_token).first() if command.client_token else None
            if existing is None:
                raise
            return self._replay(existing)

        client_secret = self._open_payment(booking, breakdown.total.minor_units)
        return ReservationResult(booking=booking, client_secret=client_secret)

    def validate(self, command: ReserveBookingCommand, *, today: date):
        """Raise ValidationError for the first problem found, in input order."""

        for attr, name in REQUIRED_FIELDS:
            value = getattr(command, attr)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{name} is required", field=name)

        start = _parse_date(command.start_date, 'startDate')
        end = _parse_date(command.end_date, 'endDate')
        if start >= end:
            raise ValidationError("End date must be after start date", field='endDate')
        if start < today:
            raise ValidationError("Start date cannot be in the past", field='startDate')

        if not EMAIL_RE.match(command.customer_email.strip()):
            raise ValidationError("Customer email is not valid", field='customerEmail')

        pricing.resolve_tier(command.service_tier)
        return start, end

    def _replay(self, booking: Booking) -> ReservationResult:
        """Same Idempotency-Key again: hand back the booking already made."""

        logger.info(f"Replaying reservation {booking.reference} for repeated client token")
        intent = booking.payment_intents.order_by('-created_at').first()
        if intent is not None:
            return ReservationResult(booking=booking, client_secret=intent.client_secret, replayed=True)

        if booking.lifecycle_status == BookingStatus.PENDING_PAYMENT:
            amount = Money(booking.total_amount, booking.currency).minor_units
            client_secret = self._open_payment(booking, amount)
            return ReservationResult(booking=booking, client_secret=client_secret, replayed=True)

        return ReservationResult(booking=booking, client_secret='', replayed=True)

    def _open_payment(self, booking: Booking, amount_minor: int) -> str:
        try:
            intent = self.gateway.create_payment_intent(
                amount_minor=amount_minor,
                currency=booking.currency,
                booking_reference=booking.reference,
                receipt_email=booking.customer_email,
                metadata={'itemId': booking.item_id},
            )
        except GatewayError:
            self._request_follow_up(booking, 'payment_gateway_unavailable')
            minutes = settings.BOOKING_FOLLOW_UP_MINUTES
            raise GatewayError(
                f"We could not reach our payment provider. Your dates are held under "
                f"{booking.reference} and our concierge team will contact you within {minutes} minutes.",
                bookingId=booking.reference,
                followUpWithinMinutes=minutes,
            )

        record_intent(booking, intent, amount_minor=amount_minor, currency=booking.currency)
        return intent.client_secret

    def _request_follow_up(self, booking: Booking, reason: str) -> None:
        """Flag the booking for the concierge and keep its dates held until they call."""

        with DjangoUnitOfWork(self.message_bus) as uow:
            locked = self.repository.get(booking.reference, lock=True)
            lifecycle = self.repository.to_aggregate(locked)
            lifecycle.request_follow_up(reason)
            uow.collect_events(lifecycle)
            self.repository.save(locked, lifecycle, source='reserve', reason=reason)
            try:
                hold = calendar.extend_hold(
                    locked.reference,
                    locked.item_id,
                    locked.start_date,
                    locked.end_date,
                    ttl_minutes=settings.BOOKING_FOLLOW_UP_HOLD_MINUTES,
                )
            except ConflictError:
                logger.warning(f"Could not keep dates of {locked.reference} held for follow-up")
            else:
                locked.hold_expires_at = hold.expires_at
                locked.save(update_fields=['hold_expires_at', 'updated_at'])
                booking.hold_expires_at = hold.expires_at
        booking.requires_follow_up = True


class CancelBookingHandler:
    """Handler for cancelling an unpaid booking"""

    def __init__(self, gateway=None, repository=None, message_bus=None):
        self.gateway = gateway or StripeGateway()
        self.repository = repository or booking_repository
        self.message_bus = message_bus

    def handle(self, command: CancelBookingCommand) -> Booking:
        logger.info(f"Cancelling booking {command.reference}, reason: {command.reason}")

        with DjangoUnitOfWork(self.message_bus) as uow:
            booking = self.repository.get(command.reference, lock=True)
            if booking is None:
                raise NotFoundError(f"Booking {command.reference} not found", bookingId=command.reference)

            lifecycle = self.repository.to_aggregate(booking)
            try:
                lifecycle.cancel(command.reason)
            except InvalidTransition:
                raise ConflictError(
                    f"Booking {booking.reference} cannot be cancelled while {booking.status}",
                    status=booking.status,
                )

            calendar.release(booking.reference)
            uow.collect_events(lifecycle)
            self.repository.save(booking, lifecycle, source=command.source, reason=command.reason)

            intent_id = booking.payment_intent_ref
            if intent_id:
                transaction.on_commit(lambda: self.gateway.cancel_payment_intent(intent_id))

        return booking


class RefundBookingHandler:
    """
    Handler for refunding a paid booking

    Only asks the gateway for the refund; the booking moves to REFUNDED when
    the gateway's refund event arrives, like any other payment change.
    """

    def __init__(self, gateway=None, repository=None):
        self.gateway = gateway or StripeGateway()
        self.repository = repository or booking_repository

    def handle(self, command: RefundBookingCommand) -> str:
        booking = self.repository.get(command.reference)
        if booking is None:
            raise NotFoundError(f"Booking {command.reference} not found", bookingId=command.reference)

        lifecycle = self.repository.to_aggregate(booking)
        if not lifecycle.can_transition_to(BookingStatus.REFUNDED):
            raise ConflictError(
                f"Booking {booking.reference} cannot be refunded while {booking.status}",
                status=booking.status,
            )
        if not booking.payment_intent_ref:
            raise ConflictError(f"Booking {booking.reference} has no payment to refund", status=booking.status)

        refund_id = self.gateway.refund(booking.payment_intent_ref, idempotency_key=f"refund-{booking.reference}")
        logger.info(f"Refund {refund_id} requested for {booking.reference} by {command.source}")
        return refund_id


class ExpireUnpaidBookingsHandler:
    """
    Handler for lapsed holds

    Bookings still waiting for payment when their hold expires are cancelled
    and their payment intent is cancelled at the gateway. Bookings already
    in payment-processing keep waiting for the gateway's verdict.
    """

    def __init__(self, gateway=None, repository=None, message_bus=None):
        self.gateway = gateway or StripeGateway()
        self.repository = repository or booking_repository
        self.message_bus = message_bus

    def handle(self, command: ExpireUnpaidBookingsCommand) -> List[str]:
        now = command.now or timezone.now()
        calendar.expire_holds(now)

        due = list(
            Booking.objects.filter(
                status=Booking.Status.PENDING_PAYMENT,
                hold_expires_at__lte=now,
            ).values_list('reference', flat=True)
        )

        expired = []
        for reference in due:
            with DjangoUnitOfWork(self.message_bus) as uow:
                booking = self.repository.get(reference, lock=True)
                if booking is None or booking.status != Booking.Status.PENDING_PAYMENT:
                    continue
                lifecycle = self.repository.to_aggregate(booking)
                lifecycle.cancel('hold_expired')
                calendar.release(reference)
                uow.collect_events(lifecycle)
                self.repository.save(booking, lifecycle, source='system', reason='hold_expired')

                intent_id = booking.payment_intent_ref
                if intent_id:
                    transaction.on_commit(lambda intent_id=intent_id: self.gateway.cancel_payment_intent(intent_id))
            expired.append(reference)

        if expired:
            logger.info(f"Expired {len(expired)} unpaid bookings")
        return expired


class CompleteFinishedBookingsHandler:
    """Handler for confirmed bookings whose rental period has ended"""

    def __init__(self, repository=None, message_bus=None):
        self.repository = repository or booking_repository
        self.message_bus = message_bus

    def handle(self, command: CompleteFinishedBookingsCommand) -> List[str]:
        today = command.today or timezone.localdate()
        due = list(
            Booking.objects.filter(
                status=Booking.Status.CONFIRMED,
                end_date__lte=today,
            ).values_list('reference', flat=True)
        )

        completed = []
        for reference in due:
            with DjangoUnitOfWork(self.message_bus) as uow:
                booking = self.repository.get(reference, lock=True)
                if booking is None or booking.status != Booking.Status.CONFIRMED:
                    continue
                lifecycle = self.repository.to_aggregate(booking)
                lifecycle.complete()
                uow.collect_events(lifecycle)
                self.repository.save(booking, lifecycle, source='system', reason='rental_ended')
            completed.append(reference)

        if completed:
            logger.info(f"Completed {len(completed)} bookings")
        return completed


class SendBookingRemindersHandler:
    """
    Handler for pick-up reminders

    A confirmed rental starts at BOOKING_PICKUP_HOUR local time on its start
    date. Each run reminds every booking whose start is inside the tightest
    of the BOOKING_REMINDER_HOURS windows; the reminder is keyed per window,
    so a window never reminds the same booking twice.
    """

    def __init__(self, repository=None, message_bus=None):
        self.repository = repository or booking_repository
        self.message_bus = message_bus

    @staticmethod
    def starts_at(booking: Booking) -> datetime:
        return timezone.make_aware(datetime.combine(booking.start_date, time(hour=settings.BOOKING_PICKUP_HOUR)))

    @staticmethod
    def window_for(remaining: timedelta) -> Optional[int]:
        """Smallest reminder window that already covers `remaining`."""
        if remaining <= timedelta(0):
            return None
        due = [hours for hours in settings.BOOKING_REMINDER_HOURS if remaining <= timedelta(hours=hours)]
        return min(due) if due else None

    def handle(self, command: SendBookingRemindersCommand) -> List[str]:
        now = command.now or timezone.now()
        horizon = max(settings.BOOKING_REMINDER_HOURS, default=0)
        local_now = timezone.localtime(now)
        candidates = Booking.objects.filter(
            status=Booking.Status.CONFIRMED,
            start_date__gte=local_now.date(),
            start_date__lte=(local_now + timedelta(hours=horizon)).date(),
        ).values_list('reference', flat=True)

        reminded = []
        for reference in list(candidates):
            with DjangoUnitOfWork(self.message_bus) as uow:
                booking = self.repository.get(reference)
                if booking is None:
                    continue
                hours = self.window_for(self.starts_at(booking) - now)
                if hours is None:
                    continue
                lifecycle = self.repository.to_aggregate(booking)
                try:
                    lifecycle.remind(hours)
                except InvalidTransition:
                    continue
                uow.collect_events(lifecycle)
            reminded.append(reference)

        if reminded:
            logger.info(f"Reminded {len(reminded)} upcoming bookings")
        return reminded
