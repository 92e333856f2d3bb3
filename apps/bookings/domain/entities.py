"""
Booking Domain Entities

Core business entities for the booking domain:
- BookingStatus: FSM states for booking lifecycle
- BookingLifecycle: aggregate enforcing the state machine and raising events
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from shared.domain.base import Aggregate

from .events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingDisputed,
    BookingPaymentFailed,
    BookingRefunded,
    BookingReminderDue,
    FollowUpRequired,
    PaymentConflictDetected,
)


class BookingStatus(Enum):
    """
    Booking Status Finite State Machine

    State transitions:
    - PENDING_PAYMENT -> PAYMENT_PROCESSING (gateway reports payment in flight)
    - PENDING_PAYMENT | PAYMENT_PROCESSING -> CONFIRMED (payment succeeded)
    - PENDING_PAYMENT | PAYMENT_PROCESSING -> CANCELLED (payment failed, hold expired, cancelled)
    - CONFIRMED -> COMPLETED (rental period ended)
    - CONFIRMED | COMPLETED -> REFUNDED (refund issued)

    A dispute never changes the state; it flags a CONFIRMED or COMPLETED booking.
    """
    PENDING_PAYMENT = 'pending-payment'
    PAYMENT_PROCESSING = 'payment-processing'
    CONFIRMED = 'confirmed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING_PAYMENT: {
        BookingStatus.PAYMENT_PROCESSING,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.PAYMENT_PROCESSING: {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.COMPLETED,
        BookingStatus.REFUNDED,
    },
    BookingStatus.COMPLETED: {
        BookingStatus.REFUNDED,
    },
    BookingStatus.CANCELLED: set(),
    BookingStatus.REFUNDED: set(),
}

DISPUTABLE = {BookingStatus.CONFIRMED, BookingStatus.COMPLETED}


class InvalidTransition(ValueError):
    """The requested change is not allowed from the booking's current state"""

    def __init__(self, reference: str, current: BookingStatus, target: str):
        super().__init__(f"Booking {reference}: cannot go from {current.value} to {target}")
        self.reference = reference
        self.current = current
        self.target = target


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class BookingLifecycle(Aggregate):
    """
    Booking Aggregate Root

    Carries only what the state machine needs; the persistent record lives
    in `apps.bookings.models.Booking` and is synchronised by the repository.

    Key invariants:
    - Status only moves along ALLOWED_TRANSITIONS; terminal states never change
    - Disputes flag, they don't transition
    """

    reference: str
    status: BookingStatus
    is_disputed: bool = False
    requires_follow_up: bool = False
    cancellation_reason: str = ''
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    def can_transition_to(self, target: BookingStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _move(self, target: BookingStatus):
        if not self.can_transition_to(target):
            raise InvalidTransition(self.reference, self.status, target.value)
        self.status = target

    def start_processing(self):
        """PENDING_PAYMENT -> PAYMENT_PROCESSING"""
        if self.status != BookingStatus.PENDING_PAYMENT:
            raise InvalidTransition(self.reference, self.status, BookingStatus.PAYMENT_PROCESSING.value)
        self._move(BookingStatus.PAYMENT_PROCESSING)

    def confirm_payment(self, payment_reference: str = ''):
        """PENDING_PAYMENT | PAYMENT_PROCESSING -> CONFIRMED"""
        self._move(BookingStatus.CONFIRMED)
        self.confirmed_at = _utcnow()
        self.add_event(BookingConfirmed(
            booking_reference=self.reference,
            payment_reference=payment_reference,
        ))

    def fail_payment(self, reason: str = 'payment_failed'):
        """PENDING_PAYMENT | PAYMENT_PROCESSING -> CANCELLED, customer told how to recover"""
        self._cancel(reason)
        self.add_event(BookingPaymentFailed(booking_reference=self.reference, reason=reason))

    def cancel(self, reason: str):
        """PENDING_PAYMENT | PAYMENT_PROCESSING -> CANCELLED"""
        self._cancel(reason)
        self.add_event(BookingCancelled(booking_reference=self.reference, reason=reason))

    def _cancel(self, reason: str):
        if self.status not in (BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_PROCESSING):
            raise InvalidTransition(self.reference, self.status, BookingStatus.CANCELLED.value)
        self._move(BookingStatus.CANCELLED)
        self.cancellation_reason = reason
        self.cancelled_at = _utcnow()

    def reject_late_payment(self):
        """
        Payment succeeded but the dates were lost meanwhile.

        The booking cannot be honoured: it is cancelled, flagged for a human,
        and operations are alerted so the charge gets refunded.
        """
        self._cancel('dates_unavailable')
        self.requires_follow_up = True
        self.add_event(PaymentConflictDetected(booking_reference=self.reference))

    def flag_payment_after_cancellation(self):
        """Money arrived for a booking that was already cancelled; status stays put."""
        if self.status != BookingStatus.CANCELLED:
            raise InvalidTransition(self.reference, self.status, BookingStatus.CONFIRMED.value)
        self.requires_follow_up = True
        self.add_event(PaymentConflictDetected(
            booking_reference=self.reference,
            reason='paid_after_cancellation',
        ))

    def complete(self):
        """CONFIRMED -> COMPLETED"""
        if self.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(self.reference, self.status, BookingStatus.COMPLETED.value)
        self._move(BookingStatus.COMPLETED)
        self.completed_at = _utcnow()
        self.add_event(BookingCompleted(booking_reference=self.reference))

    def refund(self, refund_reference: str = ''):
        """CONFIRMED | COMPLETED -> REFUNDED"""
        self._move(BookingStatus.REFUNDED)
        self.refunded_at = _utcnow()
        self.add_event(BookingRefunded(
            booking_reference=self.reference,
            refund_reference=refund_reference,
        ))

    def flag_dispute(self, dispute_reference: str = ''):
        """Mark a CONFIRMED or COMPLETED booking as disputed (no state change)"""
        if self.status not in DISPUTABLE or self.is_disputed:
            raise InvalidTransition(self.reference, self.status, 'disputed')
        self.is_disputed = True
        self.add_event(BookingDisputed(
            booking_reference=self.reference,
            dispute_reference=dispute_reference,
        ))

    def request_follow_up(self, reason: str):
        """Ask a human to contact the customer; state stays as it is"""
        self.requires_follow_up = True
        self.add_event(FollowUpRequired(booking_reference=self.reference, reason=reason))

    def remind(self, hours_until: int):
        """Only a CONFIRMED booking gets pick-up reminders"""
        if self.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(self.reference, self.status, 'reminded')
        self.add_event(BookingReminderDue(booking_reference=self.reference, hours_until=hours_until))
