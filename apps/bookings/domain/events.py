"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
They are dispatched inside the transaction that changed the booking, so
the notification jobs they produce commit together with the state change.
"""

from dataclasses import dataclass

from shared.domain.base import DomainEvent


@dataclass
class BookingConfirmed(DomainEvent):
    """
    Event: Payment succeeded (PENDING_PAYMENT | PAYMENT_PROCESSING -> CONFIRMED)

    Triggers:
    - Send booking confirmation to the customer
    - Alert operations about the new booking
    """
    booking_reference: str
    payment_reference: str = ''


@dataclass
class BookingPaymentFailed(DomainEvent):
    """
    Event: Payment failed and the booking was cancelled

    Triggers:
    - Send failure notice with recovery guidance to the customer
    """
    booking_reference: str
    reason: str = 'payment_failed'


@dataclass
class BookingCancelled(DomainEvent):
    """
    Event: Booking cancelled before payment completed

    Triggers:
    - Tell the customer the reservation was released
    """
    booking_reference: str
    reason: str = ''


@dataclass
class BookingCompleted(DomainEvent):
    """Event: Rental period ended (CONFIRMED -> COMPLETED)"""
    booking_reference: str


@dataclass
class BookingRefunded(DomainEvent):
    """
    Event: Refund issued (CONFIRMED | COMPLETED -> REFUNDED)

    Triggers:
    - Send refund confirmation to the customer
    """
    booking_reference: str
    refund_reference: str = ''


@dataclass
class BookingDisputed(DomainEvent):
    """
    Event: Customer opened a chargeback on a paid booking

    Triggers:
    - High-priority alert to operations
    """
    booking_reference: str
    dispute_reference: str = ''


@dataclass
class FollowUpRequired(DomainEvent):
    """
    Event: The booking needs a human (e.g. the gateway was unreachable)

    Triggers:
    - Alert operations to contact the customer
    """
    booking_reference: str
    reason: str = ''


@dataclass
class PaymentConflictDetected(DomainEvent):
    """
    Event: A payment succeeded for dates that are no longer available

    Triggers:
    - High-priority alert to operations to refund and re-accommodate
    """
    booking_reference: str
    reason: str = 'dates_unavailable'


@dataclass
class BookingReminderDue(DomainEvent):
    """
    Event: A confirmed rental starts within one of the reminder windows

    Triggers:
    - Reminder message to the customer, once per window
    """
    booking_reference: str
    hours_until: int
