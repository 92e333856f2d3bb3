"""Maps Booking rows to the lifecycle aggregate and back."""

from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction  # type: ignore

from shared.infrastructure.locking import lock_queryset_if_possible

from .domain.entities import BookingLifecycle, BookingStatus
from .models import Booking, BookingStatusChange

logger = logging.getLogger(__name__)

_LIFECYCLE_FIELDS = (
    "status",
    "is_disputed",
    "requires_follow_up",
    "cancellation_reason",
    "confirmed_at",
    "cancelled_at",
    "completed_at",
    "refunded_at",
)


class BookingRepository:
    """Loads bookings under a row lock and persists lifecycle changes."""

    def get(self, reference: str, *, lock: bool = False) -> Optional[Booking]:
        queryset = Booking.objects.select_related("item").filter(reference=reference)
        if lock:
            queryset = lock_queryset_if_possible(queryset)
        return queryset.first()

    def get_by_payment_intent(self, intent_id: str, *, lock: bool = False) -> Optional[Booking]:
        if not intent_id:
            return None
        queryset = Booking.objects.select_related("item").filter(payment_intent_ref=intent_id)
        if lock:
            queryset = lock_queryset_if_possible(queryset)
        return queryset.first()

    @staticmethod
    def to_aggregate(booking: Booking) -> BookingLifecycle:
        return BookingLifecycle(
            reference=booking.reference,
            status=BookingStatus(booking.status),
            is_disputed=booking.is_disputed,
            requires_follow_up=booking.requires_follow_up,
            cancellation_reason=booking.cancellation_reason,
            confirmed_at=booking.confirmed_at,
            cancelled_at=booking.cancelled_at,
            completed_at=booking.completed_at,
            refunded_at=booking.refunded_at,
        )

    @transaction.atomic
    def save(self, booking: Booking, lifecycle: BookingLifecycle, *, source: str, reason: str = "") -> None:
        """Write the aggregate's state onto the row and record the change."""

        previous_status = booking.status
        previous_disputed = booking.is_disputed

        booking.status = lifecycle.status.value
        booking.is_disputed = lifecycle.is_disputed
        booking.requires_follow_up = lifecycle.requires_follow_up
        booking.cancellation_reason = lifecycle.cancellation_reason
        booking.confirmed_at = lifecycle.confirmed_at
        booking.cancelled_at = lifecycle.cancelled_at
        booking.completed_at = lifecycle.completed_at
        booking.refunded_at = lifecycle.refunded_at
        booking.save(update_fields=[*_LIFECYCLE_FIELDS, "updated_at"])

        if previous_status != booking.status or previous_disputed != booking.is_disputed:
            to_status = booking.status
            if previous_disputed != booking.is_disputed:
                to_status = f"{booking.status}+disputed"
            BookingStatusChange.objects.create(
                booking=booking,
                from_status=previous_status,
                to_status=to_status,
                source=source,
                reason=reason or lifecycle.cancellation_reason,
            )
            logger.info(f"Booking {booking.reference}: {previous_status} -> {to_status} ({source})")


booking_repository = BookingRepository()
