"""Tests for the booking state machine and the scheduled lifecycle jobs."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone

from apps.availability import services as calendar
from apps.availability.models import Hold, InventoryItem
from apps.bookings.application.command_handlers import (
    CompleteFinishedBookingsCommand,
    CompleteFinishedBookingsHandler,
    ExpireUnpaidBookingsCommand,
    ExpireUnpaidBookingsHandler,
    mask_email,
)
from apps.bookings.domain.entities import BookingLifecycle, BookingStatus, InvalidTransition
from apps.bookings.domain.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingDisputed,
    PaymentConflictDetected,
)
from apps.bookings.models import Booking


class TestBookingLifecycle:
    def _lifecycle(self, status=BookingStatus.PENDING_PAYMENT) -> BookingLifecycle:
        return BookingLifecycle(reference="MIDAS-1", status=status)

    def test_payment_success_confirms_and_raises_event(self):
        lifecycle = self._lifecycle()

        lifecycle.confirm_payment("pi_1")

        assert lifecycle.status == BookingStatus.CONFIRMED
        assert lifecycle.confirmed_at is not None
        [event] = lifecycle.events
        assert isinstance(event, BookingConfirmed)
        assert event.payment_reference == "pi_1"

    def test_processing_then_confirmed(self):
        lifecycle = self._lifecycle()

        lifecycle.start_processing()
        lifecycle.confirm_payment()

        assert lifecycle.status == BookingStatus.CONFIRMED

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.CANCELLED, BookingStatus.REFUNDED, BookingStatus.COMPLETED, BookingStatus.CONFIRMED],
    )
    def test_paid_or_terminal_states_cannot_be_confirmed_again(self, status):
        lifecycle = self._lifecycle(status)

        with pytest.raises(InvalidTransition):
            lifecycle.confirm_payment()
        assert lifecycle.status == status
        assert lifecycle.events == []

    @pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.REFUNDED, BookingStatus.COMPLETED])
    def test_terminal_states_never_go_back_to_pending_paths(self, status):
        lifecycle = self._lifecycle(status)

        for attempt in (lifecycle.start_processing, lifecycle.fail_payment, lambda: lifecycle.cancel("x")):
            with pytest.raises(InvalidTransition):
                attempt()
        assert lifecycle.status == status

    def test_failure_after_success_is_rejected(self):
        lifecycle = self._lifecycle()
        lifecycle.confirm_payment()

        with pytest.raises(InvalidTransition):
            lifecycle.fail_payment()
        assert lifecycle.status == BookingStatus.CONFIRMED

    def test_refund_from_completed(self):
        lifecycle = self._lifecycle(BookingStatus.COMPLETED)

        lifecycle.refund("re_1")

        assert lifecycle.status == BookingStatus.REFUNDED
        assert lifecycle.refunded_at is not None

    def test_dispute_flags_without_changing_status(self):
        lifecycle = self._lifecycle(BookingStatus.CONFIRMED)

        lifecycle.flag_dispute("dp_1")

        assert lifecycle.status == BookingStatus.CONFIRMED
        assert lifecycle.is_disputed is True
        assert isinstance(lifecycle.events[0], BookingDisputed)
        with pytest.raises(InvalidTransition):
            lifecycle.flag_dispute("dp_2")

    def test_dispute_on_unpaid_booking_is_rejected(self):
        with pytest.raises(InvalidTransition):
            self._lifecycle().flag_dispute("dp_1")

    def test_late_payment_for_lost_dates_cancels_and_flags(self):
        lifecycle = self._lifecycle(BookingStatus.PAYMENT_PROCESSING)

        lifecycle.reject_late_payment()

        assert lifecycle.status == BookingStatus.CANCELLED
        assert lifecycle.cancellation_reason == "dates_unavailable"
        assert lifecycle.requires_follow_up is True
        assert [type(e) for e in lifecycle.events] == [PaymentConflictDetected]


def test_mask_email_keeps_two_characters():
    assert mask_email("amelia@example.com") == "am***@example.com"


@pytest.fixture
def item(db) -> InventoryItem:
    return InventoryItem.objects.create(
        id="ferrari-roma",
        name="Ferrari Roma",
        category=InventoryItem.Category.CAR,
        base_price=Decimal("1500.00"),
        supported_locations=["houston"],
    )


def _booking(item, reference, start, end, status=Booking.Status.PENDING_PAYMENT, **extra) -> Booking:
    return Booking.objects.create(
        reference=reference,
        item=item,
        start_date=start,
        end_date=end,
        customer_name="Noah Reyes",
        customer_email="noah@example.com",
        location="houston",
        pricing={"total": "100.00"},
        total_amount=Decimal("100.00"),
        status=status,
        **extra,
    )


@pytest.mark.django_db
def test_pricing_breakdown_is_immutable(item):
    today = timezone.localdate()
    booking = _booking(item, "MIDAS-IMM", today + timedelta(days=3), today + timedelta(days=5))

    stored = Booking.objects.get(pk=booking.pk)
    stored.pricing = {"total": "1.00"}

    with pytest.raises(DjangoValidationError):
        stored.save()
    assert Booking.objects.get(pk=booking.pk).pricing == {"total": "100.00"}


@pytest.mark.django_db
def test_generated_reference_format(item):
    today = timezone.localdate()
    booking = Booking(
        item=item,
        start_date=today + timedelta(days=3),
        end_date=today + timedelta(days=5),
        customer_name="Noah Reyes",
        customer_email="noah@example.com",
        location="houston",
    )
    booking.save()

    assert booking.reference.startswith("MIDAS-")
    assert len(booking.reference.split("-")) == 3


@pytest.mark.django_db
def test_expire_unpaid_bookings_cancels_and_releases(item, django_capture_on_commit_callbacks):
    today = timezone.localdate()
    start, end = today + timedelta(days=3), today + timedelta(days=5)
    hold = calendar.create_hold(item.pk, start, end, "MIDAS-EXP", ttl_minutes=15)
    booking = _booking(item, "MIDAS-EXP", start, end, hold_expires_at=hold.expires_at, payment_intent_ref="pi_exp")
    processing = _booking(
        item,
        "MIDAS-PROC",
        today + timedelta(days=10),
        today + timedelta(days=12),
        status=Booking.Status.PAYMENT_PROCESSING,
        hold_expires_at=hold.expires_at,
    )
    gateway = MagicMock()

    with django_capture_on_commit_callbacks(execute=True):
        expired = ExpireUnpaidBookingsHandler(gateway=gateway).handle(
            ExpireUnpaidBookingsCommand(now=timezone.now() + timedelta(minutes=16))
        )

    assert expired == ["MIDAS-EXP"]
    booking.refresh_from_db()
    processing.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED
    assert booking.cancellation_reason == "hold_expired"
    assert processing.status == Booking.Status.PAYMENT_PROCESSING
    assert not Hold.objects.filter(booking_reference="MIDAS-EXP").exists()
    gateway.cancel_payment_intent.assert_called_once_with("pi_exp")
    assert calendar.check_availability(item.pk, start, end).available is True


@pytest.mark.django_db
def test_expire_leaves_live_holds_alone(item):
    today = timezone.localdate()
    start, end = today + timedelta(days=3), today + timedelta(days=5)
    hold = calendar.create_hold(item.pk, start, end, "MIDAS-LIVE", ttl_minutes=15)
    _booking(item, "MIDAS-LIVE", start, end, hold_expires_at=hold.expires_at)

    expired = ExpireUnpaidBookingsHandler(gateway=MagicMock()).handle(ExpireUnpaidBookingsCommand())

    assert expired == []
    assert Booking.objects.get(reference="MIDAS-LIVE").status == Booking.Status.PENDING_PAYMENT


@pytest.mark.django_db
def test_complete_finished_bookings(item):
    today = timezone.localdate()
    _booking(item, "MIDAS-DONE", today - timedelta(days=4), today - timedelta(days=1), status=Booking.Status.CONFIRMED)
    _booking(item, "MIDAS-NOW", today - timedelta(days=1), today + timedelta(days=2), status=Booking.Status.CONFIRMED)

    completed = CompleteFinishedBookingsHandler().handle(CompleteFinishedBookingsCommand(today=today))

    assert completed == ["MIDAS-DONE"]
    done = Booking.objects.get(reference="MIDAS-DONE")
    assert done.status == Booking.Status.COMPLETED
    assert done.history.get().source == "system"
    assert Booking.objects.get(reference="MIDAS-NOW").status == Booking.Status.CONFIRMED


def test_cancel_event_carries_reason():
    lifecycle = BookingLifecycle(reference="MIDAS-2", status=BookingStatus.PENDING_PAYMENT)

    lifecycle.cancel("customer_request")

    [event] = lifecycle.events
    assert isinstance(event, BookingCancelled)
    assert event.reason == "customer_request"
