"""Integration tests for booking API endpoints."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.availability.models import BlackoutPeriod, Hold, InventoryItem
from apps.bookings.application.command_handlers import ExpireUnpaidBookingsCommand, ExpireUnpaidBookingsHandler
from apps.bookings.models import Booking
from apps.notifications.models import NotificationJob
from apps.payments.gateway import IntentResult
from apps.payments.models import PaymentIntent
from shared.domain.exceptions import GatewayError


class BookingAPITestCase(APITestCase):
    def setUp(self) -> None:
        cache.clear()
        self.item = InventoryItem.objects.create(
            id="lamborghini-urus",
            name="Lamborghini Urus",
            category=InventoryItem.Category.CAR,
            base_price=Decimal("1000.00"),
            supported_locations=["washington-dc", "dubai"],
        )
        self.list_url = reverse("booking-list")

        patcher = patch("apps.bookings.application.command_handlers.StripeGateway")
        self.gateway_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.gateway = self.gateway_class.return_value
        self.gateway.create_payment_intent.side_effect = self._fake_intent

    @staticmethod
    def _fake_intent(**kwargs) -> IntentResult:
        reference = kwargs["booking_reference"]
        return IntentResult(id=f"pi_{reference}", client_secret=f"pi_{reference}_secret", status="requires_payment_method")

    def _payload(self, start: date, end: date, **overrides) -> dict:
        payload = {
            "itemId": self.item.pk,
            "startDate": str(start),
            "endDate": str(end),
            "customerName": "Amelia Hart",
            "customerEmail": "amelia@example.com",
            "customerPhone": "+12025550100",
            "location": "washington-dc",
            "serviceTier": "premium",
            "addOns": ["chauffeur"],
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def _days(offset: int) -> date:
        return timezone.localdate() + timedelta(days=offset)


class ReserveBookingTests(BookingAPITestCase):
    """Covers reservations, validation, conflicts and gateway outages."""

    def test_reserve_holds_dates_and_returns_client_secret(self) -> None:
        response = self.client.post(self.list_url, self._payload(self._days(10), self._days(13)), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        booking = Booking.objects.get()
        self.assertEqual(response.data["bookingId"], booking.reference)
        self.assertEqual(response.data["paymentIntentClientSecret"], f"pi_{booking.reference}_secret")
        self.assertEqual(response.data["status"], "pending-payment")
        self.assertEqual(booking.status, Booking.Status.PENDING_PAYMENT)
        self.assertEqual(booking.payment_intent_ref, f"pi_{booking.reference}")
        self.assertEqual(booking.currency, "USD")
        self.assertEqual(response.data["pricing"]["total"], str(booking.total_amount))
        self.assertTrue(Hold.objects.filter(booking_reference=booking.reference).exists())

        intent = PaymentIntent.objects.get()
        self.assertEqual(intent.idempotency_key, booking.reference)
        kwargs = self.gateway.create_payment_intent.call_args.kwargs
        self.assertEqual(kwargs["booking_reference"], booking.reference)
        self.assertEqual(kwargs["amount_minor"], int(booking.total_amount * 100))

    def test_overlapping_reservation_is_a_conflict(self) -> None:
        first = self.client.post(self.list_url, self._payload(self._days(10), self._days(13)), format="json")
        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)

        second = self.client.post(self.list_url, self._payload(self._days(12), self._days(15)), format="json")

        self.assertEqual(second.status_code, status.HTTP_409_CONFLICT, second.data)
        self.assertEqual(second.data["error"], "conflict")
        self.assertEqual(Booking.objects.count(), 1)

    def test_back_to_back_reservations_are_allowed(self) -> None:
        first = self.client.post(self.list_url, self._payload(self._days(10), self._days(13)), format="json")
        second = self.client.post(self.list_url, self._payload(self._days(13), self._days(15)), format="json")

        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)
        self.assertEqual(second.status_code, status.HTTP_200_OK, second.data)

    def test_blackout_is_a_conflict(self) -> None:
        BlackoutPeriod.objects.create(
            item=self.item,
            start_date=self._days(11),
            end_date=self._days(12),
            reason="Detailing",
        )

        response = self.client.post(self.list_url, self._payload(self._days(10), self._days(13)), format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertFalse(Booking.objects.exists())

    def test_missing_field_is_reported_first(self) -> None:
        payload = self._payload(self._days(10), self._days(5), customerEmail="not-an-email")
        payload.pop("customerName")

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["field"], "customerName")

    def test_dates_are_checked_before_email(self) -> None:
        payload = self._payload(self._days(10), self._days(10), customerEmail="not-an-email")

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["field"], "endDate")

    def test_past_start_is_rejected(self) -> None:
        response = self.client.post(self.list_url, self._payload(self._days(-1), self._days(2)), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["field"], "startDate")

    def test_unparseable_date_is_rejected(self) -> None:
        payload = self._payload(self._days(10), self._days(12))
        payload["startDate"] = "next friday"

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["field"], "startDate")

    def test_malformed_email_is_rejected(self) -> None:
        payload = self._payload(self._days(10), self._days(12), customerEmail="amelia@example")

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["field"], "customerEmail")

    def test_unsupported_location_is_rejected(self) -> None:
        payload = self._payload(self._days(10), self._days(12), location="houston")

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["field"], "location")

    def test_unknown_item_is_not_found(self) -> None:
        payload = self._payload(self._days(10), self._days(12), itemId="bugatti-chiron")

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND, response.data)

    def test_zero_priced_item_is_rejected(self) -> None:
        self.item.base_price = Decimal("0.00")
        self.item.save()

        with self.settings(LUXURY_PRICING=_without_deposits()):
            response = self.client.post(self.list_url, self._payload(self._days(10), self._days(12), addOns=[]), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertFalse(Booking.objects.exists())

    def test_idempotency_key_replays_the_same_booking(self) -> None:
        payload = self._payload(self._days(10), self._days(13))

        first = self.client.post(self.list_url, payload, format="json", HTTP_IDEMPOTENCY_KEY="client-42")
        second = self.client.post(self.list_url, payload, format="json", HTTP_IDEMPOTENCY_KEY="client-42")

        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)
        self.assertEqual(second.status_code, status.HTTP_200_OK, second.data)
        self.assertEqual(first.data["bookingId"], second.data["bookingId"])
        self.assertFalse(first.has_header("Idempotent-Replayed"))
        self.assertEqual(second["Idempotent-Replayed"], "true")
        self.assertEqual(first.data["paymentIntentClientSecret"], second.data["paymentIntentClientSecret"])
        self.assertEqual(Booking.objects.count(), 1)
        self.assertEqual(self.gateway.create_payment_intent.call_count, 1)

    def test_gateway_outage_keeps_booking_pending_for_follow_up(self) -> None:
        self.gateway.create_payment_intent.side_effect = GatewayError("Payment provider unavailable")

        with self.captureOnCommitCallbacks(execute=False):
            response = self.client.post(self.list_url, self._payload(self._days(10), self._days(13)), format="json")

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR, response.data)
        self.assertEqual(response.data["error"], "gateway_error")
        self.assertEqual(response.data["followUpWithinMinutes"], 15)
        booking = Booking.objects.get(reference=response.data["bookingId"])
        self.assertEqual(booking.status, Booking.Status.PENDING_PAYMENT)
        self.assertTrue(booking.requires_follow_up)
        self.assertTrue(Hold.objects.filter(booking_reference=booking.reference).exists())
        self.assertTrue(
            NotificationJob.objects.filter(template="ops_follow_up", booking_reference=booking.reference).exists()
        )

    def test_sweep_keeps_dates_of_booking_awaiting_follow_up(self) -> None:
        self.gateway.create_payment_intent.side_effect = GatewayError("Payment provider unavailable")
        with self.captureOnCommitCallbacks(execute=False):
            response = self.client.post(self.list_url, self._payload(self._days(10), self._days(13)), format="json")
        reference = response.data["bookingId"]

        later = timezone.now() + timedelta(minutes=16)
        with self.captureOnCommitCallbacks(execute=False):
            expired = ExpireUnpaidBookingsHandler(gateway=self.gateway).handle(ExpireUnpaidBookingsCommand(now=later))

        self.assertEqual(expired, [])
        booking = Booking.objects.get(reference=reference)
        self.assertEqual(booking.status, Booking.Status.PENDING_PAYMENT)
        self.assertGreater(booking.hold_expires_at, later)
        self.assertTrue(Hold.objects.filter(booking_reference=reference).exists())
        self.assertFalse(NotificationJob.objects.filter(template="booking_cancelled", booking_reference=reference).exists())
        follow_up = NotificationJob.objects.get(template="ops_follow_up", booking_reference=reference)
        self.assertNotEqual(follow_up.status, NotificationJob.Status.SKIPPED)

        rival = self.client.post(
            self.list_url,
            self._payload(self._days(11), self._days(14), customerEmail="rival@example.com"),
            format="json",
        )
        self.assertEqual(rival.status_code, status.HTTP_409_CONFLICT, rival.data)

    def test_stale_calendar_version_is_rejected(self) -> None:
        seen_version = InventoryItem.objects.get(pk=self.item.pk).calendar_version
        self.client.post(self.list_url, self._payload(self._days(40), self._days(42)), format="json")

        response = self.client.post(
            self.list_url,
            self._payload(self._days(10), self._days(13), calendarVersion=seen_version),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(Booking.objects.count(), 1)

    def test_current_calendar_version_is_accepted(self) -> None:
        version = InventoryItem.objects.get(pk=self.item.pk).calendar_version

        response = self.client.post(
            self.list_url,
            self._payload(self._days(10), self._days(13), calendarVersion=version),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)

    @override_settings(BOOKING_RATE_LIMIT="2/m")
    def test_rate_limit_returns_retry_after(self) -> None:
        for offset in (10, 20):
            response = self.client.post(
                self.list_url,
                self._payload(self._days(offset), self._days(offset + 2)),
                format="json",
            )
            self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)

        limited = self.client.post(self.list_url, self._payload(self._days(30), self._days(32)), format="json")

        self.assertEqual(limited.status_code, status.HTTP_429_TOO_MANY_REQUESTS, limited.data)
        self.assertGreaterEqual(limited.data["retryAfter"], 1)
        self.assertEqual(limited["Retry-After"], str(limited.data["retryAfter"]))
        self.assertEqual(Booking.objects.count(), 2)

    @override_settings(BOOKING_RATE_LIMIT="1/m")
    def test_rate_limit_is_per_client(self) -> None:
        first = self.client.post(
            self.list_url,
            self._payload(self._days(10), self._days(12)),
            format="json",
            HTTP_X_FORWARDED_FOR="203.0.113.7",
        )
        other = self.client.post(
            self.list_url,
            self._payload(self._days(20), self._days(22)),
            format="json",
            HTTP_X_FORWARDED_FOR="198.51.100.9",
        )

        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)
        self.assertEqual(other.status_code, status.HTTP_200_OK, other.data)


class BookingStatusAndStaffActionTests(BookingAPITestCase):
    def setUp(self) -> None:
        super().setUp()
        response = self.client.post(self.list_url, self._payload(self._days(10), self._days(13)), format="json")
        self.reference = response.data["bookingId"]
        self.staff = get_user_model().objects.create_user(
            username="concierge",
            password="ConciergePass123",
            is_staff=True,
        )

    def test_status_lookup_by_reference(self) -> None:
        response = self.client.get(reverse("booking-detail", args=[self.reference]))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["bookingId"], self.reference)
        self.assertEqual(response.data["status"], "pending-payment")
        self.assertEqual(response.data["itemId"], self.item.pk)

    def test_unknown_reference_is_404(self) -> None:
        response = self.client.get(reverse("booking-detail", args=["MIDAS-0-000000"]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cancel_requires_staff(self) -> None:
        response = self.client.post(reverse("booking-cancel", args=[self.reference]), {}, format="json")

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertEqual(Booking.objects.get(reference=self.reference).status, Booking.Status.PENDING_PAYMENT)

    def test_staff_cancel_releases_hold_and_cancels_intent(self) -> None:
        self.client.force_authenticate(self.staff)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(
                reverse("booking-cancel", args=[self.reference]),
                {"reason": "customer_request"},
                format="json",
            )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        booking = Booking.objects.get(reference=self.reference)
        self.assertEqual(booking.status, Booking.Status.CANCELLED)
        self.assertEqual(booking.cancellation_reason, "customer_request")
        self.assertFalse(Hold.objects.filter(booking_reference=self.reference).exists())
        self.gateway.cancel_payment_intent.assert_called_once_with(f"pi_{self.reference}")
        self.assertEqual(booking.history.last().to_status, "cancelled")

    def test_refund_of_unpaid_booking_is_a_conflict(self) -> None:
        self.client.force_authenticate(self.staff)

        response = self.client.post(reverse("booking-refund", args=[self.reference]), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.gateway.refund.assert_not_called()

    def test_refund_of_confirmed_booking_goes_to_gateway(self) -> None:
        Booking.objects.filter(reference=self.reference).update(status=Booking.Status.CONFIRMED)
        self.gateway.refund.return_value = "re_123"
        self.client.force_authenticate(self.staff)

        response = self.client.post(reverse("booking-refund", args=[self.reference]), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED, response.data)
        self.assertEqual(response.data["refundId"], "re_123")
        self.gateway.refund.assert_called_once_with(
            f"pi_{self.reference}",
            idempotency_key=f"refund-{self.reference}",
        )
        # state follows the gateway's refund event, not the request
        self.assertEqual(Booking.objects.get(reference=self.reference).status, Booking.Status.CONFIRMED)


def _without_deposits() -> dict:
    from django.conf import settings

    config = {key: value for key, value in settings.LUXURY_PRICING.items()}
    config["categories"] = {
        name: {**rates, "security_deposit": "0"}
        for name, rates in settings.LUXURY_PRICING["categories"].items()
    }
    return config
