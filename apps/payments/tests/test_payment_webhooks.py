"""Integration tests for gateway callbacks and event reconciliation."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib.parse import urlencode

from django.conf import settings
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.availability import services as calendar
from apps.availability.models import Allocation, Hold, InventoryItem
from apps.bookings.models import Booking
from apps.notifications.models import NotificationJob
from apps.payments.gateway import EventKind, GatewayEvent, normalise_stripe_event
from apps.payments.models import PaymentEvent
from apps.payments.processor import REPLAYED, PaymentEventProcessor
from shared.domain.exceptions import ConflictError


def stripe_signature(payload: str, secret: str, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event(event_id: str, event_type: str, obj: dict) -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": obj},
    }


class ReservedBookingMixin:
    def _reserve(self, reference="MIDAS-1700000000000-ABC123", offset=10, nights=3) -> Booking:
        today = timezone.localdate()
        start, end = today + timedelta(days=offset), today + timedelta(days=offset + nights)
        hold = calendar.create_hold(self.item.pk, start, end, reference)
        return Booking.objects.create(
            reference=reference,
            item=self.item,
            start_date=start,
            end_date=end,
            customer_name="Olivia Grant",
            customer_email="olivia@example.com",
            location="dubai",
            pricing={"total": "21000.00"},
            total_amount=Decimal("21000.00"),
            currency="AED",
            payment_intent_ref=f"pi_{reference}",
            hold_expires_at=hold.expires_at,
        )

    def _make_item(self) -> InventoryItem:
        return InventoryItem.objects.create(
            id="sunseeker-76",
            name="Sunseeker 76 Yacht",
            category=InventoryItem.Category.YACHT,
            base_price=Decimal("9000.00"),
            supported_locations=["dubai"],
        )


class StripeWebhookTests(ReservedBookingMixin, APITestCase):
    def setUp(self) -> None:
        self.item = self._make_item()
        self.booking = self._reserve()
        self.url = reverse("payment-webhook")

    def _post(self, event: dict, secret: str | None = None):
        payload = json.dumps(event)
        return self.client.generic(
            "POST",
            self.url,
            payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=stripe_signature(payload, secret or settings.STRIPE_WEBHOOK_SECRET),
        )

    def _intent_event(self, event_id: str, event_type: str) -> dict:
        return stripe_event(
            event_id,
            event_type,
            {
                "id": self.booking.payment_intent_ref,
                "object": "payment_intent",
                "metadata": {"bookingId": self.booking.reference},
            },
        )

    def test_payment_succeeded_confirms_booking(self) -> None:
        response = self._post(self._intent_event("evt_success", "payment_intent.succeeded"))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["received"], True)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertIsNotNone(self.booking.confirmed_at)
        self.assertTrue(Allocation.objects.filter(booking_reference=self.booking.reference).exists())
        self.assertFalse(Hold.objects.filter(booking_reference=self.booking.reference).exists())
        templates = set(
            NotificationJob.objects.filter(booking_reference=self.booking.reference).values_list("template", flat=True)
        )
        self.assertEqual(templates, {"booking_confirmed", "ops_new_booking"})
        self.assertEqual(PaymentEvent.objects.get(event_id="evt_success").outcome, PaymentEvent.Outcome.APPLIED)

    def test_replayed_event_has_no_side_effects(self) -> None:
        event = self._intent_event("evt_replay", "payment_intent.succeeded")

        first = self._post(event)
        second = self._post(event)

        self.assertEqual(first.data["outcome"], "applied")
        self.assertEqual(second.status_code, status.HTTP_200_OK, second.data)
        self.assertEqual(second.data["outcome"], REPLAYED)
        self.assertEqual(PaymentEvent.objects.filter(event_id="evt_replay").count(), 1)
        self.assertEqual(NotificationJob.objects.filter(template="booking_confirmed").count(), 1)
        self.assertEqual(self.booking.history.count(), 1)

    def test_invalid_signature_is_rejected_without_state_change(self) -> None:
        response = self._post(self._intent_event("evt_forged", "payment_intent.succeeded"), secret="whsec_wrong")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "verification_failed")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING_PAYMENT)
        self.assertFalse(PaymentEvent.objects.exists())
        self.assertFalse(NotificationJob.objects.exists())

    def test_missing_signature_is_rejected(self) -> None:
        payload = json.dumps(self._intent_event("evt_nosig", "payment_intent.succeeded"))

        response = self.client.generic("POST", self.url, payload, content_type="application/json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PaymentEvent.objects.exists())

    def test_payment_failed_cancels_and_releases_dates(self) -> None:
        response = self._post(self._intent_event("evt_failed", "payment_intent.payment_failed"))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertFalse(Hold.objects.filter(booking_reference=self.booking.reference).exists())
        self.assertTrue(NotificationJob.objects.filter(template="payment_failed").exists())

    def test_failure_after_success_is_ignored(self) -> None:
        self._post(self._intent_event("evt_ok", "payment_intent.succeeded"))

        response = self._post(self._intent_event("evt_late_fail", "payment_intent.payment_failed"))

        self.assertEqual(response.data["outcome"], "ignored")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertTrue(Allocation.objects.filter(booking_reference=self.booking.reference).exists())
        self.assertFalse(NotificationJob.objects.filter(template="payment_failed").exists())

    def test_processing_then_success(self) -> None:
        self._post(self._intent_event("evt_processing", "payment_intent.processing"))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PAYMENT_PROCESSING)

        self._post(self._intent_event("evt_done", "payment_intent.succeeded"))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)

    def test_refund_after_confirmation(self) -> None:
        self._post(self._intent_event("evt_paid", "payment_intent.succeeded"))
        refund = stripe_event(
            "evt_refund",
            "charge.refunded",
            {"id": "ch_1", "object": "charge", "payment_intent": self.booking.payment_intent_ref, "metadata": {}},
        )

        response = self._post(refund)

        self.assertEqual(response.data["outcome"], "applied")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.REFUNDED)
        self.assertFalse(Allocation.objects.filter(booking_reference=self.booking.reference).exists())
        self.assertTrue(NotificationJob.objects.filter(template="refund_processed").exists())

    def test_refund_of_unpaid_booking_is_ignored(self) -> None:
        refund = stripe_event(
            "evt_early_refund",
            "refund.created",
            {"id": "re_1", "object": "refund", "payment_intent": self.booking.payment_intent_ref},
        )

        response = self._post(refund)

        self.assertEqual(response.data["outcome"], "ignored")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING_PAYMENT)

    def test_dispute_flags_confirmed_booking(self) -> None:
        self._post(self._intent_event("evt_paid_2", "payment_intent.succeeded"))
        dispute = stripe_event(
            "evt_dispute",
            "charge.dispute.created",
            {"id": "dp_1", "object": "dispute", "payment_intent": self.booking.payment_intent_ref},
        )

        response = self._post(dispute)

        self.assertEqual(response.data["outcome"], "flagged")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertTrue(self.booking.is_disputed)
        self.assertTrue(NotificationJob.objects.filter(template="ops_dispute_alert").exists())
        self.assertEqual(self.booking.history.last().to_status, "confirmed+disputed")

    def test_unsupported_event_type_is_recorded(self) -> None:
        response = self._post(self._intent_event("evt_other", "payment_intent.created"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["outcome"], "unsupported")
        self.assertIsNotNone(PaymentEvent.objects.get(event_id="evt_other").processed_at)

    def test_event_for_unknown_booking_is_unmatched(self) -> None:
        event = stripe_event(
            "evt_orphan",
            "payment_intent.succeeded",
            {"id": "pi_unknown", "object": "payment_intent", "metadata": {"bookingId": "MIDAS-0-FFFFFF"}},
        )

        response = self._post(event)

        self.assertEqual(response.data["outcome"], "unmatched")


class LatePaymentTests(ReservedBookingMixin, TestCase):
    def setUp(self) -> None:
        self.item = self._make_item()
        self.booking = self._reserve()
        self.processor = PaymentEventProcessor()

    def _succeeded(self, event_id: str) -> GatewayEvent:
        return GatewayEvent(
            event_id=event_id,
            provider="stripe",
            type="payment_intent.succeeded",
            kind=EventKind.SUCCEEDED,
            booking_reference=self.booking.reference,
            payment_intent_id=self.booking.payment_intent_ref,
        )

    def test_lapsed_hold_with_free_dates_is_still_allocated(self) -> None:
        Hold.objects.filter(booking_reference=self.booking.reference).update(
            expires_at=timezone.now() - timedelta(minutes=1)
        )

        outcome = self.processor.process(self._succeeded("evt_lapsed_ok"))

        self.assertEqual(outcome, "applied")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertTrue(Allocation.objects.filter(booking_reference=self.booking.reference).exists())

    def test_lapsed_hold_with_taken_dates_is_flagged_for_operations(self) -> None:
        Hold.objects.filter(booking_reference=self.booking.reference).delete()
        calendar.create_hold(self.item.pk, self.booking.start_date, self.booking.end_date, "MIDAS-OTHER")

        outcome = self.processor.process(self._succeeded("evt_lapsed_taken"))

        self.assertEqual(outcome, "flagged")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertEqual(self.booking.cancellation_reason, "dates_unavailable")
        self.assertTrue(self.booking.requires_follow_up)
        self.assertFalse(Allocation.objects.filter(booking_reference=self.booking.reference).exists())
        self.assertTrue(Hold.objects.filter(booking_reference="MIDAS-OTHER").exists())
        self.assertTrue(NotificationJob.objects.filter(template="ops_payment_conflict").exists())

    def _processing(self, event_id: str) -> GatewayEvent:
        return GatewayEvent(
            event_id=event_id,
            provider="stripe",
            type="payment_intent.processing",
            kind=EventKind.PROCESSING,
            booking_reference=self.booking.reference,
            payment_intent_id=self.booking.payment_intent_ref,
        )

    def test_processing_payment_keeps_dates_held(self) -> None:
        outcome = self.processor.process(self._processing("evt_processing_held"))

        self.assertEqual(outcome, "applied")
        hold = Hold.objects.get(booking_reference=self.booking.reference)
        self.assertGreater(hold.expires_at, timezone.now() + timedelta(days=1))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PAYMENT_PROCESSING)
        self.assertEqual(self.booking.hold_expires_at, hold.expires_at)

    def test_processing_payment_survives_hold_sweep_and_confirms(self) -> None:
        self.processor.process(self._processing("evt_processing_sweep"))

        calendar.expire_holds(timezone.now() + timedelta(minutes=30))
        with self.assertRaises(ConflictError):
            calendar.create_hold(self.item.pk, self.booking.start_date, self.booking.end_date, "MIDAS-RIVAL")

        self.assertEqual(self.processor.process(self._succeeded("evt_processing_done")), "applied")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertTrue(Allocation.objects.filter(booking_reference=self.booking.reference).exists())

    def test_processing_replaces_a_lapsed_hold(self) -> None:
        Hold.objects.filter(booking_reference=self.booking.reference).update(
            expires_at=timezone.now() - timedelta(minutes=1)
        )

        self.processor.process(self._processing("evt_processing_lapsed"))

        hold = Hold.objects.get(booking_reference=self.booking.reference)
        self.assertFalse(hold.is_expired(timezone.now() + timedelta(days=1)))

    def test_success_after_cancellation_alerts_operations(self) -> None:
        self.booking.status = Booking.Status.CANCELLED
        self.booking.cancellation_reason = "hold_expired"
        self.booking.save()
        calendar.release(self.booking.reference)

        outcome = self.processor.process(self._succeeded("evt_after_cancel"))

        self.assertEqual(outcome, "flagged")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertEqual(self.booking.cancellation_reason, "hold_expired")
        self.assertTrue(self.booking.requires_follow_up)
        self.assertFalse(Allocation.objects.filter(booking_reference=self.booking.reference).exists())
        job = NotificationJob.objects.get(template="ops_payment_conflict", booking_reference=self.booking.reference)
        self.assertEqual(job.context["reason"], "paid_after_cancellation")

    def test_booking_found_by_intent_when_metadata_missing(self) -> None:
        event = GatewayEvent(
            event_id="evt_no_metadata",
            provider="stripe",
            type="payment_intent.succeeded",
            kind=EventKind.SUCCEEDED,
            payment_intent_id=self.booking.payment_intent_ref,
        )

        self.assertEqual(self.processor.process(event), "applied")
        self.assertEqual(PaymentEvent.objects.get(event_id="evt_no_metadata").booking_reference, self.booking.reference)


class PayPalIPNTests(ReservedBookingMixin, APITestCase):
    def setUp(self) -> None:
        self.item = self._make_item()
        self.booking = self._reserve(reference="MIDAS-1700000000001-DEF456")
        self.url = reverse("payment-ipn")

    def _body(self, payment_status: str, txn_id: str = "8AB12345CD678901E") -> str:
        return urlencode(
            {
                "txn_id": txn_id,
                "payment_status": payment_status,
                "custom": self.booking.reference,
                "mc_gross": "21000.00",
                "mc_currency": "AED",
            }
        )

    def _post(self, body: str):
        return self.client.generic("POST", self.url, body, content_type="application/x-www-form-urlencoded")

    @patch("apps.payments.gateway.requests.post")
    def test_verified_completed_ipn_confirms_booking(self, mock_post) -> None:
        mock_post.return_value = MagicMock(status_code=200, text="VERIFIED")
        body = self._body("Completed")

        response = self._post(body)

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["verified"], True)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        sent = mock_post.call_args
        self.assertEqual(sent.kwargs["data"], b"cmd=_notify-validate&" + body.encode())
        self.assertEqual(sent.kwargs["timeout"], settings.PAYPAL_TIMEOUT_SECONDS)
        self.assertTrue(PaymentEvent.objects.filter(event_id="paypal:8AB12345CD678901E:Completed").exists())

    @patch("apps.payments.gateway.requests.post")
    def test_invalid_ipn_is_rejected(self, mock_post) -> None:
        mock_post.return_value = MagicMock(status_code=200, text="INVALID")

        response = self._post(self._body("Completed"))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING_PAYMENT)
        self.assertFalse(PaymentEvent.objects.exists())

    @patch("apps.payments.gateway.requests.post")
    def test_unreachable_verifier_is_rejected(self, mock_post) -> None:
        import requests

        mock_post.side_effect = requests.Timeout("timed out")

        response = self._post(self._body("Completed"))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PaymentEvent.objects.exists())

    @patch("apps.payments.gateway.requests.post")
    def test_denied_ipn_cancels_booking(self, mock_post) -> None:
        mock_post.return_value = MagicMock(status_code=200, text="VERIFIED")

        response = self._post(self._body("Denied"))

        self.assertEqual(response.data["outcome"], "applied")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)

    @patch("apps.payments.gateway.requests.post")
    def test_pending_then_completed_are_distinct_events(self, mock_post) -> None:
        mock_post.return_value = MagicMock(status_code=200, text="VERIFIED")

        self._post(self._body("Pending"))
        self._post(self._body("Completed"))

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(PaymentEvent.objects.count(), 2)


class NormaliseStripeEventTests(TestCase):
    def test_charge_events_resolve_their_payment_intent(self) -> None:
        event = normalise_stripe_event(
            stripe_event("evt_1", "charge.refunded", {"id": "ch_9", "payment_intent": "pi_9", "metadata": {}})
        )

        self.assertEqual(event.kind, EventKind.REFUNDED)
        self.assertEqual(event.payment_intent_id, "pi_9")
        self.assertEqual(event.object_id, "ch_9")
        self.assertEqual(event.booking_reference, "")

    def test_canceled_intent_counts_as_failure(self) -> None:
        event = normalise_stripe_event(
            stripe_event("evt_2", "payment_intent.canceled", {"id": "pi_2", "metadata": {"bookingId": "MIDAS-2"}})
        )

        self.assertEqual(event.kind, EventKind.FAILED)
        self.assertEqual(event.booking_reference, "MIDAS-2")
