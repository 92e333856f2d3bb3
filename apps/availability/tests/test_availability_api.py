"""Integration tests for the availability API endpoints."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.availability import services
from apps.availability.models import BlackoutPeriod, InventoryItem


class AvailabilityAPITests(APITestCase):
    def setUp(self) -> None:
        self.item = InventoryItem.objects.create(
            id="azimut-grande-35",
            name="Azimut Grande 35M",
            category=InventoryItem.Category.YACHT,
            base_price=Decimal("12000.00"),
            supported_locations=["dubai"],
        )
        self.today = timezone.localdate()
        self.check_url = reverse("availability-check")

    def _payload(self, start_offset: int, end_offset: int, item_id=None) -> dict:
        return {
            "itemId": item_id or self.item.pk,
            "startDate": str(self.today + timedelta(days=start_offset)),
            "endDate": str(self.today + timedelta(days=end_offset)),
        }

    def test_check_reports_available_dates(self) -> None:
        response = self.client.post(self.check_url, self._payload(3, 6), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["available"])
        self.assertEqual(response.data["conflicts"], [])

    def test_check_reports_conflicts(self) -> None:
        services.create_hold(
            self.item.pk,
            self.today + timedelta(days=3),
            self.today + timedelta(days=6),
            "MIDAS-API-1",
        )

        response = self.client.post(self.check_url, self._payload(5, 8), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertFalse(response.data["available"])
        self.assertEqual(response.data["reason"], "BOOKING_CONFLICT")
        self.assertEqual(len(response.data["conflicts"]), 1)

    def test_check_reports_blackout_reason(self) -> None:
        BlackoutPeriod.objects.create(
            item=self.item,
            start_date=self.today + timedelta(days=3),
            end_date=self.today + timedelta(days=10),
            reason="Dry dock",
        )

        response = self.client.post(self.check_url, self._payload(4, 5), format="json")

        self.assertFalse(response.data["available"])
        self.assertEqual(response.data["blackoutReason"], "Dry dock")

    def test_inverted_range_is_bad_request(self) -> None:
        response = self.client.post(self.check_url, self._payload(6, 3), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertIn("endDate", response.data)

    def test_check_multiple_items(self) -> None:
        url = reverse("availability-check-multiple")
        payload = self._payload(3, 6)
        payload["itemIds"] = [self.item.pk, "unknown-item"]
        del payload["itemId"]

        response = self.client.post(url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["results"][self.item.pk]["available"])
        self.assertEqual(response.data["results"]["unknown-item"]["reason"], "ITEM_NOT_FOUND")

    def test_item_calendar(self) -> None:
        services.create_hold(
            self.item.pk,
            self.today + timedelta(days=3),
            self.today + timedelta(days=6),
            "MIDAS-API-2",
        )
        url = reverse("availability-calendar", args=[self.item.pk])

        response = self.client.get(
            url,
            {"startDate": str(self.today), "endDate": str(self.today + timedelta(days=30))},
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(len(response.data["reserved"]), 1)
        self.assertEqual(response.data["calendarVersion"], 1)

    def test_calendar_of_unknown_item_is_not_found(self) -> None:
        url = reverse("availability-calendar", args=["ghost-item"])

        response = self.client.get(
            url,
            {"startDate": str(self.today), "endDate": str(self.today + timedelta(days=3))},
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "not_found")
