"""Tests for cache-backed request rate limiting."""

from __future__ import annotations

from django.core.cache import cache
from django.test import RequestFactory, SimpleTestCase, override_settings

from shared.domain.exceptions import RateLimitError
from shared.infrastructure.ratelimit import check_rate_limit, client_identity


@override_settings(BOOKING_RATE_LIMIT="3/m", RATELIMIT_ENABLE=True)
class RateLimitTests(SimpleTestCase):
    def setUp(self) -> None:
        cache.clear()
        self.factory = RequestFactory()

    def _request(self, address="203.0.113.7", forwarded=None):
        extra = {"REMOTE_ADDR": address}
        if forwarded:
            extra["HTTP_X_FORWARDED_FOR"] = forwarded
        return self.factory.post("/api/v1/bookings/", **extra)

    def test_counts_down_then_limits(self) -> None:
        statuses = [check_rate_limit(self._request(), group="tests") for _ in range(3)]

        self.assertEqual([s.remaining for s in statuses], [2, 1, 0])
        with self.assertRaises(RateLimitError) as ctx:
            check_rate_limit(self._request(), group="tests")
        self.assertGreaterEqual(ctx.exception.retry_after, 1)

    def test_clients_are_counted_separately(self) -> None:
        for _ in range(3):
            check_rate_limit(self._request("198.51.100.1"), group="tests")

        status = check_rate_limit(self._request("198.51.100.2"), group="tests")

        self.assertFalse(status.limited)
        self.assertEqual(status.count, 1)

    def test_explicit_rate_overrides_setting(self) -> None:
        check_rate_limit(self._request(), group="tests", rate="1/m")

        with self.assertRaises(RateLimitError):
            check_rate_limit(self._request(), group="tests", rate="1/m")

    def test_identity_prefers_first_forwarded_address(self) -> None:
        request = self._request(forwarded="192.0.2.10, 10.0.0.1")

        self.assertEqual(client_identity(request), "192.0.2.10")
        self.assertEqual(client_identity(self._request()), "203.0.113.7")
