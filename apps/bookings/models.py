"""Booking domain models for the luxury rental core."""

from __future__ import annotations

import copy
import secrets
import time
from decimal import Decimal

from django.core.exceptions import ValidationError  # type: ignore
from django.db import models, transaction  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.pricing.config import ServiceTier

from .domain.entities import BookingStatus


class Booking(models.Model):
    """Reservation of an inventory item. Never deleted."""

    class Status(models.TextChoices):
        PENDING_PAYMENT = BookingStatus.PENDING_PAYMENT.value, _("Pending payment")
        PAYMENT_PROCESSING = BookingStatus.PAYMENT_PROCESSING.value, _("Payment processing")
        CONFIRMED = BookingStatus.CONFIRMED.value, _("Confirmed")
        COMPLETED = BookingStatus.COMPLETED.value, _("Completed")
        CANCELLED = BookingStatus.CANCELLED.value, _("Cancelled")
        REFUNDED = BookingStatus.REFUNDED.value, _("Refunded")

    class Tier(models.TextChoices):
        STANDARD = ServiceTier.STANDARD.value, _("Standard")
        PREMIUM = ServiceTier.PREMIUM.value, _("Premium")
        VVIP = ServiceTier.VVIP.value, _("VVIP")

    reference = models.CharField(max_length=64, unique=True, editable=False)
    item = models.ForeignKey(
        "availability.InventoryItem",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    start_date = models.DateField()
    end_date = models.DateField(help_text=_("Exclusive."))
    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=32, blank=True)
    location = models.CharField(max_length=64)
    service_tier = models.CharField(max_length=16, choices=Tier.choices, default=Tier.STANDARD)
    add_ons = models.JSONField(default=list, blank=True)
    pricing = models.JSONField(
        default=dict,
        help_text=_("Price breakdown quoted at reservation time; immutable."),
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.PENDING_PAYMENT,
    )
    is_disputed = models.BooleanField(default=False)
    requires_follow_up = models.BooleanField(default=False)
    payment_intent_ref = models.CharField(max_length=128, blank=True)
    client_token = models.CharField(
        max_length=128,
        null=True,
        blank=True,
        unique=True,
        help_text=_("Idempotency-Key supplied by the client, if any."),
    )
    client_identity = models.CharField(max_length=64, blank=True)
    hold_expires_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(end_date__gt=models.F("start_date")),
                name="booking_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["item", "start_date", "end_date"], name="booking_item_dates_idx"),
            models.Index(fields=["status", "hold_expires_at"], name="booking_status_hold_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking {self.reference} for {self.item_id}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._frozen_pricing = copy.deepcopy(instance.__dict__.get("pricing"))
        return instance

    def save(self, *args, **kwargs):  # type: ignore
        with transaction.atomic():
            if self._state.adding and not self.reference:
                self.reference = self.generate_reference()
            frozen = getattr(self, "_frozen_pricing", None)
            if not self._state.adding and frozen is not None and self.pricing != frozen:
                raise ValidationError(_("The price breakdown of a booking cannot change."))
            super().save(*args, **kwargs)
            self._frozen_pricing = copy.deepcopy(self.pricing)

    @staticmethod
    def generate_reference() -> str:
        return f"MIDAS-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"

    @property
    def lifecycle_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def nights(self) -> int:
        return (self.end_date - self.start_date).days


class BookingStatusChange(models.Model):
    """Append-only audit trail of status changes and flags."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="history")
    from_status = models.CharField(max_length=32)
    to_status = models.CharField(max_length=32)
    source = models.CharField(max_length=128, help_text=_("What caused the change, e.g. stripe:evt_123."))
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"{self.booking_id}: {self.from_status} -> {self.to_status}"
