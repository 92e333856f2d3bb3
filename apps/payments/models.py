"""Payment intents and the ledger of processed gateway events."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Provider(models.TextChoices):
    STRIPE = "stripe", _("Stripe")
    PAYPAL = "paypal", _("PayPal")


class PaymentIntent(models.Model):
    """Gateway-side payment object created for a booking."""

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="payment_intents",
    )
    provider = models.CharField(max_length=16, choices=Provider.choices, default=Provider.STRIPE)
    external_id = models.CharField(max_length=128, unique=True)
    amount_minor = models.PositiveBigIntegerField(help_text=_("Amount in the currency's smallest unit."))
    currency = models.CharField(max_length=3)
    idempotency_key = models.CharField(max_length=128)
    client_secret = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.provider}:{self.external_id}"


class PaymentEvent(models.Model):
    """One gateway callback. `event_id` makes reprocessing a no-op."""

    class Outcome(models.TextChoices):
        APPLIED = "applied", _("Applied")
        IGNORED = "ignored", _("Ignored (not valid for current state)")
        FLAGGED = "flagged", _("Flagged for follow-up")
        UNMATCHED = "unmatched", _("No matching booking")
        UNSUPPORTED = "unsupported", _("Unsupported event type")

    event_id = models.CharField(max_length=255, unique=True)
    provider = models.CharField(max_length=16, choices=Provider.choices)
    type = models.CharField(max_length=64)
    booking_reference = models.CharField(max_length=64, blank=True, db_index=True)
    payload = models.JSONField(default=dict)
    outcome = models.CharField(max_length=16, choices=Outcome.choices, blank=True)
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-received_at"]

    def __str__(self) -> str:
        return f"{self.provider} {self.type} {self.event_id}"
