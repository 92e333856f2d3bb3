"""Calendar models: inventory items, blackouts, holds and allocations."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.pricing.config import ItemCategory


class InventoryItem(models.Model):
    """Rentable car, yacht, jet or property.

    Catalogue data is owned by the inventory service; the booking core only
    advances `calendar_version` whenever the item's calendar changes.
    """

    class Category(models.TextChoices):
        CAR = ItemCategory.CAR.value, _("Car")
        YACHT = ItemCategory.YACHT.value, _("Yacht")
        JET = ItemCategory.JET.value, _("Jet")
        PROPERTY = ItemCategory.PROPERTY.value, _("Property")

    id = models.SlugField(primary_key=True, max_length=64)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=16, choices=Category.choices)
    base_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("Daily rate in the currency of the rental location."),
    )
    supported_locations = models.JSONField(default=list, blank=True)
    minimum_rental_days = models.PositiveSmallIntegerField(default=1)
    is_active = models.BooleanField(default=True)
    calendar_version = models.PositiveIntegerField(default=0, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Inventory item")
        verbose_name_plural = _("Inventory items")
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.category})"

    def supports_location(self, location: str) -> bool:
        return location in (self.supported_locations or [])


class BlackoutPeriod(models.Model):
    """Dates an item cannot be rented at all (maintenance, owner use)."""

    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name="blackouts")
    start_date = models.DateField()
    end_date = models.DateField(help_text=_("Exclusive."))
    reason = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["start_date"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(end_date__gt=models.F("start_date")),
                name="blackout_valid_dates",
            ),
        ]
        indexes = [models.Index(fields=["item", "start_date", "end_date"], name="blackout_item_dates_idx")]

    def __str__(self) -> str:
        return f"Blackout {self.item_id} {self.start_date} - {self.end_date}"


class Hold(models.Model):
    """Temporary claim on a date range while a booking awaits payment."""

    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name="holds")
    booking_reference = models.CharField(max_length=64, unique=True)
    start_date = models.DateField()
    end_date = models.DateField(help_text=_("Exclusive."))
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["start_date"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(end_date__gt=models.F("start_date")),
                name="hold_valid_dates",
            ),
        ]
        indexes = [models.Index(fields=["item", "start_date", "end_date"], name="hold_item_dates_idx")]

    def __str__(self) -> str:
        return f"Hold {self.booking_reference} on {self.item_id}"

    def is_expired(self, now=None) -> bool:
        return self.expires_at <= (now or timezone.now())


class Allocation(models.Model):
    """Dates taken by a paid booking."""

    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name="allocations")
    booking_reference = models.CharField(max_length=64, unique=True)
    start_date = models.DateField()
    end_date = models.DateField(help_text=_("Exclusive."))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["start_date"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(end_date__gt=models.F("start_date")),
                name="allocation_valid_dates",
            ),
        ]
        indexes = [models.Index(fields=["item", "start_date", "end_date"], name="allocation_item_dates_idx")]

    def __str__(self) -> str:
        return f"Allocation {self.booking_reference} on {self.item_id}"
