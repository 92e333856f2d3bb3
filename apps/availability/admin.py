"""Admin registration for the availability calendar."""

from __future__ import annotations

from django.contrib import admin

from .models import Allocation, BlackoutPeriod, Hold, InventoryItem


class BlackoutPeriodInline(admin.TabularInline):
    model = BlackoutPeriod
    extra = 0


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "category", "base_price", "minimum_rental_days", "is_active")
    list_filter = ("category", "is_active")
    search_fields = ("id", "name")
    readonly_fields = ("calendar_version", "created_at", "updated_at")
    inlines = [BlackoutPeriodInline]


@admin.register(Hold)
class HoldAdmin(admin.ModelAdmin):
    list_display = ("booking_reference", "item", "start_date", "end_date", "expires_at")
    search_fields = ("booking_reference", "item__name")
    list_filter = ("start_date",)


@admin.register(Allocation)
class AllocationAdmin(admin.ModelAdmin):
    list_display = ("booking_reference", "item", "start_date", "end_date", "created_at")
    search_fields = ("booking_reference", "item__name")
