"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, BookingStatusChange


class BookingStatusChangeInline(admin.TabularInline):
    model = BookingStatusChange
    extra = 0
    can_delete = False
    readonly_fields = ("from_status", "to_status", "source", "reason", "created_at")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "reference",
        "item",
        "customer_name",
        "status",
        "is_disputed",
        "requires_follow_up",
        "start_date",
        "end_date",
        "total_amount",
        "currency",
        "created_at",
    )
    list_filter = ("status", "is_disputed", "requires_follow_up", "service_tier", "location")
    search_fields = ("reference", "item__name", "customer_email", "payment_intent_ref")
    readonly_fields = (
        "reference",
        "pricing",
        "total_amount",
        "currency",
        "payment_intent_ref",
        "client_token",
        "client_identity",
        "created_at",
        "updated_at",
    )
    inlines = [BookingStatusChangeInline]

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False
