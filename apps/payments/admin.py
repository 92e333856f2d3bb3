"""Admin registration for payment intents and gateway events."""

from __future__ import annotations

from django.contrib import admin

from .models import PaymentEvent, PaymentIntent


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    list_display = ("external_id", "booking", "provider", "amount_minor", "currency", "status", "created_at")
    list_filter = ("provider", "status")
    search_fields = ("external_id", "booking__reference")
    readonly_fields = ("client_secret", "idempotency_key", "created_at", "updated_at")


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
    list_display = ("event_id", "provider", "type", "booking_reference", "outcome", "received_at", "processed_at")
    list_filter = ("provider", "outcome", "type")
    search_fields = ("event_id", "booking_reference")
    readonly_fields = ("payload", "received_at", "processed_at")
