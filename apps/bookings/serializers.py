"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Booking, BookingStatusChange


class ReserveBookingSerializer(serializers.Serializer):
    """
    Shape of a reservation request.

    Fields are deliberately lax: presence, date and email checks run in the
    reservation handler so errors come back in a fixed order.
    """

    itemId = serializers.CharField(required=False, allow_blank=True, default="")
    startDate = serializers.CharField(required=False, allow_blank=True, default="")
    endDate = serializers.CharField(required=False, allow_blank=True, default="")
    customerName = serializers.CharField(required=False, allow_blank=True, default="")
    customerEmail = serializers.CharField(required=False, allow_blank=True, default="")
    customerPhone = serializers.CharField(required=False, allow_blank=True, default="")
    location = serializers.CharField(required=False, allow_blank=True, default="")
    serviceTier = serializers.CharField(required=False, allow_blank=True, default="standard")
    addOns = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    calendarVersion = serializers.IntegerField(required=False, allow_null=True, default=None, min_value=0)


class BookingStatusChangeSerializer(serializers.ModelSerializer):
    fromStatus = serializers.CharField(source="from_status")
    toStatus = serializers.CharField(source="to_status")
    at = serializers.DateTimeField(source="created_at")

    class Meta:
        model = BookingStatusChange
        fields = ["fromStatus", "toStatus", "source", "reason", "at"]


class BookingSerializer(serializers.ModelSerializer):
    """Read-only view of a booking for the customer and staff."""

    bookingId = serializers.CharField(source="reference")
    itemId = serializers.CharField(source="item_id")
    startDate = serializers.DateField(source="start_date")
    endDate = serializers.DateField(source="end_date")
    customerName = serializers.CharField(source="customer_name")
    serviceTier = serializers.CharField(source="service_tier")
    addOns = serializers.JSONField(source="add_ons")
    isDisputed = serializers.BooleanField(source="is_disputed")
    requiresFollowUp = serializers.BooleanField(source="requires_follow_up")
    holdExpiresAt = serializers.DateTimeField(source="hold_expires_at")
    cancellationReason = serializers.CharField(source="cancellation_reason")
    createdAt = serializers.DateTimeField(source="created_at")
    updatedAt = serializers.DateTimeField(source="updated_at")
    history = BookingStatusChangeSerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = [
            "bookingId",
            "itemId",
            "startDate",
            "endDate",
            "customerName",
            "location",
            "serviceTier",
            "addOns",
            "status",
            "isDisputed",
            "requiresFollowUp",
            "holdExpiresAt",
            "cancellationReason",
            "pricing",
            "createdAt",
            "updatedAt",
            "history",
        ]
        read_only_fields = fields


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="cancelled_by_staff", max_length=255)
