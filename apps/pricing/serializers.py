"""Request serializers for the pricing API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.availability.serializers import AvailabilityCheckSerializer


class QuoteSerializer(AvailabilityCheckSerializer):
    location = serializers.CharField(max_length=64)
    serviceTier = serializers.CharField(max_length=16, default="standard")
    addOns = serializers.ListField(child=serializers.CharField(max_length=64), required=False, default=list)
