"""Request serializers for the availability API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore


class DateRangeSerializer(serializers.Serializer):
    startDate = serializers.DateField()
    endDate = serializers.DateField()

    def validate(self, attrs):  # type: ignore
        if attrs["startDate"] >= attrs["endDate"]:
            raise serializers.ValidationError({"endDate": "End date must be after start date."})
        return attrs


class AvailabilityCheckSerializer(DateRangeSerializer):
    itemId = serializers.CharField(max_length=64)


class MultipleAvailabilitySerializer(DateRangeSerializer):
    itemIds = serializers.ListField(
        child=serializers.CharField(max_length=64),
        allow_empty=False,
        max_length=50,
    )
