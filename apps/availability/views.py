"""API views for the availability calendar."""

from __future__ import annotations

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from . import services
from .serializers import (
    AvailabilityCheckSerializer,
    DateRangeSerializer,
    MultipleAvailabilitySerializer,
)


class AvailabilityCheckView(APIView):
    """POST {itemId, startDate, endDate} -> availability of one item."""

    def post(self, request):  # type: ignore
        serializer = AvailabilityCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = services.check_availability(data["itemId"], data["startDate"], data["endDate"])
        return Response(result.to_dict(), status=status.HTTP_200_OK)


class MultipleAvailabilityView(APIView):
    """POST {itemIds, startDate, endDate} -> availability keyed by item."""

    def post(self, request):  # type: ignore
        serializer = MultipleAvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        results = services.check_multiple(data["itemIds"], data["startDate"], data["endDate"])
        return Response(
            {"results": {item_id: result.to_dict() for item_id, result in results.items()}},
            status=status.HTTP_200_OK,
        )


class ItemCalendarView(APIView):
    """GET ?startDate=&endDate= -> blackouts and reserved ranges of an item."""

    def get(self, request, item_id: str):  # type: ignore
        serializer = DateRangeSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return Response(services.get_calendar(item_id, data["startDate"], data["endDate"]))
