"""API views for price quotes."""

from __future__ import annotations

from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.availability.services import get_item
from shared.domain.exceptions import ValidationError

from . import engine
from .serializers import QuoteSerializer


class QuoteView(APIView):
    """POST {itemId, startDate, endDate, location, serviceTier, addOns} -> price breakdown."""

    def post(self, request):  # type: ignore
        serializer = QuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        item = get_item(data["itemId"])
        if not item.supports_location(data["location"]):
            raise ValidationError(f"{item.name} is not offered in {data['location']}", field="location")

        breakdown = engine.price(
            item,
            data["startDate"],
            data["endDate"],
            data["location"],
            data["serviceTier"],
            data["addOns"],
        )
        return Response({"itemId": item.pk, "pricing": breakdown.to_dict()})
