"""API views for the booking domain."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.infrastructure.ratelimit import check_rate_limit, client_identity

from .application.command_handlers import (
    CancelBookingCommand,
    CancelBookingHandler,
    RefundBookingCommand,
    RefundBookingHandler,
    ReserveBookingCommand,
    ReserveBookingHandler,
)
from .models import Booking
from .serializers import BookingSerializer, CancelBookingSerializer, ReserveBookingSerializer


class BookingViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Reserve and look up bookings.

    The booking reference is the customer's handle on a booking; cancelling
    and refunding are staff actions.
    """

    queryset = Booking.objects.select_related("item").prefetch_related("history")
    serializer_class = BookingSerializer
    permission_classes = [permissions.AllowAny]
    lookup_field = "reference"
    lookup_value_regex = "[A-Za-z0-9-]+"

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return ReserveBookingSerializer
        if self.action == "cancel":
            return CancelBookingSerializer
        return BookingSerializer

    def create(self, request, *args, **kwargs):  # type: ignore
        check_rate_limit(request, group="bookings.reserve")

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        command = ReserveBookingCommand(
            item_id=data["itemId"],
            start_date=data["startDate"],
            end_date=data["endDate"],
            customer_name=data["customerName"],
            customer_email=data["customerEmail"],
            customer_phone=data["customerPhone"],
            location=data["location"],
            service_tier=data["serviceTier"] or "standard",
            add_ons=data["addOns"],
            client_token=request.headers.get("Idempotency-Key") or None,
            client_identity=client_identity(request),
            expected_version=data["calendarVersion"],
        )
        result = ReserveBookingHandler().handle(command)
        response = Response(result.to_dict(), status=status.HTTP_200_OK)
        if result.replayed:
            response["Idempotent-Replayed"] = "true"
        return response

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def cancel(self, request, reference=None):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = CancelBookingHandler().handle(
            CancelBookingCommand(
                reference=reference,
                reason=serializer.validated_data["reason"] or "cancelled_by_staff",
                source=f"staff:{request.user.get_username()}",
            )
        )
        return Response({"bookingId": booking.reference, "status": booking.status})

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def refund(self, request, reference=None):  # type: ignore
        refund_id = RefundBookingHandler().handle(
            RefundBookingCommand(reference=reference, source=f"staff:{request.user.get_username()}")
        )
        return Response(
            {"bookingId": reference, "refundId": refund_id, "status": "refund-requested"},
            status=status.HTTP_202_ACCEPTED,
        )
