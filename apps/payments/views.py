"""Gateway callback endpoints."""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.permissions import AllowAny  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from .gateway import PayPalIPNVerifier, StripeGateway
from .processor import payment_event_processor

logger = logging.getLogger(__name__)


class GatewayCallbackView(APIView):
    """Callbacks authenticate by signature or verification, never by session."""

    authentication_classes: list = []
    permission_classes = [AllowAny]

    def acknowledge(self, event, **extra) -> Response:
        outcome = payment_event_processor.process(event)
        body = {"received": True, **extra, "outcome": str(outcome)}
        return Response(body, status=status.HTTP_200_OK)


class StripeWebhookView(GatewayCallbackView):
    """POST raw Stripe event; the Stripe-Signature header is mandatory."""

    def post(self, request):  # type: ignore
        payload = request.body
        signature = request.META.get("HTTP_STRIPE_SIGNATURE", "")
        event = StripeGateway().parse_webhook(payload, signature)
        logger.info(f"Stripe webhook {event.event_id} ({event.type}) verified")
        return self.acknowledge(event)


class PayPalIPNView(GatewayCallbackView):
    """POST form-encoded IPN message, verified with PayPal before use."""

    def post(self, request):  # type: ignore
        payload = request.body
        verifier = PayPalIPNVerifier()
        verifier.verify(payload)
        event = verifier.parse(payload)
        logger.info(f"PayPal IPN {event.event_id} verified")
        return self.acknowledge(event, verified=True)
