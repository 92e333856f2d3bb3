"""
Payment gateway adapters.

StripeGateway creates, cancels and refunds payment intents and verifies
webhook signatures. PayPalIPNVerifier performs the IPN verification
round-trip. Both turn gateway payloads into GatewayEvent so the processor
never sees provider-specific shapes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl

import requests
import stripe
from django.conf import settings

from shared.domain.exceptions import GatewayError, VerificationError

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    DISPUTE = "dispute"
    UNSUPPORTED = "unsupported"


STRIPE_EVENT_KINDS = {
    "payment_intent.processing": EventKind.PROCESSING,
    "payment_intent.succeeded": EventKind.SUCCEEDED,
    "payment_intent.payment_failed": EventKind.FAILED,
    "payment_intent.canceled": EventKind.FAILED,
    "charge.refunded": EventKind.REFUNDED,
    "refund.created": EventKind.REFUNDED,
    "charge.dispute.created": EventKind.DISPUTE,
}

PAYPAL_STATUS_KINDS = {
    "Completed": EventKind.SUCCEEDED,
    "Pending": EventKind.PROCESSING,
    "Failed": EventKind.FAILED,
    "Denied": EventKind.FAILED,
    "Expired": EventKind.FAILED,
    "Voided": EventKind.FAILED,
    "Refunded": EventKind.REFUNDED,
    "Reversed": EventKind.DISPUTE,
}


@dataclass(frozen=True)
class IntentResult:
    id: str
    client_secret: str
    status: str


@dataclass(frozen=True)
class GatewayEvent:
    """Provider-neutral view of a verified gateway callback"""
    event_id: str
    provider: str
    type: str
    kind: EventKind
    booking_reference: str = ""
    payment_intent_id: str = ""
    object_id: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)


class StripeGateway:
    """Thin wrapper over the stripe SDK with bounded network calls."""

    def __init__(self, api_key=None, webhook_secret=None, timeout=None, max_retries=None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.timeout = timeout or settings.STRIPE_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.STRIPE_MAX_NETWORK_RETRIES

    def _configure(self) -> None:
        if not self.api_key:
            raise GatewayError("Stripe secret key not configured")
        stripe.api_key = self.api_key
        stripe.max_network_retries = self.max_retries
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    def create_payment_intent(
        self,
        *,
        amount_minor: int,
        currency: str,
        booking_reference: str,
        receipt_email: str = "",
        metadata: Optional[Mapping[str, str]] = None,
    ) -> IntentResult:
        """
        Create the intent, keyed by the booking reference.

        Retrying with the same reference returns the intent Stripe already
        created instead of charging twice.
        """
        self._configure()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_minor,
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                receipt_email=receipt_email or None,
                metadata={"bookingId": booking_reference, **(metadata or {})},
                idempotency_key=booking_reference,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe intent creation failed for {booking_reference}: {e}")
            raise GatewayError("Payment provider unavailable") from e

        logger.info(f"Created payment intent {intent['id']} for {booking_reference}")
        return IntentResult(
            id=intent["id"],
            client_secret=intent["client_secret"],
            status=intent["status"],
        )

    def cancel_payment_intent(self, intent_id: str) -> bool:
        """Best effort: a failure is logged and reported as False."""
        if not intent_id:
            return False
        try:
            self._configure()
            stripe.PaymentIntent.cancel(intent_id)
        except (stripe.StripeError, GatewayError) as e:
            logger.warning(f"Could not cancel payment intent {intent_id}: {e}")
            return False
        logger.info(f"Cancelled payment intent {intent_id}")
        return True

    def refund(self, intent_id: str, *, idempotency_key: str) -> str:
        self._configure()
        try:
            refund = stripe.Refund.create(payment_intent=intent_id, idempotency_key=idempotency_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {intent_id}: {e}")
            raise GatewayError("Refund could not be requested from the payment provider") from e
        logger.info(f"Requested refund {refund['id']} for {intent_id}")
        return refund["id"]

    def parse_webhook(self, payload: bytes, signature: str) -> GatewayEvent:
        """Verify the Stripe-Signature header and normalise the event."""
        if not self.webhook_secret:
            raise VerificationError("Webhook secret not configured")
        if not signature:
            raise VerificationError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise VerificationError("Invalid webhook signature") from e
        except ValueError as e:
            raise VerificationError("Malformed webhook payload") from e

        return normalise_stripe_event(json.loads(payload))


def normalise_stripe_event(event: Mapping[str, Any]) -> GatewayEvent:
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}

    if event_type.startswith("payment_intent."):
        intent_id = obj.get("id", "")
    else:
        intent_id = obj.get("payment_intent") or ""

    return GatewayEvent(
        event_id=event["id"],
        provider="stripe",
        type=event_type,
        kind=STRIPE_EVENT_KINDS.get(event_type, EventKind.UNSUPPORTED),
        booking_reference=metadata.get("bookingId", ""),
        payment_intent_id=intent_id,
        object_id=obj.get("id", ""),
        payload=dict(event),
    )


class PayPalIPNVerifier:
    """IPN messages are trusted only after PayPal echoes them back as VERIFIED."""

    def __init__(self, verify_url=None, timeout=None):
        self.verify_url = verify_url or settings.PAYPAL_IPN_VERIFY_URL
        self.timeout = timeout or settings.PAYPAL_TIMEOUT_SECONDS

    def verify(self, raw_body: bytes) -> None:
        try:
            response = requests.post(
                self.verify_url,
                data=b"cmd=_notify-validate&" + raw_body,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "User-Agent": "luxury-rental-ipn-verifier",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"PayPal IPN verification request failed: {e}")
            raise VerificationError("IPN could not be verified") from e

        answer = response.text.strip()
        if answer != "VERIFIED":
            raise VerificationError(f"IPN verification answered {answer or 'nothing'}")

    def parse(self, raw_body: bytes) -> GatewayEvent:
        form = dict(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
        txn_id = form.get("txn_id", "")
        payment_status = form.get("payment_status", "")
        if not txn_id:
            raise VerificationError("IPN message has no txn_id")

        return GatewayEvent(
            event_id=f"paypal:{txn_id}:{payment_status}",
            provider="paypal",
            type=payment_status or "unknown",
            kind=PAYPAL_STATUS_KINDS.get(payment_status, EventKind.UNSUPPORTED),
            booking_reference=form.get("custom", ""),
            payment_intent_id=form.get("parent_txn_id") or txn_id,
            object_id=txn_id,
            payload=form,
        )
