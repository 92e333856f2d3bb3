"""URL routing for gateway callbacks."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import PayPalIPNView, StripeWebhookView

urlpatterns = [
    path("webhooks/payment", StripeWebhookView.as_view(), name="payment-webhook"),
    path("ipn/payment", PayPalIPNView.as_view(), name="payment-ipn"),
]
