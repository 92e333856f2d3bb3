"""Payments app package.

Creates payment intents at the gateway and reconciles the gateway's
asynchronous callbacks (Stripe webhooks, PayPal IPN) with booking state.
Callbacks are verified before anything else, recorded once per gateway
event id, and applied to the booking under a row lock so duplicates and
out-of-order deliveries are harmless.
"""
