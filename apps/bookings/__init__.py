"""Bookings app package.

Orchestrates reservations: validates the request, prices it, places a
calendar hold and opens a payment intent. Payment events and staff actions
then move the booking through its lifecycle; every transition is appended
to the booking's history.
"""
