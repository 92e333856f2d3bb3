"""
Shared kernel for the booking core.

Domain base classes, value objects and the error taxonomy, the unit of work
and message bus that carry domain events between apps, and the small
infrastructure helpers (locking, rate limiting, API error rendering) every
app uses.
"""
