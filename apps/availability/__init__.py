"""Availability app package.

Owns the calendar of every rentable item: blackout periods, temporary holds
placed while a customer pays, and allocations of confirmed bookings. All
writes for one item are serialised through a row lock on the item and a
compare-and-swap on its calendar version, so two overlapping reservations
can never both succeed.
"""
