"""Pricing app package.

Computes the customer-facing price of a rental: tier and seasonal
multipliers, insurance, add-ons, service fee, taxes and security deposit,
from typed tables validated when the project starts.
"""
