"""
Luxury Pricing Engine

Pure function of its inputs: identical arguments always produce an identical
breakdown, so a quote shown to the customer is exactly what gets frozen on
the booking.

    days          = nights between start and end (at least 1)
    adjusted_base = base_price * tier * season(start)
    subtotal      = adjusted_base * days
    insurance     = subtotal * category insurance rate
    add_ons       = sum(add_on.price * days)
    service_fee   = (subtotal + insurance + add_ons) * location fee rate
    taxes         = (subtotal + insurance + add_ons + service_fee) * location tax rate
    total         = subtotal + insurance + add_ons + service_fee + taxes + deposit

Each additive stage is rounded half-up to the currency minor unit before it
feeds the next one.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from shared.domain.exceptions import ValidationError
from shared.domain.value_objects import DateRange, Money

from .config import ItemCategory, PricingConfig, ServiceTier, get_pricing_config


@dataclass(frozen=True)
class AddOnLine:
    code: str
    name: str
    unit_price: Money
    amount: Money


@dataclass(frozen=True)
class PriceBreakdown:
    currency: str
    location: str
    category: str
    days: int
    base_price: Money
    tier: str
    tier_multiplier: Decimal
    season: str
    seasonal_multiplier: Decimal
    adjusted_base: Money
    subtotal: Money
    insurance: Money
    add_ons: Tuple[AddOnLine, ...]
    add_ons_cost: Money
    service_fee: Money
    taxes: Money
    security_deposit: Money
    total: Money

    def to_dict(self) -> dict:
        """JSON-safe representation; money is rendered as fixed-point strings."""
        return {
            "currency": self.currency,
            "location": self.location,
            "category": self.category,
            "days": self.days,
            "basePrice": _fmt(self.base_price),
            "serviceTier": self.tier,
            "tierMultiplier": str(self.tier_multiplier),
            "season": self.season,
            "seasonalMultiplier": str(self.seasonal_multiplier),
            "adjustedBase": _fmt(self.adjusted_base),
            "subtotal": _fmt(self.subtotal),
            "insurance": _fmt(self.insurance),
            "addOns": [
                {
                    "code": line.code,
                    "name": line.name,
                    "unitPrice": _fmt(line.unit_price),
                    "amount": _fmt(line.amount),
                }
                for line in self.add_ons
            ],
            "addOnsCost": _fmt(self.add_ons_cost),
            "serviceFee": _fmt(self.service_fee),
            "taxes": _fmt(self.taxes),
            "securityDeposit": _fmt(self.security_deposit),
            "total": _fmt(self.total),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


def _fmt(money: Money) -> str:
    return str(money.quantize().amount)


def resolve_tier(value) -> ServiceTier:
    try:
        return ServiceTier(value)
    except ValueError:
        raise ValidationError(f"Unknown service tier: {value}", field="serviceTier")


def price(
    item,
    start: date,
    end: date,
    location: str,
    tier,
    add_ons: Optional[Iterable[str]] = None,
    config: Optional[PricingConfig] = None,
) -> PriceBreakdown:
    """
    Price a rental of `item` for the half-open range [start, end).

    `item` needs `category` and `base_price`; `add_ons` are catalog codes.
    Raises ValidationError for unknown locations, tiers, categories or
    add-ons and for empty ranges.
    """
    config = config or get_pricing_config()

    try:
        dates = DateRange(start, end)
    except ValueError as e:
        raise ValidationError(str(e), field="endDate")

    location_rates = config.locations.get(location)
    if location_rates is None:
        raise ValidationError(f"Unsupported location: {location}", field="location")

    try:
        category = ItemCategory(item.category)
    except ValueError:
        raise ValidationError(f"Unknown item category: {item.category}", field="itemId")
    category_rates = config.categories[category]

    service_tier = tier if isinstance(tier, ServiceTier) else resolve_tier(tier)

    currency = location_rates.currency
    days = max(len(dates), 1)

    tier_multiplier = config.tier_multiplier(service_tier, location_rates)
    season, seasonal_multiplier = config.season_for(start)

    base_price = Money(Decimal(str(item.base_price)), currency)
    adjusted_base = Money(base_price.amount * tier_multiplier * seasonal_multiplier, currency)
    subtotal = (adjusted_base * days).quantize()

    insurance = Money(subtotal.amount * category_rates.insurance_rate, currency).quantize()

    lines: List[AddOnLine] = []
    for code in add_ons or []:
        option = config.add_ons.get(code)
        if option is None:
            raise ValidationError(f"Unknown add-on: {code}", field="addOns")
        unit_price = Money(option.price, currency)
        lines.append(
            AddOnLine(
                code=option.code,
                name=option.name,
                unit_price=unit_price,
                amount=(unit_price * days).quantize(),
            )
        )
    add_ons_cost = sum((line.amount for line in lines), Money.zero(currency)).quantize()

    fee_base = subtotal + insurance + add_ons_cost
    service_fee = Money(fee_base.amount * location_rates.service_fee_rate, currency).quantize()

    taxable = fee_base + service_fee
    taxes = Money(taxable.amount * location_rates.tax_rate, currency).quantize()

    security_deposit = Money(category_rates.security_deposit, currency).quantize()
    total = (taxable + taxes + security_deposit).quantize()

    return PriceBreakdown(
        currency=currency,
        location=location,
        category=category.value,
        days=days,
        base_price=base_price.quantize(),
        tier=service_tier.value,
        tier_multiplier=tier_multiplier,
        season=season,
        seasonal_multiplier=seasonal_multiplier,
        adjusted_base=adjusted_base.quantize(),
        subtotal=subtotal,
        insurance=insurance,
        add_ons=tuple(lines),
        add_ons_cost=add_ons_cost,
        service_fee=service_fee,
        taxes=taxes,
        security_deposit=security_deposit,
        total=total,
    )
