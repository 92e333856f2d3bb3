"""
Typed pricing configuration.

The `LUXURY_PRICING` setting is a plain dictionary so it can be overridden
per environment. It is parsed once into frozen dataclasses and validated;
any malformed value raises ImproperlyConfigured at startup instead of
producing a wrong price at request time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from shared.domain.value_objects import CURRENCY_MINOR_UNITS

logger = logging.getLogger(__name__)


class ItemCategory(str, Enum):
    CAR = "car"
    YACHT = "yacht"
    JET = "jet"
    PROPERTY = "property"


class ServiceTier(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"
    VVIP = "vvip"


# Allowed multiplier band of each tier, inclusive
TIER_BOUNDS: Dict[ServiceTier, Tuple[Decimal, Decimal]] = {
    ServiceTier.STANDARD: (Decimal("1.0"), Decimal("1.0")),
    ServiceTier.PREMIUM: (Decimal("1.3"), Decimal("1.5")),
    ServiceTier.VVIP: (Decimal("1.8"), Decimal("2.0")),
}

STANDARD_SEASON = "standard"


@dataclass(frozen=True)
class SeasonWindow:
    """
    Yearly recurring window, inclusive on both ends.

    A window whose end precedes its start wraps the new year
    (Dec 15 - Jan 15).
    """
    name: str
    multiplier: Decimal
    start: Tuple[int, int]
    end: Tuple[int, int]

    def contains(self, day: date) -> bool:
        key = (day.month, day.day)
        if self.start <= self.end:
            return self.start <= key <= self.end
        return key >= self.start or key <= self.end


@dataclass(frozen=True)
class LocationRates:
    code: str
    currency: str
    tax_rate: Decimal
    service_fee_rate: Decimal
    tier_overrides: Mapping[ServiceTier, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class CategoryRates:
    category: ItemCategory
    insurance_rate: Decimal
    security_deposit: Decimal
    max_advance_days: int


@dataclass(frozen=True)
class AddOnOption:
    code: str
    name: str
    price: Decimal


@dataclass(frozen=True)
class PricingConfig:
    tiers: Mapping[ServiceTier, Decimal]
    seasons: Tuple[SeasonWindow, ...]
    locations: Mapping[str, LocationRates]
    categories: Mapping[ItemCategory, CategoryRates]
    add_ons: Mapping[str, AddOnOption]

    def season_for(self, day: date) -> Tuple[str, Decimal]:
        for window in self.seasons:
            if window.contains(day):
                return window.name, window.multiplier
        return STANDARD_SEASON, Decimal("1.0")

    def tier_multiplier(self, tier: ServiceTier, location: LocationRates) -> Decimal:
        return location.tier_overrides.get(tier, self.tiers[tier])

    @classmethod
    def from_dict(cls, raw: Mapping) -> "PricingConfig":
        try:
            tiers = _parse_tiers(raw.get("tiers", {}), "tiers")
            missing = set(ServiceTier) - set(tiers)
            if missing:
                raise ImproperlyConfigured(
                    f"LUXURY_PRICING.tiers is missing {sorted(t.value for t in missing)}"
                )

            seasons = tuple(_parse_season(entry) for entry in raw.get("seasons", []))

            locations = {}
            for code, entry in raw.get("locations", {}).items():
                currency = entry["currency"]
                if currency not in CURRENCY_MINOR_UNITS:
                    raise ImproperlyConfigured(f"Location {code}: unsupported currency {currency}")
                locations[code] = LocationRates(
                    code=code,
                    currency=currency,
                    tax_rate=_rate(entry["tax_rate"], f"{code}.tax_rate"),
                    service_fee_rate=_rate(entry["service_fee_rate"], f"{code}.service_fee_rate"),
                    tier_overrides=_parse_tiers(entry.get("tiers", {}), f"{code}.tiers"),
                )

            categories = {}
            for name, entry in raw.get("categories", {}).items():
                category = ItemCategory(name)
                deposit = _decimal(entry["security_deposit"], f"{name}.security_deposit")
                if deposit < 0:
                    raise ImproperlyConfigured(f"{name}.security_deposit cannot be negative")
                categories[category] = CategoryRates(
                    category=category,
                    insurance_rate=_rate(entry["insurance_rate"], f"{name}.insurance_rate"),
                    security_deposit=deposit,
                    max_advance_days=int(entry["max_advance_days"]),
                )
            missing_categories = set(ItemCategory) - set(categories)
            if missing_categories:
                raise ImproperlyConfigured(
                    f"LUXURY_PRICING.categories is missing {sorted(c.value for c in missing_categories)}"
                )

            add_ons = {}
            for code, entry in raw.get("add_ons", {}).items():
                price = _decimal(entry["price"], f"add_ons.{code}.price")
                if price < 0:
                    raise ImproperlyConfigured(f"Add-on {code} cannot have a negative price")
                add_ons[code] = AddOnOption(code=code, name=entry.get("name", code), price=price)
        except (KeyError, TypeError, ValueError) as e:
            raise ImproperlyConfigured(f"Invalid LUXURY_PRICING configuration: {e}") from e

        if not locations:
            raise ImproperlyConfigured("LUXURY_PRICING must define at least one location")

        return cls(
            tiers=tiers,
            seasons=seasons,
            locations=locations,
            categories=categories,
            add_ons=add_ons,
        )


def _decimal(value, path: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ImproperlyConfigured(f"{path}: {value!r} is not a number") from e


def _rate(value, path: str) -> Decimal:
    rate = _decimal(value, path)
    if not Decimal("0") <= rate < Decimal("1"):
        raise ImproperlyConfigured(f"{path}: rate {rate} must be within [0, 1)")
    return rate


def _parse_tiers(raw: Mapping, path: str) -> Dict[ServiceTier, Decimal]:
    tiers = {}
    for name, value in raw.items():
        tier = ServiceTier(name)
        multiplier = _decimal(value, f"{path}.{name}")
        low, high = TIER_BOUNDS[tier]
        if not low <= multiplier <= high:
            raise ImproperlyConfigured(
                f"{path}.{name}: multiplier {multiplier} outside {low}-{high}"
            )
        tiers[tier] = multiplier
    return tiers


def _parse_season(entry: Mapping) -> SeasonWindow:
    name = entry["name"]
    start = tuple(entry["start"])
    end = tuple(entry["end"])
    # 2000 is a leap year, so Feb 29 is accepted
    date(2000, *start)
    date(2000, *end)
    multiplier = _decimal(entry["multiplier"], f"seasons.{name}.multiplier")
    if multiplier <= 0:
        raise ImproperlyConfigured(f"seasons.{name}: multiplier must be positive")
    return SeasonWindow(name=name, multiplier=multiplier, start=start, end=end)


_config: Optional[PricingConfig] = None


def get_pricing_config() -> PricingConfig:
    global _config
    if _config is None:
        _config = PricingConfig.from_dict(settings.LUXURY_PRICING)
        logger.debug(
            f"Loaded pricing configuration: {len(_config.locations)} locations, "
            f"{len(_config.add_ons)} add-ons"
        )
    return _config


def reset_pricing_config(*args, setting=None, **kwargs) -> None:
    """Drop the parsed tables; connected to `setting_changed` for tests."""
    global _config
    if setting in (None, "LUXURY_PRICING"):
        _config = None
