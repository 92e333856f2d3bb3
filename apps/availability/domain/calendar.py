"""
Item Calendar Aggregate

The consistency boundary for one item's dates. Every hold and allocation
goes through `check()` while the item row is locked, so this is the single
place where the no-overlap rule is decided.

Rules, in the order they are applied:
1. Blackout periods (reported with their reason)
2. Minimum rental length of the item
3. Maximum advance booking window of the item category
4. Overlap with active holds and allocations

All ranges are half-open: a booking ending on the 5th and one starting on
the 5th do not collide.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from shared.domain.value_objects import DateRange

BLACKOUT_PERIOD = "BLACKOUT_PERIOD"
MINIMUM_RENTAL_NOT_MET = "MINIMUM_RENTAL_NOT_MET"
ADVANCE_LIMIT_EXCEEDED = "ADVANCE_LIMIT_EXCEEDED"
BOOKING_CONFLICT = "BOOKING_CONFLICT"
ITEM_NOT_FOUND = "ITEM_NOT_FOUND"


@dataclass(frozen=True)
class Blackout:
    dates: DateRange
    reason: str = ""


@dataclass(frozen=True)
class CalendarEntry:
    """Hold or allocation occupying a range"""
    reference: str
    dates: DateRange
    kind: str  # "hold" | "allocation"
    expires_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


@dataclass
class AvailabilityResult:
    available: bool
    conflicts: List[dict] = field(default_factory=list)
    blackout_reason: Optional[str] = None
    reason_code: Optional[str] = None
    message: str = ""
    calendar_version: Optional[int] = None

    def to_dict(self) -> dict:
        data = {"available": self.available, "conflicts": self.conflicts}
        if self.blackout_reason is not None:
            data["blackoutReason"] = self.blackout_reason
        if self.reason_code:
            data["reason"] = self.reason_code
        if self.message:
            data["message"] = self.message
        if self.calendar_version is not None:
            data["calendarVersion"] = self.calendar_version
        return data


@dataclass
class ItemCalendar:
    """
    Calendar of a single item

    Built by the repository with the blackouts, holds and allocations that
    intersect the period being examined.
    """

    item_id: str
    version: int = 0
    minimum_rental_days: int = 1
    max_advance_days: Optional[int] = None
    blackouts: List[Blackout] = field(default_factory=list)
    entries: List[CalendarEntry] = field(default_factory=list)

    def check(
        self,
        dates: DateRange,
        *,
        today: date,
        now: datetime,
        exclude_reference: Optional[str] = None,
    ) -> AvailabilityResult:
        for blackout in self.blackouts:
            if blackout.dates.overlaps_with(dates):
                return AvailabilityResult(
                    available=False,
                    blackout_reason=blackout.reason or "Unavailable",
                    reason_code=BLACKOUT_PERIOD,
                    message=f"Item is unavailable {blackout.dates}: {blackout.reason or 'blackout period'}",
                    calendar_version=self.version,
                )

        if len(dates) < self.minimum_rental_days:
            return AvailabilityResult(
                available=False,
                reason_code=MINIMUM_RENTAL_NOT_MET,
                message=f"Minimum rental period is {self.minimum_rental_days} days",
                calendar_version=self.version,
            )

        if self.max_advance_days is not None and (dates.start_date - today).days > self.max_advance_days:
            return AvailabilityResult(
                available=False,
                reason_code=ADVANCE_LIMIT_EXCEEDED,
                message=f"Bookings open at most {self.max_advance_days} days in advance",
                calendar_version=self.version,
            )

        conflicts = [
            {
                "startDate": entry.dates.start_date.isoformat(),
                "endDate": entry.dates.end_date.isoformat(),
                "type": entry.kind,
            }
            for entry in self.occupying(dates, now=now, exclude_reference=exclude_reference)
        ]
        if conflicts:
            return AvailabilityResult(
                available=False,
                conflicts=conflicts,
                reason_code=BOOKING_CONFLICT,
                message="Item is already reserved for part of the requested period",
                calendar_version=self.version,
            )

        return AvailabilityResult(available=True, calendar_version=self.version)

    def occupying(
        self,
        dates: DateRange,
        *,
        now: datetime,
        exclude_reference: Optional[str] = None,
    ) -> List[CalendarEntry]:
        """Active entries overlapping `dates`; expired holds never block."""
        return [
            entry
            for entry in self.entries
            if entry.reference != exclude_reference
            and entry.is_active(now)
            and entry.dates.overlaps_with(dates)
        ]
