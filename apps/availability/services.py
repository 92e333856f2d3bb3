"""Calendar services: availability checks, holds and allocations."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import F, Q  # type: ignore
from django.utils import timezone  # type: ignore

from apps.pricing.config import ItemCategory, get_pricing_config
from shared.domain.exceptions import ConflictError, NotFoundError, ValidationError
from shared.domain.value_objects import DateRange
from shared.infrastructure.locking import lock_queryset_if_possible

from .domain.calendar import (
    BLACKOUT_PERIOD,
    BOOKING_CONFLICT,
    ITEM_NOT_FOUND,
    AvailabilityResult,
    Blackout,
    CalendarEntry,
    ItemCalendar,
)
from .models import Allocation, BlackoutPeriod, Hold, InventoryItem

logger = logging.getLogger(__name__)


def make_range(start: date, end: date) -> DateRange:
    try:
        return DateRange(start, end)
    except ValueError:
        raise ValidationError("End date must be after start date", field="endDate")


def get_item(item_id: str, *, lock: bool = False) -> InventoryItem:
    queryset = InventoryItem.objects.filter(pk=item_id, is_active=True)
    if lock:
        queryset = lock_queryset_if_possible(queryset)
    item = queryset.first()
    if item is None:
        raise NotFoundError(f"Item {item_id} not found", itemId=item_id)
    return item


def load_calendar(item: InventoryItem, dates: DateRange) -> ItemCalendar:
    """Build the calendar aggregate with everything intersecting `dates`."""

    overlap = Q(start_date__lt=dates.end_date) & Q(end_date__gt=dates.start_date)

    blackouts = [
        Blackout(DateRange(b.start_date, b.end_date), b.reason)
        for b in BlackoutPeriod.objects.filter(overlap, item=item)
    ]
    entries = [
        CalendarEntry(h.booking_reference, DateRange(h.start_date, h.end_date), "hold", h.expires_at)
        for h in Hold.objects.filter(overlap, item=item)
    ]
    entries += [
        CalendarEntry(a.booking_reference, DateRange(a.start_date, a.end_date), "allocation")
        for a in Allocation.objects.filter(overlap, item=item)
    ]

    category_rates = get_pricing_config().categories.get(ItemCategory(item.category))
    return ItemCalendar(
        item_id=item.pk,
        version=item.calendar_version,
        minimum_rental_days=item.minimum_rental_days,
        max_advance_days=category_rates.max_advance_days if category_rates else None,
        blackouts=blackouts,
        entries=entries,
    )


def check_availability(
    item_id: str,
    start: date,
    end: date,
    *,
    exclude_reference: Optional[str] = None,
    today: Optional[date] = None,
) -> AvailabilityResult:
    """Read-only availability check for one item."""

    dates = make_range(start, end)
    try:
        item = get_item(item_id)
    except NotFoundError:
        return AvailabilityResult(
            available=False,
            reason_code=ITEM_NOT_FOUND,
            message=f"Item {item_id} not found",
        )

    now = timezone.now()
    calendar = load_calendar(item, dates)
    return calendar.check(
        dates,
        today=today or timezone.localdate(),
        now=now,
        exclude_reference=exclude_reference,
    )


def check_multiple(item_ids: Iterable[str], start: date, end: date) -> Dict[str, AvailabilityResult]:
    return {item_id: check_availability(item_id, start, end) for item_id in item_ids}


def _raise_unavailable(result: AvailabilityResult) -> None:
    if result.reason_code in (BOOKING_CONFLICT, BLACKOUT_PERIOD):
        raise ConflictError(result.message, conflicts=result.conflicts)
    raise ValidationError(result.message, field="endDate", reason=result.reason_code)


def _advance_version(item: InventoryItem, expected_version: int) -> None:
    """Compare-and-swap the calendar version; losing means someone else wrote first."""

    updated = InventoryItem.objects.filter(
        pk=item.pk,
        calendar_version=expected_version,
    ).update(calendar_version=F("calendar_version") + 1)
    if updated != 1:
        logger.warning(f"Calendar of {item.pk} changed concurrently (expected v{expected_version})")
        raise ConflictError("Calendar changed while reserving, please try again")
    item.calendar_version = expected_version + 1


@transaction.atomic
def create_hold(
    item_id: str,
    start: date,
    end: date,
    booking_reference: str,
    *,
    ttl_minutes: Optional[int] = None,
    expected_version: Optional[int] = None,
    today: Optional[date] = None,
) -> Hold:
    """
    Place (or replace) the hold of `booking_reference` on the item.

    Raises ConflictError when the dates are taken or the calendar version
    moved past `expected_version`, ValidationError when the item's rental
    rules reject the range.
    """

    dates = make_range(start, end)
    item = get_item(item_id, lock=True)
    version = item.calendar_version
    if expected_version is not None and expected_version != version:
        raise ConflictError("Calendar changed since availability was checked, please try again")

    now = timezone.now()
    calendar = load_calendar(item, dates)
    result = calendar.check(
        dates,
        today=today or timezone.localdate(),
        now=now,
        exclude_reference=booking_reference,
    )
    if not result.available:
        logger.info(f"Hold for {booking_reference} on {item_id} rejected: {result.reason_code}")
        _raise_unavailable(result)

    _advance_version(item, version)

    ttl = ttl_minutes if ttl_minutes is not None else settings.BOOKING_HOLD_TTL_MINUTES
    Hold.objects.filter(booking_reference=booking_reference).delete()
    hold = Hold.objects.create(
        item=item,
        booking_reference=booking_reference,
        start_date=dates.start_date,
        end_date=dates.end_date,
        expires_at=now + timedelta(minutes=ttl),
    )
    logger.info(f"Hold placed for {booking_reference} on {item_id} {dates}, expires {hold.expires_at}")
    return hold


@transaction.atomic
def extend_hold(booking_reference: str, item_id: str, start: date, end: date, *, ttl_minutes: int) -> Hold:
    """
    Keep the booking's dates held for at least `ttl_minutes` from now.

    An active hold only has its expiry pushed out. A hold that already
    lapsed is placed again, which raises ConflictError if the dates went to
    someone else meanwhile.
    """

    item = get_item(item_id, lock=True)
    now = timezone.now()
    hold = Hold.objects.filter(booking_reference=booking_reference).first()
    if hold is None or hold.is_expired(now):
        return create_hold(item.pk, start, end, booking_reference, ttl_minutes=ttl_minutes, today=start)

    expires_at = now + timedelta(minutes=ttl_minutes)
    if expires_at > hold.expires_at:
        hold.expires_at = expires_at
        hold.save(update_fields=["expires_at"])
        logger.info(f"Hold of {booking_reference} on {item_id} extended to {expires_at}")
    return hold


@transaction.atomic
def confirm_hold(booking_reference: str, item_id: str, start: date, end: date) -> Allocation:
    """
    Turn the booking's hold into a permanent allocation.

    A hold that already lapsed is re-validated against the current calendar;
    if the dates went to someone else meanwhile, ConflictError is raised.
    """

    item = get_item(item_id, lock=True)

    existing = Allocation.objects.filter(booking_reference=booking_reference).first()
    if existing is not None:
        return existing

    now = timezone.now()
    dates = make_range(start, end)
    hold = Hold.objects.filter(booking_reference=booking_reference).first()

    if hold is None or hold.is_expired(now):
        calendar = load_calendar(item, dates)
        if calendar.blackouts or calendar.occupying(dates, now=now, exclude_reference=booking_reference):
            logger.warning(f"Lapsed hold of {booking_reference} can no longer be allocated on {item_id}")
            raise ConflictError("Dates are no longer available")
        logger.info(f"Re-allocating lapsed hold of {booking_reference} on {item_id}")

    _advance_version(item, item.calendar_version)
    Hold.objects.filter(booking_reference=booking_reference).delete()
    allocation = Allocation.objects.create(
        item=item,
        booking_reference=booking_reference,
        start_date=dates.start_date,
        end_date=dates.end_date,
    )
    logger.info(f"Allocated {item_id} {dates} to {booking_reference}")
    return allocation


@transaction.atomic
def release(booking_reference: str) -> int:
    """Free every hold and allocation of a booking. Returns rows removed."""

    holds, _ = Hold.objects.filter(booking_reference=booking_reference).delete()
    allocations, _ = Allocation.objects.filter(booking_reference=booking_reference).delete()
    if holds or allocations:
        logger.info(f"Released calendar entries of {booking_reference}")
    return holds + allocations


@transaction.atomic
def expire_holds(now=None) -> List[str]:
    """Delete lapsed holds and return the booking references they belonged to."""

    now = now or timezone.now()
    expired = lock_queryset_if_possible(Hold.objects.filter(expires_at__lte=now))
    references = list(expired.values_list("booking_reference", flat=True))
    if references:
        Hold.objects.filter(booking_reference__in=references).delete()
        logger.info(f"Expired {len(references)} holds")
    return references


def get_calendar(item_id: str, start: date, end: date) -> dict:
    """Blackouts, active holds and allocations of an item inside a window."""

    dates = make_range(start, end)
    item = get_item(item_id)
    calendar = load_calendar(item, dates)
    now = timezone.now()

    return {
        "itemId": item.pk,
        "calendarVersion": calendar.version,
        "minimumRentalDays": calendar.minimum_rental_days,
        "blackouts": [
            {
                "startDate": b.dates.start_date.isoformat(),
                "endDate": b.dates.end_date.isoformat(),
                "reason": b.reason,
            }
            for b in calendar.blackouts
        ],
        "reserved": [
            {
                "startDate": e.dates.start_date.isoformat(),
                "endDate": e.dates.end_date.isoformat(),
                "type": e.kind,
            }
            for e in sorted(calendar.entries, key=lambda e: e.dates.start_date)
            if e.is_active(now)
        ],
    }
