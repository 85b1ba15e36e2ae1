"""Slot resolution from a clinician's published availability calendar."""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from clinic_os.scheduling.models import (
    AvailabilityException,
    AvailabilityRule,
    AvailabilityWindow,
    Booking,
    ConflictOccupant,
    ExceptionKind,
    Slot,
)
from clinic_os.scheduling.timemodel import BadTime, Interval, WallClock, weekday_index

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Effective windows
# ------------------------------------------------------------------


def _exception_for(
    exceptions: Iterable[AvailabilityException],
    day: date,
    clinician_id: Optional[str],
) -> Optional[AvailabilityException]:
    for ex in exceptions:
        if not ex.is_active or ex.day != day:
            continue
        if clinician_id is not None and ex.clinician_id != clinician_id:
            continue
        return ex
    return None


def effective_windows(
    rules: Iterable[AvailabilityRule],
    exceptions: Iterable[AvailabilityException],
    day: date,
    clinician_id: Optional[str] = None,
) -> list[AvailabilityWindow]:
    """Working windows for *day*, chronologically ordered.

    An active exception for the date fully replaces the weekday rule: a
    fully-unavailable exception yields no windows, a custom-hours exception
    yields its own windows.
    """
    exception = _exception_for(exceptions, day, clinician_id)
    if exception is not None:
        if exception.kind == ExceptionKind.UNAVAILABLE:
            return []
        windows = list(exception.windows)
    else:
        wd = weekday_index(day)
        windows = [
            w
            for rule in rules
            if rule.is_active
            and rule.weekday == wd
            and (clinician_id is None or rule.clinician_id == clinician_id)
            for w in rule.windows
        ]
    return sorted(windows, key=lambda w: (w.interval.start, w.interval.end))


def is_clinician_available(
    rules: Iterable[AvailabilityRule],
    exceptions: Iterable[AvailabilityException],
    day: date,
    clinician_id: Optional[str] = None,
) -> bool:
    """True when the clinician has any working window on *day*."""
    return bool(effective_windows(rules, exceptions, day, clinician_id))


def unavailable_dates(
    rules: list[AvailabilityRule],
    exceptions: list[AvailabilityException],
    start: date,
    end: date,
    clinician_id: Optional[str] = None,
) -> list[date]:
    """Dates in ``[start, end]`` on which nothing can be booked (for date pickers)."""
    disabled: list[date] = []
    current = start
    while current <= end:
        if not is_clinician_available(rules, exceptions, current, clinician_id):
            disabled.append(current)
        current += timedelta(days=1)
    return disabled


# ------------------------------------------------------------------
# Slot resolution
# ------------------------------------------------------------------


def _blocking_intervals(
    bookings: Iterable[Booking],
    day: date,
    clinician_id: Optional[str],
) -> list[Interval]:
    blocked: list[Interval] = []
    for booking in bookings:
        if booking.is_cancelled or booking.day != day:
            continue
        if clinician_id is not None and booking.clinician_id != clinician_id:
            continue
        blocked.append(booking.interval)
    return blocked


def resolve_slots(
    rules: list[AvailabilityRule],
    exceptions: list[AvailabilityException],
    bookings: list[Booking],
    day: date,
    slot_duration: Optional[int] = None,
    clinician_id: Optional[str] = None,
) -> list[Slot]:
    """Derive the ordered candidate slots for *day*.

    Args:
        rules: Weekday availability rules
        exceptions: Date-specific overrides
        bookings: Existing bookings (cancelled ones never block)
        day: Calendar date to resolve
        slot_duration: Slot length in minutes; inherits from the first
            applicable window when omitted
        clinician_id: When given, only records for this clinician are used

    Returns:
        Slots in chronological order, each flagged ``available`` unless a
        non-cancelled booking overlaps it. No two returned slots overlap.
    """
    windows = effective_windows(rules, exceptions, day, clinician_id)
    if not windows:
        return []

    duration = slot_duration or windows[0].slot_duration
    if duration <= 0:
        raise BadTime(f"Slot duration must be positive, got {duration}")

    blocked = _blocking_intervals(bookings, day, clinician_id)

    slots: list[Slot] = []
    last_end = -1
    for window in windows:
        span = window.interval
        current = span.start
        while current + duration <= span.end:
            candidate = Interval(current, current + duration)
            if candidate.start >= last_end:
                slots.append(
                    Slot(
                        clinician_id=clinician_id,
                        day=day,
                        start=str(WallClock(candidate.start)),
                        duration=duration,
                        available=not any(candidate.overlaps(b) for b in blocked),
                    )
                )
                last_end = candidate.end
            current += duration

    logger.debug(
        "Resolved %d slots for %s on %s (%d-minute stride)",
        len(slots), clinician_id or "any clinician", day.isoformat(), duration,
    )
    return slots


def drop_elapsed(slots: list[Slot], now: datetime) -> list[Slot]:
    """Remove slots for today whose start is at or before the current time."""
    today = now.date()
    current = now.hour * 60 + now.minute
    return [
        s for s in slots
        if s.day != today or WallClock.parse(s.start).minutes > current
    ]


# ------------------------------------------------------------------
# Alternatives
# ------------------------------------------------------------------


def suggest_alternatives(
    slots: list[Slot],
    requested: "WallClock | str",
    occupants: list[ConflictOccupant],
    duration: int,
    limit: int = 5,
) -> list[str]:
    """Suggest start times to offer after a conflict.

    Candidates are the resolved available slots plus the time right after
    each occupant, minus anything overlapping an occupant. Returns up to
    *limit* ``HH:MM`` strings closest in time to the requested start.
    """
    requested_at = WallClock.parse(requested)
    occupied = [o.interval for o in occupants]

    candidates: set[int] = {
        WallClock.parse(s.start).minutes for s in slots if s.available
    }
    for occupant in occupants:
        candidates.add(occupant.interval.end)

    free: list[int] = []
    for start in candidates:
        try:
            interval = Interval.from_start(WallClock(start), duration)
            WallClock(interval.end)
        except BadTime:
            continue
        if start == requested_at.minutes:
            continue
        if any(interval.overlaps(o) for o in occupied):
            continue
        free.append(start)

    ranked = sorted(free, key=lambda m: (abs(m - requested_at.minutes), m))
    return [str(WallClock(m)) for m in ranked[:limit]]
