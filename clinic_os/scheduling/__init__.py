"""Scheduling primitives: time model, records and slot resolution.

The conflict detector, state machine and event bus live in their own
modules (``conflicts``, ``machine``, ``events``) since they depend on the
gateway package.
"""

from clinic_os.scheduling.availability import (
    effective_windows,
    resolve_slots,
    suggest_alternatives,
    unavailable_dates,
)
from clinic_os.scheduling.models import (
    AppointmentStatus,
    AppointmentType,
    AvailabilityException,
    AvailabilityRule,
    AvailabilityWindow,
    Booking,
    BookingDraft,
    Priority,
    Slot,
)
from clinic_os.scheduling.timemodel import BadTime, Interval, WallClock

__all__ = [
    "AppointmentStatus",
    "AppointmentType",
    "AvailabilityException",
    "AvailabilityRule",
    "AvailabilityWindow",
    "BadTime",
    "Booking",
    "BookingDraft",
    "Interval",
    "Priority",
    "Slot",
    "WallClock",
    "effective_windows",
    "resolve_slots",
    "suggest_alternatives",
    "unavailable_dates",
]
