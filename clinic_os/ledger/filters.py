"""Client-side filtering, ordering and paging of the appointment ledger."""

from datetime import date, timedelta
from enum import Enum
from typing import Optional, TypeVar

from pydantic import BaseModel

from clinic_os.scheduling.models import AppointmentStatus, AppointmentType, Booking, Priority
from clinic_os.scheduling.timemodel import WallClock, weekday_index

T = TypeVar("T")


class DateBucket(str, Enum):
    ALL = "all"
    TODAY = "today"
    THIS_WEEK = "thisWeek"
    THIS_MONTH = "thisMonth"


class LedgerFilter(BaseModel):
    """Session-local filter state; ``None`` means no restriction."""

    search: str = ""
    status: Optional[AppointmentStatus] = None
    type: Optional[AppointmentType] = None
    priority: Optional[Priority] = None
    bucket: DateBucket = DateBucket.ALL


def week_bounds(today: date) -> tuple[date, date]:
    """First and last day of the Sunday-anchored week containing *today*."""
    start = today - timedelta(days=weekday_index(today))
    return start, start + timedelta(days=6)


def _in_bucket(day: date, bucket: DateBucket, today: date) -> bool:
    if bucket == DateBucket.TODAY:
        return day == today
    if bucket == DateBucket.THIS_WEEK:
        start, end = week_bounds(today)
        return start <= day <= end
    if bucket == DateBucket.THIS_MONTH:
        return day.year == today.year and day.month == today.month
    return True


def _search_hit(booking: Booking, needle: str) -> bool:
    haystack = (
        booking.patient_name,
        booking.clinician_name,
        booking.type.value,
        booking.reason or "",
    )
    return any(needle in field.lower() for field in haystack)


def matches(booking: Booking, flt: LedgerFilter, today: date) -> bool:
    needle = flt.search.strip().lower()
    if needle and not _search_hit(booking, needle):
        return False
    if flt.status is not None and booking.status != flt.status:
        return False
    if flt.type is not None and booking.type != flt.type:
        return False
    if flt.priority is not None and booking.priority != flt.priority:
        return False
    return _in_bucket(booking.day, flt.bucket, today)


def order_bookings(bookings: list[Booking], today: date) -> list[Booking]:
    """Today and future first, ascending; then the past, most recent first.

    Bookings on the same date are always ascending by time.
    """
    upcoming = [b for b in bookings if b.day >= today]
    past = [b for b in bookings if b.day < today]

    def _minutes(b: Booking) -> int:
        return WallClock.parse(b.time).minutes

    upcoming.sort(key=lambda b: (b.day, _minutes(b)))
    past.sort(key=lambda b: (-b.day.toordinal(), _minutes(b)))
    return upcoming + past


def paginate(items: list[T], page: int, page_size: int) -> list[T]:
    if page < 1 or page_size < 1:
        return []
    offset = (page - 1) * page_size
    return items[offset:offset + page_size]


def page_count(total: int, page_size: int) -> int:
    if page_size < 1:
        return 1
    return max(1, -(-total // page_size))
