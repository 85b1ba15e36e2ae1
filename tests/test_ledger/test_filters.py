"""Tests for ledger filtering, ordering and paging."""

from datetime import date, timedelta

import pytest

from clinic_os.ledger.filters import (
    DateBucket,
    LedgerFilter,
    matches,
    order_bookings,
    page_count,
    paginate,
    week_bounds,
)
from clinic_os.scheduling.models import AppointmentStatus, AppointmentType, Priority
from tests.conftest import MONDAY, make_booking

YESTERDAY = MONDAY - timedelta(days=1)
TOMORROW = MONDAY + timedelta(days=1)


class TestOrdering:
    def test_future_first_then_past(self):
        bookings = [
            make_booking("yesterday", day=YESTERDAY, time="10:00"),
            make_booking("today-11", day=MONDAY, time="11:00"),
            make_booking("tomorrow", day=TOMORROW, time="08:00"),
            make_booking("today-9", day=MONDAY, time="09:00"),
        ]
        ordered = order_bookings(bookings, MONDAY)
        assert [b.id for b in ordered] == ["today-9", "today-11", "tomorrow", "yesterday"]

    def test_past_descending_by_date_ascending_by_time(self):
        bookings = [
            make_booking("27-09", day=date(2026, 2, 27), time="09:00"),
            make_booking("28-10", day=date(2026, 2, 28), time="10:00"),
            make_booking("28-08", day=date(2026, 2, 28), time="08:00"),
        ]
        ordered = order_bookings(bookings, MONDAY)
        assert [b.id for b in ordered] == ["28-08", "28-10", "27-09"]

    def test_stable_for_identical_keys(self):
        bookings = [make_booking(str(i), time="09:00") for i in range(5)]
        assert [b.id for b in order_bookings(bookings, MONDAY)] == ["0", "1", "2", "3", "4"]


class TestBuckets:
    @pytest.mark.parametrize("today", [date(2026, 3, 1), date(2026, 3, 4), date(2026, 3, 7)])
    def test_week_is_sunday_anchored_and_contains_today(self, today):
        start, end = week_bounds(today)
        assert start == date(2026, 3, 1)
        assert end == date(2026, 3, 7)
        assert start <= today <= end

    def test_today_bucket(self):
        flt = LedgerFilter(bucket=DateBucket.TODAY)
        assert matches(make_booking(day=MONDAY), flt, MONDAY)
        assert not matches(make_booking(day=TOMORROW), flt, MONDAY)

    def test_week_bucket_excludes_previous_saturday(self):
        flt = LedgerFilter(bucket=DateBucket.THIS_WEEK)
        assert matches(make_booking(day=date(2026, 3, 1)), flt, MONDAY)
        assert matches(make_booking(day=date(2026, 3, 7)), flt, MONDAY)
        assert not matches(make_booking(day=date(2026, 2, 28)), flt, MONDAY)

    def test_month_bucket_checks_year(self):
        flt = LedgerFilter(bucket=DateBucket.THIS_MONTH)
        assert matches(make_booking(day=date(2026, 3, 31)), flt, MONDAY)
        assert not matches(make_booking(day=date(2025, 3, 2)), flt, MONDAY)


class TestPredicates:
    def test_search_is_case_insensitive_across_fields(self):
        booking = make_booking(
            patient_name="Jane Doe",
            clinician_name="Dr. Smith",
            type=AppointmentType.LAB_WORK,
            reason="Fasting glucose",
        )
        for needle in ("jane", "SMITH", "lab work", "glucose"):
            assert matches(booking, LedgerFilter(search=needle), MONDAY)
        assert not matches(booking, LedgerFilter(search="cardio"), MONDAY)

    def test_exact_status_type_priority(self):
        booking = make_booking(
            status=AppointmentStatus.CONFIRMED, type=AppointmentType.IMAGING, priority=Priority.HIGH
        )
        assert matches(
            booking,
            LedgerFilter(status=AppointmentStatus.CONFIRMED, type=AppointmentType.IMAGING, priority=Priority.HIGH),
            MONDAY,
        )
        assert not matches(booking, LedgerFilter(status=AppointmentStatus.SCHEDULED), MONDAY)
        assert not matches(booking, LedgerFilter(priority=Priority.NORMAL), MONDAY)

    def test_filtered_output_is_ordered_subsequence(self):
        bookings = [
            make_booking(f"b{i}", day=MONDAY + timedelta(days=i - 3), time="09:00",
                         priority=Priority.HIGH if i % 2 else Priority.NORMAL)
            for i in range(7)
        ]
        ordered = order_bookings(bookings, MONDAY)
        flt = LedgerFilter(priority=Priority.HIGH)
        kept = [b for b in ordered if matches(b, flt, MONDAY)]
        positions = [ordered.index(b) for b in kept]
        assert positions == sorted(positions)
        assert all(b.priority == Priority.HIGH for b in kept)


class TestPaging:
    def test_paginate(self):
        items = list(range(12))
        assert paginate(items, 1, 5) == [0, 1, 2, 3, 4]
        assert paginate(items, 3, 5) == [10, 11]
        assert paginate(items, 4, 5) == []
        assert paginate(items, 0, 5) == []

    def test_page_count(self):
        assert page_count(0, 5) == 1
        assert page_count(10, 5) == 2
        assert page_count(11, 5) == 3
