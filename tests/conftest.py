"""Pytest configuration and fixtures."""

from datetime import date

import pytest
from unittest.mock import AsyncMock, MagicMock

from clinic_os.observability import ObservabilityLogger
from clinic_os.scheduling.models import (
    AppointmentPage,
    AppointmentStats,
    AppointmentStatus,
    AppointmentType,
    AvailabilityRule,
    AvailabilitySnapshot,
    AvailabilityWindow,
    Booking,
    ConflictReport,
    Pagination,
    Priority,
)

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)


def make_booking(
    booking_id: str = "appt-1",
    day: date = MONDAY,
    time: str = "09:30",
    duration: int = 30,
    clinician_id: str = "doc-1",
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    patient_name: str = "Jane Doe",
    clinician_name: str = "Dr. Smith",
    type: AppointmentType = AppointmentType.GENERAL_CONSULTATION,
    priority: Priority = Priority.NORMAL,
    reason: str | None = None,
) -> Booking:
    return Booking(
        id=booking_id,
        clinician_id=clinician_id,
        patient_id=f"pat-{booking_id}",
        patient_name=patient_name,
        clinician_name=clinician_name,
        day=day,
        time=time,
        duration=duration,
        type=type,
        priority=priority,
        status=status,
        reason=reason,
    )


def monday_rule(start: str = "09:00", end: str = "10:30", slot: int = 30, clinician_id: str = "doc-1"):
    return AvailabilityRule(
        clinician_id=clinician_id,
        weekday=1,
        windows=[AvailabilityWindow(start_time=start, end_time=end, slot_duration=slot)],
    )


@pytest.fixture
def quiet_obs():
    """Observability logger that records nothing."""
    return ObservabilityLogger(enabled=False)


@pytest.fixture
def obs(tmp_path):
    """Observability logger writing into a temporary directory."""
    return ObservabilityLogger(log_dir=tmp_path / "logs", enabled=True)


@pytest.fixture
def mock_gateway():
    """Gateway double with every call stubbed as an AsyncMock."""
    gateway = MagicMock()
    gateway.list = AsyncMock(return_value=AppointmentPage(items=[], pagination=Pagination()))
    gateway.list_all = AsyncMock(return_value=[])
    gateway.create = AsyncMock()
    gateway.update_status = AsyncMock()
    gateway.reschedule = AsyncMock()
    gateway.delete = AsyncMock(return_value=None)
    gateway.stats = AsyncMock(return_value=AppointmentStats())
    gateway.conflicts = AsyncMock(return_value=ConflictReport(has_conflicts=False))
    gateway.availability = AsyncMock(
        return_value=AvailabilitySnapshot(rules=[monday_rule()], exceptions=[], bookings=[])
    )
    gateway.aclose = AsyncMock()
    return gateway
