"""Translation between the clinic API's JSON shapes and client models."""

import logging
from collections import defaultdict
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from clinic_os.gateway.errors import (
    AlreadyBooked,
    FieldError,
    GatewayError,
    NotFound,
    Unauthorized,
    UnknownError,
    ValidationFailed,
)
from clinic_os.scheduling.models import (
    AppointmentPage,
    AppointmentStats,
    AppointmentStatus,
    AvailabilityException,
    AvailabilityRule,
    AvailabilityWindow,
    Booking,
    BookingDraft,
    Clinician,
    ConflictOccupant,
    ConflictReport,
    ExceptionKind,
    Pagination,
    Patient,
    Priority,
)
from clinic_os.scheduling.timemodel import BadTime, Interval, WallClock, parse_date

logger = logging.getLogger(__name__)

# Exceptions raised while reading a record the server sent in an unexpected shape.
MALFORMED = (KeyError, TypeError, ValueError, AttributeError, BadTime, ValidationError)

# Envelope keys under which list endpoints return their items.
ITEM_KEYS = ("appointments", "data")

_CONFLICT_HINTS = ("booked", "conflict")


def _ref(value: Any) -> tuple[str, str]:
    """Split a possibly-populated reference into ``(id, display name)``."""
    if isinstance(value, dict):
        return str(value.get("_id") or value.get("id") or ""), str(value.get("fullName") or value.get("name") or "")
    if value is None:
        return "", ""
    return str(value), ""


def _items(body: Any, *keys: str) -> list[dict]:
    if isinstance(body, list):
        return body
    if not isinstance(body, dict):
        return []
    for key in keys:
        items = body.get(key)
        if isinstance(items, list):
            return items
    return []


# ------------------------------------------------------------------
# Bookings
# ------------------------------------------------------------------


def booking_from_wire(raw: dict) -> Booking:
    patient_id, patient_name = _ref(raw.get("patientId"))
    clinician_id, clinician_name = _ref(raw.get("doctorId"))

    priority = raw.get("priority") or Priority.NORMAL.value
    if priority not in {p.value for p in Priority}:
        logger.debug("Mapping unsupported priority %r to normal", priority)
        priority = Priority.NORMAL.value

    return Booking(
        id=str(raw.get("_id") or raw.get("id")),
        clinician_id=clinician_id,
        patient_id=patient_id,
        patient_name=patient_name or raw.get("patientName") or "",
        clinician_name=clinician_name or raw.get("doctorName") or "",
        day=parse_date(raw["date"]),
        time=raw["time"],
        duration=int(raw.get("duration") or 30),
        type=raw["appointmentType"],
        priority=priority,
        status=raw.get("status") or "Scheduled",
        reason=raw.get("reason") or None,
        notes=raw.get("notes") or None,
    )


def count_items(body: Any) -> Optional[int]:
    """Number of records in a list response, if it is one."""
    if isinstance(body, list):
        return len(body)
    if isinstance(body, dict):
        for key in ITEM_KEYS:
            if isinstance(body.get(key), list):
                return len(body[key])
    return None


def bookings_from_wire(raw_list: list) -> list[Booking]:
    bookings: list[Booking] = []
    for raw in raw_list:
        try:
            bookings.append(booking_from_wire(raw))
        except MALFORMED as e:
            ref = raw.get("_id") if isinstance(raw, dict) else raw
            logger.warning("Skipping malformed appointment %r: %s", ref, e)
    return bookings


def page_from_wire(body: Any) -> AppointmentPage:
    """Normalise a list envelope; missing pagination means a single page."""
    items = bookings_from_wire(_items(body, *ITEM_KEYS))
    meta = body.get("pagination") if isinstance(body, dict) else None
    if not isinstance(meta, dict):
        return AppointmentPage(
            items=items,
            pagination=Pagination(page=1, total_pages=1, total_count=len(items)),
        )
    total_count = meta.get("totalAppointments", meta.get("totalCount"))
    return AppointmentPage(
        items=items,
        pagination=Pagination(
            page=int(meta.get("currentPage") or meta.get("page") or 1),
            total_pages=max(1, int(meta.get("totalPages") or 1)),
            total_count=int(total_count if total_count is not None else len(items)),
        ),
    )


def mutation_result(body: Any) -> Booking:
    """Mutations answer either ``{message, appointment}`` or the bare record."""
    raw = body["appointment"] if isinstance(body, dict) and isinstance(body.get("appointment"), dict) else body
    try:
        return booking_from_wire(raw)
    except MALFORMED as e:
        raise UnknownError(f"Unreadable appointment in response: {e}") from e


def draft_to_wire(draft: BookingDraft, force: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "patientId": draft.patient_id,
        "doctorId": draft.clinician_id,
        "appointmentType": draft.type.value if draft.type else None,
        "date": draft.day.isoformat() if draft.day else None,
        "time": draft.time,
        "duration": draft.duration,
        "priority": draft.priority.value,
    }
    if draft.reason:
        payload["reason"] = draft.reason
    if draft.notes:
        payload["notes"] = draft.notes
    if force:
        payload["forceCreate"] = True
    return payload


def reschedule_to_wire(draft: BookingDraft, force: bool = False) -> dict[str, Any]:
    """Full record for the update route; a moved booking goes back to Scheduled."""
    payload = draft_to_wire(draft, force)
    payload["reason"] = (draft.reason or "").strip()
    payload["notes"] = (draft.notes or "").strip()
    payload["status"] = AppointmentStatus.SCHEDULED.value
    return payload


# ------------------------------------------------------------------
# Conflicts and stats
# ------------------------------------------------------------------


def occupant_from_wire(raw: dict) -> ConflictOccupant:
    return ConflictOccupant(
        appointment_id=str(raw["appointmentId"]) if raw.get("appointmentId") else None,
        time=raw["time"],
        duration=int(raw.get("duration") or 30),
        patient_name=raw.get("patientName") or "Unknown Patient",
        type=raw.get("appointmentType") or "Unknown Type",
        status=raw.get("status"),
    )


def occupants_from_wire(raw_list: Any) -> list[ConflictOccupant]:
    occupants: list[ConflictOccupant] = []
    for raw in raw_list if isinstance(raw_list, list) else []:
        try:
            occupants.append(occupant_from_wire(raw))
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.debug("Skipping malformed conflict entry %r: %s", raw, e)
    return occupants


def conflict_report_from_wire(body: dict) -> ConflictReport:
    occupants = occupants_from_wire(body.get("conflicts"))
    has_conflicts = body.get("hasConflicts", body.get("hasConflict"))
    return ConflictReport(
        has_conflicts=bool(has_conflicts) if has_conflicts is not None else bool(occupants),
        conflicts=occupants,
        message=body.get("message") or "",
    )


def stats_from_wire(body: dict) -> AppointmentStats:
    def histogram(entries: Any) -> dict[str, int]:
        return {
            str(e.get("_id")): int(e.get("count") or 0)
            for e in entries or []
            if isinstance(e, dict) and e.get("_id") is not None
        }

    return AppointmentStats(
        total=int(body.get("totalAppointments") or 0),
        today=int(body.get("todayAppointments") or 0),
        upcoming=int(body.get("upcomingAppointments") or 0),
        status_histogram=histogram(body.get("statusStats")),
        type_histogram=histogram(body.get("typeStats")),
    )


# ------------------------------------------------------------------
# Availability calendar
# ------------------------------------------------------------------


def rules_from_wire(body: Any, clinician_id: str) -> list[AvailabilityRule]:
    """Group per-window availability entries into one rule per weekday."""
    by_day: dict[int, list[AvailabilityWindow]] = defaultdict(list)
    for raw in _items(body, "availability", "data"):
        if raw.get("isActive") is False:
            continue
        by_day[int(raw["dayOfWeek"])].append(
            AvailabilityWindow(
                start_time=raw["startTime"],
                end_time=raw["endTime"],
                slot_duration=int(raw.get("slotDuration") or 30),
            )
        )
    return [
        AvailabilityRule(clinician_id=clinician_id, weekday=day, windows=windows)
        for day, windows in sorted(by_day.items())
    ]


def _windows_minus_breaks(
    start: str, end: str, breaks: list[dict], slot_duration: int
) -> list[AvailabilityWindow]:
    pieces = [Interval(WallClock.parse(start).minutes, WallClock.parse(end).minutes)]
    for brk in breaks:
        try:
            cut = Interval(WallClock.parse(brk["startTime"]).minutes, WallClock.parse(brk["endTime"]).minutes)
        except (KeyError, BadTime):
            continue
        remaining = []
        for piece in pieces:
            if not piece.overlaps(cut):
                remaining.append(piece)
                continue
            if piece.start < cut.start:
                remaining.append(Interval(piece.start, cut.start))
            if cut.end < piece.end:
                remaining.append(Interval(cut.end, piece.end))
        pieces = remaining
    return [
        AvailabilityWindow(
            start_time=str(WallClock(p.start)),
            end_time=str(WallClock(p.end)),
            slot_duration=slot_duration,
        )
        for p in pieces
    ]


def exceptions_from_wire(body: Any, clinician_id: str) -> list[AvailabilityException]:
    exceptions: list[AvailabilityException] = []
    for raw in _items(body, "exceptions", "data"):
        kind = ExceptionKind(raw.get("type") or ExceptionKind.UNAVAILABLE.value)
        windows: list[AvailabilityWindow] = []
        if kind == ExceptionKind.CUSTOM_HOURS:
            windows = _windows_minus_breaks(
                raw["startTime"],
                raw["endTime"],
                raw.get("breaks") or [],
                int(raw.get("slotDuration") or 30),
            )
            if not windows:
                kind = ExceptionKind.UNAVAILABLE
        exceptions.append(
            AvailabilityException(
                clinician_id=clinician_id,
                day=parse_date(raw["date"]),
                kind=kind,
                windows=windows,
                reason=raw.get("reason") or "",
                is_active=raw.get("isActive", True) is not False,
            )
        )
    return exceptions


# ------------------------------------------------------------------
# Reference data
# ------------------------------------------------------------------


def clinicians_from_wire(body: Any) -> list[Clinician]:
    return [
        Clinician(
            id=str(raw.get("_id") or raw.get("id")),
            name=raw.get("fullName") or raw.get("name") or "",
            specialty=raw.get("specialization") or raw.get("specialty"),
            is_active=raw.get("isActive", True) is not False,
        )
        for raw in _items(body, "doctors", "data")
    ]


def patients_from_wire(body: Any) -> list[Patient]:
    return [
        Patient(
            id=str(raw.get("_id") or raw.get("id")),
            name=raw.get("fullName") or raw.get("name") or "",
            phone=raw.get("phone"),
            email=raw.get("email"),
        )
        for raw in _items(body, "patients", "data")
    ]


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


def _field_errors(details: Any) -> list[FieldError]:
    fields: list[FieldError] = []
    for item in details if isinstance(details, list) else []:
        if isinstance(item, dict):
            name = item.get("path") or item.get("param") or item.get("field") or "_"
            message = item.get("msg") or item.get("message") or "Invalid value"
            fields.append(FieldError(field=str(name), message=str(message)))
        elif isinstance(item, str):
            fields.append(FieldError(field="_", message=item))
    return fields


def error_from_response(response: httpx.Response) -> GatewayError:
    """Map an error response onto the gateway taxonomy."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    status = response.status_code
    message = str(body.get("message") or body.get("error") or response.reason_phrase or f"HTTP {status}")

    if status in (401, 403):
        return Unauthorized(message, status)
    if status == 404:
        return NotFound(message, status)
    if status in (400, 409, 422):
        text = f"{body.get('error') or ''} {body.get('message') or ''}".lower()
        if status == 409 or body.get("conflicts") or any(h in text for h in _CONFLICT_HINTS):
            return AlreadyBooked(occupants_from_wire(body.get("conflicts")), message, status)
        fields = _field_errors(body.get("details") or body.get("errors"))
        if not fields:
            fields = [FieldError(field="_", message=message)]
        return ValidationFailed(fields, message, status)
    return UnknownError(message, status)

