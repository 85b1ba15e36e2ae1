"""Conflict detection before and after appointment mutations."""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

from clinic_os.gateway.errors import AlreadyBooked
from clinic_os.scheduling.models import ConflictOccupant
from clinic_os.scheduling.timemodel import WallClock

logger = logging.getLogger(__name__)

# "Conflicting appointments: 17:30 - Christopher Smith (Physical Therapy, 30 min), ..."
_OCCUPANT_RE = re.compile(
    r"(?P<time>\d{1,2}:\d{2})\s*-\s*(?P<patient>[^(]+?)\s*\((?P<type>[^,()]+),\s*(?P<duration>\d+)\s*min\)"
)


@dataclass(frozen=True)
class NoConflict:
    """The requested time is free."""


@dataclass(frozen=True)
class Conflict:
    """The requested time overlaps at least one booking."""

    occupants: list[ConflictOccupant] = field(default_factory=list)
    message: str = ""
    source: str = "preflight"

    @property
    def occupant(self) -> ConflictOccupant:
        """The earliest-starting occupant."""
        return self.occupants[0]

    def summary(self) -> str:
        return "; ".join(o.describe() for o in self.occupants)


CheckResult = Union[NoConflict, Conflict]

NO_CONFLICT = NoConflict()


def _earliest_first(occupants: list[ConflictOccupant]) -> list[ConflictOccupant]:
    return sorted(occupants, key=lambda o: (WallClock.parse(o.time), o.duration))


def parse_conflict_message(message: str) -> list[ConflictOccupant]:
    """Extract occupant summaries from the server's human-readable conflict text."""
    occupants = []
    for m in _OCCUPANT_RE.finditer(message or ""):
        try:
            occupants.append(
                ConflictOccupant(
                    time=m.group("time"),
                    duration=int(m.group("duration")),
                    patient_name=m.group("patient").strip(),
                    type=m.group("type").strip(),
                )
            )
        except ValueError as e:
            logger.debug(f"Ignoring unparseable conflict entry {m.group(0)!r}: {e}")
    return occupants


def generic_occupant(attempted_start: "WallClock | str", attempted_duration: int) -> ConflictOccupant:
    """Placeholder occupant when the server gave no usable detail."""
    return ConflictOccupant(time=str(WallClock.parse(attempted_start)), duration=attempted_duration)


class ConflictDetector:
    """Decides whether a requested booking time is already occupied.

    Two paths are supported: a preflight query against the gateway's
    conflict endpoint, and post-hoc interpretation of an ``AlreadyBooked``
    error raised by a create or reschedule call.
    """

    def __init__(self, gateway):
        self.gateway = gateway

    async def check(
        self,
        clinician_id: str,
        day: date,
        start: "WallClock | str",
        duration: int,
        exclude_id: Optional[str] = None,
    ) -> CheckResult:
        """Preflight check; gateway errors propagate to the caller."""
        report = await self.gateway.conflicts(clinician_id, day, start, duration, exclude_id=exclude_id)
        if not report.has_conflicts:
            return NO_CONFLICT

        occupants = report.conflicts or parse_conflict_message(report.message)
        if not occupants:
            occupants = [generic_occupant(start, duration)]
        conflict = Conflict(occupants=_earliest_first(occupants), message=report.message, source="preflight")
        logger.info(f"Preflight conflict for {clinician_id} on {day.isoformat()} at {start}: {conflict.summary()}")
        return conflict

    @staticmethod
    def from_error(
        error: AlreadyBooked,
        attempted_start: "WallClock | str",
        attempted_duration: int,
    ) -> Conflict:
        """Build a conflict from a failed mutation.

        Structured occupants win; otherwise the message text is parsed;
        otherwise a generic occupant at the attempted time is synthesised.
        """
        occupants = list(error.occupants) or parse_conflict_message(error.message)
        if not occupants:
            logger.debug("Conflict error carried no occupant detail; synthesising one")
            occupants = [generic_occupant(attempted_start, attempted_duration)]
        return Conflict(occupants=_earliest_first(occupants), message=error.message, source="post_hoc")
