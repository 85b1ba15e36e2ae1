"""Create/reschedule flow for a single booking dialog.

The machine owns the draft, the resolved slots and the current conflict.
Every user trigger that can race with gateway I/O bumps an attempt token;
an await that resumes under an older token drops its result.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from clinic_os.gateway.errors import AlreadyBooked, GatewayError, Unauthorized, ValidationFailed
from clinic_os.observability import ObservabilityLogger, get_observability_logger
from clinic_os.roles import RoleBinding
from clinic_os.scheduling.availability import (
    drop_elapsed,
    effective_windows,
    resolve_slots,
    suggest_alternatives,
)
from clinic_os.scheduling.conflicts import Conflict, ConflictDetector
from clinic_os.scheduling.events import SchedulingEvents
from clinic_os.scheduling.models import Booking, BookingDraft, Slot

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "This field is required"


class SchedulingPhase(str, Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    PREFLIGHT_CHECKING = "preflight_checking"
    CONFLICT_PRESENTED = "conflict_presented"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class InvalidTransition(RuntimeError):
    """A trigger was fired from a phase that does not accept it."""

    def __init__(self, trigger: str, phase: SchedulingPhase):
        super().__init__(f"'{trigger}' is not allowed while {phase.value}")
        self.trigger = trigger
        self.phase = phase


class SchedulingStateMachine:
    """Drives Idle → Composing → PreflightChecking → Submitting → Succeeded.

    Conflicts found by the preflight or reported by the mutation move the
    machine to ``CONFLICT_PRESENTED``, where the user picks an alternative,
    dismisses the conflict or overrides it. ``Unauthorized`` is never turned
    into state; it is re-raised to the caller.
    """

    def __init__(
        self,
        gateway,
        detector: Optional[ConflictDetector] = None,
        events: Optional[SchedulingEvents] = None,
        binding: Optional[RoleBinding] = None,
        obs: Optional[ObservabilityLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.detector = detector or ConflictDetector(gateway)
        self.events = events or SchedulingEvents()
        self.binding = binding or RoleBinding()
        self._obs = obs or get_observability_logger()
        self._clock = clock or datetime.now

        self.phase = SchedulingPhase.IDLE
        self.draft: BookingDraft = self.binding.blank_draft()
        self.editing: Optional[Booking] = None
        self.slots: list[Slot] = []
        self.slot_error: Optional[str] = None
        self.field_errors: dict[str, str] = {}
        self.conflict: Optional[Conflict] = None
        self.alternatives: list[str] = []
        self.error: Optional[str] = None
        self.result: Optional[Booking] = None

        self._token = 0
        self._slot_token = 0

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    @property
    def attempt_token(self) -> int:
        return self._token

    @property
    def is_reschedule(self) -> bool:
        return self.editing is not None

    def _bump(self) -> int:
        self._token += 1
        return self._token

    def _is_stale(self, token: int, what: str) -> bool:
        if token != self._token:
            logger.debug(f"Dropping superseded {what} result (token {token}, current {self._token})")
            return True
        return False

    def _transition(self, to: SchedulingPhase, trigger: str, detail: Optional[str] = None) -> None:
        previous = self.phase
        self.phase = to
        logger.info(f"Scheduling {previous.value} -> {to.value} on {trigger}")
        self._obs.log_transition(previous.value, to.value, trigger, self._token, detail)

    def _require(self, trigger: str, *allowed: SchedulingPhase) -> None:
        if self.phase not in allowed:
            raise InvalidTransition(trigger, self.phase)

    def _clear_outcome(self) -> None:
        self.conflict = None
        self.alternatives = []
        self.error = None

    # ------------------------------------------------------------------
    # Composing
    # ------------------------------------------------------------------

    async def begin_compose(self, draft: Optional[BookingDraft] = None) -> SchedulingPhase:
        """Open the dialog for a new booking."""
        self._require("begin_compose", SchedulingPhase.IDLE, SchedulingPhase.SUCCEEDED)
        self._bump()
        self.editing = None
        self.result = None
        self.field_errors = {}
        self._clear_outcome()
        self.draft = self.binding.bind(draft or BookingDraft())
        self._transition(SchedulingPhase.COMPOSING, "begin_compose")
        await self.refresh_slots()
        return self.phase

    async def begin_reschedule(self, booking: Booking) -> SchedulingPhase:
        """Open the dialog pre-filled from an existing booking."""
        self._require("begin_reschedule", SchedulingPhase.IDLE, SchedulingPhase.SUCCEEDED)
        self._bump()
        self.editing = booking
        self.result = None
        self.field_errors = {}
        self._clear_outcome()
        self.draft = BookingDraft.from_booking(booking)
        self._transition(SchedulingPhase.COMPOSING, "begin_reschedule", detail=booking.id)
        await self.refresh_slots()
        return self.phase

    async def edit(self, **fields: Any) -> SchedulingPhase:
        """Apply form edits.

        Any pending preflight or submit is superseded. Changing the
        clinician or the date refreshes the slot list.
        """
        self._require(
            "edit",
            SchedulingPhase.COMPOSING,
            SchedulingPhase.PREFLIGHT_CHECKING,
            SchedulingPhase.SUBMITTING,
            SchedulingPhase.CONFLICT_PRESENTED,
            SchedulingPhase.FAILED,
        )
        unknown = set(fields) - set(BookingDraft.model_fields)
        if unknown:
            raise ValueError(f"Unknown draft fields: {', '.join(sorted(unknown))}")
        if "duration" in fields:
            raise ValueError("Duration follows the clinician's slot length and cannot be edited")
        if "clinician_id" in fields:
            self.binding.check_clinician(fields["clinician_id"])

        updated = BookingDraft.model_validate({**self.draft.model_dump(), **fields})
        refresh = updated.clinician_id != self.draft.clinician_id or updated.day != self.draft.day

        self._bump()
        self.draft = updated
        for name in fields:
            self.field_errors.pop(name, None)
        self._clear_outcome()
        if self.phase != SchedulingPhase.COMPOSING:
            self._transition(SchedulingPhase.COMPOSING, "edit", detail=", ".join(sorted(fields)))

        if refresh:
            await self.refresh_slots()
        return self.phase

    async def refresh_slots(self) -> list[Slot]:
        """Re-resolve the slot list for the draft's clinician and date."""
        self._slot_token += 1
        token = self._slot_token
        clinician_id, day = self.draft.clinician_id, self.draft.day
        if not clinician_id or day is None:
            self.slots = []
            return self.slots

        try:
            snapshot = await self.gateway.availability(clinician_id, day)
        except Unauthorized:
            raise
        except GatewayError as e:
            if token == self._slot_token:
                logger.warning(f"Could not load availability for {clinician_id} on {day}: {e.message}")
                self.slots = []
                self.slot_error = e.message
            return self.slots

        if token != self._slot_token:
            logger.debug(f"Dropping superseded slot refresh (token {token})")
            return self.slots

        bookings = snapshot.bookings
        if self.editing is not None:
            bookings = [b for b in bookings if b.id != self.editing.id]

        windows = effective_windows(snapshot.rules, snapshot.exceptions, day, clinician_id)
        if windows:
            self.draft = self.draft.model_copy(update={"duration": windows[0].slot_duration})
        slots = resolve_slots(snapshot.rules, snapshot.exceptions, bookings, day, clinician_id=clinician_id)
        self.slots = drop_elapsed(slots, self._clock())
        self.slot_error = None
        return self.slots

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self) -> SchedulingPhase:
        """Validate the draft, run the preflight and submit when clear."""
        self._require("submit", SchedulingPhase.COMPOSING, SchedulingPhase.PREFLIGHT_CHECKING)
        missing = self.draft.missing_fields()
        if missing:
            self.field_errors = {name: REQUIRED_MESSAGE for name in missing}
            logger.debug(f"Submit blocked, missing {missing}")
            return self.phase

        token = self._bump()
        self.field_errors = {}
        self._clear_outcome()
        self._transition(SchedulingPhase.PREFLIGHT_CHECKING, "submit")

        draft = self.draft
        try:
            verdict = await self.detector.check(
                draft.clinician_id,
                draft.day,
                draft.time,
                draft.duration,
                exclude_id=self.editing.id if self.editing else None,
            )
        except Unauthorized:
            if token == self._token:
                self._transition(SchedulingPhase.COMPOSING, "unauthorized")
            raise
        except GatewayError as e:
            if self._is_stale(token, "preflight"):
                return self.phase
            # Preflight failures fall through to the mutation.
            logger.warning(f"Preflight failed ({type(e).__name__}: {e.message}); submitting anyway")
            return await self._submit_mutation(token, force=False)

        if self._is_stale(token, "preflight"):
            return self.phase
        if isinstance(verdict, Conflict):
            self._present_conflict(verdict, "preflight_conflict")
            return self.phase
        return await self._submit_mutation(token, force=False)

    async def _submit_mutation(self, token: int, force: bool) -> SchedulingPhase:
        draft = self.draft
        editing = self.editing
        self._transition(SchedulingPhase.SUBMITTING, "override" if force else "preflight_clear")
        try:
            if editing is not None:
                booking = await self.gateway.reschedule(editing.id, draft, force=force)
            else:
                booking = await self.gateway.create(draft, force=force)
        except AlreadyBooked as e:
            if not self._is_stale(token, "submit"):
                self._present_conflict(
                    ConflictDetector.from_error(e, draft.time, draft.duration), "already_booked"
                )
            return self.phase
        except ValidationFailed as e:
            if not self._is_stale(token, "submit"):
                self.field_errors = e.as_field_map()
                self._transition(SchedulingPhase.COMPOSING, "validation_failed", detail=e.message)
            return self.phase
        except Unauthorized:
            if token == self._token:
                self._transition(SchedulingPhase.COMPOSING, "unauthorized")
            raise
        except GatewayError as e:
            if not self._is_stale(token, "submit"):
                self.error = e.message or type(e).__name__
                self._transition(SchedulingPhase.FAILED, type(e).__name__, detail=self.error)
            return self.phase

        if self._is_stale(token, "submit"):
            # Superseded, but the booking exists server-side.
            await self._emit_success(booking, editing is not None)
            return self.phase

        self.result = booking
        self._transition(SchedulingPhase.SUCCEEDED, "submitted", detail=booking.id)
        self.draft = self.binding.blank_draft()
        self.editing = None
        self.slots = []
        await self._emit_success(booking, editing is not None)
        return self.phase

    async def _emit_success(self, booking: Booking, rescheduled: bool) -> None:
        if rescheduled:
            await self.events.emit_rescheduled(booking)
        else:
            await self.events.emit_created(booking)

    def _present_conflict(self, conflict: Conflict, trigger: str) -> None:
        self.conflict = conflict
        self.alternatives = suggest_alternatives(
            self.slots, self.draft.time, conflict.occupants, self.draft.duration
        )
        self._transition(SchedulingPhase.CONFLICT_PRESENTED, trigger, detail=conflict.summary())

    # ------------------------------------------------------------------
    # Conflict resolution and recovery
    # ------------------------------------------------------------------

    async def choose_alternative(self, start: str) -> SchedulingPhase:
        """Move the draft to *start* and submit again."""
        self._require("choose_alternative", SchedulingPhase.CONFLICT_PRESENTED)
        self._bump()
        self.draft = BookingDraft.model_validate({**self.draft.model_dump(), "time": start})
        self._clear_outcome()
        self._transition(SchedulingPhase.COMPOSING, "choose_alternative", detail=self.draft.time)
        return await self.submit()

    def dismiss_conflict(self) -> SchedulingPhase:
        self._require("dismiss_conflict", SchedulingPhase.CONFLICT_PRESENTED)
        self._bump()
        self._clear_outcome()
        self._transition(SchedulingPhase.COMPOSING, "dismiss_conflict")
        return self.phase

    async def override(self) -> SchedulingPhase:
        """Submit despite the presented conflict."""
        self._require("override", SchedulingPhase.CONFLICT_PRESENTED)
        token = self._bump()
        self._clear_outcome()
        return await self._submit_mutation(token, force=True)

    def retry(self) -> SchedulingPhase:
        """Return from a failure to the form, keeping the draft."""
        self._require("retry", SchedulingPhase.FAILED)
        self._bump()
        self.error = None
        self._transition(SchedulingPhase.COMPOSING, "retry")
        return self.phase

    def cancel(self) -> SchedulingPhase:
        """Abandon the pending step and return to the form with the draft intact."""
        self._require(
            "cancel",
            SchedulingPhase.PREFLIGHT_CHECKING,
            SchedulingPhase.SUBMITTING,
            SchedulingPhase.CONFLICT_PRESENTED,
            SchedulingPhase.FAILED,
        )
        self._bump()
        self._clear_outcome()
        self._transition(SchedulingPhase.COMPOSING, "cancel")
        return self.phase

    def close(self) -> SchedulingPhase:
        """Close the dialog, superseding anything still in flight."""
        self._bump()
        self._slot_token += 1
        self.draft = self.binding.blank_draft()
        self.editing = None
        self.slots = []
        self.field_errors = {}
        self._clear_outcome()
        if self.phase != SchedulingPhase.IDLE:
            self._transition(SchedulingPhase.IDLE, "close")
        return self.phase
