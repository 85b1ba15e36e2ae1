"""Caller-aware restrictions on the scheduling form.

Only the clinician binding lives here; which pages and server actions a
role may use is decided by the external auth layer.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from clinic_os.gateway.client import ListFilters
from clinic_os.scheduling.models import BookingDraft, Clinician


class CallerRole(str, Enum):
    ADMIN = "admin"
    CLINIC = "clinic"
    DOCTOR = "doctor"
    HEAD_NURSE = "head_nurse"
    NURSE = "nurse"
    SUPERVISOR = "supervisor"
    PHARMACIST = "pharmacist"
    PATIENT = "patient"


class Caller(BaseModel):
    """The signed-in user, passed in explicitly by the session layer."""

    id: str
    role: CallerRole
    name: str = ""


class RoleBinding:
    """Pins the clinician field when the caller is a clinician."""

    def __init__(self, caller: Optional[Caller] = None):
        self.caller = caller

    @property
    def is_clinician(self) -> bool:
        return self.caller is not None and self.caller.role == CallerRole.DOCTOR

    @property
    def clinician_locked(self) -> bool:
        return self.is_clinician

    @property
    def show_clinician_picker(self) -> bool:
        return not self.is_clinician

    @property
    def show_specialty_filter(self) -> bool:
        return not self.is_clinician

    @property
    def bound_clinician_id(self) -> Optional[str]:
        return self.caller.id if self.is_clinician else None

    def bind(self, draft: BookingDraft) -> BookingDraft:
        """Return *draft* with the clinician forced to the caller when required."""
        if not self.is_clinician:
            return draft
        return draft.model_copy(update={"clinician_id": self.caller.id})

    def blank_draft(self) -> BookingDraft:
        """A fresh form, pre-filled with the caller's identity if they are a clinician."""
        return self.bind(BookingDraft())

    def check_clinician(self, clinician_id: Optional[str]) -> None:
        """Reject an attempt to book against another clinician's calendar."""
        if self.is_clinician and clinician_id not in (None, self.caller.id):
            raise ValueError("Clinician callers can only book on their own calendar")

    def selectable_clinicians(self, clinicians: list[Clinician]) -> list[Clinician]:
        """Clinicians offered in the picker: active ones, or only the caller."""
        if self.is_clinician:
            return [c for c in clinicians if c.id == self.caller.id]
        return [c for c in clinicians if c.is_active]

    def scope_filters(self, filters: Optional[ListFilters] = None) -> ListFilters:
        """Restrict list queries to the caller's own bookings when they are a clinician."""
        filters = filters or ListFilters()
        if self.is_clinician:
            return filters.model_copy(update={"clinician_id": self.caller.id})
        return filters
