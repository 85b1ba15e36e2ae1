"""Pydantic models for the scheduling client."""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator

from clinic_os.scheduling.timemodel import BadTime, Interval, WallClock


class AppointmentStatus(str, Enum):
    """Appointment lifecycle statuses."""

    SCHEDULED = "Scheduled"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No Show"


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class AppointmentType(str, Enum):
    """Visit types offered by the clinic."""

    GENERAL_CONSULTATION = "General Consultation"
    FOLLOW_UP = "Follow-up Visit"
    ANNUAL_CHECKUP = "Annual Checkup"
    SPECIALIST_CONSULTATION = "Specialist Consultation"
    EMERGENCY = "Emergency Visit"
    LAB_WORK = "Lab Work"
    IMAGING = "Imaging"
    VACCINATION = "Vaccination"
    PHYSICAL_THERAPY = "Physical Therapy"
    MENTAL_HEALTH = "Mental Health"
    TELECONSULTATION = "Teleconsultation"


class ExceptionKind(str, Enum):
    UNAVAILABLE = "unavailable"
    CUSTOM_HOURS = "custom_hours"


def _normalise_wallclock(value: str) -> str:
    try:
        return str(WallClock.parse(value))
    except BadTime as e:
        raise ValueError(str(e)) from e


WallClockStr = Annotated[str, AfterValidator(_normalise_wallclock)]


# ── Reference data ────────────────────────────────────────────────────────────


class Clinician(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    specialty: Optional[str] = None
    is_active: bool = True


class Patient(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


# ── Availability calendar ────────────────────────────────────────────────────


class AvailabilityWindow(BaseModel):
    """A working window within a day, cut into slots of ``slot_duration`` minutes."""

    model_config = ConfigDict(frozen=True)

    start_time: WallClockStr
    end_time: WallClockStr
    slot_duration: int = Field(default=30, gt=0)

    @model_validator(mode="after")
    def check_window_order(self) -> "AvailabilityWindow":
        if WallClock.parse(self.end_time) <= WallClock.parse(self.start_time):
            raise ValueError(f"Window end {self.end_time} must be after start {self.start_time}")
        return self

    @property
    def interval(self) -> Interval:
        return Interval(WallClock.parse(self.start_time).minutes, WallClock.parse(self.end_time).minutes)


class AvailabilityRule(BaseModel):
    """Weekday-recurring working windows for one clinician."""

    clinician_id: str
    weekday: int = Field(ge=0, le=6, description="0=Sunday .. 6=Saturday")
    windows: list[AvailabilityWindow] = Field(default_factory=list)
    is_active: bool = True


class AvailabilityException(BaseModel):
    """Date-specific override that replaces the weekday rule for that date."""

    clinician_id: str
    day: date
    kind: ExceptionKind = ExceptionKind.UNAVAILABLE
    windows: list[AvailabilityWindow] = Field(default_factory=list)
    reason: str = ""
    is_active: bool = True

    @model_validator(mode="after")
    def check_custom_windows(self) -> "AvailabilityException":
        if self.kind == ExceptionKind.CUSTOM_HOURS and not self.windows:
            raise ValueError("custom_hours exception requires at least one window")
        return self


# ── Bookings ─────────────────────────────────────────────────────────────────


class Booking(BaseModel):
    """An existing appointment as held in the client cache."""

    id: str
    clinician_id: str
    patient_id: str
    patient_name: str = ""
    clinician_name: str = ""
    day: date
    time: WallClockStr
    duration: int = Field(gt=0)
    type: AppointmentType
    priority: Priority = Priority.NORMAL
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    reason: Optional[str] = None
    notes: Optional[str] = None

    @property
    def start(self) -> WallClock:
        return WallClock.parse(self.time)

    @property
    def interval(self) -> Interval:
        return Interval.from_start(self.time, self.duration)

    @property
    def is_cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED

    @property
    def starts_at(self) -> datetime:
        return datetime(self.day.year, self.day.month, self.day.day) + timedelta(minutes=self.start.minutes)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration)

    def can_mark_no_show(self, now: datetime) -> bool:
        """No-Show only applies to open bookings whose end time has passed."""
        if self.status not in (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED):
            return False
        return now >= self.ends_at


class Slot(BaseModel):
    """A derived, never-persisted bookable window."""

    model_config = ConfigDict(frozen=True)

    clinician_id: Optional[str] = None
    day: date
    start: WallClockStr
    duration: int = Field(gt=0)
    available: bool = True

    @property
    def interval(self) -> Interval:
        return Interval.from_start(self.start, self.duration)

    @property
    def end(self) -> str:
        return str(WallClock.parse(self.start).plus(self.duration))

    @property
    def display(self) -> str:
        return WallClock.parse(self.start).display()


class BookingDraft(BaseModel):
    """Form state for creating or rescheduling an appointment."""

    patient_id: Optional[str] = None
    clinician_id: Optional[str] = None
    type: Optional[AppointmentType] = None
    day: Optional[date] = None
    time: Optional[str] = None
    duration: Optional[int] = Field(default=30, gt=0)
    priority: Priority = Priority.NORMAL
    reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("time")
    @classmethod
    def check_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return _normalise_wallclock(v)

    @classmethod
    def from_booking(cls, booking: "Booking") -> "BookingDraft":
        """Pre-fill a draft from an existing booking."""
        return cls(
            patient_id=booking.patient_id,
            clinician_id=booking.clinician_id,
            type=booking.type,
            day=booking.day,
            time=booking.time,
            duration=booking.duration,
            priority=booking.priority,
            reason=booking.reason,
            notes=booking.notes,
        )

    def missing_fields(self) -> list[str]:
        """Required fields that are still empty."""
        missing = []
        for name in ("patient_id", "clinician_id", "type", "day", "time", "duration"):
            if getattr(self, name) in (None, ""):
                missing.append(name)
        return missing


# ── Conflicts ────────────────────────────────────────────────────────────────


class ConflictOccupant(BaseModel):
    """Summary of the booking that occupies a requested time."""

    model_config = ConfigDict(frozen=True)

    appointment_id: Optional[str] = None
    time: WallClockStr
    duration: int = Field(default=30, gt=0)
    patient_name: str = "Unknown Patient"
    type: str = "Unknown Type"
    status: Optional[str] = None

    @property
    def interval(self) -> Interval:
        return Interval.from_start(self.time, self.duration)

    @property
    def end_time(self) -> str:
        return str(WallClock.parse(self.time).wrapping_plus(self.duration))

    def describe(self) -> str:
        return f"{self.time}-{self.end_time} {self.patient_name} ({self.type}, {self.duration} min)"


class ConflictReport(BaseModel):
    has_conflicts: bool = False
    conflicts: list[ConflictOccupant] = Field(default_factory=list)
    message: str = ""


# ── Gateway results ──────────────────────────────────────────────────────────


class Pagination(BaseModel):
    page: int = 1
    total_pages: int = 1
    total_count: int = 0


class AppointmentPage(BaseModel):
    items: list[Booking] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class AppointmentStats(BaseModel):
    total: int = 0
    today: int = 0
    upcoming: int = 0
    status_histogram: dict[str, int] = Field(default_factory=dict)
    type_histogram: dict[str, int] = Field(default_factory=dict)

    @property
    def completion_rate(self) -> int:
        """Completed share of all bookings as a rounded integer percent."""
        if self.total <= 0:
            return 0
        completed = self.status_histogram.get(AppointmentStatus.COMPLETED.value, 0)
        # Round half up, matching the dashboard's Math.round.
        return int(completed * 100 / self.total + 0.5)


class AvailabilitySnapshot(BaseModel):
    """Everything needed to resolve one clinician's slots for one date."""

    rules: list[AvailabilityRule] = Field(default_factory=list)
    exceptions: list[AvailabilityException] = Field(default_factory=list)
    bookings: list[Booking] = Field(default_factory=list)
