"""Error taxonomy for the appointment API gateway."""

from typing import Optional

from pydantic import BaseModel

from clinic_os.scheduling.models import ConflictOccupant


class FieldError(BaseModel):
    """A user-correctable problem with one form field."""

    field: str
    message: str


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationFailed(GatewayError):
    """The server (or a client-side guard) rejected one or more fields."""

    def __init__(self, fields: list[FieldError], message: str = "", status_code: Optional[int] = None):
        super().__init__(message or "Validation failed", status_code)
        self.fields = fields

    def as_field_map(self) -> dict[str, str]:
        return {f.field: f.message for f in self.fields}


class AlreadyBooked(GatewayError):
    """The requested time overlaps one or more existing bookings."""

    def __init__(
        self,
        occupants: list[ConflictOccupant],
        message: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message or "Time slot conflicts with existing appointment(s)", status_code)
        self.occupants = occupants


class NotFound(GatewayError):
    """The referenced record no longer exists."""

    pass


class Unauthorized(GatewayError):
    """The session is missing, expired or lacks permission."""

    pass


class TransportError(GatewayError):
    """Network failure or timeout; the request may be retried."""

    pass


class UnknownError(GatewayError):
    """Anything the server reported that fits no other category."""

    pass
