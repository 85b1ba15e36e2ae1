"""Typed gateway over the clinic appointment API."""

from clinic_os.gateway.client import AppointmentGateway, ListFilters
from clinic_os.gateway.errors import (
    AlreadyBooked,
    FieldError,
    GatewayError,
    NotFound,
    TransportError,
    Unauthorized,
    UnknownError,
    ValidationFailed,
)

__all__ = [
    "AlreadyBooked",
    "AppointmentGateway",
    "FieldError",
    "GatewayError",
    "ListFilters",
    "NotFound",
    "TransportError",
    "Unauthorized",
    "UnknownError",
    "ValidationFailed",
]
