"""Observability module for gateway and scheduling telemetry."""

from clinic_os.observability.events import (
    EventType,
    GatewayCallEvent,
    LedgerReloadEvent,
    ObservabilityEvent,
    TransitionEvent,
)
from clinic_os.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "EventType",
    "GatewayCallEvent",
    "LedgerReloadEvent",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "TransitionEvent",
    "get_observability_logger",
]
