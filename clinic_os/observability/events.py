"""Structured observability events for gateway and scheduling telemetry."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    GATEWAY_CALL_START = "gateway_call_start"
    GATEWAY_CALL_SUCCESS = "gateway_call_success"
    GATEWAY_CALL_ERROR = "gateway_call_error"
    STATE_TRANSITION = "state_transition"
    LEDGER_RELOAD = "ledger_reload"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class GatewayCallEvent(ObservabilityEvent):
    """Event for one HTTP call made by the appointment gateway."""

    operation: str
    method: str
    path: str
    mutating: bool = False
    attempt: int = 1

    # Response fields (populated on success)
    status_code: Optional[int] = None
    item_count: Optional[int] = None

    # Error fields (populated on error)
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class TransitionEvent(ObservabilityEvent):
    """Event for a scheduling state machine transition."""

    event_type: EventType = EventType.STATE_TRANSITION
    from_phase: str
    to_phase: str
    trigger: str
    attempt_token: int = 0
    detail: Optional[str] = None


class LedgerReloadEvent(ObservabilityEvent):
    """Event for a ledger list reload."""

    event_type: EventType = EventType.LEDGER_RELOAD
    view_name: str
    reload_token: int
    item_count: int = 0
    discarded: bool = False
