"""Observability logger for structured telemetry."""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from clinic_os.observability.events import (
    EventType,
    GatewayCallEvent,
    LedgerReloadEvent,
    ObservabilityEvent,
    TransitionEvent,
)

logger = logging.getLogger(__name__)


class ObservabilityLogger:
    """Central logger for gateway and scheduling observability events.

    Writes structured events to JSON Lines files for later analysis.
    A disabled logger writes nothing and never touches the filesystem.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
        max_message_length: int = 200,
    ):
        """Initialize observability logger.

        Args:
            log_dir: Directory for log files (default: data/logs)
            enabled: Whether logging is enabled
            max_message_length: Max length for error messages
        """
        self.enabled = enabled
        self.max_message_length = max_message_length

        if log_dir is None:
            log_dir = Path("data/logs")
        self.log_dir = log_dir
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        # Separate files for different event types
        self._log_files: dict[str, Path] = {
            "gateway": self.log_dir / "gateway_calls.jsonl",
            "transitions": self.log_dir / "transitions.jsonl",
            "ledger": self.log_dir / "ledger_reloads.jsonl",
        }

        # Event callbacks for real-time monitoring
        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []

        self._current_session_id: Optional[str] = None

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        """Get or create the shared instance configured from settings."""
        if cls._instance is None:
            from clinic_os.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.telemetry_dir,
                enabled=settings.telemetry_enabled,
            )
        return cls._instance

    def set_session_id(self, session_id: str) -> None:
        """Set current session ID for event correlation."""
        self._current_session_id = session_id

    def generate_request_id(self) -> str:
        """Generate a unique request ID."""
        return str(uuid.uuid4())[:8]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: ObservabilityEvent, log_type: str) -> None:
        """Write event to appropriate log file."""
        if not self.enabled:
            return

        if self._current_session_id and not event.session_id:
            event.session_id = self._current_session_id

        try:
            log_file = self._log_files.get(log_type)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(event.model_dump_json() + "\n")

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Observability callback failed: {e}")

        except OSError as e:
            logger.warning(f"Failed to write observability event: {e}")

    def _truncate(self, content: str) -> str:
        if len(content) <= self.max_message_length:
            return content
        return content[: self.max_message_length] + "..."

    # Gateway call logging

    @contextmanager
    def gateway_call(
        self,
        operation: str,
        method: str,
        path: str,
        mutating: bool = False,
        attempt: int = 1,
        request_id: Optional[str] = None,
    ):
        """Context manager for logging gateway calls.

        Usage:
            with obs.gateway_call("list", "GET", "/appointments") as event:
                response = await client.get(...)
                event.status_code = response.status_code
        """
        start_time = time.time()
        request_id = request_id or self.generate_request_id()

        event = GatewayCallEvent(
            event_type=EventType.GATEWAY_CALL_START,
            operation=operation,
            method=method,
            path=path,
            mutating=mutating,
            attempt=attempt,
            request_id=request_id,
        )

        try:
            yield event
            event.event_type = EventType.GATEWAY_CALL_SUCCESS

        except Exception as e:
            event.event_type = EventType.GATEWAY_CALL_ERROR
            event.error_type = type(e).__name__
            event.error_message = self._truncate(str(e))
            raise

        finally:
            event.duration_ms = (time.time() - start_time) * 1000
            self._write_event(event, "gateway")

    # Scheduling logging

    def log_transition(
        self,
        from_phase: str,
        to_phase: str,
        trigger: str,
        attempt_token: int = 0,
        detail: Optional[str] = None,
    ) -> None:
        """Log a scheduling state machine transition."""
        event = TransitionEvent(
            from_phase=from_phase,
            to_phase=to_phase,
            trigger=trigger,
            attempt_token=attempt_token,
            detail=self._truncate(detail) if detail else None,
        )
        self._write_event(event, "transitions")

    def log_ledger_reload(
        self,
        view_name: str,
        reload_token: int,
        item_count: int,
        discarded: bool = False,
    ) -> None:
        """Log a ledger reload and whether its result was discarded."""
        event = LedgerReloadEvent(
            view_name=view_name,
            reload_token=reload_token,
            item_count=item_count,
            discarded=discarded,
        )
        self._write_event(event, "ledger")

    # Utility methods

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Read recent events from a log file."""
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def get_stats(self, log_type: str) -> dict[str, Any]:
        """Get basic statistics for a log type."""
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(1 for e in events if "error" in e.get("event_type", ""))
        avg_duration = sum(e.get("duration_ms") or 0 for e in events) / total

        return {
            "total": total,
            "errors": errors,
            "error_rate": errors / total if total > 0 else 0,
            "avg_duration_ms": avg_duration,
        }


def get_observability_logger() -> ObservabilityLogger:
    """Get the shared observability logger instance."""
    return ObservabilityLogger.get_instance()
