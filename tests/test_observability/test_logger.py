"""Tests for observability logger."""

import json
import pytest

from clinic_os.observability import (
    ObservabilityLogger,
    EventType,
    GatewayCallEvent,
    TransitionEvent,
    get_observability_logger,
)


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def obs_logger(temp_log_dir):
    """Create observability logger with temp directory."""
    return ObservabilityLogger(log_dir=temp_log_dir, enabled=True)


def _read(path):
    return [json.loads(line) for line in path.read_text().strip().split("\n")]


class TestObservabilityLogger:
    """Tests for ObservabilityLogger."""

    def test_init_creates_log_directory(self, tmp_path):
        """Test that init creates log directory if needed."""
        log_dir = tmp_path / "new_logs"
        ObservabilityLogger(log_dir=log_dir)

        assert log_dir.exists()

    def test_disabled_logger_touches_nothing(self, tmp_path):
        """A disabled logger neither creates its directory nor writes."""
        log_dir = tmp_path / "never"
        logger = ObservabilityLogger(log_dir=log_dir, enabled=False)

        with logger.gateway_call("list", "GET", "/appointments") as event:
            event.status_code = 200
        logger.log_transition("idle", "composing", "begin_compose")

        assert not log_dir.exists()

    def test_gateway_call_success(self, obs_logger, temp_log_dir):
        """Test logging a successful gateway call."""
        with obs_logger.gateway_call("list", "GET", "/appointments") as event:
            event.status_code = 200
            event.item_count = 7

        events = _read(temp_log_dir / "gateway_calls.jsonl")
        assert len(events) == 1
        assert events[0]["event_type"] == "gateway_call_success"
        assert events[0]["operation"] == "list"
        assert events[0]["item_count"] == 7
        assert events[0]["mutating"] is False
        assert events[0]["duration_ms"] is not None
        assert events[0]["request_id"]

    def test_gateway_call_error(self, obs_logger, temp_log_dir):
        """Test logging a failed gateway call."""
        with pytest.raises(ValueError):
            with obs_logger.gateway_call("create", "POST", "/appointments", mutating=True, attempt=1):
                raise ValueError("Test error")

        events = _read(temp_log_dir / "gateway_calls.jsonl")
        assert events[0]["event_type"] == "gateway_call_error"
        assert events[0]["error_type"] == "ValueError"
        assert events[0]["mutating"] is True
        assert "Test error" in events[0]["error_message"]

    def test_transition_logging(self, obs_logger, temp_log_dir):
        obs_logger.log_transition("composing", "preflight_checking", "submit", attempt_token=4)

        events = _read(temp_log_dir / "transitions.jsonl")
        assert events[0]["event_type"] == "state_transition"
        assert events[0]["attempt_token"] == 4
        assert events[0]["trigger"] == "submit"

    def test_ledger_reload_logging(self, obs_logger, temp_log_dir):
        obs_logger.log_ledger_reload("appointmentManagement", reload_token=2, item_count=9, discarded=True)

        events = _read(temp_log_dir / "ledger_reloads.jsonl")
        assert events[0]["view_name"] == "appointmentManagement"
        assert events[0]["discarded"] is True

    def test_message_truncation(self, temp_log_dir):
        """Test that long error messages are truncated."""
        logger = ObservabilityLogger(log_dir=temp_log_dir, max_message_length=20)

        with pytest.raises(RuntimeError):
            with logger.gateway_call("stats", "GET", "/appointments/stats/summary"):
                raise RuntimeError("x" * 100)
        logger.log_transition("submitting", "failed", "UnknownError", detail="y" * 100)

        assert _read(temp_log_dir / "gateway_calls.jsonl")[0]["error_message"] == "x" * 20 + "..."
        assert _read(temp_log_dir / "transitions.jsonl")[0]["detail"] == "y" * 20 + "..."

    def test_session_id_propagation(self, obs_logger, temp_log_dir):
        """Test that session ID is added to events."""
        obs_logger.set_session_id("session-123")
        obs_logger.log_transition("idle", "composing", "begin_compose")

        events = _read(temp_log_dir / "transitions.jsonl")
        assert events[0]["session_id"] == "session-123"

    def test_callback_on_event(self, obs_logger):
        """Test that callbacks are called on events."""
        callback_events = []
        obs_logger.add_callback(callback_events.append)

        with obs_logger.gateway_call("stats", "GET", "/appointments/stats/summary"):
            pass

        assert len(callback_events) == 1
        assert callback_events[0].event_type == EventType.GATEWAY_CALL_SUCCESS

    def test_failing_callback_is_ignored(self, obs_logger, temp_log_dir):
        def broken(event):
            raise RuntimeError("callback down")

        obs_logger.add_callback(broken)
        obs_logger.log_transition("idle", "composing", "begin_compose")

        assert len(_read(temp_log_dir / "transitions.jsonl")) == 1

    def test_get_recent_events(self, obs_logger):
        """Test retrieving recent events."""
        for i in range(5):
            with obs_logger.gateway_call(f"op-{i}", "GET", "/doctors"):
                pass

        events = obs_logger.get_recent_events("gateway", limit=3)
        assert len(events) == 3
        assert events[-1]["operation"] == "op-4"

    def test_get_stats(self, obs_logger):
        """Test getting statistics."""
        for _ in range(3):
            with obs_logger.gateway_call("list", "GET", "/appointments"):
                pass

        with pytest.raises(ValueError):
            with obs_logger.gateway_call("list", "GET", "/appointments"):
                raise ValueError("test")

        stats = obs_logger.get_stats("gateway")
        assert stats["total"] == 4
        assert stats["errors"] == 1
        assert stats["error_rate"] == 0.25

    def test_stats_for_empty_log(self, obs_logger):
        assert obs_logger.get_stats("ledger") == {"total": 0}


class TestGetObservabilityLogger:
    """Tests for singleton getter."""

    def test_returns_singleton(self):
        """Test that get_observability_logger returns singleton."""
        ObservabilityLogger._instance = None

        logger1 = get_observability_logger()
        logger2 = get_observability_logger()

        assert logger1 is logger2

    def test_singleton_persists(self):
        """Test singleton instance persists."""
        ObservabilityLogger._instance = None

        logger1 = get_observability_logger()
        logger1.set_session_id("test-session")

        logger2 = get_observability_logger()
        assert logger2._current_session_id == "test-session"


class TestEventModels:
    """Tests for event Pydantic models."""

    def test_gateway_call_event_serialization(self):
        event = GatewayCallEvent(
            event_type=EventType.GATEWAY_CALL_SUCCESS,
            operation="conflicts",
            method="GET",
            path="/appointments/check-conflicts",
            status_code=200,
        )

        data = event.model_dump()
        assert data["operation"] == "conflicts"
        assert data["attempt"] == 1
        assert "timestamp" in data

    def test_transition_event_defaults(self):
        event = TransitionEvent(from_phase="idle", to_phase="composing", trigger="begin_compose")

        data = json.loads(event.model_dump_json())
        assert data["event_type"] == "state_transition"
        assert data["detail"] is None
