"""Tests for the scheduling event bus."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from clinic_os.gateway.errors import Unauthorized
from clinic_os.scheduling.events import SchedulingEvents
from tests.conftest import make_booking


class TestSchedulingEvents:
    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        events = SchedulingEvents()
        sync_handler = MagicMock()
        async_handler = AsyncMock()
        events.on_created(sync_handler)
        events.on_created(async_handler)

        booking = make_booking()
        await events.emit_created(booking)

        sync_handler.assert_called_once_with(booking)
        async_handler.assert_awaited_once_with(booking)

    @pytest.mark.asyncio
    async def test_channels_are_separate(self):
        events = SchedulingEvents()
        created, moved, done = MagicMock(), MagicMock(), MagicMock()
        events.on_created(created)
        events.on_rescheduled(moved)
        events.on_completed(done)

        await events.emit_rescheduled(make_booking())
        created.assert_not_called()
        moved.assert_called_once()
        done.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        events = SchedulingEvents()
        events.on_completed(MagicMock(side_effect=RuntimeError("boom")))
        survivor = MagicMock()
        events.on_completed(survivor)

        await events.emit_completed(make_booking())
        survivor.assert_called_once()

    @pytest.mark.asyncio
    async def test_unauthorized_propagates(self):
        events = SchedulingEvents()
        events.on_created(AsyncMock(side_effect=Unauthorized("expired", 401)))
        with pytest.raises(Unauthorized):
            await events.emit_created(make_booking())

    def test_decorator_returns_handler(self):
        events = SchedulingEvents()

        @events.on_created
        def handler(booking):
            pass

        assert callable(handler)
