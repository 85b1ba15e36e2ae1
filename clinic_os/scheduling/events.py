"""Event bus connecting the scheduling flow to the appointment ledger."""

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from clinic_os.gateway.errors import Unauthorized
from clinic_os.scheduling.models import Booking

logger = logging.getLogger(__name__)

Handler = Callable[[Booking], Union[None, Awaitable[None]]]


class SchedulingEvents:
    """Subscribers for created, rescheduled and completed bookings.

    Handlers may be plain functions or coroutines. A failing handler is
    logged and does not prevent the remaining handlers from running;
    ``Unauthorized`` is the exception and always propagates.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {
            "created": [],
            "rescheduled": [],
            "completed": [],
        }

    def on_created(self, handler: Handler) -> Handler:
        self._handlers["created"].append(handler)
        return handler

    def on_rescheduled(self, handler: Handler) -> Handler:
        self._handlers["rescheduled"].append(handler)
        return handler

    def on_completed(self, handler: Handler) -> Handler:
        self._handlers["completed"].append(handler)
        return handler

    async def _emit(self, name: str, booking: Booking) -> None:
        for handler in list(self._handlers[name]):
            try:
                result: Any = handler(booking)
                if inspect.isawaitable(result):
                    await result
            except Unauthorized:
                raise
            except Exception as e:
                logger.warning(f"Scheduling '{name}' handler failed: {e}")

    async def emit_created(self, booking: Booking) -> None:
        await self._emit("created", booking)

    async def emit_rescheduled(self, booking: Booking) -> None:
        await self._emit("rescheduled", booking)

    async def emit_completed(self, booking: Booking) -> None:
        await self._emit("completed", booking)
