"""Appointment ledger: cached list, filters, paging and mutations."""

import logging
from datetime import date, datetime
from typing import Any, Callable, Optional

from clinic_os.gateway.errors import AlreadyBooked, FieldError, GatewayError, Unauthorized, ValidationFailed
from clinic_os.ledger.filters import LedgerFilter, matches, order_bookings, page_count, paginate
from clinic_os.observability import ObservabilityLogger, get_observability_logger
from clinic_os.preferences import PersistedSetting, PreferenceStore
from clinic_os.roles import RoleBinding
from clinic_os.scheduling.events import SchedulingEvents
from clinic_os.scheduling.models import (
    AppointmentStats,
    AppointmentStatus,
    Booking,
    BookingDraft,
)
from clinic_os.scheduling.timemodel import WallClock

logger = logging.getLogger(__name__)


class LedgerViewModel:
    """Single writer of the in-memory appointment cache.

    Every mutation is followed by a list reload and then a stats reload.
    Reloads carry a token; a response that arrives after a newer reload
    was issued is discarded.
    """

    def __init__(
        self,
        gateway,
        preferences: PreferenceStore,
        view_name: str = "appointmentManagement",
        binding: Optional[RoleBinding] = None,
        today: Optional[date] = None,
        fetch_page_size: int = 100,
        default_page_size: int = 5,
        obs: Optional[ObservabilityLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.view_name = view_name
        self.binding = binding or RoleBinding()
        self.fetch_page_size = fetch_page_size
        self._today = today
        self._clock = clock or datetime.now
        self._obs = obs or get_observability_logger()

        self.bookings: list[Booking] = []
        self.stats = AppointmentStats()
        self.filter = LedgerFilter()
        self.page = 1
        self.error: Optional[str] = None
        self.stats_error: Optional[str] = None

        self._page_size = PersistedSetting(preferences, view_name, "pageSize", default_page_size)
        self._page_size.hydrate()
        self._reload_token = 0
        self._stats_token = 0
        self._events: Optional[SchedulingEvents] = None

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def today(self) -> date:
        return self._today or self._clock().date()

    @property
    def page_size(self) -> int:
        return int(self._page_size.value)

    @property
    def filtered(self) -> list[Booking]:
        today = self.today
        return [b for b in order_bookings(self.bookings, today) if matches(b, self.filter, today)]

    @property
    def visible(self) -> list[Booking]:
        return paginate(self.filtered, self.page, self.page_size)

    @property
    def total_pages(self) -> int:
        return page_count(len(self.filtered), self.page_size)

    @property
    def completion_rate(self) -> int:
        return self.stats.completion_rate

    # ------------------------------------------------------------------
    # Filter and paging
    # ------------------------------------------------------------------

    def set_filter(self, **changes: Any) -> LedgerFilter:
        """Update filter fields and go back to the first page."""
        self.filter = LedgerFilter.model_validate({**self.filter.model_dump(), **changes})
        self.page = 1
        return self.filter

    def clear_filters(self) -> LedgerFilter:
        self.filter = LedgerFilter()
        self.page = 1
        return self.filter

    def set_page(self, page: int) -> int:
        self.page = min(max(1, page), self.total_pages)
        return self.page

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError(f"Page size must be positive, got {page_size}")
        self._page_size.update(page_size)
        self.page = 1

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Initial load of the list and the summary stats."""
        await self.reload()
        await self.reload_stats()

    async def reload(self) -> bool:
        """Fetch the full list; returns False if the result was discarded or failed."""
        self._reload_token += 1
        token = self._reload_token
        try:
            items = await self.gateway.list_all(
                self.binding.scope_filters(), page_size=self.fetch_page_size
            )
        except Unauthorized:
            raise
        except GatewayError as e:
            if token == self._reload_token:
                logger.warning(f"Ledger reload failed: {e.message}")
                self.error = e.message
            return False

        if token != self._reload_token:
            logger.debug(f"Discarding superseded ledger reload {token}")
            self._obs.log_ledger_reload(self.view_name, token, len(items), discarded=True)
            return False

        self.bookings = items
        self.error = None
        self.page = min(self.page, self.total_pages)
        self._obs.log_ledger_reload(self.view_name, token, len(items))
        logger.debug(f"Ledger {self.view_name} holds {len(items)} bookings")
        return True

    async def reload_stats(self) -> bool:
        self._stats_token += 1
        token = self._stats_token
        try:
            stats = await self.gateway.stats()
        except Unauthorized:
            raise
        except GatewayError as e:
            if token == self._stats_token:
                logger.warning(f"Stats reload failed: {e.message}")
                self.stats_error = e.message
            return False
        if token != self._stats_token:
            return False
        self.stats = stats
        self.stats_error = None
        return True

    async def _after_mutation(self) -> None:
        await self.reload()
        await self.reload_stats()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def find(self, appointment_id: str) -> Optional[Booking]:
        return next((b for b in self.bookings if b.id == appointment_id), None)

    async def update_status(self, appointment_id: str, status: AppointmentStatus) -> Booking:
        """Change a booking's status.

        Marking a booking as No Show is refused before its end time and for
        bookings that are no longer open.
        On an attached ledger, completing a booking is announced on the bus.
        """
        if status == AppointmentStatus.NO_SHOW:
            booking = self.find(appointment_id)
            if booking is not None and not booking.can_mark_no_show(self._clock()):
                raise ValidationFailed(
                    [FieldError(
                        field="status",
                        message="No Show is only allowed for scheduled or confirmed "
                        "appointments after their end time",
                    )]
                )
        updated = await self.gateway.update_status(appointment_id, status)
        logger.info(f"Appointment {appointment_id} marked {status.value}")
        if status == AppointmentStatus.COMPLETED and self._events is not None:
            # Our own subscription performs the reload.
            await self._events.emit_completed(updated)
        else:
            await self._after_mutation()
        return updated

    async def delete(self, appointment_id: str) -> None:
        await self.gateway.delete(appointment_id)
        logger.info(f"Appointment {appointment_id} deleted")
        await self._after_mutation()

    async def reschedule(
        self,
        booking: Booking,
        day: date,
        start: "WallClock | str",
        duration: Optional[int] = None,
        clinician_id: Optional[str] = None,
        force: bool = False,
    ) -> Booking:
        """Move a booking; a conflict report also refreshes the cache before propagating."""
        changes: dict[str, Any] = {"day": day, "time": str(WallClock.parse(start))}
        if duration is not None:
            changes["duration"] = duration
        if clinician_id is not None:
            self.binding.check_clinician(clinician_id)
            changes["clinician_id"] = clinician_id
        draft = BookingDraft.model_validate({**BookingDraft.from_booking(booking).model_dump(), **changes})
        try:
            updated = await self.gateway.reschedule(booking.id, draft, force=force)
        except AlreadyBooked:
            await self._after_mutation()
            raise
        await self._after_mutation()
        return updated

    async def create(self, draft: BookingDraft, force: bool = False) -> Booking:
        draft = self.binding.bind(draft)
        try:
            created = await self.gateway.create(draft, force=force)
        except AlreadyBooked:
            await self._after_mutation()
            raise
        await self._after_mutation()
        return created

    # ------------------------------------------------------------------
    # Event bus
    # ------------------------------------------------------------------

    async def _on_booking_changed(self, booking: Booking) -> None:
        logger.debug(f"Ledger refresh after change to {booking.id}")
        await self._after_mutation()

    def attach(self, events: SchedulingEvents) -> None:
        """Reload whenever the scheduling flow creates, moves or completes a booking."""
        self._events = events
        events.on_created(self._on_booking_changed)
        events.on_rescheduled(self._on_booking_changed)
        events.on_completed(self._on_booking_changed)
