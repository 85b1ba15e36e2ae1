"""Async façade over the clinic appointment API."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from clinic_os.gateway import wire
from clinic_os.gateway.errors import TransportError, UnknownError
from clinic_os.observability import ObservabilityLogger, get_observability_logger
from clinic_os.scheduling.models import (
    AppointmentPage,
    AppointmentStats,
    AppointmentStatus,
    AppointmentType,
    AvailabilitySnapshot,
    Booking,
    BookingDraft,
    Clinician,
    ConflictReport,
    Patient,
)
from clinic_os.scheduling.timemodel import WallClock

logger = logging.getLogger(__name__)


class ListFilters(BaseModel):
    """Server-side filters for the appointment list."""

    status: Optional[AppointmentStatus] = None
    type: Optional[AppointmentType] = None
    day: Optional[date] = None
    clinician_id: Optional[str] = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.status:
            params["status"] = self.status.value
        if self.type:
            params["appointmentType"] = self.type.value
        if self.day:
            params["date"] = self.day.isoformat()
        if self.clinician_id:
            params["doctorId"] = self.clinician_id
        return params


class AppointmentGateway:
    """Typed access to appointments, availability and conflict checks.

    Errors surface as :class:`~clinic_os.gateway.errors.GatewayError`
    subclasses. Reads are retried once after a transport failure;
    mutations are never retried.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 15.0,
        connect_timeout: float = 5.0,
        retry_wait: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
        obs: Optional[ObservabilityLogger] = None,
    ):
        """Initialize the gateway.

        Args:
            base_url: API root, e.g. ``https://clinic.example/api``
            token_provider: Returns the current bearer token (owned by the
                external session layer)
            timeout: Upper bound in seconds for every call
            connect_timeout: Connect timeout in seconds
            retry_wait: Backoff before the single read retry
            client: Pre-built client (tests inject one with a mock transport)
            obs: Observability logger; defaults to the shared instance
        """
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._retry_wait = retry_wait
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
        )
        self._obs = obs or get_observability_logger()

    @classmethod
    def from_settings(
        cls,
        settings=None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
    ) -> "AppointmentGateway":
        """Build a gateway from :class:`~clinic_os.config.Settings`."""
        from clinic_os.config import get_settings

        settings = settings or get_settings()
        if token_provider is None and settings.has_api_token:
            token = settings.clinic_api_token
            token_provider = lambda: token  # noqa: E731
        return cls(
            base_url=settings.clinic_api_base_url,
            token_provider=token_provider,
            timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
            retry_wait=settings.transport_retry_wait,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AppointmentGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        mutating: bool = False,
        attempt: int = 1,
    ) -> Any:
        with self._obs.gateway_call(operation, method, path, mutating=mutating, attempt=attempt) as event:
            try:
                response = await self._client.request(
                    method, path, params=params, json=json, headers=self._headers()
                )
            except httpx.TimeoutException as e:
                raise TransportError(f"{operation} timed out after {self._timeout}s") from e
            except httpx.TransportError as e:
                raise TransportError(f"{operation} failed: {e}") from e

            event.status_code = response.status_code
            if response.is_error:
                error = wire.error_from_response(response)
                logger.info(f"{method} {path} -> {response.status_code} ({type(error).__name__})")
                raise error

            if response.status_code == 204 or not response.content:
                return {}
            try:
                body = response.json()
            except ValueError as e:
                raise UnknownError(f"{operation} returned a non-JSON body", response.status_code) from e
            event.item_count = wire.count_items(body)
            return body

    async def _read(self, operation: str, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransportError),
            stop=stop_after_attempt(2),
            wait=wait_fixed(self._retry_wait),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.warning(f"Retrying {operation} after transport failure")
                body = await self._request(operation, "GET", path, params=params, attempt=number)
        return body

    async def _write(
        self, operation: str, method: str, path: str, json: Optional[dict[str, Any]] = None
    ) -> Any:
        return await self._request(operation, method, path, json=json, mutating=True)

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def list(
        self,
        page: int = 1,
        page_size: int = 10,
        filters: Optional[ListFilters] = None,
    ) -> AppointmentPage:
        """Fetch one page of appointments."""
        params = {"page": str(page), "limit": str(page_size)}
        if filters:
            params.update(filters.to_params())
        body = await self._read("list", "/appointments", params=params)
        result = wire.page_from_wire(body)
        logger.debug(f"Listed {len(result.items)} appointments (page {result.pagination.page}/{result.pagination.total_pages})")
        return result

    async def list_all(
        self,
        filters: Optional[ListFilters] = None,
        page_size: int = 100,
    ) -> list[Booking]:
        """Walk every page and return the concatenated items."""
        items: list[Booking] = []
        page = 1
        while True:
            result = await self.list(page, page_size, filters)
            items.extend(result.items)
            if page >= result.pagination.total_pages or not result.items:
                return items
            page += 1

    async def create(self, draft: BookingDraft, force: bool = False) -> Booking:
        """Create an appointment; raises ``AlreadyBooked`` or ``ValidationFailed``."""
        body = await self._write("create", "POST", "/appointments", json=wire.draft_to_wire(draft, force))
        return wire.mutation_result(body)

    async def update_status(self, appointment_id: str, status: AppointmentStatus) -> Booking:
        body = await self._write(
            "update_status", "PATCH", f"/appointments/{appointment_id}/status", json={"status": status.value}
        )
        return wire.mutation_result(body)

    async def reschedule(self, appointment_id: str, draft: BookingDraft, force: bool = False) -> Booking:
        """Replace an appointment with *draft*; raises ``AlreadyBooked`` on overlap.

        The update route validates the whole record, so patient, clinician
        and type travel with the new date and time.
        """
        body = await self._write(
            "reschedule", "PUT", f"/appointments/{appointment_id}", json=wire.reschedule_to_wire(draft, force)
        )
        return wire.mutation_result(body)

    async def delete(self, appointment_id: str) -> None:
        await self._write("delete", "DELETE", f"/appointments/{appointment_id}")

    async def stats(self) -> AppointmentStats:
        body = await self._read("stats", "/appointments/stats/summary")
        return wire.stats_from_wire(body if isinstance(body, dict) else {})

    async def conflicts(
        self,
        clinician_id: str,
        day: date,
        start: "WallClock | str",
        duration: int,
        exclude_id: Optional[str] = None,
    ) -> ConflictReport:
        """Ask the server whether the requested time overlaps existing bookings."""
        params = {
            "doctorId": clinician_id,
            "date": day.isoformat(),
            "time": str(WallClock.parse(start)),
            "duration": str(duration),
        }
        if exclude_id:
            params["excludeAppointmentId"] = exclude_id
        body = await self._read("conflicts", "/appointments/check-conflicts", params=params)
        return wire.conflict_report_from_wire(body if isinstance(body, dict) else {})

    # ------------------------------------------------------------------
    # Availability and reference data
    # ------------------------------------------------------------------

    async def availability(self, clinician_id: str, day: date) -> AvailabilitySnapshot:
        """Rules, exceptions and bookings needed to resolve one day's slots."""
        rules_body, exceptions_body, bookings = await asyncio.gather(
            self._read("availability_rules", f"/doctor-availability/{clinician_id}"),
            self._read(
                "availability_exceptions",
                f"/schedule-exceptions/{clinician_id}",
                params={"startDate": day.isoformat(), "endDate": day.isoformat()},
            ),
            self.list_all(ListFilters(day=day, clinician_id=clinician_id)),
        )
        try:
            rules = wire.rules_from_wire(rules_body, clinician_id)
            exceptions = wire.exceptions_from_wire(exceptions_body, clinician_id)
        except wire.MALFORMED as e:
            raise UnknownError(f"Unreadable availability for {clinician_id}: {e}") from e
        return AvailabilitySnapshot(rules=rules, exceptions=exceptions, bookings=bookings)

    async def clinicians(self) -> list[Clinician]:
        body = await self._read("clinicians", "/doctors")
        return wire.clinicians_from_wire(body)

    async def patients(self, page_size: int = 100) -> list[Patient]:
        body = await self._read("patients", "/patients", params={"page": "1", "limit": str(page_size)})
        return wire.patients_from_wire(body)
