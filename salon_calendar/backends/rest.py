"""PostgREST (Supabase) backend for the salon tables.

Tables: bs_appointments, bs_staff, bs_services, bs_clients. Calls run in a
worker thread so the event loop is never blocked; every transport,
HTTP or decoding failure surfaces as DataAccessError.

Durations are frozen at booking in bs_appointments.duration_minutes,
which the stock schema lacks. Add it with

    ALTER TABLE bs_appointments ADD COLUMN duration_minutes integer
        CHECK (duration_minutes > 0);

or run with store_duration=False (SALON_STORE_DURATION=false). Durations
then follow the joined service and are not frozen.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from salon_calendar.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from salon_calendar.collaborators import AppointmentUpdate, InstantRange, NewAppointmentFields
from salon_calendar.config import CalendarSettings
from salon_calendar.errors import DataAccessError
from salon_calendar.http_client import create_http_session
from salon_calendar.logging_config import get_logger
from salon_calendar.models import Appointment, Client, Service, StaffMember

logger = get_logger(__name__)


APPOINTMENT_COLUMNS = (
    "appointment_id,client_id,staff_id,service_id,appointment_datetime,status,notes"
)

APPOINTMENT_JOINS = (
    "bs_clients(first_name,last_name,phone_number),"
    "bs_staff(staff_id,first_name,last_name),"
    "bs_services(service_name,duration_minutes)"
)

# Rows written before durations were stored on the appointment
LEGACY_DEFAULT_DURATION = 60

CLIENT_SEARCH_LIMIT = 50


def appointment_select(store_duration: bool = True) -> str:
    """PostgREST select for bs_appointments, with or without the frozen duration column."""
    columns = APPOINTMENT_COLUMNS + (",duration_minutes" if store_duration else "")
    return f"{columns},{APPOINTMENT_JOINS}"


def _full_name(joined: Optional[Dict[str, Any]]) -> Optional[str]:
    if not joined:
        return None
    return " ".join(p for p in (joined.get("first_name"), joined.get("last_name")) if p) or None


def _parse_instant(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def appointment_from_row(row: Dict[str, Any]) -> Appointment:
    """
    Map a bs_appointments row (with joins) to an Appointment.

    The duration frozen on the row wins; the joined service duration is
    only used for legacy rows that lack one.
    """
    service = row.get("bs_services") or {}
    duration = (
        row.get("duration_minutes")
        or service.get("duration_minutes")
        or LEGACY_DEFAULT_DURATION
    )
    return Appointment(
        id=row["appointment_id"],
        client_id=row["client_id"],
        staff_id=row["staff_id"],
        service_id=row["service_id"],
        start=_parse_instant(row["appointment_datetime"]),
        duration_minutes=duration,
        status=row["status"],
        notes=row.get("notes"),
        client_name=_full_name(row.get("bs_clients")),
        staff_name=_full_name(row.get("bs_staff")),
        service_name=service.get("service_name"),
    )


def _appointment_columns(fields: Dict[str, Any], store_duration: bool = True) -> Dict[str, Any]:
    columns = dict(fields)
    if not store_duration:
        columns.pop("duration_minutes", None)
    if "start" in columns:
        columns["appointment_datetime"] = columns.pop("start").isoformat()
    return columns


class PostgrestBackend:
    """Every collaborator contract over one PostgREST endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        timeout: int = 15,
        store_duration: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.store_duration = store_duration
        self._select = appointment_select(store_duration)
        self.session = session or create_http_session(api_key=api_key, timeout=timeout)
        self.breaker = breaker or CircuitBreaker()

    @classmethod
    def from_settings(cls, settings: CalendarSettings) -> "PostgrestBackend":
        if not settings.api_url:
            raise ValueError("SALON_API_URL is required for the REST backend")
        return cls(
            settings.api_url,
            api_key=settings.api_key,
            breaker=CircuitBreaker(
                failure_threshold=settings.breaker_threshold,
                timeout=settings.breaker_timeout,
            ),
            timeout=settings.http_timeout,
            store_duration=settings.store_duration,
        )

    def _request(self, method: str, table: str, params=None, json=None) -> Any:
        url = f"{self.base_url}/rest/v1/{table}"
        headers = {}
        if method in ("POST", "PATCH"):
            headers["Prefer"] = "return=representation"

        send = {
            "GET": self.session.get,
            "POST": self.session.post,
            "PATCH": self.session.patch,
        }[method]

        try:
            response = self.breaker.call(send, url, params=params, json=json, headers=headers)
            return response.json()
        except CircuitBreakerOpen as e:
            raise DataAccessError(str(e), cause=e) from e
        except requests.exceptions.RequestException as e:
            logger.error("backend_request_failed", method=method, table=table, error=str(e))
            raise DataAccessError(f"{method} {table} failed", cause=e) from e
        except ValueError as e:
            raise DataAccessError(f"{method} {table} returned invalid JSON", cause=e) from e

    async def _call(self, method: str, table: str, params=None, json=None) -> Any:
        return await asyncio.to_thread(self._request, method, table, params, json)

    @staticmethod
    def _single(rows, what: str) -> Dict[str, Any]:
        if not rows:
            raise DataAccessError(f"{what} not found")
        return rows[0]

    @staticmethod
    def _convert(model, rows):
        try:
            return [model(row) for row in rows]
        except (KeyError, TypeError, ValidationError) as e:
            raise DataAccessError("Backend returned a malformed row", cause=e) from e

    # AppointmentPersistence

    async def fetch_appointments(self, range: InstantRange) -> List[Appointment]:
        start, end = range
        rows = await self._call("GET", "bs_appointments", params=[
            ("select", self._select),
            ("appointment_datetime", f"gte.{start.isoformat()}"),
            ("appointment_datetime", f"lt.{end.isoformat()}"),
            ("order", "appointment_datetime.asc"),
        ])
        return self._convert(appointment_from_row, rows)

    async def insert_appointment(self, fields: NewAppointmentFields) -> Appointment:
        rows = await self._call(
            "POST", "bs_appointments",
            params={"select": self._select},
            json=[_appointment_columns(fields, self.store_duration)],
        )
        return self._convert(appointment_from_row, [self._single(rows, "Inserted appointment")])[0]

    async def update_appointment(self, appointment_id: int, fields: AppointmentUpdate) -> Appointment:
        rows = await self._call(
            "PATCH", "bs_appointments",
            params={"appointment_id": f"eq.{appointment_id}", "select": self._select},
            json=_appointment_columns(fields, self.store_duration),
        )
        row = self._single(rows, f"Appointment {appointment_id}")
        return self._convert(appointment_from_row, [row])[0]

    # ServiceCatalog

    async def get_service(self, service_id: int) -> Service:
        rows = await self._call("GET", "bs_services", params={
            "select": "*",
            "service_id": f"eq.{service_id}",
        })
        row = self._single(rows, f"Service {service_id}")
        return self._convert(lambda r: Service(
            id=r["service_id"],
            name=r["service_name"],
            duration_minutes=r["duration_minutes"],
            price=r.get("price") or 0,
            category=r.get("category"),
        ), [row])[0]

    # StaffDirectory

    async def list_staff(self) -> List[StaffMember]:
        rows = await self._call("GET", "bs_staff", params={
            "select": "*",
            "order": "first_name.asc",
        })
        return self._convert(lambda r: StaffMember(
            id=r["staff_id"],
            first_name=r["first_name"],
            last_name=r.get("last_name"),
            specialty=r.get("specialty"),
        ), rows)

    # ClientDirectory

    @staticmethod
    def _client(row) -> Client:
        return Client(
            id=row["client_id"],
            first_name=row["first_name"],
            last_name=row.get("last_name"),
            phone_number=row.get("phone_number"),
        )

    async def search_clients(self, query: str) -> List[Client]:
        # PostgREST reserves , ( ) inside or=() filters
        term = "".join(ch for ch in query.strip() if ch not in ",()*")
        params = {
            "select": "*",
            "order": "first_name.asc",
            "limit": str(CLIENT_SEARCH_LIMIT),
        }
        if term:
            params["or"] = (
                f"(first_name.ilike.*{term}*,last_name.ilike.*{term}*,"
                f"phone_number.ilike.*{term}*)"
            )
        rows = await self._call("GET", "bs_clients", params=params)
        return self._convert(self._client, rows)

    async def get_client(self, client_id: int) -> Client:
        rows = await self._call("GET", "bs_clients", params={
            "select": "*",
            "client_id": f"eq.{client_id}",
        })
        return self._convert(self._client, [self._single(rows, f"Client {client_id}")])[0]
