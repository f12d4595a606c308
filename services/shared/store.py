from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from services.shared.records import BORROWED, Borrowing, NotificationRecord, Profile, Student


BORROWINGS_TABLE = "book_borrowings"
STUDENTS_TABLE = "students"
PROFILES_TABLE = "profiles"
NOTIFICATIONS_TABLE = "notifications"


class DataAccessError(Exception):
    """Raised when the backing store rejects a query or insert."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LibraryStore(Protocol):
    async def active_borrowings(self) -> list[Borrowing]: ...

    async def get_student(self, student_id: str) -> Optional[Student]: ...

    async def get_profile(self, user_id: str) -> Optional[Profile]: ...

    async def insert_notifications(self, rows: list[NotificationRecord]) -> None: ...

    async def aclose(self) -> None: ...


def extract_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
        if isinstance(payload, dict):
            return (
                payload.get("message")
                or payload.get("detail")
                or payload.get("error")
                or str(payload)
            )
        return str(payload)
    except ValueError:
        return response.text or "Unexpected server error"


def _validate(model: type[BaseModel], row: dict):
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        raise DataAccessError(f"Malformed {model.__name__} row: {exc}") from exc


class SupabaseLibraryStore:
    """Reads and writes library tables through the hosted PostgREST API.

    Uses the service-role key, so row level security does not apply.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, table: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, f"/{table}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = extract_detail(exc.response)
            raise DataAccessError(detail, status_code=exc.response.status_code) from exc
        except httpx.RequestError as exc:
            raise DataAccessError(f"Database service unavailable: {exc}") from exc
        if response.content:
            return response.json()
        return None

    async def _first(self, table: str, params: dict[str, str]) -> Optional[dict]:
        rows = await self._request("GET", table, params={**params, "limit": "1"})
        return rows[0] if rows else None

    async def active_borrowings(self) -> list[Borrowing]:
        rows = await self._request(
            "GET",
            BORROWINGS_TABLE,
            params={
                "select": "id,due_date,borrowed_at,student_id,status,books(name,code)",
                "status": f"eq.{BORROWED}",
            },
        )
        return [_validate(Borrowing, row) for row in rows or []]

    async def get_student(self, student_id: str) -> Optional[Student]:
        row = await self._first(
            STUDENTS_TABLE, {"select": "id,user_id,roll_number", "id": f"eq.{student_id}"}
        )
        return _validate(Student, row) if row else None

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await self._first(PROFILES_TABLE, {"select": "id,email,name", "id": f"eq.{user_id}"})
        return _validate(Profile, row) if row else None

    async def insert_notifications(self, rows: list[NotificationRecord]) -> None:
        await self._request(
            "POST",
            NOTIFICATIONS_TABLE,
            json=[row.model_dump() for row in rows],
            headers={"Prefer": "return=minimal"},
        )

    async def aclose(self) -> None:
        await self.client.aclose()
