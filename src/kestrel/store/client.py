"""Clients for the company/application record store.

Both implementations scope every request to one user id and share the same
contract: lookups return ``None`` when nothing is stored, creates return
``(record, created)`` and report a duplicate as ``created=False`` rather than
an error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from kestrel.config import Settings, get_settings
from kestrel.db.repositories import Repository, to_application_record, to_company_record
from kestrel.db.session import SessionLocal
from kestrel.types import ApplicationRecord, ApplicationStatus, CompanyRecord

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


class StoreError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreUnauthorized(StoreError):
    pass


class RecordStore(Protocol):
    user_id: str | None

    async def find_company(self, url: str) -> CompanyRecord | None: ...

    async def create_company(
        self, *, url: str, name: str | None, status: str = "visited"
    ) -> tuple[CompanyRecord, bool]: ...

    async def find_application(self, job_url: str) -> ApplicationRecord | None: ...

    async def create_application(
        self,
        *,
        job_title: str,
        company_name: str,
        job_url: str,
        body_text: str,
        status: ApplicationStatus,
        match_score: float | None = None,
    ) -> tuple[ApplicationRecord, bool]: ...

    async def list_applications(self) -> list[ApplicationRecord]: ...

    async def aclose(self) -> None: ...


class HttpRecordStore:
    """JSON-over-HTTP client for the store service in ``kestrel.api``."""

    def __init__(
        self,
        user_id: str | None,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = settings or get_settings()
        self.user_id = user_id
        headers = {"Content-Type": "application/json"}
        if user_id:
            headers[USER_HEADER] = user_id
        if client is None:
            client = httpx.AsyncClient(
                base_url=settings.store_base_url.rstrip("/"),
                timeout=float(settings.store_timeout_sec),
            )
        client.headers.update(headers)
        self.client = client

    async def find_company(self, url: str) -> CompanyRecord | None:
        data = await self._get("/companies/search", params={"url": url})
        return CompanyRecord.model_validate(data) if data is not None else None

    async def create_company(
        self, *, url: str, name: str | None, status: str = "visited"
    ) -> tuple[CompanyRecord, bool]:
        data, created = await self._post("/companies", {"url": url, "name": name, "status": status})
        return CompanyRecord.model_validate(data), created

    async def find_application(self, job_url: str) -> ApplicationRecord | None:
        data = await self._get("/applications/search", params={"jobUrl": job_url})
        return ApplicationRecord.model_validate(data) if data is not None else None

    async def create_application(
        self,
        *,
        job_title: str,
        company_name: str,
        job_url: str,
        body_text: str,
        status: ApplicationStatus,
        match_score: float | None = None,
    ) -> tuple[ApplicationRecord, bool]:
        payload: dict[str, Any] = {
            "jobTitle": job_title,
            "companyName": company_name,
            "jobUrl": job_url,
            "bodyText": body_text,
            "status": status,
        }
        if match_score is not None:
            payload["matchScore"] = match_score
        data, created = await self._post("/applications", payload)
        return ApplicationRecord.model_validate(data), created

    async def list_applications(self) -> list[ApplicationRecord]:
        response = await self.client.get("/applications")
        self._raise_for_status(response)
        return [ApplicationRecord.model_validate(item) for item in response.json()]

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _get(self, path: str, *, params: dict[str, str]) -> dict[str, Any] | None:
        response = await self.client.get(path, params=params)
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return response.json()

    async def _post(self, path: str, payload: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        response = await self.client.post(path, json=payload)
        if response.status_code == 409:
            body = response.json()
            logger.debug("Store conflict on %s; record already exists", path)
            return body.get("data") or {}, False
        self._raise_for_status(response)
        return response.json(), True

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        message = (
            f"Store request failed: {response.status_code} {response.reason_phrase} - {response.text}"
        )
        if response.status_code == 401:
            raise StoreUnauthorized(message, status_code=401)
        raise StoreError(message, status_code=response.status_code)


class LocalRecordStore:
    """Store backed directly by the local database, for runs without the store service."""

    def __init__(self, user_id: str | None, session_factory: Callable[[], Any] = SessionLocal):
        self.user_id = user_id
        self.session_factory = session_factory

    async def find_company(self, url: str) -> CompanyRecord | None:
        return await asyncio.to_thread(self._find_company, url)

    async def create_company(
        self, *, url: str, name: str | None, status: str = "visited"
    ) -> tuple[CompanyRecord, bool]:
        return await asyncio.to_thread(self._create_company, url, name, status)

    async def find_application(self, job_url: str) -> ApplicationRecord | None:
        return await asyncio.to_thread(self._find_application, job_url)

    async def create_application(
        self,
        *,
        job_title: str,
        company_name: str,
        job_url: str,
        body_text: str,
        status: ApplicationStatus,
        match_score: float | None = None,
    ) -> tuple[ApplicationRecord, bool]:
        return await asyncio.to_thread(
            self._create_application,
            {
                "job_title": job_title,
                "company_name": company_name,
                "job_url": job_url,
                "body_text": body_text,
                "status": status,
                "match_score": match_score,
            },
        )

    async def list_applications(self) -> list[ApplicationRecord]:
        return await asyncio.to_thread(self._list_applications)

    async def aclose(self) -> None:
        return None

    def _require_user(self) -> str:
        if not self.user_id:
            raise StoreUnauthorized("Missing user id", status_code=401)
        return self.user_id

    def _find_company(self, url: str) -> CompanyRecord | None:
        user_id = self._require_user()
        with self.session_factory() as db:
            row = Repository(db).find_company(user_id, url)
            return to_company_record(row) if row else None

    def _create_company(self, url: str, name: str | None, status: str) -> tuple[CompanyRecord, bool]:
        user_id = self._require_user()
        with self.session_factory() as db:
            row, created = Repository(db).create_company(user_id, url=url, name=name, status=status)
            return to_company_record(row), created

    def _find_application(self, job_url: str) -> ApplicationRecord | None:
        user_id = self._require_user()
        with self.session_factory() as db:
            row = Repository(db).find_application(user_id, job_url)
            return to_application_record(row) if row else None

    def _create_application(self, values: dict[str, Any]) -> tuple[ApplicationRecord, bool]:
        user_id = self._require_user()
        with self.session_factory() as db:
            row, created = Repository(db).create_application(user_id, **values)
            return to_application_record(row), created

    def _list_applications(self) -> list[ApplicationRecord]:
        user_id = self._require_user()
        with self.session_factory() as db:
            return [to_application_record(row) for row in Repository(db).list_applications(user_id)]


def build_record_store(user_id: str | None, settings: Settings | None = None) -> RecordStore:
    settings = settings or get_settings()
    if settings.store_mode == "local":
        return LocalRecordStore(user_id)
    return HttpRecordStore(user_id, settings=settings)
