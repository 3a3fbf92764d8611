from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from kestrel.types import ApplicationStatus, WireModel


class CompanyCreateRequest(WireModel):
    url: str = Field(min_length=1)
    name: str | None = None
    status: str | None = None


class ApplicationCreateRequest(WireModel):
    job_title: str
    company_name: str
    job_url: str = Field(min_length=1)
    body_text: str = ""
    status: ApplicationStatus | None = None
    match_score: float | None = None


class AutomationStatusResponse(BaseModel):
    run_id: int
    state: str
    running: bool
    summary: dict[str, int] | None = None
    error: str | None = None
    activity_count: int = 0


class ConflictResponse(BaseModel):
    message: str
    data: dict[str, Any]
