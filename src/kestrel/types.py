from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ApplicationStatus = Literal["skipped", "submitted"]
ActivityKind = Literal["info", "success", "error", "skip", "match"]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Profile(BaseModel):
    raw_text: str
    persona_vector: list[float] = Field(default_factory=list)
    persona_text: str = ""
    has_profile: bool = False


class CompanyRecord(WireModel):
    id: int | None = None
    url: str
    display_name: str | None = Field(default=None, alias="name")
    status: str = "visited"
    visited_at: datetime | None = None


class ApplicationRecord(WireModel):
    id: int | None = None
    job_title: str
    company_name: str
    job_url: str
    body_text: str
    status: ApplicationStatus = "submitted"
    match_score: float | None = None
    applied_at: datetime | None = None


class ActivityEntry(BaseModel):
    message: str
    kind: ActivityKind = "info"
    job_title: str | None = None
    match_score: int | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)


class EmbeddingResult(BaseModel):
    vector: list[float] = Field(default_factory=list)
    model: str = ""

    @field_validator("vector")
    @classmethod
    def validate_vector(cls, value: list[float]) -> list[float]:
        return [float(item) for item in value]
