"""Pydantic models for request / response validation.

Wire format is camelCase; Python attributes are snake_case.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SECTION_IDS: tuple[str, str, str] = ("morning", "evening", "weekly")


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Scans
# ---------------------------------------------------------------------------

class ScanRequest(_WireModel):
    # Kept loose so a missing or non-string image maps to a 400, not a 422.
    base64_image: Any = Field(None, alias="base64Image")
    subject_name: str | None = Field(None, alias="subjectName")


class ScanIdentifiers(_WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    company_id: str = Field(alias="companyId")
    dataset_id: str = Field(alias="datasetId")
    subject_id: str = Field(alias="subjectId")
    batch_id: str = Field(alias="batchId")
    image_id: str = Field(alias="imageId")


class Metric(_WireModel):
    id: str
    label: str = ""
    value: float = 0
    tech_name: str | None = Field(None, alias="techName")
    family_name: str | None = Field(None, alias="familyName")
    tag: str | None = None
    mask_url: str | None = Field(None, alias="maskUrl")
    raw: Any = None

    @field_validator("value", mode="before")
    @classmethod
    def _value_never_null(cls, v: Any) -> Any:
        return 0 if v is None else v


class OverallHealth(_WireModel):
    score: int
    skin_tone: str = Field(alias="skinTone")
    ita_angle: str = Field(alias="itaAngle")
    perceived_age: int = Field(alias="perceivedAge")
    actual_age: int = Field(alias="actualAge")
    age_advantage: str = Field(alias="ageAdvantage")
    skin_type: str = Field(alias="skinType")


class ScanResult(_WireModel):
    ids: ScanIdentifiers
    raw_results: dict[str, Any] = Field(alias="rawResults")
    metrics: list[Metric] = []
    overall_health: OverallHealth | None = Field(None, alias="overallHealth")


# ---------------------------------------------------------------------------
# Routine (structured generator output)
# ---------------------------------------------------------------------------

class RoutineStep(_WireModel):
    id: str
    title: str
    subtitle: str = ""
    concerns: list[str] = []
    usage_notes: str = Field("", alias="usageNotes")


class RoutineSection(_WireModel):
    id: Literal["morning", "evening", "weekly"]
    title: str
    steps: list[RoutineStep] = []


class RoutineDocument(_WireModel):
    summary: str
    main_concerns: list[str] = Field(alias="mainConcerns", min_length=2, max_length=4)
    sections: list[RoutineSection]
    disclaimer: str

    @field_validator("sections")
    @classmethod
    def _fixed_sections(cls, v: list[RoutineSection]) -> list[RoutineSection]:
        if tuple(s.id for s in v) != SECTION_IDS:
            raise ValueError("sections must be exactly morning, evening, weekly")
        return v


class NormalizeRequest(_WireModel):
    raw_results: list[dict[str, Any]] | dict[str, Any] | None = Field(None, alias="rawResults")


class NormalizeResponse(_WireModel):
    metrics: list[Metric]
    overall_health: OverallHealth | None = Field(None, alias="overallHealth")


class RecommendationRequest(_WireModel):
    # Kept loose so a non-list maps to a 400, not a 422.
    skin_metrics: Any = Field(None, alias="skinMetrics")
    overall_health: dict[str, Any] | None = Field(None, alias="overallHealth")


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatMessage(_WireModel):
    role: str
    content: str


class ChatRequest(_WireModel):
    messages: Any = None
    skin_context: dict[str, Any] | None = Field(None, alias="skinContext")


class ChatResponse(_WireModel):
    ok: bool = True
    reply: str
    error: str | None = None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ErrorResponse(_WireModel):
    error: str
    details: Any = None
