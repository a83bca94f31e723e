from __future__ import annotations

import datetime as _dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ReportKind = Literal["voice", "text", "photo"]

Urgency = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]

CaseState = Literal["pending", "processing", "processed", "failed", "assigned", "resolved"]

REPORT_KINDS: tuple[str, ...] = ("voice", "text", "photo")
URGENCY_LEVELS: tuple[str, ...] = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
CASE_STATES: tuple[str, ...] = (
    "pending",
    "processing",
    "processed",
    "failed",
    "assigned",
    "resolved",
)
TERMINAL_STATES: frozenset[str] = frozenset({"failed", "resolved"})

# Higher rank sorts first on the rescuer dashboard.
URGENCY_RANK: dict[str, int] = {"CRITICAL": 3, "HIGH": 2, "MEDIUM": 1, "LOW": 0}

UNKNOWN_EVENT_TYPE = "Unknown"


def utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


class Location(BaseModel):
    model_config = ConfigDict(extra="forbid")

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    accuracy: Optional[float] = Field(default=None, ge=0.0)
    captured_at: Optional[_dt.datetime] = None


class OriginalPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    voice_file_path: Optional[str] = None
    text_message: Optional[str] = None
    photo_path: Optional[str] = None


class AnalysisResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    urgency: Urgency
    summary: str
    event_type: str = UNKNOWN_EVENT_TYPE
    injury_status: str = "Unknown"
    risk_factors: List[str] = Field(default_factory=list)
    needs: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    # Urgency as the model returned it, kept for audit. `urgency` is authoritative.
    ai_urgency: Optional[Urgency] = None


class ValidationResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    has_keywords: bool
    has_critical_keywords: bool
    has_high_keywords: bool
    meets_threshold: bool
    manual_review: bool
    adjusted_urgency: Urgency
    warnings: List[str] = Field(default_factory=list)


class ValidationFlags(BaseModel):
    model_config = ConfigDict(extra="forbid")

    has_keywords: bool = False
    meets_threshold: bool = False
    manual_review: bool = False


class Case(BaseModel):
    model_config = ConfigDict(extra="forbid")

    case_id: str
    session_id: str
    report_kind: ReportKind
    location: Location
    original_payload: OriginalPayload
    transcript: Optional[str] = None
    analysis: Optional[AnalysisResult] = None
    validation: Optional[ValidationFlags] = None
    status: CaseState = "pending"
    processing_errors: List[str] = Field(default_factory=list)
    received_at: _dt.datetime = Field(default_factory=utc_now)
    processed_at: Optional[_dt.datetime] = None
    assigned_at: Optional[_dt.datetime] = None
    resolved_at: Optional[_dt.datetime] = None
    assigned_to: Optional[str] = None
    resolution_notes: Optional[str] = None

    def time_elapsed_sec(self, now: Optional[_dt.datetime] = None) -> float:
        current = now or utc_now()
        return (current - self.received_at).total_seconds()

    def is_stale(self, now: Optional[_dt.datetime] = None, max_age_hours: float = 24.0) -> bool:
        return self.time_elapsed_sec(now) > max_age_hours * 3600.0
