from __future__ import annotations

"""
HTTP surface for GEN-Rescue backend.

Design intent:
- Keep routes thin: parse, call the triage pipeline, serialize.
- Survivors get an acknowledgement before AI inference finishes (voice).
- Rescuer dashboard reads cases ranked by validated urgency.
"""

import logging
import re
import threading
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from genrescue.analysis.registry import build_analysis_adapter
from genrescue.internal_core.case_store import InMemoryCaseStore
from genrescue.internal_core.config import RescueConfig, load_config
from genrescue.internal_core.contracts import Case, utc_now
from genrescue.internal_core.errors import (
    CaseNotFoundError,
    CaseStateError,
    IntakeValidationError,
)
from genrescue.pipeline.triage import TriagePipeline
from genrescue.transcription.base import ALLOWED_AUDIO_EXTS
from genrescue.transcription.registry import build_transcription_provider


class LocationIn(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    captured_at: Optional[str] = None


class TextSOSRequest(BaseModel):
    session_id: str = Field(default="", max_length=128)
    location: Optional[LocationIn] = None
    message: str = Field(default="", max_length=5000)


class SOSAcceptedResponse(BaseModel):
    success: bool = True
    message: str
    case_id: str
    status: str


class CaseView(Case):
    elapsed_sec: float
    stale: bool


class CaseListResponse(BaseModel):
    success: bool = True
    count: int
    total: int
    data: list[CaseView] = Field(default_factory=list)


class CaseResponse(BaseModel):
    success: bool = True
    data: CaseView


class StatsResponse(BaseModel):
    success: bool = True
    data: dict[str, int] = Field(default_factory=dict)


class CaseUpdateRequest(BaseModel):
    status: Optional[Literal["assigned", "resolved"]] = None
    assigned_to: Optional[str] = Field(default=None, max_length=128)
    resolution_notes: Optional[str] = Field(default=None, max_length=5000)


_CONFIG = load_config()
logging.basicConfig(
    level=getattr(logging, _CONFIG.GENRESCUE_LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
_FILENAME_STEM_RE = re.compile(r"[^A-Za-z0-9_-]+")
_PIPELINE_LOCK = threading.Lock()


@asynccontextmanager
async def _lifespan(app: FastAPI):
    _get_pipeline()
    yield
    pipeline = getattr(app.state, "triage_pipeline", None)
    if isinstance(pipeline, TriagePipeline):
        pipeline.shutdown(wait=True)


app = FastAPI(title="genrescue backend service", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CONFIG.GENRESCUE_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> RescueConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, RescueConfig):
        return existing
    return _CONFIG


def _build_pipeline(cfg: RescueConfig) -> TriagePipeline:
    return TriagePipeline(
        InMemoryCaseStore(),
        build_transcription_provider(cfg),
        build_analysis_adapter(cfg),
        language=cfg.GENRESCUE_LANGUAGE,
        transcription_timeout_sec=cfg.GENRESCUE_TRANSCRIPTION_TIMEOUT_SECONDS,
        max_audio_bytes=cfg.GENRESCUE_MAX_AUDIO_BYTES,
        max_workers=cfg.GENRESCUE_PIPELINE_WORKERS,
    )


def _get_pipeline() -> TriagePipeline:
    existing = getattr(app.state, "triage_pipeline", None)
    if isinstance(existing, TriagePipeline):
        return existing
    # One pipeline (and one case store) per app; sync routes race here on first use.
    with _PIPELINE_LOCK:
        existing = getattr(app.state, "triage_pipeline", None)
        if isinstance(existing, TriagePipeline):
            return existing
        created = _build_pipeline(_get_config())
        setattr(app.state, "triage_pipeline", created)
        return created


def _get_upload_dir() -> Path:
    override = getattr(app.state, "upload_dir", None)
    path = Path(override) if override else _get_config().upload_dir_path()
    path.mkdir(parents=True, exist_ok=True)
    return path


def _case_view(case: Case) -> CaseView:
    now = utc_now()
    return CaseView(
        **case.model_dump(),
        elapsed_sec=round(case.time_elapsed_sec(now), 3),
        stale=case.is_stale(now, max_age_hours=_get_config().GENRESCUE_STALE_AFTER_HOURS),
    )


def _location_payload(location: Optional[LocationIn]) -> Optional[dict[str, Any]]:
    return location.model_dump() if location is not None else None


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "message": "GEN-Rescue backend is running", "timestamp": utc_now().isoformat()}


@app.post("/api/sos/voice", response_model=SOSAcceptedResponse, status_code=201)
async def create_voice_sos(
    request: Request,
    session_id: str = Query(default="", max_length=128),
    filename: str = Query(min_length=1, max_length=255),
    latitude: Optional[float] = Query(default=None),
    longitude: Optional[float] = Query(default=None),
    accuracy: Optional[float] = Query(default=None),
) -> SOSAcceptedResponse:
    filename = Path(str(filename or "")).name
    suffix = Path(filename).suffix.lower()
    if suffix not in ALLOWED_AUDIO_EXTS:
        raise HTTPException(
            status_code=400,
            detail=[f"Invalid audio format. Allowed: {', '.join(ALLOWED_AUDIO_EXTS)}"],
        )

    payload = await request.body()
    if not payload:
        raise HTTPException(status_code=400, detail=["Audio file is required"])
    max_bytes = _get_config().GENRESCUE_MAX_AUDIO_BYTES
    if len(payload) > max_bytes:
        raise HTTPException(status_code=413, detail=[f"Audio file exceeds {max_bytes // (1024 * 1024)}MB limit"])

    stem = _FILENAME_STEM_RE.sub("_", session_id or "unknown")[:64] or "unknown"
    output_path = _get_upload_dir() / f"{stem}_{int(time.time() * 1000)}{suffix}"
    output_path.write_bytes(payload)

    location = {"latitude": latitude, "longitude": longitude, "accuracy": accuracy}
    try:
        case_id = _get_pipeline().intake_voice(session_id, location, str(output_path))
    except IntakeValidationError as exc:
        output_path.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail=exc.errors) from exc

    return SOSAcceptedResponse(
        message="SOS received and being processed",
        case_id=case_id,
        status="processing",
    )


@app.post("/api/sos/text", response_model=SOSAcceptedResponse, status_code=201)
def create_text_sos(payload: TextSOSRequest) -> SOSAcceptedResponse:
    pipeline = _get_pipeline()
    try:
        case_id = pipeline.intake_text(payload.session_id, _location_payload(payload.location), payload.message)
    except IntakeValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors) from exc

    case = pipeline.current_state(case_id)
    return SOSAcceptedResponse(
        message="Text SOS processed" if case.status == "processed" else "Text SOS could not be processed",
        case_id=case_id,
        status=case.status,
    )


@app.get("/api/sos", response_model=CaseListResponse)
async def list_sos(
    status: Optional[str] = Query(default=None),
    urgency: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
) -> CaseListResponse:
    cases, total = _get_pipeline().list_cases(status=status, urgency=urgency, limit=limit, skip=skip)
    return CaseListResponse(count=len(cases), total=total, data=[_case_view(item) for item in cases])


@app.get("/api/sos/stats", response_model=StatsResponse)
async def sos_stats() -> StatsResponse:
    return StatsResponse(data=_get_pipeline().stats())


@app.get("/api/sos/{case_id}", response_model=CaseResponse)
async def get_sos(case_id: str) -> CaseResponse:
    try:
        case = _get_pipeline().current_state(case_id)
    except CaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return CaseResponse(data=_case_view(case))


@app.patch("/api/sos/{case_id}", response_model=CaseResponse)
async def update_sos(case_id: str, payload: CaseUpdateRequest) -> CaseResponse:
    try:
        case = _get_pipeline().update_case(
            case_id,
            status=payload.status,
            assigned_to=payload.assigned_to,
            resolution_notes=payload.resolution_notes,
        )
    except CaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CaseStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return CaseResponse(data=_case_view(case))
