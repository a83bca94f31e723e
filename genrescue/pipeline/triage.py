from __future__ import annotations

"""
SOS intake-and-triage orchestrator.

Lifecycle: processing -> {processed | failed}; then rescuer-driven
processed -> assigned -> resolved. `failed` and `resolved` are terminal here.

Design intent:
- Intake acknowledges before inference; voice runs are handed to a worker pool.
- Every run ends in exactly one terminal write, whatever the stage fails with.
- Stages run strictly in order: transcript persisted, then analysis, then validation.
- Domain heuristics live in `genrescue.risk`, never here.
"""

import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Any, Dict, Optional

from genrescue.analysis.adapter import AnalysisMetadata, StructuredAnalysisAdapter
from genrescue.internal_core.case_store import InMemoryCaseStore
from genrescue.internal_core.contracts import (
    CASE_STATES,
    TERMINAL_STATES,
    URGENCY_LEVELS,
    Case,
    OriginalPayload,
    ValidationFlags,
    utc_now,
)
from genrescue.internal_core.errors import (
    CaseNotFoundError,
    CaseStateError,
    TranscriptionError,
    UpstreamAuthError,
    UpstreamTransientError,
    short_message,
)
from genrescue.pipeline.intake import LocationInput, validate_report, validate_text_message
from genrescue.risk.validation import validate_analysis
from genrescue.transcription.base import MAX_AUDIO_BYTES, TranscriptionProvider, validate_audio_file

logger = logging.getLogger(__name__)

RESCUER_STATUSES = frozenset({"assigned", "resolved"})
_RESCUER_SOURCE_STATES = frozenset({"processed", "assigned"})


def _new_case_id() -> str:
    return f"sos_{uuid.uuid4().hex}"


class TriagePipeline:
    def __init__(
        self,
        store: InMemoryCaseStore,
        transcriber: TranscriptionProvider,
        analyzer: StructuredAnalysisAdapter,
        *,
        language: str = "en",
        transcription_timeout_sec: float = 60.0,
        max_audio_bytes: int = MAX_AUDIO_BYTES,
        max_workers: int = 4,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._store = store
        self._transcriber = transcriber
        self._analyzer = analyzer
        self._language = language
        self._transcription_timeout_sec = transcription_timeout_sec
        self._max_audio_bytes = max_audio_bytes
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sos-pipeline"
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = Lock()

    @property
    def store(self) -> InMemoryCaseStore:
        return self._store

    # ---- intake -----------------------------------------------------------

    def intake_voice(self, session_id: str, location: LocationInput, audio_path: str) -> str:
        """Create a voice case and hand the pipeline to a worker; returns immediately."""
        parsed_location = validate_report(session_id, "voice", location)
        validate_audio_file(audio_path, max_bytes=self._max_audio_bytes)

        case = self._store.create(
            Case(
                case_id=_new_case_id(),
                session_id=str(session_id),
                report_kind="voice",
                location=parsed_location,
                original_payload=OriginalPayload(voice_file_path=str(audio_path)),
                status="processing",
            )
        )
        logger.info("Voice SOS received case_id=%s session_id=%s", case.case_id, case.session_id)

        try:
            future = self._executor.submit(self._run_case, case.case_id)
        except RuntimeError as exc:
            # Pool already shut down; the case must still reach a terminal state.
            self._fail(case.case_id, f"Pipeline unavailable: {short_message(str(exc))}")
            return case.case_id

        with self._futures_lock:
            self._futures[case.case_id] = future
        future.add_done_callback(lambda _f, cid=case.case_id: self._forget(cid))
        return case.case_id

    def intake_text(self, session_id: str, location: LocationInput, message: str) -> str:
        """Create a text case and run the full pipeline before returning."""
        parsed_location = validate_report(session_id, "text", location)
        text = validate_text_message(message)

        case = self._store.create(
            Case(
                case_id=_new_case_id(),
                session_id=str(session_id),
                report_kind="text",
                location=parsed_location,
                original_payload=OriginalPayload(text_message=text),
                transcript=text,
                status="processing",
            )
        )
        logger.info("Text SOS received case_id=%s session_id=%s chars=%d", case.case_id, case.session_id, len(text))
        self._run_case(case.case_id)
        return case.case_id

    # ---- queries ----------------------------------------------------------

    def current_state(self, case_id: str) -> Case:
        case = self._store.find_by_id(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        return case

    def wait(self, case_id: str, timeout: Optional[float] = None) -> Case:
        with self._futures_lock:
            future = self._futures.get(case_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.current_state(case_id)

    def list_cases(
        self,
        *,
        status: Optional[str] = None,
        urgency: Optional[str] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> tuple[list[Case], int]:
        filters: Dict[str, Any] = {}
        if status:
            filters["status"] = status
        if urgency:
            filters["analysis.urgency"] = urgency
        cases = self._store.query(
            filters,
            sort=[("analysis.urgency", -1), ("received_at", -1)],
            limit=limit,
            skip=skip,
        )
        return cases, self._store.count(filters)

    def stats(self) -> dict[str, int]:
        counts = {"total": self._store.count()}
        for level in URGENCY_LEVELS:
            counts[level.lower()] = self._store.count_by("analysis.urgency", level)
        for state in CASE_STATES:
            counts[state] = self._store.count_by("status", state)
        return counts

    # ---- rescuer actions --------------------------------------------------

    def update_case(
        self,
        case_id: str,
        *,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        resolution_notes: Optional[str] = None,
    ) -> Case:
        current = self.current_state(case_id)
        fields = _plan_rescuer_update(current, status, assigned_to, resolution_notes)
        if not fields:
            return current

        seen_status = current.status
        updated, applied = self._store.update_if(case_id, lambda c: c.status == seen_status, fields)
        if updated is None:
            raise CaseNotFoundError(case_id)
        if not applied:
            raise CaseStateError(
                f"Case {case_id} changed from '{seen_status}' to '{updated.status}' during update; retry"
            )
        logger.info("Case updated case_id=%s status=%s -> %s", case_id, seen_status, updated.status)
        return updated

    # ---- pipeline ---------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _forget(self, case_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(case_id, None)

    def _run_case(self, case_id: str) -> None:
        """Failure boundary: every run ends in `processed` or `failed`."""
        try:
            self._execute(case_id)
        except TranscriptionError as exc:
            if exc.is_auth_failure:
                logger.error("Transcription credential rejected case_id=%s provider=%s", case_id, exc.provider_name)
            self._fail(case_id, f"Transcription failed ({exc.kind}): {short_message(exc.message)}")
        except UpstreamAuthError as exc:
            logger.error("Upstream credential rejected case_id=%s service=%s", case_id, exc.service)
            self._fail(case_id, f"Upstream authentication failed ({exc.service}): {short_message(exc.message)}")
        except UpstreamTransientError as exc:
            self._fail(case_id, f"Upstream {exc.service} failure: {short_message(exc.message)}")
        except Exception as exc:
            logger.exception("Unexpected pipeline error case_id=%s", case_id)
            self._fail(case_id, f"Unexpected pipeline error: {short_message(str(exc)) or exc.__class__.__name__}")

    def _execute(self, case_id: str) -> None:
        case = self.current_state(case_id)
        if case.status != "processing":
            logger.warning("Skipping pipeline for case_id=%s in state %s", case_id, case.status)
            return

        transcript = case.transcript
        if case.report_kind == "voice":
            transcript = self._transcribe(case)
            self._store.update_partial(case_id, {"transcript": transcript})
        if transcript is None:
            raise ValueError(f"No transcript available for {case.report_kind} report")

        result = self._analyzer.analyze(
            transcript,
            AnalysisMetadata(received_at=case.received_at, location=case.location),
        )
        verdict = validate_analysis(result.analysis, transcript)
        if verdict.warnings:
            logger.info("Validation warnings case_id=%s warnings=%s", case_id, verdict.warnings)

        fields = {
            "analysis": result.analysis.model_copy(update={"urgency": verdict.adjusted_urgency}),
            "validation": ValidationFlags(
                has_keywords=verdict.has_keywords,
                meets_threshold=verdict.meets_threshold,
                manual_review=verdict.manual_review,
            ),
            "status": "processed",
            "processed_at": utc_now(),
        }
        _, applied = self._store.update_if(case_id, lambda c: c.status == "processing", fields)
        if not applied:
            logger.warning("Case left processing before completion case_id=%s", case_id)
            return
        logger.info(
            "SOS processed case_id=%s urgency=%s manual_review=%s degraded=%s",
            case_id,
            verdict.adjusted_urgency,
            verdict.manual_review,
            result.degraded,
        )

    def _transcribe(self, case: Case) -> str:
        audio_path = case.original_payload.voice_file_path or ""
        transcript = self._transcriber.transcribe(
            audio_path,
            language=self._language,
            timeout_sec=self._transcription_timeout_sec,
        )
        if not (transcript or "").strip():
            raise TranscriptionError("ServiceError", "Transcription returned empty text", self._transcriber.name())
        logger.info("Transcript stored case_id=%s chars=%d", case.case_id, len(transcript))
        return transcript

    def _fail(self, case_id: str, message: str) -> None:
        try:
            current = self._store.find_by_id(case_id)
            if current is None:
                logger.error("Cannot mark missing case failed case_id=%s", case_id)
                return
            _, applied = self._store.update_if(
                case_id,
                lambda c: c.status == "processing",
                {"status": "failed", "processing_errors": [*current.processing_errors, message]},
            )
        except Exception:
            logger.exception("Terminal failure write did not persist case_id=%s", case_id)
            return
        if applied:
            logger.warning("SOS failed case_id=%s error=%s", case_id, message)


def _plan_rescuer_update(
    case: Case,
    status: Optional[str],
    assigned_to: Optional[str],
    resolution_notes: Optional[str],
) -> dict[str, Any]:
    if status is not None and status not in RESCUER_STATUSES:
        raise CaseStateError(f"Rescuers may only set status to one of: {', '.join(sorted(RESCUER_STATUSES))}")

    assignee = (assigned_to or "").strip() or None
    notes = resolution_notes if resolution_notes and resolution_notes.strip() else None
    target = status or ("assigned" if assignee and case.status == "processed" else None)

    if case.status in TERMINAL_STATES:
        repeat = target in (None, case.status) and assignee in (None, case.assigned_to)
        if case.status == "resolved" and repeat and notes in (None, case.resolution_notes):
            return {}
        raise CaseStateError(f"Case {case.case_id} is {case.status}; no further changes are allowed")
    if case.status not in _RESCUER_SOURCE_STATES:
        raise CaseStateError(
            f"Case {case.case_id} is {case.status}; rescuer actions require a processed case"
        )

    if target == "assigned" and not (assignee or case.assigned_to):
        raise CaseStateError("Assigning a case requires assigned_to")

    now = utc_now()
    fields: dict[str, Any] = {}
    if assignee and assignee != case.assigned_to:
        fields["assigned_to"] = assignee
        fields["assigned_at"] = now
    if notes and notes != case.resolution_notes:
        fields["resolution_notes"] = notes
    if target and target != case.status:
        fields["status"] = target
        if target == "resolved":
            fields["resolved_at"] = now
    return fields
