import datetime as dt
import threading

import pytest

from genrescue.analysis.adapter import StructuredAnalysisAdapter
from genrescue.analysis.mock_backend import MockAnalysisBackend
from genrescue.internal_core.case_store import InMemoryCaseStore
from genrescue.internal_core.contracts import AnalysisResult, Case, Location, OriginalPayload
from genrescue.internal_core.errors import (
    AudioValidationError,
    CaseNotFoundError,
    CaseStateError,
    IntakeValidationError,
    TranscriptionError,
    UpstreamAuthError,
    UpstreamTransientError,
)
from genrescue.pipeline.intake import validate_report
from genrescue.pipeline.triage import TriagePipeline
from genrescue.transcription.mock import MockTranscriptionProvider

_LOCATION = {"latitude": 12.9, "longitude": 77.6}


def _analysis_payload(**overrides) -> dict:
    payload = {
        "urgency": "LOW",
        "summary": "Survivor reports being trapped.",
        "eventType": "trapped",
        "injuryStatus": "bleeding",
        "riskFactors": ["structural collapse"],
        "needs": ["extraction", "first aid"],
        "confidence": 0.8,
    }
    payload.update(overrides)
    return payload


def _pipeline(
    *,
    transcriber: MockTranscriptionProvider | None = None,
    backend: MockAnalysisBackend | None = None,
    store: InMemoryCaseStore | None = None,
) -> TriagePipeline:
    return TriagePipeline(
        store or InMemoryCaseStore(),
        transcriber or MockTranscriptionProvider(text="I am stuck in my car, water everywhere"),
        StructuredAnalysisAdapter(backend or MockAnalysisBackend(payload=_analysis_payload())),
        max_workers=2,
    )


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "sos.m4a"
    path.write_bytes(b"\x00\x01" * 64)
    return str(path)


def test_text_report_escalates_low_urgency_on_critical_keywords() -> None:
    pipeline = _pipeline()
    try:
        case_id = pipeline.intake_text("sess-1", _LOCATION, "I am trapped under rubble, bleeding")
        case = pipeline.current_state(case_id)
    finally:
        pipeline.shutdown()

    assert case.status == "processed"
    assert case.report_kind == "text"
    assert case.transcript == "I am trapped under rubble, bleeding"
    assert case.original_payload.text_message == "I am trapped under rubble, bleeding"
    assert case.analysis.urgency == "CRITICAL"
    assert case.analysis.ai_urgency == "LOW"
    assert case.validation.has_keywords is True
    assert case.validation.manual_review is True
    assert case.validation.meets_threshold is True
    assert case.processed_at is not None
    assert case.processing_errors == []


def test_text_report_prompt_includes_location_and_message() -> None:
    backend = MockAnalysisBackend(payload=_analysis_payload())
    pipeline = _pipeline(backend=backend)
    try:
        pipeline.intake_text("sess-1", _LOCATION, "Need water for three people")
    finally:
        pipeline.shutdown()

    assert "Need water for three people" in backend.prompts[0]
    assert "12.9, 77.6" in backend.prompts[0]


def test_invalid_latitude_is_rejected_before_any_case_exists() -> None:
    pipeline = _pipeline()
    try:
        with pytest.raises(IntakeValidationError) as err:
            pipeline.intake_text("sess-1", {"latitude": 120, "longitude": 0}, "help")
    finally:
        pipeline.shutdown()

    assert err.value.errors == ["Invalid latitude value"]
    assert pipeline.store.count() == 0


def test_validate_report_collects_every_problem() -> None:
    with pytest.raises(IntakeValidationError) as err:
        validate_report("", "fax", {"latitude": 12.0, "longitude": 500})
    assert err.value.errors == [
        "Session ID is required",
        "Invalid SOS type. Must be one of: voice, text, photo",
        "Invalid longitude value",
    ]


def test_validate_report_requires_location() -> None:
    with pytest.raises(IntakeValidationError) as err:
        validate_report("sess", "voice", None)
    assert err.value.errors == ["Location data is required"]


def test_empty_text_message_is_rejected() -> None:
    pipeline = _pipeline()
    try:
        with pytest.raises(IntakeValidationError):
            pipeline.intake_text("sess-1", _LOCATION, "   ")
    finally:
        pipeline.shutdown()
    assert pipeline.store.count() == 0


def test_voice_report_acknowledges_then_processes(audio_file) -> None:
    transcriber = MockTranscriptionProvider(text="I am stuck in my car, water everywhere")
    pipeline = _pipeline(transcriber=transcriber)
    try:
        case_id = pipeline.intake_voice("sess-2", _LOCATION, audio_file)
        assert case_id.startswith("sos_")
        case = pipeline.wait(case_id, timeout=5.0)
    finally:
        pipeline.shutdown()

    assert transcriber.calls == [audio_file]
    assert case.status == "processed"
    assert case.original_payload.voice_file_path == audio_file
    assert case.transcript == "I am stuck in my car, water everywhere"
    assert case.analysis.urgency == "CRITICAL"


def test_voice_report_with_unsupported_audio_creates_no_case(tmp_path) -> None:
    path = tmp_path / "sos.txt"
    path.write_text("not audio", encoding="utf-8")
    pipeline = _pipeline()
    try:
        with pytest.raises(AudioValidationError):
            pipeline.intake_voice("sess-2", _LOCATION, str(path))
    finally:
        pipeline.shutdown()
    assert pipeline.store.count() == 0


def test_transcription_failure_ends_in_failed_without_analysis(audio_file) -> None:
    backend = MockAnalysisBackend(payload=_analysis_payload())
    transcriber = MockTranscriptionProvider(error=TranscriptionError("ServiceError", "upstream 503", "mock"))
    pipeline = _pipeline(transcriber=transcriber, backend=backend)
    try:
        case = pipeline.wait(pipeline.intake_voice("sess-3", _LOCATION, audio_file), timeout=5.0)
    finally:
        pipeline.shutdown()

    assert case.status == "failed"
    assert case.analysis is None
    assert case.transcript is None
    assert len(case.processing_errors) == 1
    assert "ServiceError" in case.processing_errors[0]
    assert backend.prompts == []


def test_unauthorized_transcription_is_recorded(audio_file) -> None:
    transcriber = MockTranscriptionProvider(error=TranscriptionError("Unauthorized", "Invalid OpenAI API key", "openai"))
    pipeline = _pipeline(transcriber=transcriber)
    try:
        case = pipeline.wait(pipeline.intake_voice("sess-3", _LOCATION, audio_file), timeout=5.0)
    finally:
        pipeline.shutdown()

    assert case.status == "failed"
    assert "Unauthorized" in case.processing_errors[0]


def test_empty_transcript_fails_the_case(audio_file) -> None:
    pipeline = _pipeline(transcriber=MockTranscriptionProvider(text="   "))
    try:
        case = pipeline.wait(pipeline.intake_voice("sess-3", _LOCATION, audio_file), timeout=5.0)
    finally:
        pipeline.shutdown()

    assert case.status == "failed"
    assert "empty" in case.processing_errors[0]


def test_malformed_analysis_yields_degraded_record_for_review(audio_file) -> None:
    pipeline = _pipeline(
        transcriber=MockTranscriptionProvider(text="we need some guidance please"),
        backend=MockAnalysisBackend(raw="Sorry, I cannot answer that."),
    )
    try:
        case = pipeline.wait(pipeline.intake_voice("sess-4", _LOCATION, audio_file), timeout=5.0)
    finally:
        pipeline.shutdown()

    assert case.status == "processed"
    assert case.analysis.urgency == "HIGH"
    assert case.analysis.confidence == 0.0
    assert case.analysis.risk_factors == ["AI processing error"]
    assert case.validation.manual_review is True
    assert case.validation.meets_threshold is False


def test_transient_analysis_failure_also_degrades() -> None:
    backend = MockAnalysisBackend(error=UpstreamTransientError("analysis", "read timeout"))
    pipeline = _pipeline(backend=backend)
    try:
        case = pipeline.current_state(pipeline.intake_text("sess-5", _LOCATION, "we are fine, just checking"))
    finally:
        pipeline.shutdown()

    assert case.status == "processed"
    assert case.analysis.urgency == "HIGH"


def test_analysis_auth_failure_fails_the_case() -> None:
    backend = MockAnalysisBackend(error=UpstreamAuthError("analysis", "Invalid OpenAI API key"))
    pipeline = _pipeline(backend=backend)
    try:
        case = pipeline.current_state(pipeline.intake_text("sess-5", _LOCATION, "fire in the hall"))
    finally:
        pipeline.shutdown()

    assert case.status == "failed"
    assert case.analysis is None
    assert "authentication" in case.processing_errors[0]


def test_unexpected_error_is_contained_by_failure_boundary(monkeypatch) -> None:
    pipeline = _pipeline()

    def explode(*args, **kwargs):
        raise KeyError("bad state")

    monkeypatch.setattr("genrescue.pipeline.triage.validate_analysis", explode)
    try:
        case = pipeline.current_state(pipeline.intake_text("sess-6", _LOCATION, "help"))
    finally:
        pipeline.shutdown()

    assert case.status == "failed"
    assert case.processing_errors[0].startswith("Unexpected pipeline error")


def test_voice_intake_after_shutdown_still_reaches_terminal_state(audio_file) -> None:
    pipeline = _pipeline()
    pipeline.shutdown()

    case_id = pipeline.intake_voice("sess-7", _LOCATION, audio_file)
    case = pipeline.current_state(case_id)

    assert case.status == "failed"
    assert "Pipeline unavailable" in case.processing_errors[0]


def test_rerun_of_finished_case_is_a_no_op() -> None:
    backend = MockAnalysisBackend(payload=_analysis_payload())
    pipeline = _pipeline(backend=backend)
    try:
        case_id = pipeline.intake_text("sess-8", _LOCATION, "stranded on the highway")
        before = pipeline.current_state(case_id)
        pipeline._run_case(case_id)
        after = pipeline.current_state(case_id)
    finally:
        pipeline.shutdown()

    assert len(backend.prompts) == 1
    assert after == before


def test_current_state_unknown_case_raises() -> None:
    pipeline = _pipeline()
    try:
        with pytest.raises(CaseNotFoundError):
            pipeline.current_state("sos_missing")
    finally:
        pipeline.shutdown()


def test_rescuer_assign_then_resolve() -> None:
    pipeline = _pipeline()
    try:
        case_id = pipeline.intake_text("sess-9", _LOCATION, "injured leg, cannot walk")

        assigned = pipeline.update_case(case_id, assigned_to="team-alpha")
        assert assigned.status == "assigned"
        assert assigned.assigned_to == "team-alpha"
        assert assigned.assigned_at is not None

        resolved = pipeline.update_case(case_id, status="resolved", resolution_notes="Evacuated to clinic")
        assert resolved.status == "resolved"
        assert resolved.resolved_at is not None
        assert resolved.resolution_notes == "Evacuated to clinic"
        assert resolved.analysis == assigned.analysis

        # Repeating the same request on a resolved case is accepted and changes nothing.
        assert pipeline.update_case(case_id, status="resolved") == resolved
        with pytest.raises(CaseStateError):
            pipeline.update_case(case_id, assigned_to="team-bravo")
    finally:
        pipeline.shutdown()


def test_rescuer_cannot_assign_without_assignee() -> None:
    pipeline = _pipeline()
    try:
        case_id = pipeline.intake_text("sess-9", _LOCATION, "injured leg")
        with pytest.raises(CaseStateError):
            pipeline.update_case(case_id, status="assigned")
    finally:
        pipeline.shutdown()


def test_rescuer_cannot_touch_failed_case() -> None:
    backend = MockAnalysisBackend(error=UpstreamAuthError("analysis", "bad key"))
    pipeline = _pipeline(backend=backend)
    try:
        case_id = pipeline.intake_text("sess-10", _LOCATION, "help")
        with pytest.raises(CaseStateError):
            pipeline.update_case(case_id, status="resolved")
    finally:
        pipeline.shutdown()


def test_rescuer_cannot_set_pipeline_states() -> None:
    pipeline = _pipeline()
    try:
        case_id = pipeline.intake_text("sess-11", _LOCATION, "help")
        with pytest.raises(CaseStateError):
            pipeline.update_case(case_id, status="processed")
    finally:
        pipeline.shutdown()


def _stored_case(case_id: str, urgency: str, status: str, minutes_ago: int) -> Case:
    return Case(
        case_id=case_id,
        session_id="sess",
        report_kind="text",
        location=Location(latitude=0.0, longitude=0.0),
        original_payload=OriginalPayload(text_message="x"),
        analysis=AnalysisResult(urgency=urgency, summary="x", confidence=0.7),
        status=status,
        received_at=dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=minutes_ago),
    )


def test_list_cases_ranks_by_urgency_and_filters() -> None:
    store = InMemoryCaseStore()
    store.create(_stored_case("a", "MEDIUM", "processed", 1))
    store.create(_stored_case("b", "CRITICAL", "processed", 10))
    store.create(_stored_case("c", "CRITICAL", "assigned", 2))
    store.create(_stored_case("d", "LOW", "resolved", 0))
    pipeline = _pipeline(store=store)
    try:
        cases, total = pipeline.list_cases()
        assert [c.case_id for c in cases] == ["c", "b", "a", "d"]
        assert total == 4

        cases, total = pipeline.list_cases(status="processed", limit=1)
        assert [c.case_id for c in cases] == ["b"]
        assert total == 2

        cases, total = pipeline.list_cases(urgency="CRITICAL")
        assert {c.case_id for c in cases} == {"b", "c"}
    finally:
        pipeline.shutdown()


def test_stats_counts_by_urgency_and_state() -> None:
    store = InMemoryCaseStore()
    store.create(_stored_case("a", "MEDIUM", "processed", 1))
    store.create(_stored_case("b", "CRITICAL", "processed", 10))
    store.create(_stored_case("c", "CRITICAL", "assigned", 2))
    pipeline = _pipeline(store=store)
    try:
        stats = pipeline.stats()
    finally:
        pipeline.shutdown()

    assert stats["total"] == 3
    assert stats["critical"] == 2
    assert stats["medium"] == 1
    assert stats["low"] == 0
    assert stats["processed"] == 2
    assert stats["assigned"] == 1
    assert stats["failed"] == 0


class _GatedTranscriber(MockTranscriptionProvider):
    def __init__(self, text: str) -> None:
        super().__init__(text=text)
        self.release = threading.Event()

    def transcribe(self, audio_path, language=None, timeout_sec=60.0):
        self.release.wait(5.0)
        return super().transcribe(audio_path, language=language, timeout_sec=timeout_sec)


def test_voice_intake_returns_while_case_is_still_processing(audio_file) -> None:
    transcriber = _GatedTranscriber(text="Trapped in the stairwell")
    pipeline = _pipeline(transcriber=transcriber)
    try:
        case_id = pipeline.intake_voice("sess-12", _LOCATION, audio_file)

        pending = pipeline.current_state(case_id)
        assert pending.status == "processing"
        assert pending.analysis is None
        assert pending.transcript is None

        transcriber.release.set()
        done = pipeline.wait(case_id, timeout=5.0)
    finally:
        transcriber.release.set()
        pipeline.shutdown()

    assert done.status == "processed"
    assert done.analysis.urgency == "CRITICAL"


def test_failed_case_is_terminal_for_rescuers() -> None:
    backend = MockAnalysisBackend(error=UpstreamAuthError("analysis", "bad key"))
    pipeline = _pipeline(backend=backend)
    try:
        case_id = pipeline.intake_text("sess-13", _LOCATION, "help")
        with pytest.raises(CaseStateError, match="is failed; no further changes"):
            pipeline.update_case(case_id, assigned_to="team-alpha")
        assert pipeline.current_state(case_id).assigned_to is None
    finally:
        pipeline.shutdown()
