from __future__ import annotations

"""
Structured analysis of distress text.

Design intent:
- One adapter for every report kind: it only ever sees text plus metadata.
- Fail safe, not silent: unparseable or failed inference yields a HIGH-urgency
  placeholder that forces human review.
- Credential failures are the exception and propagate, since they affect every case.
"""

import datetime as _dt
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from genrescue.internal_core.contracts import UNKNOWN_EVENT_TYPE, AnalysisResult, Location
from genrescue.internal_core.errors import UpstreamAuthError

from .parsing import coerce_analysis
from .prompts import SYSTEM_PROMPT, build_user_prompt

logger = logging.getLogger(__name__)


class AnalysisBackend(ABC):
    """Raw chat completion; returns the model's text output."""

    @abstractmethod
    def complete(self, *, system_prompt: str, user_prompt: str, timeout_sec: float) -> str: ...

    @abstractmethod
    def name(self) -> str: ...


@dataclass(frozen=True)
class AnalysisMetadata:
    received_at: Optional[_dt.datetime] = None
    location: Optional[Location] = None


@dataclass(frozen=True)
class AnalysisAdapterResult:
    analysis: AnalysisResult
    degraded: bool
    debug: dict[str, Any] = field(default_factory=dict)


def degraded_analysis() -> AnalysisResult:
    return AnalysisResult(
        urgency="HIGH",
        summary="AI analysis failed - requires manual review",
        event_type=UNKNOWN_EVENT_TYPE,
        injury_status="Unknown",
        risk_factors=["AI processing error"],
        needs=["Manual review required"],
        confidence=0.0,
    )


class StructuredAnalysisAdapter:
    def __init__(self, backend: AnalysisBackend, timeout_sec: float = 30.0) -> None:
        self._backend = backend
        self._timeout_sec = timeout_sec

    @property
    def backend_name(self) -> str:
        return self._backend.name()

    def analyze(self, text: str, metadata: Optional[AnalysisMetadata] = None) -> AnalysisAdapterResult:
        meta = metadata or AnalysisMetadata()
        user_prompt = build_user_prompt(text, received_at=meta.received_at, location=meta.location)
        started = time.perf_counter()
        try:
            raw = self._backend.complete(
                system_prompt=SYSTEM_PROMPT,
                user_prompt=user_prompt,
                timeout_sec=self._timeout_sec,
            )
            analysis = coerce_analysis(raw)
        except UpstreamAuthError:
            logger.error("Analysis credential rejected backend=%s", self._backend.name())
            raise
        except Exception as exc:
            elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
            detail = str(exc)[:200] or exc.__class__.__name__
            logger.warning(
                "Analysis degraded backend=%s error=%s elapsed_ms=%s",
                self._backend.name(),
                detail,
                elapsed_ms,
            )
            return AnalysisAdapterResult(
                analysis=degraded_analysis(),
                degraded=True,
                debug={
                    "status": "degraded",
                    "backend": self._backend.name(),
                    "error_type": exc.__class__.__name__,
                    "error": detail,
                    "elapsed_ms": elapsed_ms,
                },
            )

        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "Analysis completed backend=%s urgency=%s confidence=%.2f elapsed_ms=%s",
            self._backend.name(),
            analysis.urgency,
            analysis.confidence,
            elapsed_ms,
        )
        return AnalysisAdapterResult(
            analysis=analysis,
            degraded=False,
            debug={"status": "ok", "backend": self._backend.name(), "elapsed_ms": elapsed_ms},
        )
