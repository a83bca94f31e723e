from __future__ import annotations

"""
Rule-based validation of structured AI analysis.

Design intent:
- The model is one input, never the sole arbiter of life-safety urgency.
- Critical keywords put a floor under urgency: LOW/MEDIUM escalate to CRITICAL.
- Anything uncertain (low confidence, unknown event) is routed to a human.
"""

import logging

from genrescue.internal_core.contracts import (
    UNKNOWN_EVENT_TYPE,
    AnalysisResult,
    ValidationResult,
)
from genrescue.risk.keywords import has_critical_keywords, has_high_keywords

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.6
MANUAL_REVIEW_CONFIDENCE = 0.5

_ESCALATABLE = frozenset({"LOW", "MEDIUM"})


def validate_analysis(analysis: AnalysisResult, raw_text: str) -> ValidationResult:
    has_critical = has_critical_keywords(raw_text)
    has_high = has_high_keywords(raw_text)
    meets_threshold = analysis.confidence >= CONFIDENCE_THRESHOLD

    manual_review = False
    adjusted_urgency = analysis.urgency

    if has_critical and analysis.urgency in _ESCALATABLE:
        logger.warning(
            "Critical keywords present; escalating urgency %s -> CRITICAL", analysis.urgency
        )
        adjusted_urgency = "CRITICAL"
        manual_review = True

    if analysis.confidence < MANUAL_REVIEW_CONFIDENCE:
        logger.info("Low confidence analysis (%.2f); flagging for manual review", analysis.confidence)
        manual_review = True

    if _event_type_missing(analysis.event_type):
        manual_review = True

    return ValidationResult(
        has_keywords=has_critical or has_high,
        has_critical_keywords=has_critical,
        has_high_keywords=has_high,
        meets_threshold=meets_threshold,
        manual_review=manual_review,
        adjusted_urgency=adjusted_urgency,
        warnings=_build_warnings(
            analysis,
            has_critical=has_critical,
            meets_threshold=meets_threshold,
            adjusted_urgency=adjusted_urgency,
        ),
    )


def _event_type_missing(event_type: str | None) -> bool:
    return not (event_type or "").strip() or event_type == UNKNOWN_EVENT_TYPE


def _build_warnings(
    analysis: AnalysisResult,
    *,
    has_critical: bool,
    meets_threshold: bool,
    adjusted_urgency: str,
) -> list[str]:
    warnings: list[str] = []
    if not meets_threshold:
        warnings.append("Low confidence in AI analysis")
    # Only HIGH survives escalation with a critical keyword present.
    if has_critical and adjusted_urgency != "CRITICAL":
        warnings.append("Critical keywords detected but urgency not marked as CRITICAL")
    if _event_type_missing(analysis.event_type):
        warnings.append("Unable to determine event type")
    if not analysis.needs:
        warnings.append("No specific needs identified")
    return warnings
