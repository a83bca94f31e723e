from __future__ import annotations

import json
from typing import Any

from genrescue.internal_core.contracts import UNKNOWN_EVENT_TYPE, URGENCY_LEVELS, AnalysisResult

DEFAULT_CONFIDENCE = 0.5


class AnalysisParseError(ValueError):
    """Model output could not be coerced into the required analysis shape."""


def parse_json_object(raw: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    extracted = _extract_first_json_object(raw)
    if not extracted:
        return None
    try:
        data = json.loads(extracted)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _extract_first_json_object(text: str) -> str:
    start = text.find("{")
    if start < 0:
        return ""
    depth = 0
    in_str = False
    escape = False
    for i, ch in enumerate(text[start:], start=start):
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _text_or_default(value: Any, default: str) -> str:
    text = str(value).strip() if value is not None else ""
    return text or default


def _confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, confidence))


def coerce_analysis(raw: str) -> AnalysisResult:
    payload = parse_json_object(raw)
    if payload is None:
        raise AnalysisParseError("Model output is not valid JSON.")

    urgency = str(payload.get("urgency") or "").strip().upper()
    summary = str(payload.get("summary") or "").strip()
    if not urgency or not summary:
        raise AnalysisParseError("Model JSON missing 'urgency' or 'summary'.")
    if urgency not in URGENCY_LEVELS:
        raise AnalysisParseError(f"Model JSON has unknown urgency: {urgency!r}")

    return AnalysisResult(
        urgency=urgency,  # type: ignore[arg-type]
        summary=summary,
        event_type=_text_or_default(payload.get("eventType"), UNKNOWN_EVENT_TYPE),
        injury_status=_text_or_default(payload.get("injuryStatus"), "Unknown"),
        risk_factors=_string_list(payload.get("riskFactors")),
        needs=_string_list(payload.get("needs")),
        confidence=_confidence(payload.get("confidence")),
        ai_urgency=urgency,  # type: ignore[arg-type]
    )
