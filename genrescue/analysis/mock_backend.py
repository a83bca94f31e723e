from __future__ import annotations

import json
from typing import Any, Optional

from .adapter import AnalysisBackend

_DEFAULT_PAYLOAD: dict[str, Any] = {
    "urgency": "MEDIUM",
    "summary": "(mock) Survivor requests assistance.",
    "eventType": "Unknown",
    "injuryStatus": "Unknown",
    "riskFactors": [],
    "needs": [],
    "confidence": 0.5,
}


class MockAnalysisBackend(AnalysisBackend):
    def __init__(self, payload: Optional[dict[str, Any]] = None, raw: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self._raw = raw if raw is not None else json.dumps(payload or _DEFAULT_PAYLOAD)
        self._error = error
        self.prompts: list[str] = []

    def name(self) -> str:
        return "mock"

    def complete(self, *, system_prompt: str, user_prompt: str, timeout_sec: float) -> str:
        self.prompts.append(user_prompt)
        if self._error is not None:
            raise self._error
        return self._raw
