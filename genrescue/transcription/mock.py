from __future__ import annotations

from typing import Optional

from genrescue.internal_core.errors import TranscriptionError

from .base import TranscriptionProvider, ensure_audio_exists


class MockTranscriptionProvider(TranscriptionProvider):
    def __init__(self, text: str = "(mock) simulated distress call.", error: Optional[TranscriptionError] = None) -> None:
        self._text = text
        self._error = error
        self.calls: list[str] = []

    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        timeout_sec: float = 60.0,
    ) -> str:
        self.calls.append(audio_path)
        ensure_audio_exists(audio_path, self.name())
        if self._error is not None:
            raise self._error
        return self._text

    def name(self) -> str:
        return "mock"
