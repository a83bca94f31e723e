from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from genrescue.internal_core.errors import AudioValidationError, TranscriptionError

ALLOWED_AUDIO_EXTS = (".mp3", ".mp4", ".mpeg", ".mpga", ".m4a", ".wav", ".webm")
MAX_AUDIO_BYTES = 25 * 1024 * 1024


def validate_audio_file(audio_path: str, max_bytes: int = MAX_AUDIO_BYTES) -> None:
    """Reject missing, oversized or unsupported audio before any upstream call."""
    path = Path(audio_path)
    if not path.is_file():
        raise AudioValidationError([f"Audio file not found: {path.name or audio_path}"])

    size = path.stat().st_size
    if size > max_bytes:
        raise AudioValidationError(
            [f"Audio file exceeds {max_bytes / (1024 * 1024):.0f}MB limit ({size / (1024 * 1024):.1f}MB)"]
        )

    suffix = path.suffix.lower()
    if suffix not in ALLOWED_AUDIO_EXTS:
        raise AudioValidationError(
            [f"Invalid audio format '{suffix or '(none)'}'. Allowed: {', '.join(ALLOWED_AUDIO_EXTS)}"]
        )


def ensure_audio_exists(audio_path: str, provider_name: str) -> Path:
    path = Path(audio_path)
    if not path.is_file():
        raise TranscriptionError("NotFound", f"Audio file not found: {audio_path}", provider_name)
    return path


class TranscriptionProvider(ABC):
    @abstractmethod
    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        timeout_sec: float = 60.0,
    ) -> str: ...

    @abstractmethod
    def name(self) -> str: ...
