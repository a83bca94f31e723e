from __future__ import annotations

from .base import (
    ALLOWED_AUDIO_EXTS,
    MAX_AUDIO_BYTES,
    TranscriptionProvider,
    validate_audio_file,
)
from .mock import MockTranscriptionProvider
from .openai_whisper import OpenAITranscriptionProvider
from .registry import build_transcription_provider
from .whisper_cpp import WhisperCppProvider, whisper_cpp_available

__all__ = [
    "ALLOWED_AUDIO_EXTS",
    "MAX_AUDIO_BYTES",
    "TranscriptionProvider",
    "MockTranscriptionProvider",
    "OpenAITranscriptionProvider",
    "WhisperCppProvider",
    "build_transcription_provider",
    "validate_audio_file",
    "whisper_cpp_available",
]
