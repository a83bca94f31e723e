from __future__ import annotations

import logging

from genrescue.internal_core.config import RescueConfig

from .base import TranscriptionProvider
from .mock import MockTranscriptionProvider
from .openai_whisper import OpenAITranscriptionProvider
from .whisper_cpp import WhisperCppProvider

logger = logging.getLogger(__name__)


def build_transcription_provider(cfg: RescueConfig) -> TranscriptionProvider:
    name = cfg.GENRESCUE_TRANSCRIPTION_PROVIDER.strip().lower()
    if name == "openai":
        if not cfg.OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY is empty; voice reports will fail as Unauthorized")
        return OpenAITranscriptionProvider(
            api_key=cfg.OPENAI_API_KEY,
            model=cfg.GENRESCUE_TRANSCRIPTION_MODEL,
            default_language=cfg.GENRESCUE_LANGUAGE,
        )
    if name == "whisper_cpp":
        return WhisperCppProvider(
            bin_path=cfg.GENRESCUE_WHISPER_CPP_BIN,
            model_path=cfg.GENRESCUE_WHISPER_CPP_MODEL,
            no_gpu=cfg.GENRESCUE_WHISPER_CPP_NO_GPU,
            default_language=cfg.GENRESCUE_LANGUAGE,
        )
    if name == "mock":
        return MockTranscriptionProvider()
    raise ValueError(f"Unknown transcription provider: {cfg.GENRESCUE_TRANSCRIPTION_PROVIDER!r}")
