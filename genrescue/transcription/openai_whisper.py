from __future__ import annotations

import logging
from typing import Any, Optional

from genrescue.internal_core.errors import TranscriptionError, http_status, short_message

from .base import TranscriptionProvider, ensure_audio_exists

logger = logging.getLogger(__name__)


class OpenAITranscriptionProvider(TranscriptionProvider):
    """Hosted Whisper transcription through the OpenAI SDK."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "whisper-1",
        default_language: str = "en",
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._default_language = default_language
        self._client = client

    def name(self) -> str:
        return "openai"

    def _get_client(self, timeout_sec: float) -> Any:
        if self._client is not None:
            return self._client
        from openai import OpenAI

        # SDK retries disabled; one attempt per call.
        self._client = OpenAI(api_key=self._api_key, timeout=timeout_sec, max_retries=0)
        return self._client

    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        timeout_sec: float = 60.0,
    ) -> str:
        path = ensure_audio_exists(audio_path, self.name())
        client = self._get_client(timeout_sec)
        try:
            with path.open("rb") as audio_file:
                response = client.audio.transcriptions.create(
                    file=audio_file,
                    model=self._model,
                    language=language or self._default_language,
                    response_format="json",
                    temperature=0.2,
                    timeout=timeout_sec,
                )
        except FileNotFoundError as exc:
            raise TranscriptionError("NotFound", f"Audio file not found: {audio_path}", self.name()) from exc
        except Exception as exc:
            raise self._map_error(exc) from exc

        text = str(getattr(response, "text", "") or "").strip()
        logger.info("Transcription completed provider=%s chars=%d", self.name(), len(text))
        return text

    def _map_error(self, exc: Exception) -> TranscriptionError:
        status = http_status(exc)
        if status == 401:
            logger.error("Transcription credential rejected; check OPENAI_API_KEY")
            return TranscriptionError("Unauthorized", "Invalid OpenAI API key", self.name())
        if status == 413:
            return TranscriptionError("TooLarge", "Audio file too large (max 25MB)", self.name())
        message = short_message(str(exc)) or exc.__class__.__name__
        logger.warning("Transcription failed provider=%s status=%s detail=%s", self.name(), status, message)
        return TranscriptionError("ServiceError", f"Transcription failed: {message}", self.name())
