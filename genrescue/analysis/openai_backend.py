from __future__ import annotations

import logging
from typing import Any, Optional

from genrescue.internal_core.errors import UpstreamAuthError, UpstreamTransientError, http_status

from .adapter import AnalysisBackend

logger = logging.getLogger(__name__)


class OpenAIAnalysisBackend(AnalysisBackend):
    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o",
        temperature: float = 0.3,
        max_tokens: int = 500,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = client

    def name(self) -> str:
        return "openai"

    def _get_client(self, timeout_sec: float) -> Any:
        if self._client is not None:
            return self._client
        from openai import OpenAI

        self._client = OpenAI(api_key=self._api_key, timeout=timeout_sec, max_retries=0)
        return self._client

    def complete(self, *, system_prompt: str, user_prompt: str, timeout_sec: float) -> str:
        client = self._get_client(timeout_sec)
        try:
            response = client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
                timeout=timeout_sec,
            )
        except Exception as exc:
            if http_status(exc) == 401:
                raise UpstreamAuthError("analysis", "Invalid OpenAI API key") from exc
            raise UpstreamTransientError("analysis", f"Analysis request failed: {exc}") from exc

        try:
            return str(response.choices[0].message.content or "").strip()
        except (AttributeError, IndexError) as exc:
            raise UpstreamTransientError("analysis", "Analysis response had no choices") from exc
