from __future__ import annotations

"""
Local GGUF analysis backend via llama-cpp-python.

Design intent:
- Offline deployments (field command posts) run the same prompt on a local model.
- Tolerate llama-cpp-python builds that lack `chat_format` or `response_format`.
- Bound every inference by `timeout_sec`; a hung model degrades the case instead of holding it.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import Lock
from typing import Any

from genrescue.internal_core.errors import UpstreamTransientError

from .adapter import AnalysisBackend

logger = logging.getLogger(__name__)


class LlamaCppAnalysisBackend(AnalysisBackend):
    def __init__(
        self,
        model_path: str,
        *,
        n_ctx: int = 2048,
        n_gpu_layers: int = -1,
        max_tokens: int = 500,
        temperature: float = 0.3,
        chat_format: str = "",
    ) -> None:
        self._model_path = model_path
        self._n_ctx = n_ctx
        self._n_gpu_layers = n_gpu_layers
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._chat_format = chat_format
        self._llm: Any = None
        self._lock = Lock()
        # Single worker: the model is not reentrant, so inferences queue behind each other.
        self._inference = ThreadPoolExecutor(max_workers=1, thread_name_prefix="llama-cpp")
        self.chat_format_applied = False
        self.response_format_supported: bool | None = None

    def name(self) -> str:
        return "llama_cpp"

    def _load(self) -> Any:
        if self._llm is not None:
            return self._llm
        if not self._model_path:
            raise UpstreamTransientError("analysis", "llama_cpp model path is missing. Set GENRESCUE_LLAMA_CPP_MODEL.")
        if not os.path.exists(self._model_path):
            raise UpstreamTransientError("analysis", f"llama_cpp model file not found: {self._model_path}")
        try:
            from llama_cpp import Llama  # type: ignore
        except ImportError as exc:
            raise UpstreamTransientError("analysis", f"llama_cpp import failed: {exc}") from exc

        llm_kwargs: dict[str, Any] = {
            "model_path": self._model_path,
            "n_ctx": int(self._n_ctx),
            "n_gpu_layers": int(self._n_gpu_layers),
            "verbose": False,
        }
        if self._chat_format:
            llm_kwargs["chat_format"] = self._chat_format
        try:
            self._llm = Llama(**llm_kwargs)
            self.chat_format_applied = "chat_format" in llm_kwargs
        except TypeError as exc:
            if "chat_format" not in str(exc):
                raise
            llm_kwargs.pop("chat_format", None)
            self._llm = Llama(**llm_kwargs)
            self.chat_format_applied = False
        logger.info("Loaded llama_cpp model chat_format_applied=%s", self.chat_format_applied)
        return self._llm

    def complete(self, *, system_prompt: str, user_prompt: str, timeout_sec: float) -> str:
        with self._lock:
            llm = self._load()
        future = self._inference.submit(self._create_completion, llm, system_prompt, user_prompt)
        try:
            return future.result(timeout=timeout_sec)
        except FutureTimeoutError as exc:
            future.cancel()
            logger.warning("llama_cpp inference exceeded %.1fs", timeout_sec)
            raise UpstreamTransientError("analysis", f"llama_cpp inference timed out after {timeout_sec:.1f}s") from exc

    def _create_completion(self, llm: Any, system_prompt: str, user_prompt: str) -> str:
        completion_kwargs: dict[str, Any] = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": int(self._max_tokens),
        }
        if self.response_format_supported is not False:
            completion_kwargs["response_format"] = {"type": "json_object"}
        try:
            resp = llm.create_chat_completion(**completion_kwargs)
            if "response_format" in completion_kwargs:
                self.response_format_supported = True
        except TypeError as exc:
            if "response_format" not in str(exc) or "response_format" not in completion_kwargs:
                raise UpstreamTransientError("analysis", f"llama_cpp inference failed: {exc}") from exc
            completion_kwargs.pop("response_format", None)
            resp = llm.create_chat_completion(**completion_kwargs)
            self.response_format_supported = False
        except Exception as exc:
            raise UpstreamTransientError("analysis", f"llama_cpp inference failed: {exc}") from exc

        return str(resp["choices"][0]["message"]["content"] or "").strip()
