from __future__ import annotations

from genrescue.internal_core.config import RescueConfig

from .adapter import AnalysisBackend, StructuredAnalysisAdapter
from .llama_cpp_backend import LlamaCppAnalysisBackend
from .mock_backend import MockAnalysisBackend
from .openai_backend import OpenAIAnalysisBackend


def build_analysis_backend(cfg: RescueConfig) -> AnalysisBackend:
    name = cfg.GENRESCUE_ANALYSIS_BACKEND.strip().lower()
    if name == "openai":
        return OpenAIAnalysisBackend(
            api_key=cfg.OPENAI_API_KEY,
            model=cfg.GENRESCUE_ANALYSIS_MODEL,
            temperature=cfg.GENRESCUE_ANALYSIS_TEMPERATURE,
            max_tokens=cfg.GENRESCUE_ANALYSIS_MAX_TOKENS,
        )
    if name == "llama_cpp":
        return LlamaCppAnalysisBackend(
            cfg.GENRESCUE_LLAMA_CPP_MODEL,
            n_ctx=cfg.GENRESCUE_LLAMA_CPP_N_CTX,
            max_tokens=cfg.GENRESCUE_ANALYSIS_MAX_TOKENS,
            temperature=cfg.GENRESCUE_ANALYSIS_TEMPERATURE,
            chat_format=cfg.GENRESCUE_LLAMA_CPP_CHAT_FORMAT,
        )
    if name == "mock":
        return MockAnalysisBackend()
    raise ValueError(f"Unknown analysis backend: {cfg.GENRESCUE_ANALYSIS_BACKEND!r}")


def build_analysis_adapter(cfg: RescueConfig) -> StructuredAnalysisAdapter:
    return StructuredAnalysisAdapter(
        build_analysis_backend(cfg),
        timeout_sec=cfg.GENRESCUE_ANALYSIS_TIMEOUT_SECONDS,
    )
