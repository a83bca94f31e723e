from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _project_root() -> Path:
    # genrescue/internal_core/config.py -> genrescue -> project
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class RescueConfig:
    OPENAI_API_KEY: str
    GENRESCUE_TRANSCRIPTION_PROVIDER: str
    GENRESCUE_TRANSCRIPTION_MODEL: str
    GENRESCUE_TRANSCRIPTION_TIMEOUT_SECONDS: float
    GENRESCUE_LANGUAGE: str
    GENRESCUE_MAX_AUDIO_BYTES: int
    GENRESCUE_ANALYSIS_BACKEND: str
    GENRESCUE_ANALYSIS_MODEL: str
    GENRESCUE_ANALYSIS_TIMEOUT_SECONDS: float
    GENRESCUE_ANALYSIS_MAX_TOKENS: int
    GENRESCUE_ANALYSIS_TEMPERATURE: float
    GENRESCUE_WHISPER_CPP_BIN: str
    GENRESCUE_WHISPER_CPP_MODEL: str
    GENRESCUE_WHISPER_CPP_NO_GPU: bool
    GENRESCUE_LLAMA_CPP_MODEL: str
    GENRESCUE_LLAMA_CPP_N_CTX: int
    GENRESCUE_LLAMA_CPP_CHAT_FORMAT: str
    GENRESCUE_PIPELINE_WORKERS: int
    GENRESCUE_UPLOAD_DIR: str
    GENRESCUE_ALLOWED_ORIGINS: list[str]
    GENRESCUE_STALE_AFTER_HOURS: float
    GENRESCUE_LOG_LEVEL: str

    def upload_dir_path(self, repo_root: Path | None = None) -> Path:
        root = repo_root if repo_root is not None else _project_root()
        return (root / self.GENRESCUE_UPLOAD_DIR).resolve()


def load_config() -> RescueConfig:
    workers = _getenv_int("GENRESCUE_PIPELINE_WORKERS", 4)
    if workers < 1:
        raise ValueError(f"GENRESCUE_PIPELINE_WORKERS must be >= 1, got {workers}")

    return RescueConfig(
        OPENAI_API_KEY=_getenv_str("OPENAI_API_KEY", ""),
        GENRESCUE_TRANSCRIPTION_PROVIDER=_getenv_str("GENRESCUE_TRANSCRIPTION_PROVIDER", "openai"),
        GENRESCUE_TRANSCRIPTION_MODEL=_getenv_str("GENRESCUE_TRANSCRIPTION_MODEL", "whisper-1"),
        GENRESCUE_TRANSCRIPTION_TIMEOUT_SECONDS=_getenv_float(
            "GENRESCUE_TRANSCRIPTION_TIMEOUT_SECONDS", 60.0
        ),
        GENRESCUE_LANGUAGE=_getenv_str("GENRESCUE_LANGUAGE", "en"),
        GENRESCUE_MAX_AUDIO_BYTES=_getenv_int("GENRESCUE_MAX_AUDIO_BYTES", 25 * 1024 * 1024),
        GENRESCUE_ANALYSIS_BACKEND=_getenv_str("GENRESCUE_ANALYSIS_BACKEND", "openai"),
        GENRESCUE_ANALYSIS_MODEL=_getenv_str("GENRESCUE_ANALYSIS_MODEL", "gpt-4o"),
        GENRESCUE_ANALYSIS_TIMEOUT_SECONDS=_getenv_float("GENRESCUE_ANALYSIS_TIMEOUT_SECONDS", 30.0),
        GENRESCUE_ANALYSIS_MAX_TOKENS=_getenv_int("GENRESCUE_ANALYSIS_MAX_TOKENS", 500),
        GENRESCUE_ANALYSIS_TEMPERATURE=_getenv_float("GENRESCUE_ANALYSIS_TEMPERATURE", 0.3),
        GENRESCUE_WHISPER_CPP_BIN=_getenv_str("GENRESCUE_WHISPER_CPP_BIN", ""),
        GENRESCUE_WHISPER_CPP_MODEL=_getenv_str("GENRESCUE_WHISPER_CPP_MODEL", ""),
        GENRESCUE_WHISPER_CPP_NO_GPU=_getenv_bool("GENRESCUE_WHISPER_CPP_NO_GPU", False),
        GENRESCUE_LLAMA_CPP_MODEL=_getenv_str("GENRESCUE_LLAMA_CPP_MODEL", ""),
        GENRESCUE_LLAMA_CPP_N_CTX=_getenv_int("GENRESCUE_LLAMA_CPP_N_CTX", 2048),
        GENRESCUE_LLAMA_CPP_CHAT_FORMAT=_getenv_str("GENRESCUE_LLAMA_CPP_CHAT_FORMAT", ""),
        GENRESCUE_PIPELINE_WORKERS=workers,
        GENRESCUE_UPLOAD_DIR=_getenv_str("GENRESCUE_UPLOAD_DIR", "./uploads"),
        GENRESCUE_ALLOWED_ORIGINS=_getenv_list("GENRESCUE_ALLOWED_ORIGINS", ["*"]),
        GENRESCUE_STALE_AFTER_HOURS=_getenv_float("GENRESCUE_STALE_AFTER_HOURS", 24.0),
        GENRESCUE_LOG_LEVEL=_getenv_str("GENRESCUE_LOG_LEVEL", "INFO"),
    )
