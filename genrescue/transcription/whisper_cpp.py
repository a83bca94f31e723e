from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional, Tuple

from genrescue.internal_core.errors import TranscriptionError

from .base import TranscriptionProvider, ensure_audio_exists


def whisper_cpp_available(bin_path: str, model_path: str) -> Tuple[bool, str]:
    if not bin_path:
        return False, "missing GENRESCUE_WHISPER_CPP_BIN"
    if not model_path:
        return False, "missing GENRESCUE_WHISPER_CPP_MODEL"
    if not Path(bin_path).exists():
        return False, f"whisper-cli not found: {bin_path}"
    if not Path(model_path).exists():
        return False, f"model not found: {model_path}"
    return True, ""


def _with_dyld_paths(bin_path: str, env: Optional[dict[str, str]] = None) -> dict[str, str]:
    env_out = dict(os.environ) if env is None else dict(env)
    if not bin_path:
        return env_out
    try:
        build_dir = Path(bin_path).resolve().parents[1]
    except (OSError, IndexError):
        return env_out

    candidates = [
        build_dir / "src",
        build_dir / "ggml" / "src",
        build_dir / "ggml" / "src" / "ggml-metal",
    ]
    new_paths = [str(p) for p in candidates if p.exists()]
    if not new_paths:
        return env_out

    existing = env_out.get("DYLD_LIBRARY_PATH", "")
    joined = os.pathsep.join(new_paths)
    env_out["DYLD_LIBRARY_PATH"] = joined if not existing else f"{joined}{os.pathsep}{existing}"
    return env_out


class WhisperCppProvider(TranscriptionProvider):
    """Local whisper.cpp CLI. No credential, so it never reports Unauthorized."""

    def __init__(self, bin_path: str, model_path: str, no_gpu: bool = False, default_language: str = "en"):
        self._bin_path = bin_path
        self._model_path = model_path
        self._runtime_no_gpu = bool(no_gpu)
        self._default_language = default_language

    def name(self) -> str:
        return "whisper_cpp"

    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        timeout_sec: float = 60.0,
    ) -> str:
        ok, reason = whisper_cpp_available(self._bin_path, self._model_path)
        if not ok:
            raise TranscriptionError("ServiceError", f"whisper.cpp not configured: {reason}", self.name())
        ensure_audio_exists(audio_path, self.name())

        base_cmd = [
            self._bin_path,
            "-m",
            self._model_path,
            "-f",
            audio_path,
            "-l",
            language or self._default_language,
            "--no-timestamps",
            "--no-prints",
        ]

        # Some Metal builds crash on certain machines; retry once on CPU.
        attempt_no_gpu = [True] if self._runtime_no_gpu else [False, True]
        attempt_errors: list[str] = []

        for use_no_gpu in attempt_no_gpu:
            cmd = list(base_cmd)
            mode = "cpu_no_gpu" if use_no_gpu else "gpu_default"
            if use_no_gpu:
                cmd.insert(1, "-ng")
            try:
                res = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    timeout=timeout_sec,
                    env=_with_dyld_paths(self._bin_path),
                )
            except subprocess.TimeoutExpired:
                # A timeout on GPU would just time out again on CPU.
                attempt_errors.append(f"{mode}: timeout after {timeout_sec:.0f}s")
                break
            except OSError as e:
                attempt_errors.append(f"{mode}: {e}")
                if not use_no_gpu:
                    self._runtime_no_gpu = True
                continue

            if res.returncode != 0:
                msg = (res.stderr or "").strip() or f"exit_code={res.returncode}"
                if len(msg) > 200:
                    msg = msg[:200] + "..."
                attempt_errors.append(f"{mode}: {msg}")
                if not use_no_gpu:
                    self._runtime_no_gpu = True
                continue

            text_out = " ".join((res.stdout or "").split()).strip()
            if not text_out:
                attempt_errors.append(f"{mode}: empty output")
                continue
            return text_out

        raise TranscriptionError(
            "ServiceError",
            "Transcription failed: " + ("; ".join(attempt_errors) or "whisper.cpp failed"),
            self.name(),
        )
