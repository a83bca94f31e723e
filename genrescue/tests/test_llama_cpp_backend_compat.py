import sys
import threading
import time
from types import SimpleNamespace

import pytest

from genrescue.analysis.adapter import StructuredAnalysisAdapter
from genrescue.analysis.llama_cpp_backend import LlamaCppAnalysisBackend
from genrescue.internal_core.errors import UpstreamTransientError

_CONTENT = '{"urgency": "CRITICAL", "summary": "Person trapped.", "confidence": 0.9}'


def _model_file(tmp_path) -> str:
    model_path = tmp_path / "mock.gguf"
    model_path.write_text("x", encoding="utf-8")
    return str(model_path)


def test_llama_cpp_backend_uses_chat_format_and_response_format(monkeypatch, tmp_path) -> None:
    class FakeLlama:
        def __init__(self, **kwargs) -> None:
            assert kwargs["chat_format"] == "gemma"

        def create_chat_completion(self, **kwargs):
            assert kwargs["response_format"] == {"type": "json_object"}
            assert kwargs["messages"][0]["role"] == "system"
            return {"choices": [{"message": {"content": _CONTENT}}]}

    monkeypatch.setitem(sys.modules, "llama_cpp", SimpleNamespace(Llama=FakeLlama))
    backend = LlamaCppAnalysisBackend(_model_file(tmp_path), chat_format="gemma")

    out = backend.complete(system_prompt="sys", user_prompt="user", timeout_sec=1.0)

    assert out == _CONTENT
    assert backend.chat_format_applied is True
    assert backend.response_format_supported is True


def test_llama_cpp_backend_falls_back_when_constructor_chat_format_is_unsupported(monkeypatch, tmp_path) -> None:
    class FakeLlama:
        def __init__(self, **kwargs) -> None:
            if "chat_format" in kwargs:
                raise TypeError("Llama.__init__() got an unexpected keyword argument 'chat_format'")

        def create_chat_completion(self, **kwargs):
            return {"choices": [{"message": {"content": _CONTENT}}]}

    monkeypatch.setitem(sys.modules, "llama_cpp", SimpleNamespace(Llama=FakeLlama))
    backend = LlamaCppAnalysisBackend(_model_file(tmp_path), chat_format="gemma")

    assert backend.complete(system_prompt="s", user_prompt="u", timeout_sec=1.0) == _CONTENT
    assert backend.chat_format_applied is False


def test_llama_cpp_backend_retries_without_response_format(monkeypatch, tmp_path) -> None:
    seen: list[dict] = []

    class FakeLlama:
        def __init__(self, **kwargs) -> None:
            pass

        def create_chat_completion(self, **kwargs):
            seen.append(kwargs)
            if "response_format" in kwargs:
                raise TypeError("create_chat_completion() got an unexpected keyword argument 'response_format'")
            return {"choices": [{"message": {"content": _CONTENT}}]}

    monkeypatch.setitem(sys.modules, "llama_cpp", SimpleNamespace(Llama=FakeLlama))
    backend = LlamaCppAnalysisBackend(_model_file(tmp_path))

    assert backend.complete(system_prompt="s", user_prompt="u", timeout_sec=1.0) == _CONTENT
    assert backend.response_format_supported is False
    assert "response_format" not in seen[-1]

    backend.complete(system_prompt="s", user_prompt="u", timeout_sec=1.0)
    assert len(seen) == 3
    assert "response_format" not in seen[-1]


def test_llama_cpp_backend_missing_model_is_transient(tmp_path) -> None:
    with pytest.raises(UpstreamTransientError) as err:
        LlamaCppAnalysisBackend(str(tmp_path / "absent.gguf")).complete(
            system_prompt="s", user_prompt="u", timeout_sec=1.0
        )
    assert "not found" in err.value.message


def test_llama_cpp_backend_inference_error_is_transient(monkeypatch, tmp_path) -> None:
    class FakeLlama:
        def __init__(self, **kwargs) -> None:
            pass

        def create_chat_completion(self, **kwargs):
            raise RuntimeError("llama_decode returned -1")

    monkeypatch.setitem(sys.modules, "llama_cpp", SimpleNamespace(Llama=FakeLlama))
    with pytest.raises(UpstreamTransientError):
        LlamaCppAnalysisBackend(_model_file(tmp_path)).complete(system_prompt="s", user_prompt="u", timeout_sec=1.0)


def test_llama_cpp_backend_times_out_hung_inference(monkeypatch, tmp_path) -> None:
    release = threading.Event()

    class FakeLlama:
        def __init__(self, **kwargs) -> None:
            pass

        def create_chat_completion(self, **kwargs):
            release.wait(5.0)
            return {"choices": [{"message": {"content": _CONTENT}}]}

    monkeypatch.setitem(sys.modules, "llama_cpp", SimpleNamespace(Llama=FakeLlama))
    backend = LlamaCppAnalysisBackend(_model_file(tmp_path))
    try:
        started = time.monotonic()
        with pytest.raises(UpstreamTransientError) as err:
            backend.complete(system_prompt="s", user_prompt="u", timeout_sec=0.2)
        assert time.monotonic() - started < 2.0
        assert "timed out" in err.value.message

        result = StructuredAnalysisAdapter(backend, timeout_sec=0.2).analyze("help, we are trapped")
        assert result.degraded is True
        assert result.analysis.urgency == "HIGH"
        assert result.analysis.confidence == 0.0
    finally:
        release.set()
