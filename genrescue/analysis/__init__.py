"""
Structured analysis boundary for GEN-Rescue backend.

Design intent:
- Turn free text into the fixed emergency-assessment record.
- Keep model backends swappable (hosted or local GGUF).
- Never let a parse failure look like a confident low-urgency answer.
"""

from .adapter import (
    AnalysisAdapterResult,
    AnalysisBackend,
    AnalysisMetadata,
    StructuredAnalysisAdapter,
    degraded_analysis,
)
from .registry import build_analysis_adapter, build_analysis_backend

__all__ = [
    "AnalysisAdapterResult",
    "AnalysisBackend",
    "AnalysisMetadata",
    "StructuredAnalysisAdapter",
    "build_analysis_adapter",
    "build_analysis_backend",
    "degraded_analysis",
]
