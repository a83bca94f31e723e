"""
Triage pipeline boundary for GEN-Rescue backend.

Design intent:
- Own the case lifecycle; delegate inference to adapters and judgment to `risk`.
- Reject malformed reports before any case exists.
"""

from .intake import validate_report, validate_text_message
from .triage import TriagePipeline

__all__ = ["TriagePipeline", "validate_report", "validate_text_message"]
