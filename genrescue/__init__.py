"""
GEN-Rescue backend package.

Design intent:
- Turn survivor distress reports (voice or text) into triaged rescue cases.
- Keep AI adapters (transcription/analysis) behind injected provider handles.
- Keep the life-safety override rules deterministic and independent of the models.
"""
