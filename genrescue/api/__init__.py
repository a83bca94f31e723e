"""
API boundary for GEN-Rescue backend.

Design intent:
- Expose intake, polling and rescuer-dashboard routes over the triage pipeline.
- Keep request parsing here and lifecycle decisions in `genrescue.pipeline`.
"""
