"""
Safety override boundary for GEN-Rescue backend.

Design intent:
- Keep keyword rules as plain data so new terms are a one-line change.
- Raise urgency only; never lower what the model assigned.
- Stay a pure function of (analysis, text) so every override is auditable.
"""
