from __future__ import annotations

import datetime as _dt
from typing import Optional

from genrescue.internal_core.contracts import Location

SYSTEM_PROMPT = """You are an emergency response AI assistant analyzing SOS messages from disaster survivors. Your role is to extract critical information and assess urgency.

CRITICAL RULES:
1. Always respond with a single valid JSON object only
2. Be extremely conservative with urgency levels: when unsure, choose the more urgent level
3. Extract only factual information stated in the message
4. Identify concrete needs and risks
5. Never make assumptions beyond what is stated

Urgency Levels:
- CRITICAL: Immediate life threat (severe injury, trapped, fire, medical emergency)
- HIGH: Serious situation requiring prompt response (injured, unsafe location, essential needs)
- MEDIUM: Needs assistance but not immediate danger (stranded, minor injuries, seeking shelter)
- LOW: General help request, information seeking"""

RESPONSE_SHAPE = """{
  "urgency": "CRITICAL|HIGH|MEDIUM|LOW",
  "summary": "Brief 1-2 sentence summary of situation",
  "eventType": "Type of emergency (e.g., trapped, injured, fire, flood, etc.)",
  "injuryStatus": "Description of any injuries or none",
  "riskFactors": ["array", "of", "specific", "risks"],
  "needs": ["array", "of", "specific", "needs"],
  "confidence": 0.85
}"""


def _format_location(location: Optional[Location]) -> str:
    if location is None:
        return "Unknown"
    return f"{location.latitude}, {location.longitude}"


def build_user_prompt(
    text: str,
    *,
    received_at: Optional[_dt.datetime] = None,
    location: Optional[Location] = None,
) -> str:
    stamp = (received_at or _dt.datetime.now(_dt.timezone.utc)).isoformat()
    return (
        "Analyze this SOS message and respond with JSON only:\n\n"
        f"MESSAGE: {text!r}\n\n"
        "METADATA:\n"
        f"- Time received: {stamp}\n"
        f"- Location: {_format_location(location)}\n\n"
        "Respond with this exact JSON structure:\n"
        f"{RESPONSE_SHAPE}"
    )
