from __future__ import annotations

"""Distress keyword ruleset: fixed vocabularies matched as lowercase substrings."""

from typing import Iterable

# Immediate life threat.
CRITICAL_KEYWORDS: tuple[str, ...] = (
    "trapped",
    "stuck",
    "can't move",
    "cannot move",
    "bleeding",
    "blood",
    "injured",
    "hurt",
    "pain",
    "fire",
    "smoke",
    "burning",
    "flames",
    "drowning",
    "water rising",
    "flood",
    "collapsed",
    "rubble",
    "debris",
    "unconscious",
    "not breathing",
    "chest pain",
    "help",
    "emergency",
    "urgent",
    "dying",
    "broken",
    "fracture",
    "severe",
    "earthquake",
    "aftershock",
)

# Serious but not immediately lethal distress.
HIGH_KEYWORDS: tuple[str, ...] = (
    "lost",
    "stranded",
    "alone",
    "cold",
    "freezing",
    "hypothermia",
    "dehydrated",
    "thirsty",
    "no water",
    "hungry",
    "no food",
    "scared",
    "afraid",
    "panic",
    "shelter",
    "nowhere to go",
    "supplies",
    "medication",
    "medicine",
)


def matched_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    lowered = (text or "").lower()
    return [term for term in keywords if term.lower() in lowered]


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    lowered = (text or "").lower()
    return any(term.lower() in lowered for term in keywords)


def has_critical_keywords(text: str) -> bool:
    return contains_any(text, CRITICAL_KEYWORDS)


def has_high_keywords(text: str) -> bool:
    return contains_any(text, HIGH_KEYWORDS)
