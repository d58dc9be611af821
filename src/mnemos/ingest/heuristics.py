"""Keyword heuristics for conversation memories, plus query normalisation.

Memory turns are tagged at ingest time with a coarse kind, a dominant
emotion and an importance score in [0, 1]. The tags are stored as
ContentUnit metadata; retrieval ranking does not read them.

Importance starts at 0.5 and is adjusted by word count, kind, emotion and
the number of capitalised words (a cheap named-entity signal), then clamped.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class MemoryKind(str, Enum):
    PREFERENCE = "PREFERENCE"
    EVENT = "EVENT"
    PROJECT = "PROJECT"
    FACT = "FACT"
    KNOWLEDGE = "KNOWLEDGE"
    EMOTION = "EMOTION"
    OTHER = "OTHER"


class Emotion(str, Enum):
    HAPPY = "HAPPY"
    EXCITED = "EXCITED"
    SAD = "SAD"
    FRUSTRATED = "FRUSTRATED"
    ANXIOUS = "ANXIOUS"
    CURIOUS = "CURIOUS"
    CONFIDENT = "CONFIDENT"
    NEUTRAL = "NEUTRAL"


def _phrases(*words: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b")


# First match wins, in this order.
_KIND_RULES: list[tuple[MemoryKind, re.Pattern[str]]] = [
    (MemoryKind.PREFERENCE, _phrases("i like", "i prefer", "i love", "i hate", "i enjoy", "my favorite")),
    (MemoryKind.EVENT, _phrases("yesterday", "today", "tomorrow", "last week", "went to", "going to")),
    (MemoryKind.PROJECT, _phrases("working on", "building", "project", "planning to", "goal")),
    (MemoryKind.FACT, _phrases("my name is", "i am", "i'm", "i live")),
    (MemoryKind.KNOWLEDGE, _phrases("learned", "discovered", "found out", "understand")),
    (MemoryKind.EMOTION, _phrases("feel", "feeling", "emotion")),
]

_CLOCK_RE = re.compile(r"\d{1,2}[:/]\d{1,2}")
_PLACE_RE = re.compile(r"\bin [A-Z][a-z]+\b")

_EMOTION_RULES: list[tuple[Emotion, re.Pattern[str], tuple[str, ...]]] = [
    (Emotion.HAPPY, _phrases("happy", "excited", "great", "awesome", "wonderful"), ("😊", "😀", "🎉")),
    (Emotion.EXCITED, _phrases("can't wait", "so excited", "amazing"), ("🤩",)),
    (Emotion.SAD, _phrases("sad", "disappointed", "unfortunate"), ("😢", "😞")),
    (Emotion.FRUSTRATED, _phrases("frustrated", "annoying", "difficult", "struggling"), ()),
    (Emotion.ANXIOUS, _phrases("worried", "nervous", "anxious", "concerned"), ()),
    (Emotion.CURIOUS, _phrases("curious", "wondering", "how does", "why", "what if"), ()),
    (Emotion.CONFIDENT, _phrases("confident", "sure", "definitely"), ()),
]

_KIND_WEIGHT = {
    MemoryKind.PREFERENCE: 0.15,
    MemoryKind.PROJECT: 0.15,
    MemoryKind.FACT: 0.1,
    MemoryKind.EVENT: 0.05,
}
_EMOTION_WEIGHT = {
    Emotion.EXCITED: 0.1,
    Emotion.FRUSTRATED: 0.1,
    Emotion.ANXIOUS: 0.1,
    Emotion.HAPPY: 0.05,
    Emotion.SAD: 0.05,
}
_CAPITALISED_RE = re.compile(r"\b[A-Z][a-z]+\b")

# Control characters other than the whitespace ones (\t \n \v \f \r).
_CONTROL_RE = re.compile(r"[\x00-\x08\x0e-\x1f\x7f]")
_SPACE_RE = re.compile(r"\s+")


def classify_kind(text: str) -> MemoryKind:
    """Return the first matching memory kind, or ``OTHER``."""
    lower = text.lower()
    for kind, pattern in _KIND_RULES:
        if pattern.search(lower):
            return kind
        if kind == MemoryKind.EVENT and _CLOCK_RE.search(lower):
            return kind
        if kind == MemoryKind.FACT and _PLACE_RE.search(text):
            return kind
    return MemoryKind.OTHER


def detect_emotion(text: str) -> Emotion:
    lower = text.lower()
    for emotion, pattern, emoji in _EMOTION_RULES:
        if pattern.search(lower) or any(e in text for e in emoji):
            return emotion
    return Emotion.NEUTRAL


def importance(text: str, kind: MemoryKind, emotion: Emotion) -> float:
    """Score how worth remembering *text* is, clamped to [0, 1]."""
    score = 0.5
    words = len(text.split())
    if words > 50:
        score += 0.2
    elif words > 20:
        score += 0.1
    elif words < 5:
        score -= 0.1
    score += _KIND_WEIGHT.get(kind, 0.0)
    score += _EMOTION_WEIGHT.get(emotion, 0.0)
    score += 0.02 * len(_CAPITALISED_RE.findall(text))
    return round(min(1.0, max(0.0, score)), 3)


def memory_metadata(text: str) -> dict[str, Any]:
    """Heuristic tags stored on a MEMORY content unit."""
    kind = classify_kind(text)
    emotion = detect_emotion(text)
    return {
        "memory_kind": kind.value,
        "emotion": emotion.value,
        "importance": importance(text, kind, emotion),
    }


def normalize(text: str, limit: int = 2_000) -> str:
    """Collapse whitespace, drop control characters and cap the length.

    Applied to search queries only; stored text is never rewritten, since
    chunk offsets index into it.
    """
    cleaned = _CONTROL_RE.sub("", text)
    return _SPACE_RE.sub(" ", cleaned).strip()[:limit]
