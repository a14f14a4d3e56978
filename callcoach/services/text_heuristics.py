"""Keyword heuristics for pulling scores and lists out of free-text replies."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from callcoach.domain.models import Sentiment

PLACEHOLDER_ITEM = "Identified through AI analysis"

POSITIVE_WORDS = ("happy", "satisfied", "pleased", "good", "great", "excellent")
NEGATIVE_WORDS = ("angry", "frustrated", "upset", "bad", "poor", "terrible")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def extract_numeric_value(text: str, keywords: Iterable[str]) -> Optional[float]:
    """Return the first number following any keyword, trying keywords in order."""

    for keyword in keywords:
        match = re.search(
            rf"{re.escape(keyword)}[:\s]*([0-9]+(?:\.[0-9]+)?)",
            text,
            re.IGNORECASE,
        )
        if match:
            return float(match.group(1))
    return None


def extract_list_items(text: str, keywords: Iterable[str], limit: int = 3) -> list[str]:
    """Collect phrases after each keyword, up to the next full stop or newline."""

    items: list[str] = []
    for keyword in keywords:
        pattern = re.compile(rf"{re.escape(keyword)}s?[:\s]*([^.\n]+)", re.IGNORECASE)
        for match in pattern.finditer(text):
            phrase = match.group(1)
            if phrase and len(phrase) > 3:
                items.append(phrase.strip())
    return items[:limit] if items else [PLACEHOLDER_ITEM]


def extract_sentiment(text: str) -> Sentiment:
    lowered = text.lower()
    has_positive = any(word in lowered for word in POSITIVE_WORDS)
    has_negative = any(word in lowered for word in NEGATIVE_WORDS)

    if has_positive and not has_negative:
        return Sentiment.POSITIVE
    if has_negative and not has_positive:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def extract_summary(text: str) -> Optional[str]:
    """First sentence longer than ten characters, terminated with a full stop."""

    for sentence in _SENTENCE_SPLIT.split(text):
        if len(sentence.strip()) > 10:
            return sentence.strip() + "."
    return None


def truncate(text: str, max_length: int = 500) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


__all__ = [
    "NEGATIVE_WORDS",
    "PLACEHOLDER_ITEM",
    "POSITIVE_WORDS",
    "extract_list_items",
    "extract_numeric_value",
    "extract_sentiment",
    "extract_summary",
    "truncate",
]
