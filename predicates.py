"""Edge-trigger predicates evaluated once per poll tick.

All functions are pure: they read a snapshot of latched state and return a
boolean. Callers that consume state on a match do so themselves.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from models import Recognition

PULSE_WINDOW_S = 0.2

_PUNCTUATION = re.compile(r"[.?!]")


def intent_matches(result: Optional[Recognition], intent: str) -> bool:
    return result is not None and result.intent == intent


def pulse_deadline(arrived_at: float, window_s: float = PULSE_WINDOW_S) -> float:
    return arrived_at + window_s


def pulse_active(deadline: Optional[float], now: float) -> bool:
    """True for reads in ``[arrival, deadline)``."""
    return deadline is not None and now < deadline


def normalize_phrase(text: str) -> str:
    return _PUNCTUATION.sub("", str(text).casefold()).strip()


def transcript_matches(transcripts: Iterable[str], phrase: str) -> bool:
    needle = normalize_phrase(phrase)
    if not needle:
        return False
    return any(needle in normalize_phrase(candidate) for candidate in transcripts)
