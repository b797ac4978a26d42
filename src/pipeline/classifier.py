"""Intent classification for specialist (clinical) consultation.

The pipeline only depends on the :class:`IntentClassifier` protocol, so the
keyword list below can be swapped for a different list or a model-based
classifier without touching the graph.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import NamedTuple, Protocol

# Checked in order; the first match is reported as the reason
CLINICAL_PATTERNS: tuple[str, ...] = (
    r"symptom", r"medication", r"medicine", r"dose", r"dosage",
    r"blood pressure", r"heart rate", r"glucose", r"sugar level",
    r"pain", r"dizzy", r"nausea", r"fever", r"breathing",
    r"emergency", r"urgent", r"serious", r"dangerous",
    r"should I take", r"is it safe", r"side effect",
    r"chest pain", r"headache", r"swelling", r"infection",
    r"wound", r"bleeding", r"vomit", r"diarrhea",
)


class Classification(NamedTuple):
    fires: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.fires


class IntentClassifier(Protocol):
    def classify(self, text: str) -> Classification: ...


class KeywordClassifier:
    """Fires when any case-insensitive pattern matches the text.  Pure and stateless."""

    def __init__(self, patterns: Iterable[str] = CLINICAL_PATTERNS):
        self._patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    def classify(self, text: str) -> Classification:
        for pattern in self._patterns:
            if pattern.search(text or ""):
                return Classification(True, pattern.pattern)
        return Classification(False)
