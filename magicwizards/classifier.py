"""
Prompt classification for Magic Wizards.

Detects the risk and complexity signals the model policy resolver
escalates on. The resolver only depends on the PromptClassifier
protocol, so the keyword scanner below can be replaced by any other
implementation (a learned model, a remotely configured rule set).
"""

from typing import Iterable, Optional, Protocol

from magicwizards.config import get_complexity_keywords, get_high_risk_keywords


class PromptClassifier(Protocol):
    """Signals used to pick a model tier."""

    def is_high_risk(self, text: str) -> bool:
        ...

    def is_high_complexity(self, text: str) -> bool:
        ...


class KeywordClassifier:
    """
    Case-insensitive substring scan over fixed word lists.

    Matching is not tokenized, so "undeleted" matches "delete". Callers
    accept such false positives.
    """

    def __init__(
        self,
        high_risk_keywords: Optional[Iterable[str]] = None,
        complexity_keywords: Optional[Iterable[str]] = None,
    ):
        risk = high_risk_keywords if high_risk_keywords is not None else get_high_risk_keywords()
        complexity = (
            complexity_keywords if complexity_keywords is not None else get_complexity_keywords()
        )
        self.high_risk_keywords = tuple(word.lower() for word in risk if word)
        self.complexity_keywords = tuple(word.lower() for word in complexity if word)

    def is_high_risk(self, text: str) -> bool:
        return self._matches(text, self.high_risk_keywords)

    def is_high_complexity(self, text: str) -> bool:
        return self._matches(text, self.complexity_keywords)

    def matched_keywords(self, text: str) -> dict[str, list[str]]:
        """Which keywords fired, for dry-run explanations."""
        lower = text.lower()
        return {
            "high_risk": [word for word in self.high_risk_keywords if word in lower],
            "high_complexity": [word for word in self.complexity_keywords if word in lower],
        }

    @staticmethod
    def _matches(text: str, keywords: tuple[str, ...]) -> bool:
        lower = text.lower()
        return any(word in lower for word in keywords)
