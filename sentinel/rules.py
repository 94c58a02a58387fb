"""Weighted pattern rules for text and URL inputs."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Sequence, Tuple

from .models import InvalidRequestError, PatternResult, RuleMatch

TEXT = "text"
URL = "url"
CATEGORIES = (TEXT, URL)

MAX_PATTERN_SCORE = 100
NON_HTTPS_LABEL = "Non-HTTPS connection"
NON_HTTPS_WEIGHT = 15


@dataclass(frozen=True)
class DetectionRule:
    """Compiled case-insensitive pattern with its weight and category."""

    pattern: Pattern[str]
    label: str
    weight: int
    category: str

    def count(self, value: str) -> int:
        return sum(1 for _ in self.pattern.finditer(value))


def _rule(expression: str, label: str, weight: int, category: str) -> DetectionRule:
    return DetectionRule(re.compile(expression, re.IGNORECASE), label, weight, category)


TEXT_RULES: Tuple[DetectionRule, ...] = (
    _rule(r"\burgent(?:.{0,20}action.{0,20}required)?", "Urgency manipulation", 40, TEXT),
    _rule(r"verify.{0,20}account", "Account verification scam", 35, TEXT),
    _rule(r"click.{0,20}here.{0,20}immediately", "Suspicious call-to-action", 30, TEXT),
    _rule(r"suspended.{0,20}account", "Account suspension threat", 45, TEXT),
    _rule(r"congratulations.{0,20}winner", "Fake lottery/prize", 50, TEXT),
    _rule(r"bitcoin|cryptocurrency|investment.{0,20}opportunity", "Cryptocurrency scam", 35, TEXT),
    _rule(r"<script|javascript:|eval\(|document\.write", "Malicious script injection", 80, TEXT),
    _rule(r"base64|eval|unescape|fromcharcode", "Code obfuscation", 70, TEXT),
    _rule(r"password.{0,20}expired", "Password expiration scam", 30, TEXT),
    _rule(r"bank.{0,20}account.{0,20}locked", "Banking security scam", 40, TEXT),
)

URL_RULES: Tuple[DetectionRule, ...] = (
    _rule(r"[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+", "IP address instead of domain", 30, URL),
    _rule(r"\.(?:tk|ml|ga|cf)(?=[/:?#]|$)", "Free domain service", 25, URL),
    _rule(
        r"paypa1|faceb00k|goog1e|micr0soft|amazom|twiter|linkedln|netf1ix|app1e",
        "Typosquatting domain",
        50,
        URL,
    ),
    _rule(r"bit\.ly|tinyurl|short\.link|//t\.co\b", "URL shortener", 15, URL),
    _rule(r"[a-z]+-[a-z]+-[a-z]+\.[a-z]{2,}", "Suspicious hyphenated domain", 20, URL),
    _rule(r"[0-9]{10,}", "Long numeric sequence", 25, URL),
)


class PatternRuleEngine:
    """Scores an input against the ordered rule set for its category.

    Every matching rule contributes ``weight * occurrences``; the total is
    clamped to ``MAX_PATTERN_SCORE``. URLs that do not use HTTPS pick up an
    extra fixed penalty.
    """

    def __init__(self, rules: Optional[Sequence[DetectionRule]] = None) -> None:
        self._rules = tuple(rules) if rules is not None else TEXT_RULES + URL_RULES

    @property
    def rules(self) -> Tuple[DetectionRule, ...]:
        return self._rules

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def evaluate(self, value: str, category: str) -> PatternResult:
        if category not in CATEGORIES:
            raise InvalidRequestError(f"Unsupported rule category {category!r}")
        if not isinstance(value, str):
            raise InvalidRequestError(f"{category} input must be a string")

        matches = tuple(self._matches(value, category))
        return PatternResult(category=category, total_score=_sum_and_clamp(matches), matches=matches)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _matches(self, value: str, category: str) -> Iterable[RuleMatch]:
        for rule in self._rules:
            if rule.category != category:
                continue
            count = rule.count(value)
            if count:
                yield RuleMatch(rule_label=rule.label, weight=rule.weight, occurrence_count=count)

        if category == URL and not value.strip().lower().startswith("https://"):
            yield RuleMatch(rule_label=NON_HTTPS_LABEL, weight=NON_HTTPS_WEIGHT, occurrence_count=1)


def _sum_and_clamp(matches: Iterable[RuleMatch]) -> int:
    total = sum(match.contribution for match in matches)
    return max(0, min(MAX_PATTERN_SCORE, total))


__all__ = [
    "CATEGORIES",
    "DetectionRule",
    "PatternRuleEngine",
    "TEXT",
    "TEXT_RULES",
    "URL",
    "URL_RULES",
]
