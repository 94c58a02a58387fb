"""Sentiment scoring for text inputs.

Sentiment never raises the threat score on its own. A strongly negative
reading adds an evidence line pointing at possible manipulation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

from .models import CollaboratorUnavailable, SignalScore, SignalSource

logger = logging.getLogger(__name__)

NEGATIVE_THRESHOLD = -0.5
NEGATIVE_EXPLANATION = "Negative sentiment detected, which may indicate manipulation"


@dataclass(frozen=True)
class SentimentReading:
    """Polarity of one text; ``compound`` is normalised to [-1, 1]."""

    compound: float
    positive: float
    negative: float
    neutral: float

    @property
    def is_negative(self) -> bool:
        return self.compound < NEGATIVE_THRESHOLD

    def as_dict(self) -> Dict[str, float]:
        return {
            "compound": round(self.compound, 4),
            "positive": round(self.positive, 4),
            "negative": round(self.negative, 4),
            "neutral": round(self.neutral, 4),
        }

    def to_signal(self, provider: str) -> SignalScore:
        return SignalScore(
            source=SignalSource.SENTIMENT,
            score=0.0,
            label="negative" if self.is_negative else "neutral",
            explanation=NEGATIVE_EXPLANATION if self.is_negative else None,
            details={"provider": provider, **self.as_dict()},
        )


class SentimentAnalyzer(Protocol):
    name: str

    def available(self) -> bool:
        ...

    def analyze(self, text: str) -> SentimentReading:
        ...


class NullSentimentAnalyzer:
    """Analyzer used when sentiment scoring is switched off."""

    name = "none"

    def available(self) -> bool:
        return False

    def analyze(self, text: str) -> SentimentReading:
        raise CollaboratorUnavailable("No sentiment analyzer configured")


class VaderSentimentAnalyzer:
    """Lexicon-based polarity scoring backed by VADER."""

    name = "VADER"

    def __init__(self, analyzer: Optional[SentimentIntensityAnalyzer] = None) -> None:
        self._analyzer = analyzer

    def available(self) -> bool:
        return True

    def analyze(self, text: str) -> SentimentReading:
        if self._analyzer is None:
            self._analyzer = SentimentIntensityAnalyzer()
        scores = self._analyzer.polarity_scores(text)
        return SentimentReading(
            compound=float(scores["compound"]),
            positive=float(scores["pos"]),
            negative=float(scores["neg"]),
            neutral=float(scores["neu"]),
        )


def sentiment_signal(analyzer: SentimentAnalyzer, text: str) -> SignalScore:
    """Score ``text``; any analyzer failure becomes an unavailable signal."""

    source = SignalSource.SENTIMENT
    if not analyzer.available():
        return SignalScore.unavailable(source, f"{analyzer.name} sentiment analyzer not configured")
    try:
        reading = analyzer.analyze(text)
    except CollaboratorUnavailable as exc:
        logger.warning("%s unavailable: %s", analyzer.name, exc)
        return SignalScore.unavailable(source, str(exc))
    except Exception:
        logger.exception("Unexpected error from %s", analyzer.name)
        return SignalScore.unavailable(source, f"{analyzer.name} failed unexpectedly")
    return reading.to_signal(analyzer.name)


__all__ = [
    "NEGATIVE_THRESHOLD",
    "NullSentimentAnalyzer",
    "SentimentAnalyzer",
    "SentimentReading",
    "VaderSentimentAnalyzer",
    "sentiment_signal",
]
