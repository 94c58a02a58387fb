"""Score fusion across heterogeneous signal sources."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Sequence

from .models import (
    BehavioralVerdict,
    PatternResult,
    RiskLevel,
    SignalScore,
    SignalSource,
    ThreatAssessment,
    risk_level_for,
)

logger = logging.getLogger(__name__)

BEHAVIORAL_ANOMALY_SCORE = 80.0
DEGRADED_REASON = "Analysis could not be completed; assessment degraded to a minimal result"


def degraded_assessment(reason: str = DEGRADED_REASON) -> ThreatAssessment:
    """Minimal result returned when the analysis pipeline itself faults."""

    return ThreatAssessment(threat_score=0, risk_level=RiskLevel.UNKNOWN, evidence=(reason,), degraded=True)


class ScoreAggregator:
    """Folds pattern output and collaborator signals into one assessment.

    The final score is the maximum over available signals. Unavailable
    signals are dropped before the maximum is taken.
    """

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def aggregate(
        self,
        pattern_result: PatternResult,
        external_signals: Iterable[SignalScore] = (),
    ) -> ThreatAssessment:
        try:
            return self._aggregate(pattern_result, external_signals)
        except Exception:
            logger.exception("Score aggregation failed")
            return degraded_assessment()

    def combine(self, assessments: Sequence[ThreatAssessment]) -> ThreatAssessment:
        """Merge per-input assessments of one request into a single result."""

        if not assessments:
            return ThreatAssessment(threat_score=0, risk_level=RiskLevel.LOW)
        healthy = [item for item in assessments if not item.degraded]
        if not healthy:
            return degraded_assessment()

        evidence: List[str] = []
        signals: List[SignalScore] = []
        for item in assessments:
            evidence.extend(item.evidence)
            signals.extend(item.signals)
        score = max(item.threat_score for item in healthy)
        return ThreatAssessment(
            threat_score=score,
            risk_level=risk_level_for(score),
            evidence=tuple(evidence),
            signals=tuple(signals),
        )

    def merge_behavioral(self, assessment: ThreatAssessment, verdict: BehavioralVerdict) -> ThreatAssessment:
        """Attach a behavioral verdict; anomalies raise the score floor."""

        if assessment.degraded or not verdict.is_anomaly:
            return replace(assessment, behavioral=verdict)

        behavioral = SignalScore(
            source=SignalSource.BEHAVIORAL,
            score=BEHAVIORAL_ANOMALY_SCORE,
            label="anomaly",
            explanation=verdict.explanation,
            details={"user_id": verdict.user_id, "anomaly_score": verdict.anomaly_score},
        )
        score = max(assessment.threat_score, _max_of_available([behavioral]))
        return replace(
            assessment,
            threat_score=score,
            risk_level=risk_level_for(score),
            evidence=assessment.evidence + (f"Behavioral: {verdict.explanation}",),
            signals=assessment.signals + (behavioral,),
            behavioral=verdict,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _aggregate(self, pattern_result: PatternResult, external_signals: Iterable[SignalScore]) -> ThreatAssessment:
        pattern_signal = SignalScore(
            source=SignalSource.PATTERN_ENGINE,
            score=pattern_result.total_score,
            label=pattern_result.category,
            details={"matches": len(pattern_result.matches)},
        )
        signals: List[SignalScore] = [pattern_signal]
        for signal in external_signals:
            if not signal.available:
                logger.debug("Skipping unavailable %s signal: %s", signal.source.value, signal.explanation)
                continue
            signals.append(signal)

        evidence = [
            f"{match.rule_label} (x{match.occurrence_count}, +{match.contribution})"
            for match in pattern_result.matches
        ]
        for signal in signals[1:]:
            evidence.extend(_signal_evidence(signal))

        score = _max_of_available(signals)
        return ThreatAssessment(
            threat_score=score,
            risk_level=risk_level_for(score),
            evidence=tuple(evidence),
            signals=tuple(signals),
        )


def _max_of_available(signals: Iterable[SignalScore]) -> int:
    scores = [signal.score for signal in signals if signal.available]
    return int(round(max(scores, default=0.0)))


def _signal_evidence(signal: SignalScore) -> Iterable[str]:
    if signal.source is SignalSource.EXTERNAL_CLASSIFIER and signal.explanation:
        yield f"AI analysis: {signal.explanation}"
    elif signal.source is SignalSource.SENTIMENT and signal.label == "negative":
        yield signal.explanation or "Negative sentiment detected"
    elif signal.source is SignalSource.EXTERNAL_REPUTATION:
        flagged = signal.details.get("flagged")
        if isinstance(flagged, int) and flagged > 0:
            indicator = signal.details.get("indicator", "this indicator")
            yield f"{flagged} intelligence sources flagged {indicator}"


__all__ = ["BEHAVIORAL_ANOMALY_SCORE", "ScoreAggregator", "degraded_assessment"]
