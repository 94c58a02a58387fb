"""Remediation playbook keyed by risk tier."""
from __future__ import annotations

from typing import Dict, Optional, Tuple, Union

from .models import Recommendation, RiskLevel, ThreatAssessment

PLAYBOOK: Dict[RiskLevel, Recommendation] = {
    RiskLevel.CRITICAL: Recommendation(
        action="BLOCK",
        priority="high",
        message="This content poses a critical security risk. Do not proceed.",
        steps=("Close the application", "Report to security team", "Run full system scan"),
    ),
    RiskLevel.HIGH: Recommendation(
        action="VERIFY",
        priority="high",
        message="High risk detected. Verify the source before proceeding.",
        steps=(
            "Contact sender through alternative channel",
            "Check official website",
            "Look for security indicators",
        ),
    ),
    RiskLevel.MEDIUM: Recommendation(
        action="CAUTION",
        priority="medium",
        message="Medium risk detected. Proceed with caution.",
        steps=("Review content carefully", "Check sender reputation", "Enable additional security measures"),
    ),
    RiskLevel.LOW: Recommendation(
        action="PROCEED",
        priority="low",
        message="Low risk detected. Content appears safe.",
        steps=("Continue normal operation", "Maintain security awareness"),
    ),
}

UNKNOWN_RECOMMENDATION = Recommendation(
    action="UNKNOWN",
    priority="medium",
    message="Unable to generate recommendations",
    steps=("Review content manually", "Retry the analysis later"),
)


class RecommendationEngine:
    """Maps risk tiers to remediation actions."""

    def recommend(self, risk_level: Union[RiskLevel, str, None]) -> Recommendation:
        level = _coerce_level(risk_level)
        if level is None:
            return UNKNOWN_RECOMMENDATION
        return PLAYBOOK.get(level, UNKNOWN_RECOMMENDATION)

    def for_assessment(self, assessment: ThreatAssessment) -> Tuple[Recommendation, ...]:
        primary = self.recommend(assessment.risk_level)
        if assessment.degraded:
            return (primary,)
        guidance = Recommendation(
            action="GUIDANCE",
            priority=primary.priority,
            message="Indicator-specific guidance",
            steps=indicator_guidance(assessment.threat_score),
        )
        return (primary, guidance)

    def attach(self, assessment: ThreatAssessment) -> ThreatAssessment:
        return assessment.with_recommendations(self.for_assessment(assessment))


def indicator_guidance(score: float) -> Tuple[str, ...]:
    if score > 70:
        return ("Do not click any links or download attachments", "Report this to your security team immediately")
    if score > 40:
        return (
            "Verify the sender through alternative communication",
            "Check the official website for similar communications",
        )
    return ("Proceed with normal caution",)


def _coerce_level(value: Union[RiskLevel, str, None]) -> Optional[RiskLevel]:
    if isinstance(value, RiskLevel):
        return value
    if isinstance(value, str):
        try:
            return RiskLevel(value.strip().lower())
        except ValueError:
            return None
    return None


__all__ = ["PLAYBOOK", "RecommendationEngine", "UNKNOWN_RECOMMENDATION", "indicator_guidance"]
