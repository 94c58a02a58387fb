"""Shared value types for the Sentinel scoring core."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


__all__ = [
    "AnalysisRequest",
    "BehavioralVerdict",
    "CollaboratorUnavailable",
    "InvalidRequestError",
    "PatternResult",
    "Recommendation",
    "RiskLevel",
    "RuleMatch",
    "SentinelError",
    "SignalScore",
    "SignalSource",
    "ThreatAssessment",
    "clamp_score",
    "risk_level_for",
]


class SentinelError(Exception):
    """Base error for the Sentinel core."""


class InvalidRequestError(SentinelError, ValueError):
    """Raised when a request is missing fields or carries malformed values."""


class CollaboratorUnavailable(SentinelError, RuntimeError):
    """Raised when an optional intelligence collaborator cannot answer."""


class RiskLevel(str, Enum):
    """Discrete risk tiers derived from a 0-100 threat score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


RISK_THRESHOLDS: Tuple[Tuple[int, RiskLevel], ...] = (
    (80, RiskLevel.CRITICAL),
    (60, RiskLevel.HIGH),
    (30, RiskLevel.MEDIUM),
)


def risk_level_for(score: float) -> RiskLevel:
    """Map a threat score onto its risk tier."""

    for threshold, level in RISK_THRESHOLDS:
        if score >= threshold:
            return level
    return RiskLevel.LOW


def clamp_score(value: float, *, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


class SignalSource(str, Enum):
    """Origin of a single signal fed into aggregation."""

    PATTERN_ENGINE = "pattern-engine"
    EXTERNAL_CLASSIFIER = "external-classifier"
    EXTERNAL_REPUTATION = "external-reputation"
    BEHAVIORAL = "behavioral"
    SENTIMENT = "sentiment"


@dataclass(frozen=True)
class RuleMatch:
    """A detection rule that fired against an input."""

    rule_label: str
    weight: int
    occurrence_count: int

    @property
    def contribution(self) -> int:
        return self.weight * self.occurrence_count

    def as_dict(self) -> Dict[str, object]:
        return {
            "rule_label": self.rule_label,
            "weight": self.weight,
            "occurrence_count": self.occurrence_count,
            "contribution": self.contribution,
        }


@dataclass(frozen=True)
class PatternResult:
    """Output of the pattern rule engine for one input."""

    category: str
    total_score: int
    matches: Tuple[RuleMatch, ...] = ()

    def as_dict(self) -> Dict[str, object]:
        return {
            "category": self.category,
            "total_score": self.total_score,
            "matches": [match.as_dict() for match in self.matches],
        }


@dataclass(frozen=True)
class SignalScore:
    """One source's opinion about an input's risk."""

    source: SignalSource
    score: float
    available: bool = True
    label: Optional[str] = None
    explanation: Optional[str] = None
    details: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", clamp_score(float(self.score)))

    @classmethod
    def unavailable(cls, source: SignalSource, reason: str) -> "SignalScore":
        return cls(source=source, score=0.0, available=False, explanation=reason)

    def as_dict(self) -> Dict[str, object]:
        return {
            "source": self.source.value,
            "score": round(self.score, 1),
            "available": self.available,
            "label": self.label,
            "explanation": self.explanation,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class Recommendation:
    """Remediation action attached to an assessment."""

    action: str
    priority: str
    message: str
    steps: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, object]:
        return {
            "action": self.action,
            "priority": self.priority,
            "message": self.message,
            "steps": list(self.steps),
        }


@dataclass(frozen=True)
class BehavioralVerdict:
    """Anomaly verdict for a single behavioral observation."""

    user_id: str
    is_anomaly: bool
    anomaly_score: float
    explanation: str
    recommendations: Tuple[str, ...] = ()
    phase: str = "new"
    features: Mapping[str, float] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "is_anomaly": self.is_anomaly,
            "anomaly_score": self.anomaly_score,
            "explanation": self.explanation,
            "recommendations": list(self.recommendations),
            "phase": self.phase,
            "features": dict(self.features),
        }


@dataclass(frozen=True)
class ThreatAssessment:
    """Normalized risk assessment produced for one request."""

    threat_score: int
    risk_level: RiskLevel
    evidence: Tuple[str, ...] = ()
    recommendations: Tuple[Recommendation, ...] = ()
    behavioral: Optional[BehavioralVerdict] = None
    signals: Tuple[SignalScore, ...] = ()
    degraded: bool = False
    assessed_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def with_recommendations(self, recommendations: Iterable[Recommendation]) -> "ThreatAssessment":
        return replace(self, recommendations=tuple(recommendations))

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "threat_score": self.threat_score,
            "risk_level": self.risk_level.value,
            "evidence": list(self.evidence),
            "recommendations": [item.as_dict() for item in self.recommendations],
            "signals": [signal.as_dict() for signal in self.signals],
            "degraded": self.degraded,
            "assessed_at": self.assessed_at.isoformat(),
        }
        if self.behavioral is not None:
            payload["behavioral"] = self.behavioral.as_dict()
        return payload


class AnalysisRequest(BaseModel):
    """Inbound analysis request; at least one of text, url or user id is required."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    text: Optional[str] = Field(default=None, description="Free text to analyze")
    url: Optional[str] = Field(default=None, description="URL to analyze")
    user_id: Optional[str] = Field(default=None, alias="userId", description="User for behavioral baselining")
    action: str = Field(default="comprehensive_analysis", description="Behavioral action label")

    @field_validator("text", "user_id")
    @classmethod
    def _reject_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("url")
    @classmethod
    def _require_scheme(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if "://" not in value or value.startswith("://"):
            raise ValueError("url must include a scheme, e.g. https://example.com")
        return value

    @model_validator(mode="after")
    def _require_input(self) -> "AnalysisRequest":
        if self.text is None and self.url is None and self.user_id is None:
            raise ValueError("at least one of text, url or user_id is required")
        return self

    @classmethod
    def parse(cls, payload: "AnalysisRequest | Mapping[str, object]") -> "AnalysisRequest":
        """Validate ``payload`` and raise :class:`InvalidRequestError` on failure."""

        if isinstance(payload, cls):
            return payload
        if not isinstance(payload, Mapping):
            raise InvalidRequestError("analysis request must be a mapping")
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise InvalidRequestError(str(exc)) from exc
