"""Per-user behavioral baselines with a statistical anomaly fallback."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from statistics import mean
from typing import Callable, Deque, Dict, List, Optional, Protocol, Sequence

from .models import BehavioralVerdict, InvalidRequestError
from .registry import KeyedRegistry

logger = logging.getLogger(__name__)

LOGIN_HISTORY = 10
ACTION_HISTORY = 50
DEFAULT_RISK_TOLERANCE = 0.5

ANOMALY_THRESHOLD = -0.5
HOUR_DEVIATION_LIMIT = 6
HOUR_DEVIATION_PENALTY = 0.3
REPEAT_ANOMALY_LIMIT = 5
REPEAT_ANOMALY_PENALTY = 0.5

ANOMALY_EXPLANATION = "Unusual behavioral pattern detected"
NORMAL_EXPLANATION = "Normal behavioral pattern"
ANOMALY_HINTS = ("Verify identity", "Review recent activities")

PHASE_NEW = "new"
PHASE_BASELINE = "baseline-building"
PHASE_STEADY = "steady-state"


class AnomalyModel(Protocol):
    """Optional learned scorer; lower scores are more anomalous."""

    def available(self) -> bool:
        ...

    def score(self, features: Sequence[float]) -> float:
        ...


@dataclass(frozen=True)
class BehaviorFeatures:
    """Feature vector derived from a profile at observation time."""

    current_hour: int
    hour_deviation: float
    pattern_consistency: float
    risk_tolerance: float
    anomaly_count: int

    def as_vector(self) -> List[float]:
        return [
            float(self.current_hour),
            self.hour_deviation,
            self.pattern_consistency,
            self.risk_tolerance,
            float(self.anomaly_count),
        ]

    def as_dict(self) -> Dict[str, float]:
        return {
            "current_hour": float(self.current_hour),
            "hour_deviation": round(self.hour_deviation, 3),
            "pattern_consistency": round(self.pattern_consistency, 3),
            "risk_tolerance": self.risk_tolerance,
            "anomaly_count": float(self.anomaly_count),
        }


@dataclass
class UserBehaviorProfile:
    """Rolling behavioral baseline for one user."""

    user_id: str
    recent_login_hours: Deque[int] = field(default_factory=lambda: deque(maxlen=LOGIN_HISTORY))
    recent_actions: Deque[str] = field(default_factory=lambda: deque(maxlen=ACTION_HISTORY))
    risk_tolerance: float = DEFAULT_RISK_TOLERANCE
    anomaly_count: int = 0
    observations: int = 0
    last_seen: Optional[datetime] = None

    def phase(self) -> str:
        if self.observations == 0:
            return PHASE_NEW
        if len(self.recent_login_hours) < LOGIN_HISTORY:
            return PHASE_BASELINE
        return PHASE_STEADY

    def record(self, hour: int, action: str, seen_at: datetime) -> None:
        self.recent_login_hours.append(hour)
        self.recent_actions.append(action)
        self.observations += 1
        self.last_seen = seen_at

    def features(self, current_hour: int) -> BehaviorFeatures:
        hours = list(self.recent_login_hours)
        deviation = abs(current_hour - mean(hours)) if hours else 0.0
        actions = list(self.recent_actions)
        consistency = 1.0 - (len(set(actions)) / len(actions)) if actions else 0.0
        return BehaviorFeatures(
            current_hour=current_hour,
            hour_deviation=deviation,
            pattern_consistency=consistency,
            risk_tolerance=self.risk_tolerance,
            anomaly_count=self.anomaly_count,
        )

    def snapshot(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "recent_login_hours": list(self.recent_login_hours),
            "recent_actions": list(self.recent_actions),
            "risk_tolerance": self.risk_tolerance,
            "anomaly_count": self.anomaly_count,
            "observations": self.observations,
            "phase": self.phase(),
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }


def fallback_anomaly_score(features: BehaviorFeatures) -> float:
    """Statistical scorer used when no learned model is available."""

    score = 0.0
    if features.hour_deviation > HOUR_DEVIATION_LIMIT:
        score -= HOUR_DEVIATION_PENALTY
    if features.anomaly_count > REPEAT_ANOMALY_LIMIT:
        score -= REPEAT_ANOMALY_PENALTY
    return score


class BehavioralBaselineTracker:
    """Maintains per-user baselines and flags anomalous observations.

    Profiles live in a :class:`KeyedRegistry` so concurrent observations for
    the same user are serialized while different users proceed in parallel.
    """

    def __init__(
        self,
        *,
        model: Optional[AnomalyModel] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._profiles: KeyedRegistry[UserBehaviorProfile] = KeyedRegistry()
        self._model = model
        self._clock = clock or datetime.now

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def observe(self, user_id: str, action: str) -> BehavioralVerdict:
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidRequestError("user_id is required for behavioral analysis")
        action = str(action) if action else "unknown"
        seen_at = self._clock()

        self._profiles.get_or_create(user_id, lambda: UserBehaviorProfile(user_id=user_id))
        return self._profiles.update(user_id, lambda profile: self._observe_locked(profile, action, seen_at))

    def profile(self, user_id: str) -> Optional[Dict[str, object]]:
        try:
            return self._profiles.read(user_id, UserBehaviorProfile.snapshot)
        except KeyError:
            return None

    def users(self) -> List[str]:
        return sorted(profile.user_id for profile in self._profiles.values())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _observe_locked(self, profile: UserBehaviorProfile, action: str, seen_at: datetime) -> BehavioralVerdict:
        phase = profile.phase()
        profile.record(seen_at.hour, action, seen_at)
        features = profile.features(seen_at.hour)
        score = round(self._score(features), 1)

        # A profile with no history has no baseline to deviate from.
        if phase != PHASE_NEW and score < ANOMALY_THRESHOLD:
            profile.anomaly_count += 1
            logger.info(
                "Behavioral anomaly for %s (score %.1f, %d total)",
                profile.user_id,
                score,
                profile.anomaly_count,
            )
            return BehavioralVerdict(
                user_id=profile.user_id,
                is_anomaly=True,
                anomaly_score=score,
                explanation=ANOMALY_EXPLANATION,
                recommendations=ANOMALY_HINTS,
                phase=phase,
                features=features.as_dict(),
            )
        return BehavioralVerdict(
            user_id=profile.user_id,
            is_anomaly=False,
            anomaly_score=score,
            explanation=NORMAL_EXPLANATION,
            phase=phase,
            features=features.as_dict(),
        )

    def _score(self, features: BehaviorFeatures) -> float:
        if self._model is not None and self._model.available():
            try:
                return float(self._model.score(features.as_vector()))
            except Exception:
                logger.warning("Anomaly model failed; using statistical fallback", exc_info=True)
        return fallback_anomaly_score(features)


__all__ = [
    "AnomalyModel",
    "BehaviorFeatures",
    "BehavioralBaselineTracker",
    "UserBehaviorProfile",
    "fallback_anomaly_score",
]
