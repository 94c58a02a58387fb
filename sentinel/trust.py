"""Trust scoring for communication authenticity signals."""
from __future__ import annotations

from typing import Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import InvalidRequestError, clamp_score

NEUTRAL_TRUST = 50.0

_BEHAVIORAL_PATTERN_IMPACT = {
    "normal": 5.0,
    "suspicious": -20.0,
    "anomalous": -35.0,
}


class TrustSignals(BaseModel):
    """Recognized authenticity signals. Unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stylistic_score: Optional[float] = Field(default=None, alias="stylisticScore")
    behavior_score: Optional[float] = Field(default=None, alias="behaviorScore")
    spf_pass: Optional[bool] = Field(default=None, alias="spfPass")
    dkim_pass: Optional[bool] = Field(default=None, alias="dkimPass")
    sender_verified: Optional[bool] = Field(default=None, alias="senderVerified")
    writing_style_match: Optional[float] = Field(default=None, alias="writingStyleMatch")
    video_artifacts: Optional[bool] = Field(default=None, alias="videoArtifacts")
    audio_artifacts: Optional[bool] = Field(default=None, alias="audioArtifacts")
    no_artifacts: Optional[bool] = Field(default=None, alias="noArtifacts")
    behavioral_pattern: Optional[str] = Field(default=None, alias="behavioralPattern")
    voice_clone_probability: Optional[float] = Field(default=None, alias="voiceCloneProbability")

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


def compute_trust_score(signals: Union[TrustSignals, Mapping[str, object], None] = None) -> float:
    """Return a 0-100 trust score where higher means more trustworthy.

    Starts from a neutral 50 and nudges per recognized signal. The result is
    clamped and rounded to one decimal place. An empty input yields 50.0.
    """

    bundle = _coerce_signals(signals)
    if bundle.is_empty():
        return NEUTRAL_TRUST

    score = NEUTRAL_TRUST

    # Unit-interval scores swing +/-20 around their 0.5 midpoint.
    if bundle.stylistic_score is not None:
        score += (clamp_score(bundle.stylistic_score, upper=1.0) - 0.5) * 40
    if bundle.behavior_score is not None:
        score += (clamp_score(bundle.behavior_score, upper=1.0) - 0.5) * 40

    if bundle.spf_pass is not None:
        score += 10 if bundle.spf_pass else -15
    if bundle.dkim_pass is not None:
        score += 10 if bundle.dkim_pass else -15
    if bundle.sender_verified is not None:
        score += 5 if bundle.sender_verified else -20

    if bundle.writing_style_match is not None:
        score += (clamp_score(bundle.writing_style_match) - 50) * 0.3

    if bundle.video_artifacts:
        score -= 25
    if bundle.audio_artifacts:
        score -= 25
    if bundle.no_artifacts:
        score += 10

    if bundle.behavioral_pattern is not None:
        score += _BEHAVIORAL_PATTERN_IMPACT.get(bundle.behavioral_pattern.strip().lower(), 0.0)

    if bundle.voice_clone_probability is not None:
        score -= clamp_score(bundle.voice_clone_probability) * 0.5

    return round(clamp_score(score), 1)


def _coerce_signals(signals: Union[TrustSignals, Mapping[str, object], None]) -> TrustSignals:
    if signals is None:
        return TrustSignals()
    if isinstance(signals, TrustSignals):
        return signals
    if not isinstance(signals, Mapping):
        raise InvalidRequestError("trust signals must be a mapping")
    try:
        return TrustSignals.model_validate(dict(signals))
    except ValidationError as exc:
        raise InvalidRequestError(str(exc)) from exc


__all__ = ["NEUTRAL_TRUST", "TrustSignals", "compute_trust_score"]
