from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sentinel.behavior import BehavioralBaselineTracker
from sentinel.collaborators import AbuseIPDBReputation, ClassifierVerdict, NullReputationLookup, ReputationVerdict
from sentinel.config import Settings
from sentinel.engine import SentinelEngine
from sentinel.models import InvalidRequestError, RiskLevel, SignalSource
from sentinel.sentiment import SentimentReading, VaderSentimentAnalyzer


class StubClassifier:
    name = "stub"

    def __init__(self, score: float, *, delay: float = 0.0) -> None:
        self._score = score
        self._delay = delay

    def available(self) -> bool:
        return True

    async def classify(self, text: str) -> ClassifierVerdict:
        if self._delay:
            await asyncio.sleep(self._delay)
        return ClassifierVerdict(score=self._score, label="critical", explanation="Credential phishing")


class StubReputation:
    name = "stub-intel"
    kinds = frozenset({"url", "ip", "domain", "hash"})

    def __init__(self) -> None:
        self.lookups = []

    def available(self) -> bool:
        return True

    async def lookup(self, indicator: str, kind: str) -> ReputationVerdict:
        self.lookups.append((indicator, kind))
        return ReputationVerdict(
            indicator=indicator,
            kind=kind,
            verdict="malicious",
            confidence=90.0,
            score=60.0,
            sources=("FeedA", "FeedB"),
        )


class AnomalousModel:
    def available(self) -> bool:
        return True

    def score(self, features):
        return -0.9


class ExplodingRules:
    def evaluate(self, value, category):
        raise RuntimeError("rule table corrupted")


def _tracker(**kwargs) -> BehavioralBaselineTracker:
    return BehavioralBaselineTracker(clock=lambda: datetime(2025, 1, 1, 9), **kwargs)


def test_urgent_verification_text_needs_verification():
    engine = SentinelEngine()

    assessment = asyncio.run(engine.analyze_text("URGENT: verify your account now"))

    assert assessment.threat_score == 75
    assert assessment.risk_level is RiskLevel.HIGH
    assert assessment.recommendations[0].action == "VERIFY"
    assert not assessment.degraded


def test_ip_literal_url_is_medium_risk():
    engine = SentinelEngine()

    assessment = asyncio.run(engine.analyze_url("http://192.168.0.1/login"))

    assert assessment.threat_score == 45
    assert assessment.risk_level is RiskLevel.MEDIUM
    assert assessment.recommendations[0].action == "CAUTION"


def test_failed_authentication_trust_score():
    engine = SentinelEngine()

    assert engine.compute_trust({"spfPass": False, "dkimPass": False, "senderVerified": False}) == 0.0


def test_constant_login_hour_never_flags():
    engine = SentinelEngine(tracker=_tracker())

    verdicts = [engine.observe("user1", "login") for _ in range(10)]

    assert not any(verdict.is_anomaly for verdict in verdicts)


def test_comprehensive_analysis_takes_highest_part():
    engine = SentinelEngine(tracker=_tracker())

    assessment = asyncio.run(
        engine.analyze({"text": "URGENT: verify your account now", "url": "http://192.168.0.1/login", "userId": "u1"})
    )

    assert assessment.threat_score == 75
    assert assessment.behavioral is not None
    assert not assessment.behavioral.is_anomaly
    assert len(assessment.evidence) == 4


def test_behavioral_anomaly_escalates_comprehensive_result():
    engine = SentinelEngine(tracker=_tracker(model=AnomalousModel()))
    engine.observe("u2", "login")

    assessment = asyncio.run(engine.analyze({"text": "See you at lunch", "user_id": "u2", "action": "wire_transfer"}))

    assert assessment.threat_score == 80
    assert assessment.risk_level is RiskLevel.CRITICAL
    assert assessment.behavioral.is_anomaly
    assert assessment.recommendations[0].action == "BLOCK"


def test_classifier_signal_is_folded_in():
    engine = SentinelEngine(classifier=StubClassifier(92))

    assessment = asyncio.run(engine.analyze_text("Please review the attached invoice"))

    assert assessment.threat_score == 92
    assert "AI analysis: Credential phishing" in assessment.evidence
    assert any(signal.source is SignalSource.EXTERNAL_CLASSIFIER for signal in assessment.signals)


def test_reputation_lookups_cover_url_and_host():
    reputation = StubReputation()
    engine = SentinelEngine(reputation=[reputation])

    assessment = asyncio.run(engine.analyze_url("https://login.example.com/reset"))

    assert reputation.lookups == [
        ("https://login.example.com/reset", "url"),
        ("login.example.com", "domain"),
    ]
    assert assessment.threat_score == 60
    assert "2 intelligence sources flagged login.example.com" in assessment.evidence


def test_deadline_cancels_only_outstanding_calls():
    reputation = StubReputation()
    engine = SentinelEngine(
        classifier=StubClassifier(99, delay=5),
        reputation=[reputation],
        assessment_timeout=0.2,
    )

    assessment = asyncio.run(engine.analyze_text("Invoice from 203.0.113.5 attached"))

    assert assessment.threat_score == 60
    assert not assessment.degraded
    assert reputation.lookups == [("203.0.113.5", "ip")]
    assert all(signal.source is not SignalSource.EXTERNAL_CLASSIFIER for signal in assessment.signals)


def test_pipeline_fault_returns_degraded_assessment():
    engine = SentinelEngine(rules=ExplodingRules())

    assessment = asyncio.run(engine.analyze_text("anything"))

    assert assessment.degraded
    assert assessment.threat_score == 0
    assert assessment.risk_level is RiskLevel.UNKNOWN
    assert assessment.recommendations[0].action == "UNKNOWN"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"text": "   "},
        {"url": "example.com/no-scheme"},
        {"userId": ""},
        "not a mapping",
    ],
)
def test_malformed_requests_raise(payload):
    engine = SentinelEngine()

    with pytest.raises(InvalidRequestError):
        asyncio.run(engine.analyze(payload))


def test_from_settings_without_keys_runs_offline():
    settings = Settings(
        _env_file=None,
        openai_api_key=None,
        virustotal_api_key=None,
        abuseipdb_api_key=None,
        assessment_timeout=5,
    )
    engine = SentinelEngine.from_settings(settings)

    assessment = asyncio.run(engine.analyze_text("Congratulations, you are our winner!"))

    assert engine.assessment_timeout == 5
    assert isinstance(engine.sentiment, VaderSentimentAnalyzer)
    assert [lookup.name for lookup in engine.reputation] == [
        "VirusTotal",
        "AbuseIPDB",
        "urlscan.io",
        "Google Safe Browsing",
    ]
    assert any(signal.source is SignalSource.SENTIMENT for signal in assessment.signals)
    assert assessment.threat_score == 50
    assert assessment.risk_level is RiskLevel.MEDIUM
    json.dumps(assessment.as_dict())


class IpOnlyReputation(StubReputation):
    kinds = frozenset({"ip"})


class FixedSentiment:
    name = "fixed"

    def __init__(self, compound: float) -> None:
        self._compound = compound

    def available(self) -> bool:
        return True

    def analyze(self, text: str) -> SentimentReading:
        return SentimentReading(compound=self._compound, positive=0.0, negative=0.6, neutral=0.4)


def test_lookups_only_receive_supported_indicator_kinds():
    reputation = IpOnlyReputation()
    engine = SentinelEngine(reputation=[reputation])

    asyncio.run(engine.analyze_text("Log in at http://evil.example.com/reset or 203.0.113.7"))
    asyncio.run(engine.analyze_url("https://login.example.com/reset"))

    assert reputation.lookups == [("203.0.113.7", "ip")]


def test_default_reputation_is_the_null_lookup():
    engine = SentinelEngine()

    assessment = asyncio.run(engine.analyze_url("https://login.example.com/reset"))

    assert [type(lookup) for lookup in engine.reputation] == [NullReputationLookup]
    assert assessment.threat_score == 0
    assert all(signal.source is not SignalSource.EXTERNAL_REPUTATION for signal in assessment.signals)


def test_negative_sentiment_adds_evidence_without_raising_score():
    engine = SentinelEngine(sentiment=FixedSentiment(-0.8))

    assessment = asyncio.run(engine.analyze_text("See you at lunch"))

    assert assessment.threat_score == 0
    assert "Negative sentiment detected, which may indicate manipulation" in assessment.evidence


def test_mild_sentiment_adds_no_evidence():
    engine = SentinelEngine(sentiment=FixedSentiment(-0.5))

    assessment = asyncio.run(engine.analyze_text("See you at lunch"))

    assert assessment.evidence == ()


def test_clean_abuse_verdict_does_not_raise_url_score():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"ipAddress": "8.8.8.8", "abuseConfidenceScore": 45}})

    lookup = AbuseIPDBReputation("abuse-key", transport=httpx.MockTransport(handler))
    engine = SentinelEngine(reputation=[lookup])

    assessment = asyncio.run(engine.analyze_url("https://8.8.8.8/"))

    assert assessment.threat_score == 30
    assert assessment.risk_level is RiskLevel.MEDIUM
    reputation = [signal for signal in assessment.signals if signal.source is SignalSource.EXTERNAL_REPUTATION]
    assert [(signal.label, signal.score) for signal in reputation] == [("clean", 0.0)]
