"""Sentinel threat scoring core exports."""

from .behavior import AnomalyModel, BehavioralBaselineTracker
from .collaborators import (
    AbuseIPDBReputation,
    ClassifierVerdict,
    OpenAITextClassifier,
    ReputationVerdict,
    SafeBrowsingReputation,
    UrlscanReputation,
    VirusTotalReputation,
)
from .config import Settings, configure_logging, get_settings
from .engine import SentinelEngine
from .feed import ThreatFeed
from .fusion import ScoreAggregator
from .models import (
    AnalysisRequest,
    BehavioralVerdict,
    CollaboratorUnavailable,
    InvalidRequestError,
    RiskLevel,
    SentinelError,
    SignalScore,
    ThreatAssessment,
)
from .recommendations import RecommendationEngine
from .registry import KeyedRegistry
from .rules import PatternRuleEngine
from .sentiment import VaderSentimentAnalyzer
from .simulator import EvidenceSynthesizer, SimulatedThreatRecord
from .trust import TrustSignals, compute_trust_score

__all__ = [
    "AbuseIPDBReputation",
    "AnalysisRequest",
    "AnomalyModel",
    "BehavioralBaselineTracker",
    "BehavioralVerdict",
    "ClassifierVerdict",
    "CollaboratorUnavailable",
    "EvidenceSynthesizer",
    "InvalidRequestError",
    "KeyedRegistry",
    "OpenAITextClassifier",
    "PatternRuleEngine",
    "RecommendationEngine",
    "ReputationVerdict",
    "RiskLevel",
    "SafeBrowsingReputation",
    "ScoreAggregator",
    "SentinelEngine",
    "SentinelError",
    "Settings",
    "SignalScore",
    "SimulatedThreatRecord",
    "ThreatAssessment",
    "ThreatFeed",
    "TrustSignals",
    "UrlscanReputation",
    "VaderSentimentAnalyzer",
    "VirusTotalReputation",
    "compute_trust_score",
    "configure_logging",
    "get_settings",
]
