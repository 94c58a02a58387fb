"""Sentinel orchestration engine."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Mapping, Optional, Sequence, Tuple, Union

from .behavior import AnomalyModel, BehavioralBaselineTracker
from .collaborators import (
    AbuseIPDBReputation,
    NullReputationLookup,
    NullTextClassifier,
    OpenAITextClassifier,
    ReputationLookup,
    SafeBrowsingReputation,
    TextClassifier,
    UrlscanReputation,
    VirusTotalReputation,
    classify_text,
    lookup_indicator,
)
from .config import configure_logging
from .fusion import ScoreAggregator, degraded_assessment
from .ioc import IndicatorSet, extract_iocs, indicators_for_url
from .models import AnalysisRequest, BehavioralVerdict, SignalScore, SignalSource, ThreatAssessment
from .recommendations import RecommendationEngine
from .rules import TEXT, URL, PatternRuleEngine
from .sentiment import NullSentimentAnalyzer, SentimentAnalyzer, VaderSentimentAnalyzer, sentiment_signal
from .trust import TrustSignals, compute_trust_score

logger = logging.getLogger(__name__)

MAX_INDICATORS = 5
DEADLINE_REASON = "cancelled by the assessment deadline"


class SentinelEngine:
    """High-level pipeline combining rules, collaborators and baselines."""

    def __init__(
        self,
        *,
        rules: Optional[PatternRuleEngine] = None,
        aggregator: Optional[ScoreAggregator] = None,
        recommender: Optional[RecommendationEngine] = None,
        tracker: Optional[BehavioralBaselineTracker] = None,
        classifier: Optional[TextClassifier] = None,
        sentiment: Optional[SentimentAnalyzer] = None,
        reputation: Sequence[ReputationLookup] = (),
        collaborator_timeout: float = 10.0,
        assessment_timeout: Optional[float] = None,
        max_indicators: int = MAX_INDICATORS,
    ) -> None:
        self.rules = rules or PatternRuleEngine()
        self.aggregator = aggregator or ScoreAggregator()
        self.recommender = recommender or RecommendationEngine()
        self.tracker = tracker or BehavioralBaselineTracker()
        self.classifier: TextClassifier = classifier or NullTextClassifier()
        self.sentiment: SentimentAnalyzer = sentiment or NullSentimentAnalyzer()
        self.reputation: Tuple[ReputationLookup, ...] = tuple(reputation) or (NullReputationLookup(),)
        self.collaborator_timeout = collaborator_timeout
        self.assessment_timeout = assessment_timeout
        self.max_indicators = max_indicators

    @classmethod
    def from_settings(cls, settings, *, anomaly_model: Optional[AnomalyModel] = None) -> "SentinelEngine":
        configure_logging(settings.log_level)
        timeout = settings.collaborator_timeout
        return cls(
            tracker=BehavioralBaselineTracker(model=anomaly_model),
            classifier=OpenAITextClassifier(settings.openai_api_key, model=settings.openai_model, timeout=timeout),
            sentiment=VaderSentimentAnalyzer() if settings.sentiment_enabled else NullSentimentAnalyzer(),
            reputation=(
                VirusTotalReputation(settings.virustotal_api_key, timeout=timeout),
                AbuseIPDBReputation(settings.abuseipdb_api_key, timeout=timeout),
                UrlscanReputation(settings.urlscan_api_key, timeout=timeout),
                SafeBrowsingReputation(settings.google_safe_browsing_api_key, timeout=timeout),
            ),
            collaborator_timeout=timeout,
            assessment_timeout=settings.assessment_timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def analyze(self, payload: Union[AnalysisRequest, Mapping[str, object]]) -> ThreatAssessment:
        """Assess every input in ``payload`` and return one combined result.

        Malformed requests raise :class:`InvalidRequestError`. Faults inside the
        pipeline produce a degraded assessment instead of an exception.
        """

        request = AnalysisRequest.parse(payload)
        try:
            assessment = await self._run(request)
        except Exception:
            logger.exception("Analysis pipeline failed")
            assessment = degraded_assessment()
        return self.recommender.attach(assessment)

    async def analyze_text(self, text: str, *, user_id: Optional[str] = None) -> ThreatAssessment:
        return await self.analyze({"text": text, "user_id": user_id})

    async def analyze_url(self, url: str, *, user_id: Optional[str] = None) -> ThreatAssessment:
        return await self.analyze({"url": url, "user_id": user_id})

    def observe(self, user_id: str, action: str) -> BehavioralVerdict:
        return self.tracker.observe(user_id, action)

    def compute_trust(self, signals: Union[TrustSignals, Mapping[str, object], None] = None) -> float:
        return compute_trust_score(signals)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _run(self, request: AnalysisRequest) -> ThreatAssessment:
        parts: List[Awaitable[ThreatAssessment]] = []
        if request.text is not None:
            parts.append(self._assess_text(request.text))
        if request.url is not None:
            parts.append(self._assess_url(request.url))

        assessment = self.aggregator.combine(list(await asyncio.gather(*parts)))
        if request.user_id is not None:
            verdict = self.tracker.observe(request.user_id, request.action)
            assessment = self.aggregator.merge_behavioral(assessment, verdict)
        return assessment

    async def _assess_text(self, text: str) -> ThreatAssessment:
        pattern = self.rules.evaluate(text, TEXT)
        calls: List[Tuple[SignalSource, Awaitable[SignalScore]]] = [
            (
                SignalSource.EXTERNAL_CLASSIFIER,
                classify_text(self.classifier, text, timeout=self.collaborator_timeout),
            )
        ]
        calls.extend(self._reputation_calls(extract_iocs(text)))
        signals = await self._collect(calls)
        signals.append(sentiment_signal(self.sentiment, text))
        return self.aggregator.aggregate(pattern, signals)

    async def _assess_url(self, url: str) -> ThreatAssessment:
        pattern = self.rules.evaluate(url, URL)
        signals = await self._collect(self._reputation_calls(indicators_for_url(url)))
        return self.aggregator.aggregate(pattern, signals)

    def _reputation_calls(self, indicators: IndicatorSet) -> List[Tuple[SignalSource, Awaitable[SignalScore]]]:
        calls: List[Tuple[SignalSource, Awaitable[SignalScore]]] = []
        for lookup in self.reputation:
            if not lookup.available():
                continue
            pairs = [(indicator, kind) for indicator, kind in indicators.pairs() if kind in lookup.kinds]
            for indicator, kind in pairs[: self.max_indicators]:
                calls.append(
                    (
                        SignalSource.EXTERNAL_REPUTATION,
                        lookup_indicator(lookup, indicator, kind, timeout=self.collaborator_timeout),
                    )
                )
        return calls

    async def _collect(self, calls: Sequence[Tuple[SignalSource, Awaitable[SignalScore]]]) -> List[SignalScore]:
        """Await collaborator calls; those past the deadline are cancelled."""

        if not calls:
            return []
        tasks = [(source, asyncio.ensure_future(call)) for source, call in calls]
        done, pending = await asyncio.wait([task for _, task in tasks], timeout=self.assessment_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Assessment deadline reached; cancelled %d collaborator call(s)", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

        signals: List[SignalScore] = []
        for source, task in tasks:
            if task in done:
                signals.append(task.result())
            else:
                signals.append(SignalScore.unavailable(source, DEADLINE_REASON))
        return signals


__all__ = ["SentinelEngine"]
