"""Optional third-party intelligence collaborators.

Every collaborator is advisory: a missing key, a timeout or an HTTP failure
turns into an unavailable :class:`SignalScore` and never fails an analysis.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, FrozenSet, Optional, Protocol, Tuple

import httpx

from .models import CollaboratorUnavailable, SignalScore, SignalSource, clamp_score

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
INDICATOR_KINDS: FrozenSet[str] = frozenset({"url", "ip", "domain", "hash"})
MALICIOUS_URL_SCORE = 85.0

CLASSIFIER_PROMPT = (
    "You are a security analyst. Assess the following content for phishing, social "
    "engineering, scam or malware indicators. Respond with a JSON object containing "
    '"threat_score" (0-100), "risk_level" (low, medium, high or critical) and '
    '"explanation" (one sentence).'
)


@dataclass(frozen=True)
class ClassifierVerdict:
    """Opinion returned by an external text classifier."""

    score: float
    label: str
    explanation: str

    def to_signal(self, provider: str) -> SignalScore:
        return SignalScore(
            source=SignalSource.EXTERNAL_CLASSIFIER,
            score=self.score,
            label=self.label,
            explanation=self.explanation,
            details={"provider": provider},
        )


@dataclass(frozen=True)
class ReputationVerdict:
    """Opinion returned by an indicator reputation service."""

    indicator: str
    kind: str
    verdict: str
    confidence: float
    score: float = 0.0
    sources: Tuple[str, ...] = ()

    @property
    def flagged(self) -> int:
        return len(self.sources)

    def to_signal(self, provider: str) -> SignalScore:
        return SignalScore(
            source=SignalSource.EXTERNAL_REPUTATION,
            score=self.score,
            label=self.verdict,
            explanation=f"{provider} rated {self.indicator} as {self.verdict}",
            details={
                "provider": provider,
                "indicator": self.indicator,
                "kind": self.kind,
                "confidence": self.confidence,
                "flagged": self.flagged,
                "sources": list(self.sources),
            },
        )


class TextClassifier(Protocol):
    name: str

    def available(self) -> bool:
        ...

    async def classify(self, text: str) -> ClassifierVerdict:
        ...


class ReputationLookup(Protocol):
    name: str
    kinds: FrozenSet[str]

    def available(self) -> bool:
        ...

    async def lookup(self, indicator: str, kind: str) -> ReputationVerdict:
        ...


# ----------------------------------------------------------------------
# Null collaborators
# ----------------------------------------------------------------------
class NullTextClassifier:
    """Classifier used when no provider is configured."""

    name = "none"

    def available(self) -> bool:
        return False

    async def classify(self, text: str) -> ClassifierVerdict:
        raise CollaboratorUnavailable("No text classifier configured")


class NullReputationLookup:
    """Reputation lookup used when no provider is configured."""

    name = "none"
    kinds: FrozenSet[str] = frozenset()

    def available(self) -> bool:
        return False

    async def lookup(self, indicator: str, kind: str) -> ReputationVerdict:
        raise CollaboratorUnavailable("No reputation service configured")


# ----------------------------------------------------------------------
# HTTP collaborators
# ----------------------------------------------------------------------
class OpenAITextClassifier:
    """Chat-completions backed content classifier."""

    name = "OpenAI"
    url = "https://api.openai.com/v1/chat/completions"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "gpt-3.5-turbo",
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._transport = transport

    def available(self) -> bool:
        return bool(self._api_key)

    async def classify(self, text: str) -> ClassifierVerdict:
        if not self.available():
            raise CollaboratorUnavailable("OpenAI API key is not configured")

        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": CLASSIFIER_PROMPT},
                {"role": "user", "content": text},
            ],
            "max_tokens": 300,
            "temperature": 0,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

        try:
            content = data["choices"][0]["message"]["content"]
            verdict = json.loads(content)
            score = clamp_score(_finite(verdict.get("threat_score", 0), "threat_score"))
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
            raise CollaboratorUnavailable(f"Malformed classifier response: {exc}") from exc
        return ClassifierVerdict(
            score=score,
            label=str(verdict.get("risk_level") or "unknown"),
            explanation=str(verdict.get("explanation") or ""),
        )


class VirusTotalReputation:
    """VirusTotal v3 lookups for URLs, IPs, domains and file hashes."""

    name = "VirusTotal"
    kinds = INDICATOR_KINDS
    base_url = "https://www.virustotal.com/api/v3"
    _collections = {"url": "urls", "ip": "ip_addresses", "domain": "domains", "hash": "files"}

    def __init__(
        self,
        api_key: Optional[str],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def available(self) -> bool:
        return bool(self._api_key)

    async def lookup(self, indicator: str, kind: str) -> ReputationVerdict:
        if not self.available():
            raise CollaboratorUnavailable("VirusTotal API key is not configured")
        collection = self._collections.get(kind)
        if collection is None:
            raise CollaboratorUnavailable(f"VirusTotal cannot look up {kind} indicators")

        identifier = _url_identifier(indicator) if kind == "url" else indicator
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(f"/{collection}/{identifier}", headers={"x-apikey": self._api_key})
            if response.status_code == 404:
                return ReputationVerdict(indicator=indicator, kind=kind, verdict="unknown", confidence=0.0)
            response.raise_for_status()
            payload = response.json()

        attributes = (payload.get("data") or {}).get("attributes") or {}
        stats: Dict[str, int] = attributes.get("last_analysis_stats") or {}
        results: Dict[str, Dict[str, str]] = attributes.get("last_analysis_results") or {}

        malicious = int(stats.get("malicious", 0))
        suspicious = int(stats.get("suspicious", 0))
        total = sum(int(value) for value in stats.values())
        flagged_by = tuple(
            sorted(engine for engine, result in results.items() if result.get("category") in {"malicious", "suspicious"})
        )
        score = (malicious + suspicious) / total * 100.0 if total else 0.0
        if malicious:
            verdict = "malicious"
        elif suspicious:
            verdict = "suspicious"
        else:
            verdict = "clean"
        return ReputationVerdict(
            indicator=indicator,
            kind=kind,
            verdict=verdict,
            confidence=round(score if malicious or suspicious else 100.0 - score, 1),
            score=score,
            sources=flagged_by,
        )


class AbuseIPDBReputation:
    """AbuseIPDB confidence-of-abuse checks for IP addresses."""

    name = "AbuseIPDB"
    kinds = frozenset({"ip"})
    url = "https://api.abuseipdb.com/api/v2/check"
    flag_threshold = 50

    def __init__(
        self,
        api_key: Optional[str],
        *,
        max_age_days: int = 90,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._max_age_days = max_age_days
        self._timeout = timeout
        self._transport = transport

    def available(self) -> bool:
        return bool(self._api_key)

    async def lookup(self, indicator: str, kind: str) -> ReputationVerdict:
        if not self.available():
            raise CollaboratorUnavailable("AbuseIPDB API key is not configured")
        if kind not in self.kinds:
            raise CollaboratorUnavailable(f"AbuseIPDB cannot look up {kind} indicators")

        headers = {"Key": self._api_key, "Accept": "application/json"}
        params = {"ipAddress": indicator, "maxAgeInDays": str(self._max_age_days)}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self.url, headers=headers, params=params)
            response.raise_for_status()
            payload = response.json()

        data = payload.get("data") or {}
        confidence = clamp_score(_finite(data.get("abuseConfidenceScore") or 0, "abuseConfidenceScore"))
        flagged = confidence > self.flag_threshold
        return ReputationVerdict(
            indicator=indicator,
            kind=kind,
            verdict="malicious" if flagged else "clean",
            confidence=confidence,
            score=confidence if flagged else 0.0,
            sources=(self.name,) if flagged else (),
        )


class UrlscanReputation:
    """urlscan.io scans: submit the URL, wait briefly, then read the verdict."""

    name = "urlscan.io"
    kinds = frozenset({"url"})
    base_url = "https://urlscan.io/api/v1"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        visibility: str = "public",
        poll_delay: float = 2.0,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._visibility = visibility
        self._poll_delay = poll_delay
        self._timeout = timeout
        self._transport = transport

    def available(self) -> bool:
        return bool(self._api_key)

    async def lookup(self, indicator: str, kind: str) -> ReputationVerdict:
        if not self.available():
            raise CollaboratorUnavailable("urlscan.io API key is not configured")
        if kind not in self.kinds:
            raise CollaboratorUnavailable(f"urlscan.io cannot look up {kind} indicators")

        headers = {"API-Key": self._api_key}
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            submitted = await client.post(
                "/scan/", json={"url": indicator, "visibility": self._visibility}, headers=headers
            )
            submitted.raise_for_status()
            scan_id = (submitted.json() or {}).get("uuid")
            if not scan_id:
                raise CollaboratorUnavailable("urlscan.io did not return a scan id")

            await asyncio.sleep(self._poll_delay)
            response = await client.get(f"/result/{scan_id}/", headers=headers)
            # The result endpoint answers 404 until the scan has finished.
            if response.status_code == 404:
                return ReputationVerdict(indicator=indicator, kind=kind, verdict="pending", confidence=0.0)
            response.raise_for_status()
            result = response.json()

        overall = (result.get("verdicts") or {}).get("overall") or {}
        malicious = bool(overall.get("malicious"))
        return ReputationVerdict(
            indicator=indicator,
            kind=kind,
            verdict="malicious" if malicious else "clean",
            confidence=clamp_score(_finite(overall.get("score") or 0, "verdict score")),
            score=MALICIOUS_URL_SCORE if malicious else 0.0,
            sources=(self.name,) if malicious else (),
        )


class SafeBrowsingReputation:
    """Google Safe Browsing v4 threat matches for URLs."""

    name = "Google Safe Browsing"
    kinds = frozenset({"url"})
    url = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
    threat_types = ("MALWARE", "SOCIAL_ENGINEERING", "UNWANTED_SOFTWARE")

    def __init__(
        self,
        api_key: Optional[str],
        *,
        client_id: str = "sentinel",
        client_version: str = "0.1.0",
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._client = {"clientId": client_id, "clientVersion": client_version}
        self._timeout = timeout
        self._transport = transport

    def available(self) -> bool:
        return bool(self._api_key)

    async def lookup(self, indicator: str, kind: str) -> ReputationVerdict:
        if not self.available():
            raise CollaboratorUnavailable("Google Safe Browsing API key is not configured")
        if kind not in self.kinds:
            raise CollaboratorUnavailable(f"Google Safe Browsing cannot look up {kind} indicators")

        body = {
            "client": self._client,
            "threatInfo": {
                "threatTypes": list(self.threat_types),
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": indicator}],
            },
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self.url, params={"key": self._api_key}, json=body)
            response.raise_for_status()
            payload = response.json()

        matches = payload.get("matches") or []
        if not matches:
            return ReputationVerdict(indicator=indicator, kind=kind, verdict="clean", confidence=100.0)
        return ReputationVerdict(
            indicator=indicator,
            kind=kind,
            verdict="malicious",
            confidence=100.0,
            score=MALICIOUS_URL_SCORE,
            sources=(self.name,),
        )


# ----------------------------------------------------------------------
# Bounded calls
# ----------------------------------------------------------------------
async def classify_text(classifier: TextClassifier, text: str, *, timeout: float) -> SignalScore:
    source = SignalSource.EXTERNAL_CLASSIFIER
    if not classifier.available():
        return SignalScore.unavailable(source, f"{classifier.name} classifier not configured")

    async def _call() -> SignalScore:
        verdict = await classifier.classify(text)
        return verdict.to_signal(classifier.name)

    return await bounded_call(source, classifier.name, _call, timeout=timeout)


async def lookup_indicator(lookup: ReputationLookup, indicator: str, kind: str, *, timeout: float) -> SignalScore:
    source = SignalSource.EXTERNAL_REPUTATION
    if not lookup.available():
        return SignalScore.unavailable(source, f"{lookup.name} reputation lookup not configured")

    async def _call() -> SignalScore:
        verdict = await lookup.lookup(indicator, kind)
        return verdict.to_signal(lookup.name)

    return await bounded_call(source, lookup.name, _call, timeout=timeout)


async def bounded_call(
    source: SignalSource,
    name: str,
    call: Callable[[], Awaitable[SignalScore]],
    *,
    timeout: float,
) -> SignalScore:
    """Await ``call`` within ``timeout``; any failure becomes an unavailable signal."""

    try:
        return await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", name, timeout)
        return SignalScore.unavailable(source, f"{name} timed out")
    except CollaboratorUnavailable as exc:
        logger.warning("%s unavailable: %s", name, exc)
        return SignalScore.unavailable(source, str(exc))
    except httpx.HTTPError as exc:
        logger.warning("%s request failed: %s", name, exc)
        return SignalScore.unavailable(source, f"{name} request failed")
    except Exception:
        logger.exception("Unexpected error from %s", name)
        return SignalScore.unavailable(source, f"{name} failed unexpectedly")


def _finite(value: object, field: str) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise CollaboratorUnavailable(f"Non-numeric {field}: {value!r}") from exc
    if not math.isfinite(number):
        raise CollaboratorUnavailable(f"Non-finite {field}: {value!r}")
    return number


def _url_identifier(url: str) -> str:
    return base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")


__all__ = [
    "AbuseIPDBReputation",
    "ClassifierVerdict",
    "NullReputationLookup",
    "NullTextClassifier",
    "OpenAITextClassifier",
    "ReputationLookup",
    "ReputationVerdict",
    "SafeBrowsingReputation",
    "TextClassifier",
    "UrlscanReputation",
    "VirusTotalReputation",
    "bounded_call",
    "classify_text",
    "lookup_indicator",
]
