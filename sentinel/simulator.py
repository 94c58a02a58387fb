"""Synthetic incident generation for the simulated threat feed."""
from __future__ import annotations

import hashlib
import json
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .models import InvalidRequestError, Recommendation, RiskLevel, risk_level_for

DEEPFAKE_VIDEO = "deepfake_video"
VOICE_CLONE = "voice_clone"
PHISHING_EMAIL = "phishing_email"
BEHAVIORAL_ANOMALY = "behavioral_anomaly"
NETWORK_INTRUSION = "network_intrusion"

STATUS_ACTIVE = "active"
STATUS_ESCALATED = "escalated"
STATUS_BLOCKED = "blocked"
STATUS_RESOLVED = "resolved"

CAPTURE_PREVIEW = 20


@dataclass(frozen=True)
class ThreatTemplate:
    """Catalogue entry describing one simulated incident family."""

    type: str
    probability: float
    severity: str
    score_range: Tuple[int, int]
    recommended_action: str
    title: str
    description: str
    log_profile: str


CATALOGUE: Tuple[ThreatTemplate, ...] = (
    ThreatTemplate(
        type=DEEPFAKE_VIDEO,
        probability=0.15,
        severity="critical",
        score_range=(70, 99),
        recommended_action="block",
        title="Deepfake Video Call Detected - CEO Impersonation Attempt",
        description="AI-generated video impersonating executive requesting urgent wire transfer",
        log_profile="deepfake_detection",
    ),
    ThreatTemplate(
        type=VOICE_CLONE,
        probability=0.20,
        severity="high",
        score_range=(65, 89),
        recommended_action="verify",
        title="Voice Clone Attack - Finance Department Target",
        description="Synthetic voice matching CFO profile detected in phone call",
        log_profile="voice_clone_detection",
    ),
    ThreatTemplate(
        type=PHISHING_EMAIL,
        probability=0.30,
        severity="medium",
        score_range=(45, 79),
        recommended_action="warn",
        title="Sophisticated Phishing Campaign - Credential Harvesting",
        description="Targeted email mimicking internal IT department requesting password reset",
        log_profile="phishing_detection",
    ),
    ThreatTemplate(
        type=BEHAVIORAL_ANOMALY,
        probability=0.25,
        severity="medium",
        score_range=(50, 79),
        recommended_action="monitor",
        title="Unusual User Behavior Pattern Detected",
        description="User activity deviates significantly from established baseline",
        log_profile="behavioral_detection",
    ),
    ThreatTemplate(
        type=NETWORK_INTRUSION,
        probability=0.10,
        severity="high",
        score_range=(70, 94),
        recommended_action="block",
        title="Potential Network Intrusion Attempt",
        description="Suspicious network traffic patterns indicating reconnaissance activity",
        log_profile="intrusion_detection",
    ),
)

FALLBACK_TEMPLATE = PHISHING_EMAIL

LOG_TEMPLATES: Dict[str, Tuple[str, ...]] = {
    "deepfake_detection": (
        "Video frame analysis started",
        "Temporal artifact detected in frame sequence",
        "Lip-sync deviation calculated: {value}",
        "Voice-video synchronization check failed",
        "Behavioral pattern analysis triggered",
        "Threat score calculated: {score}",
    ),
    "voice_clone_detection": (
        "Audio stream received and buffered",
        "Voiceprint extraction started",
        "Spectral analysis completed",
        "Neural voiceprint comparison initiated",
        "Clone probability threshold exceeded",
        "Alert triggered - voice authentication failed",
    ),
    "phishing_detection": (
        "Email received and queued for analysis",
        "SPF record verification: {result}",
        "DKIM signature check: {result}",
        "Content analysis engine started",
        "Suspicious link detected: {url}",
        "Threat classification: phishing",
    ),
    "behavioral_detection": (
        "Session activity compared against user baseline",
        "Baseline deviation calculated: {value}",
        "Login time outside usual window",
        "Threat score calculated: {score}",
    ),
    "intrusion_detection": (
        "Connection burst observed from {url}",
        "Port scan signature matched",
        "Protocol anomaly detected in handshake",
        "Threat score calculated: {score}",
    ),
}
LOG_LEVELS = ("INFO", "WARN", "ERROR")


def forensic_hash(evidence: Mapping[str, object]) -> str:
    """SHA-256 over the canonical JSON form of an evidence bundle."""

    canonical = json.dumps(evidence, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class SimulatedThreatRecord:
    """Synthetic incident plus its lifecycle state in the feed."""

    threat_id: str
    type: str
    severity: str
    title: str
    description: str
    threat_score: int
    recommended_action: str
    detailed_evidence: Dict[str, object]
    forensic_hash: str
    created_at: datetime
    evidence: List[str] = field(default_factory=list)
    recommendations: Tuple[Recommendation, ...] = ()
    network_packets: Optional[Dict[str, object]] = None
    system_logs: List[Dict[str, object]] = field(default_factory=list)
    user_profile: Optional[Dict[str, object]] = None
    status: str = STATUS_ACTIVE
    investigation: Optional[Dict[str, object]] = None
    blocked_at: Optional[datetime] = None
    blocked_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    escalated_at: Optional[datetime] = None
    escalated_to: Optional[str] = None
    escalation_reason: Optional[str] = None
    auto_blocked: bool = False

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for(self.threat_score)

    def verify_forensic_hash(self) -> bool:
        return forensic_hash(self.detailed_evidence) == self.forensic_hash

    def as_dict(self) -> Dict[str, object]:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "threat_id": self.threat_id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "threat_score": self.threat_score,
            "risk_level": self.risk_level.value,
            "recommended_action": self.recommended_action,
            "evidence": list(self.evidence),
            "recommendations": [item.as_dict() for item in self.recommendations],
            "detailed_evidence": self.detailed_evidence,
            "forensic_hash": self.forensic_hash,
            "created_at": self.created_at.isoformat(),
            "network_packets": self.network_packets,
            "system_logs": list(self.system_logs),
            "user_profile": self.user_profile,
            "status": self.status,
            "investigation": self.investigation,
            "blocked_at": _iso(self.blocked_at),
            "blocked_by": self.blocked_by,
            "resolved_at": _iso(self.resolved_at),
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
            "escalated_at": _iso(self.escalated_at),
            "escalated_to": self.escalated_to,
            "escalation_reason": self.escalation_reason,
            "auto_blocked": self.auto_blocked,
        }


@dataclass
class _EvidenceBundle:
    evidence: Dict[str, object]
    summary: List[str]
    capture: Optional[Dict[str, object]] = None
    user_profile: Optional[Dict[str, object]] = None
    log_values: Dict[str, object] = field(default_factory=dict)


class EvidenceSynthesizer:
    """Generates realistic, internally consistent synthetic incidents.

    All randomness flows through the injected ``rng`` and all timestamps
    through ``clock``, so a seeded generator reproduces records exactly.
    """

    def __init__(
        self,
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        catalogue: Sequence[ThreatTemplate] = CATALOGUE,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self._catalogue = tuple(catalogue)
        self._builders: Dict[str, Callable[[datetime], _EvidenceBundle]] = {
            DEEPFAKE_VIDEO: self._deepfake_evidence,
            VOICE_CLONE: self._voice_clone_evidence,
            PHISHING_EMAIL: self._phishing_evidence,
            BEHAVIORAL_ANOMALY: self._behavioral_evidence,
            NETWORK_INTRUSION: self._intrusion_evidence,
        }

    @property
    def catalogue(self) -> Tuple[ThreatTemplate, ...]:
        return self._catalogue

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def template(self, threat_type: str) -> ThreatTemplate:
        for template in self._catalogue:
            if template.type == threat_type:
                return template
        raise InvalidRequestError(f"Unknown threat type {threat_type!r}")

    def select_template(self, draw: Optional[float] = None) -> ThreatTemplate:
        """Pick a template by cumulative probability; leftovers fall back to phishing."""

        roll = self._rng.random() if draw is None else draw
        cumulative = 0.0
        for template in self._catalogue:
            cumulative += template.probability
            if roll <= cumulative:
                return template
        return self.template(FALLBACK_TEMPLATE)

    def generate(self, threat_type: Optional[str] = None) -> SimulatedThreatRecord:
        template = self.template(threat_type) if threat_type else self.select_template()
        now = self._clock()
        threat_id = self._token(128)
        bundle = self._builders[template.type](now)
        low, high = template.score_range
        score = self._rng.randint(low, high)

        return SimulatedThreatRecord(
            threat_id=threat_id,
            type=template.type,
            severity=template.severity,
            title=template.title,
            description=template.description,
            threat_score=score,
            recommended_action=template.recommended_action,
            detailed_evidence=bundle.evidence,
            forensic_hash=forensic_hash(bundle.evidence),
            created_at=now,
            evidence=bundle.summary,
            network_packets=self._packet_capture(bundle.capture, now) if bundle.capture is not None else None,
            system_logs=self._system_logs(template.log_profile, threat_id, now, score, bundle.log_values),
            user_profile=bundle.user_profile,
        )

    # ------------------------------------------------------------------
    # Evidence builders
    # ------------------------------------------------------------------
    def _deepfake_evidence(self, now: datetime) -> _EvidenceBundle:
        rng = self._rng
        frames = rng.randint(5, 19)
        lip_sync = round(rng.uniform(10, 50), 2)
        amount = round(rng.uniform(50_000, 550_000), 2)
        network = {
            "source_ip": self._ip(),
            "destination_ip": self._ip(),
            "packet_count": rng.randint(2000, 6999),
            "data_transferred_mb": round(rng.uniform(10, 60), 2),
            "connection_latency_ms": round(rng.uniform(50, 250), 2),
            "tcp_flags": ["SYN", "ACK", "PSH"],
            "protocol": "RTP/RTCP",
        }
        evidence = {
            "temporal_artifacts": {
                "detected": True,
                "frame_inconsistencies": frames,
                "blink_rate": round(rng.uniform(0.4, 0.6), 2),
                "lip_sync_deviation_ms": lip_sync,
                "shadow_inconsistencies": True,
                "reflection_anomalies": rng.randint(1, 3),
            },
            "voice_analysis": {
                "frequency_pattern": {
                    "fundamental_hz": round(rng.uniform(100, 200), 2),
                    "harmonics_hz": [round(rng.uniform(200, 400), 2) for _ in range(5)],
                    "spectral_centroid_hz": round(rng.uniform(2000, 4000), 2),
                },
                "formant_shift_hz": round(rng.uniform(50, 200), 2),
                "background_noise_db": round(rng.uniform(10, 40), 2),
                "speech_rate": round(rng.uniform(0.85, 1.15), 2),
            },
            "network_metadata": network,
            "behavioral_flags": {
                "unusual_request": True,
                "request_type": "wire_transfer",
                "amount_usd": amount,
                "urgency_indicator": 95,
                "time_of_day_anomaly": rng.random() > 0.7,
            },
        }
        user_profile = {
            "claimed_identity": "CEO",
            "actual_confidence_pct": round(rng.uniform(75, 95), 1),
            "previous_interactions": rng.randint(0, 4),
            "last_verified_contact": (now - timedelta(days=rng.randint(1, 7))).isoformat(),
        }
        summary = [
            f"{frames} frame inconsistencies in video stream",
            f"Lip-sync deviation of {lip_sync}ms",
            f"Urgent wire transfer of ${amount:,.2f} requested",
        ]
        return _EvidenceBundle(
            evidence=evidence,
            summary=summary,
            capture=network,
            user_profile=user_profile,
            log_values={"value": f"{lip_sync}ms"},
        )

    def _voice_clone_evidence(self, now: datetime) -> _EvidenceBundle:
        rng = self._rng
        clone_probability = round(rng.uniform(70, 100), 1)
        call = {
            "caller_id": self._phone_number(),
            "source_ip": self._ip(),
            "carrier": rng.choice(["Verizon", "AT&T", "T-Mobile", "Unknown"]),
            "call_duration_s": rng.randint(30, 150),
            "codec": rng.choice(["G.711", "G.729", "Opus"]),
            "jitter_ms": round(rng.uniform(5, 25), 2),
            "packet_loss_pct": round(rng.uniform(0, 2), 2),
        }
        claimed = rng.choice(["CFO", "VP Finance", "Accounting Director"])
        evidence = {
            "spectral_analysis": {
                "mfcc_vectors": [round(rng.uniform(-1, 1), 3) for _ in range(13)],
                "pitch_deviation_hz": round(rng.uniform(15, 55), 2),
                "formant_frequencies_hz": {
                    "F1": rng.randint(500, 700),
                    "F2": rng.randint(1500, 2000),
                    "F3": rng.randint(2500, 2800),
                },
                "harmonic_ratio": round(rng.uniform(0.6, 0.9), 3),
            },
            "temporal_analysis": {
                "speech_rate": round(rng.uniform(0.9, 1.15), 2),
                "pause_patterns": {
                    "unusual": True,
                    "avg_pause_duration_ms": rng.randint(200, 300),
                    "pause_count": rng.randint(3, 12),
                },
                "phoneme_duration_ms": {
                    "average": rng.randint(100, 150),
                    "deviation": rng.randint(10, 30),
                },
            },
            "neural_voiceprint": {
                "similarity_pct": round(rng.uniform(75, 95), 1),
                "authenticity_pct": round(rng.uniform(60, 85), 1),
                "clone_probability_pct": clone_probability,
            },
            "call_metadata": call,
        }
        user_profile = {
            "claimed_identity": claimed,
            "voice_match_confidence_pct": round(rng.uniform(70, 95), 1),
            "last_verified_voice": (now - timedelta(days=rng.randint(1, 30))).isoformat(),
        }
        summary = [
            f"Voice clone probability {clone_probability}%",
            f"Caller claimed to be {claimed} from {call['caller_id']}",
        ]
        return _EvidenceBundle(
            evidence=evidence,
            summary=summary,
            capture={"source_ip": call["source_ip"], "protocol": "RTP"},
            user_profile=user_profile,
        )

    def _phishing_evidence(self, now: datetime) -> _EvidenceBundle:
        rng = self._rng
        sender = "{}@{}".format(
            rng.choice(["support", "security", "accounting", "hr", "admin"]),
            rng.choice(["suspicious-domain.net", "phishing-site.com", "fake-corp.org", "malicious-email.co"]),
        )
        spf = rng.choice(["FAIL", "SOFTFAIL"])
        dkim_valid = rng.random() > 0.4
        links = [
            {
                "url": f"http://{self._ip()}/suspicious",
                "shortener": rng.random() > 0.6,
                "domain_age_days": rng.randint(0, 29),
                "reputation_pct": round(rng.uniform(30, 70), 1),
                "ssl_certificate": rng.random() > 0.4,
                "suspicious": True,
            }
            for _ in range(rng.randint(1, 3))
        ]
        origin_ip = self._ip()
        evidence = {
            "sender_analysis": {
                "email_address": sender,
                "display_name": rng.choice(
                    ["Security Team", "HR Department", "Accounting", "IT Support", "Administrator"]
                ),
                "domain_age_days": rng.randint(10, 99),
                "spf_record": spf,
                "dkim_signature": "VALID" if dkim_valid else "INVALID",
                "dmarc_policy": rng.choice(["NONE", "QUARANTINE"]),
            },
            "content_analysis": {
                "urgency_score": rng.randint(60, 99),
                "suspicious_keywords": rng.randint(3, 10),
                "link_count": len(links),
                "attachment_count": rng.randint(0, 2),
                "language_score": round(rng.uniform(70, 100), 1),
                "grammatical_errors": rng.randint(0, 4),
            },
            "link_analysis": links,
            "headers": {
                "received": f"from {origin_ip} by mx.example.com",
                "return_path": sender,
                "message_id": f"<{self._token(64)}@{sender.split('@', 1)[1]}>",
                "x_originating_ip": origin_ip,
                "authentication_results": f"spf={spf.lower()}; dkim={'pass' if dkim_valid else 'fail'}",
            },
        }
        summary = [
            f"Sender {sender} failed SPF ({spf})",
            f"{len(links)} suspicious link(s) in message body",
        ]
        return _EvidenceBundle(
            evidence=evidence,
            summary=summary,
            capture={"source_ip": origin_ip, "protocol": "SMTP"},
            log_values={"result": spf, "url": links[0]["url"]},
        )

    def _behavioral_evidence(self, now: datetime) -> _EvidenceBundle:
        rng = self._rng
        deviation = round(rng.uniform(60, 100), 1)
        unusual = rng.randint(2, 6)
        evidence = {
            "baseline_deviation_pct": deviation,
            "unusual_actions": unusual,
            "time_pattern_anomaly": True,
            "location_anomaly": rng.random() > 0.6,
            "device_fingerprint": self._token(64),
        }
        summary = [
            f"Activity deviates {deviation}% from baseline",
            f"{unusual} unusual actions in current session",
        ]
        return _EvidenceBundle(evidence=evidence, summary=summary, log_values={"value": f"{deviation}%"})

    def _intrusion_evidence(self, now: datetime) -> _EvidenceBundle:
        rng = self._rng
        source_ip = self._ip()
        scans = rng.randint(50, 149)
        evidence = {
            "source_ip": source_ip,
            "port_scans": scans,
            "failed_connections": rng.randint(10, 29),
            "protocol_anomalies": rng.randint(2, 6),
        }
        summary = [f"{scans} port scans from {source_ip}"]
        return _EvidenceBundle(
            evidence=evidence,
            summary=summary,
            capture={"source_ip": source_ip, "protocol": "TCP"},
            log_values={"url": source_ip},
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _packet_capture(self, metadata: Mapping[str, object], now: datetime) -> Dict[str, object]:
        rng = self._rng
        count = rng.randint(50, 149)
        packets = [
            {
                "timestamp": (now - timedelta(milliseconds=(count - index) * 10)).isoformat(),
                "src_ip": metadata.get("source_ip") or self._ip(),
                "dst_ip": metadata.get("destination_ip") or self._ip(),
                "protocol": metadata.get("protocol") or "TCP",
                "size": rng.randint(64, 1563),
                "flags": list(metadata.get("tcp_flags") or ["SYN", "ACK"]),
                "sequence": rng.randint(0, 999_999),
                "payload": self._token(64),
            }
            for index in range(count)
        ]
        return {
            "capture_time": now.isoformat(),
            "total_packets": count,
            "packets": packets[:CAPTURE_PREVIEW],
            "full_capture_hash": forensic_hash({"packets": packets}),
        }

    def _system_logs(
        self,
        profile: str,
        threat_id: str,
        now: datetime,
        score: int,
        values: Mapping[str, object],
    ) -> List[Dict[str, object]]:
        rng = self._rng
        templates = LOG_TEMPLATES.get(profile, LOG_TEMPLATES["phishing_detection"])
        context = {"value": "", "result": "", "url": "", **values, "score": score}
        count = rng.randint(5, 14)
        return [
            {
                "timestamp": (now - timedelta(seconds=count - index)).isoformat(),
                "level": rng.choice(LOG_LEVELS),
                "component": "ThreatDetection",
                "message": rng.choice(templates).format(**context),
                "threat_id": threat_id,
                "session_id": self._token(64),
            }
            for index in range(count)
        ]

    def _token(self, bits: int) -> str:
        return f"{self._rng.getrandbits(bits):0{bits // 4}x}"

    def _ip(self) -> str:
        return ".".join(str(self._rng.randint(0, 254)) for _ in range(4))

    def _phone_number(self) -> str:
        rng = self._rng
        return f"+1-{rng.randint(200, 999)}-{rng.randint(200, 999)}-{rng.randint(1000, 9999)}"


__all__ = [
    "CATALOGUE",
    "EvidenceSynthesizer",
    "SimulatedThreatRecord",
    "ThreatTemplate",
    "forensic_hash",
]
