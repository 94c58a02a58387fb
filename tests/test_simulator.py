from __future__ import annotations

import copy
import hashlib
import json
import random
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sentinel.models import InvalidRequestError
from sentinel.simulator import CATALOGUE, EvidenceSynthesizer, forensic_hash

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _synthesizer(seed: int = 7) -> EvidenceSynthesizer:
    return EvidenceSynthesizer(rng=random.Random(seed), clock=lambda: FIXED_NOW)


def test_seeded_generation_is_reproducible():
    first = _synthesizer().generate()
    second = _synthesizer().generate()

    assert first.as_dict() == second.as_dict()


@pytest.mark.parametrize("template", CATALOGUE, ids=lambda template: template.type)
def test_each_template_respects_its_catalogue_entry(template):
    record = _synthesizer().generate(template.type)
    low, high = template.score_range

    assert record.type == template.type
    assert record.severity == template.severity
    assert record.recommended_action == template.recommended_action
    assert low <= record.threat_score <= high
    assert record.evidence
    assert 5 <= len(record.system_logs) <= 14
    assert all(entry["threat_id"] == record.threat_id for entry in record.system_logs)
    assert record.verify_forensic_hash()


def test_forensic_hash_is_canonical_sha256():
    record = _synthesizer().generate("phishing_email")
    canonical = json.dumps(record.detailed_evidence, sort_keys=True, separators=(",", ":"))

    assert record.forensic_hash == hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    assert forensic_hash(copy.deepcopy(record.detailed_evidence)) == record.forensic_hash


def test_tampered_evidence_fails_verification():
    record = _synthesizer().generate("network_intrusion")
    record.detailed_evidence["port_scans"] = 0

    assert not record.verify_forensic_hash()


@pytest.mark.parametrize(
    "draw, expected",
    [
        (0.1, "deepfake_video"),
        (0.3, "voice_clone"),
        (0.5, "phishing_email"),
        (0.8, "behavioral_anomaly"),
        (0.95, "network_intrusion"),
        (1.5, "phishing_email"),
    ],
)
def test_cumulative_template_selection(draw, expected):
    assert _synthesizer().select_template(draw).type == expected


def test_phishing_evidence_is_internally_consistent():
    record = _synthesizer(11).generate("phishing_email")
    sender = record.detailed_evidence["sender_analysis"]
    links = record.detailed_evidence["link_analysis"]
    headers = record.detailed_evidence["headers"]

    assert record.detailed_evidence["content_analysis"]["link_count"] == len(links)
    assert 1 <= len(links) <= 3
    assert headers["return_path"] == sender["email_address"]
    assert f"spf={sender['spf_record'].lower()}" in headers["authentication_results"]


def test_packet_capture_preview():
    record = _synthesizer().generate("deepfake_video")
    capture = record.network_packets
    source_ip = record.detailed_evidence["network_metadata"]["source_ip"]

    assert 50 <= capture["total_packets"] <= 149
    assert len(capture["packets"]) == 20
    assert all(packet["src_ip"] == source_ip for packet in capture["packets"])
    assert len(capture["full_capture_hash"]) == 64


def test_behavioral_anomaly_has_no_capture():
    record = _synthesizer().generate("behavioral_anomaly")

    assert record.network_packets is None
    assert record.user_profile is None


def test_threat_ids_are_unique_hex():
    synthesizer = _synthesizer()
    ids = {synthesizer.generate().threat_id for _ in range(50)}

    assert len(ids) == 50
    assert all(len(threat_id) == 32 and int(threat_id, 16) >= 0 for threat_id in ids)


def test_unknown_template_is_rejected():
    with pytest.raises(InvalidRequestError):
        _synthesizer().generate("alien_invasion")
