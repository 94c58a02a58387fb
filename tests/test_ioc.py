from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sentinel.ioc import extract_iocs, indicators_for_url

MD5 = "44d88612fea8a8f36de82e1278abb02f"


def test_extracts_each_indicator_kind():
    text = (
        f"Payload {MD5} was fetched from http://198.51.100.7/drop.exe, "
        "then beaconed to c2.evil-host.com and 198.51.100.7 again."
    )

    indicators = extract_iocs(text)

    assert indicators.urls == ("http://198.51.100.7/drop.exe",)
    assert indicators.ips == ("198.51.100.7",)
    assert "c2.evil-host.com" in indicators.domains
    assert indicators.hashes == (MD5,)
    assert indicators.pairs()[0] == ("http://198.51.100.7/drop.exe", "url")


def test_invalid_octets_are_not_ips():
    assert extract_iocs("version 999.1.1.1 released").ips == ()


def test_plain_text_has_no_indicators():
    assert extract_iocs("Lunch at noon tomorrow?").is_empty()


def test_url_host_becomes_ip_or_domain():
    by_ip = indicators_for_url("http://192.168.0.1/login")
    by_domain = indicators_for_url("https://Login.Example.com/reset")

    assert by_ip.ips == ("192.168.0.1",)
    assert by_ip.domains == ()
    assert by_domain.domains == ("login.example.com",)
    assert by_domain.urls == ("https://Login.Example.com/reset",)
