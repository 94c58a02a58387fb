"""Indicator-of-compromise extraction for reputation lookups."""
from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple
from urllib.parse import urlsplit

IP_PATTERN = re.compile(r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b")
DOMAIN_PATTERN = re.compile(
    r"\b(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+"
    r"(?:com|org|net|edu|gov|mil|int|co|uk|de|fr|jp|au|ca|us|tk|ml|ga|cf)\b",
    re.IGNORECASE,
)
HASH_PATTERN = re.compile(r"\b(?:[a-f0-9]{64}|[a-f0-9]{40}|[a-f0-9]{32})\b", re.IGNORECASE)
URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)


@dataclass(frozen=True)
class IndicatorSet:
    """Deduplicated indicators found in an input, in first-seen order."""

    urls: Tuple[str, ...] = ()
    ips: Tuple[str, ...] = ()
    domains: Tuple[str, ...] = ()
    hashes: Tuple[str, ...] = ()

    def pairs(self) -> List[Tuple[str, str]]:
        """Return ``(indicator, kind)`` pairs, URLs first."""

        return (
            [(value, "url") for value in self.urls]
            + [(value, "ip") for value in self.ips]
            + [(value, "domain") for value in self.domains]
            + [(value, "hash") for value in self.hashes]
        )

    def is_empty(self) -> bool:
        return not (self.urls or self.ips or self.domains or self.hashes)

    def as_dict(self) -> Dict[str, List[str]]:
        return {
            "urls": list(self.urls),
            "ips": list(self.ips),
            "domains": list(self.domains),
            "hashes": list(self.hashes),
        }


def extract_iocs(text: str) -> IndicatorSet:
    urls = _unique(match.rstrip(".,;:!?)") for match in URL_PATTERN.findall(text))
    ips = _unique(value for value in IP_PATTERN.findall(text) if _is_ip(value))
    domains = _unique(value.lower() for value in DOMAIN_PATTERN.findall(text))
    hashes = _unique(value.lower() for value in HASH_PATTERN.findall(text))
    return IndicatorSet(urls=urls, ips=ips, domains=domains, hashes=hashes)


def indicators_for_url(url: str) -> IndicatorSet:
    """The URL itself plus its host as an IP or domain indicator."""

    host = (urlsplit(url.strip()).hostname or "").lower()
    if not host:
        return IndicatorSet(urls=(url,))
    if _is_ip(host):
        return IndicatorSet(urls=(url,), ips=(host,))
    return IndicatorSet(urls=(url,), domains=(host,))


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _unique(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(values))


__all__ = ["IndicatorSet", "extract_iocs", "indicators_for_url"]
