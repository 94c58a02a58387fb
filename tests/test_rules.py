from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sentinel.models import InvalidRequestError
from sentinel.rules import TEXT, URL, PatternRuleEngine


@pytest.fixture()
def engine() -> PatternRuleEngine:
    return PatternRuleEngine()


def _labels(result):
    return {match.rule_label for match in result.matches}


def test_urgent_verification_text_scores_high(engine):
    result = engine.evaluate("URGENT: verify your account now", TEXT)

    assert _labels(result) == {"Urgency manipulation", "Account verification scam"}
    assert result.total_score == 75


def test_ip_literal_url_without_tls(engine):
    result = engine.evaluate("http://192.168.0.1/login", URL)

    assert _labels(result) == {"IP address instead of domain", "Non-HTTPS connection"}
    assert result.total_score == 45


def test_clean_https_url_scores_zero(engine):
    result = engine.evaluate("https://example.com/docs", URL)

    assert result.matches == ()
    assert result.total_score == 0


def test_occurrences_multiply_weight(engine):
    result = engine.evaluate("Buy bitcoin today, bitcoin tomorrow", TEXT)

    (match,) = result.matches
    assert match.occurrence_count == 2
    assert match.contribution == 70
    assert result.total_score == 70


@pytest.mark.parametrize(
    "value, category",
    [
        ("<script>eval(atob('x'))</script> base64 unescape fromCharCode", TEXT),
        ("URGENT " * 50, TEXT),
        ("http://10.0.0.1/paypa1-goog1e-app1e.tk?id=12345678901234567890", URL),
    ],
)
def test_total_score_saturates_at_hundred(engine, value, category):
    result = engine.evaluate(value, category)

    assert 0 <= result.total_score <= 100
    assert result.total_score == 100
    assert sum(match.contribution for match in result.matches) > 100


def test_free_domain_matches_before_path(engine):
    result = engine.evaluate("http://prize.tk/claim", URL)

    assert "Free domain service" in _labels(result)
    assert result.total_score == 40


def test_shortener_does_not_match_inside_domain(engine):
    assert engine.evaluate("https://t.co/abc", URL).total_score == 15
    assert engine.evaluate("https://microsoft.com", URL).total_score == 0


def test_text_rules_do_not_apply_to_urls(engine):
    result = engine.evaluate("https://example.com/urgent", URL)

    assert "Urgency manipulation" not in _labels(result)


def test_unknown_category_is_rejected(engine):
    with pytest.raises(InvalidRequestError):
        engine.evaluate("anything", "email")


def test_non_string_input_is_rejected(engine):
    with pytest.raises(ValueError):
        engine.evaluate(None, TEXT)  # type: ignore[arg-type]
