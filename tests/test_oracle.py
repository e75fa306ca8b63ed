from __future__ import annotations

import random
from typing import List
from unittest.mock import MagicMock

import pytest
import requests

from helpdesk_engine.oracle import (
    DEGRADED_SUGGESTION,
    HttpTextOracle,
    OracleError,
    TextOracle,
    parse_complexity,
    parse_keywords,
    suggest_with_retry,
)


class FlakyOracle(TextOracle):
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def suggest_solution(self, description, category=None, priority=None, image=None) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise OracleError("quota exceeded")
        return "Restart the VPN client."


def _generated(text: str) -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return response


def test_retry_backs_off_exponentially_with_jitter() -> None:
    oracle = FlakyOracle(failures=2)
    delays: List[float] = []

    suggestion = suggest_with_retry(
        oracle, "vpn drops", sleep=delays.append, rng=random.Random(0)
    )

    assert suggestion == "Restart the VPN client."
    assert oracle.calls == 3
    assert len(delays) == 2
    assert 1.0 <= delays[0] < 2.0
    assert 2.0 <= delays[1] < 3.0


def test_retry_degrades_after_last_attempt() -> None:
    oracle = FlakyOracle(failures=10)
    delays: List[float] = []

    suggestion = suggest_with_retry(oracle, "vpn drops", max_attempts=3, sleep=delays.append)

    assert suggestion == DEGRADED_SUGGESTION
    assert oracle.calls == 3
    assert len(delays) == 2


@pytest.mark.parametrize(
    ("reply", "expected"),
    [("7", 7), ("Complexity: 12", 10), ("-3", 0), ("I'd say 4 out of 10", 4)],
)
def test_parse_complexity_clamps(reply: str, expected: int) -> None:
    assert parse_complexity(reply) == expected


def test_parse_complexity_without_number_raises() -> None:
    with pytest.raises(OracleError):
        parse_complexity("hard to say")


def test_parse_keywords_sorts_by_frequency() -> None:
    reply = 'Sure: [{"word": "vpn", "value": 3}, {"word": "dns", "value": 5}, {"oops": 1}]'

    keywords = parse_keywords(reply)

    assert [(keyword.word, keyword.value) for keyword in keywords] == [("dns", 5), ("vpn", 3)]


def test_parse_keywords_requires_json_array() -> None:
    with pytest.raises(OracleError):
        parse_keywords("no keywords here")


def test_http_oracle_posts_generate_content_request() -> None:
    oracle = HttpTextOracle(base_url="https://example.test", api_key="secret")
    oracle.session = MagicMock()
    oracle.session.post.return_value = _generated("7")

    assert oracle.estimate_complexity("database deadlock during backup") == 7

    args, kwargs = oracle.session.post.call_args
    assert args[0] == "https://example.test/v1beta/models/gemini-2.5-flash:generateContent"
    assert "database deadlock during backup" in kwargs["json"]["contents"][0]["parts"][0]["text"]
    assert kwargs["timeout"] == 30


def test_http_oracle_attaches_screenshot() -> None:
    oracle = HttpTextOracle(base_url="https://example.test/", api_key="secret")
    oracle.session = MagicMock()
    oracle.session.post.return_value = _generated("Clear the print queue.")

    suggestion = oracle.suggest_solution(
        "printer jam", "Hardware", "High", "data:image/jpeg;base64,QUJD"
    )

    assert suggestion == "Clear the print queue."
    parts = oracle.session.post.call_args.kwargs["json"]["contents"][0]["parts"]
    assert parts[1] == {"inline_data": {"mime_type": "image/jpeg", "data": "QUJD"}}
    assert 'Category: "Hardware"' in parts[0]["text"]


def test_http_oracle_wraps_transport_errors() -> None:
    oracle = HttpTextOracle(base_url="https://example.test", api_key="secret")
    oracle.session = MagicMock()
    oracle.session.post.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(OracleError):
        oracle.suggest_solution("vpn drops")


def test_http_oracle_rejects_empty_payload() -> None:
    oracle = HttpTextOracle(base_url="https://example.test", api_key="secret")
    oracle.session = MagicMock()
    response = MagicMock()
    response.json.return_value = {"candidates": []}
    oracle.session.post.return_value = response

    with pytest.raises(OracleError):
        oracle.estimate_complexity("vpn drops")
