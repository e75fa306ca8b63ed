"""Text oracle collaborators: solution suggestions, complexity and keywords."""
from __future__ import annotations

import json
import logging
import random
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from .records import KeywordFrequency

LOGGER = logging.getLogger(__name__)

DEGRADED_SUGGESTION = (
    "I am sorry, but I was unable to generate a suggestion at this time. "
    "If the problem persists, please proceed with creating a support ticket."
)
NEUTRAL_COMPLEXITY = 5
_INTEGER_PATTERN = re.compile(r"-?\d+")
_JSON_ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)


class OracleError(RuntimeError):
    """Raised when the text oracle cannot produce a usable answer."""


class TextOracle:
    """Interface of the external text model used by the engine."""

    def suggest_solution(
        self,
        description: str,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        image: Optional[str] = None,
    ) -> str:
        raise NotImplementedError

    def estimate_complexity(self, description: str) -> int:
        raise NotImplementedError

    def extract_keywords(
        self, sample_descriptions: Sequence[str], label_hint: str
    ) -> List[KeywordFrequency]:
        raise NotImplementedError


class StaticTextOracle(TextOracle):
    """Offline stand-in used when no oracle endpoint is configured."""

    def suggest_solution(self, description, category=None, priority=None, image=None) -> str:
        return DEGRADED_SUGGESTION

    def estimate_complexity(self, description: str) -> int:
        return NEUTRAL_COMPLEXITY

    def extract_keywords(self, sample_descriptions, label_hint) -> List[KeywordFrequency]:
        raise OracleError("Keyword extraction is not available offline")


def _suggestion_prompt(description: str, category: Optional[str], priority: Optional[str]) -> str:
    lines = [
        "A user is experiencing the following IT issue.",
        f'Description: "{description}"',
    ]
    if category:
        lines.append(f'Category: "{category}"')
    if priority:
        lines.append(f'Priority: "{priority}"')
    lines.append(
        "Based on this information and any attached screenshot, provide a clear, "
        "step-by-step solution for the user. Format the solution in Markdown."
    )
    return "\n".join(lines)


def _image_part(image: Optional[str]) -> Optional[Dict[str, Any]]:
    if not image or not image.startswith("data:image/"):
        return None
    meta, _, data = image.partition(",")
    match = re.search(r":(.*?);", meta)
    mime_type = match.group(1) if match else "image/png"
    return {"inline_data": {"mime_type": mime_type, "data": data}}


def parse_complexity(text: str) -> int:
    """Pull the first integer out of a model reply and clamp it to 0-10."""
    match = _INTEGER_PATTERN.search(text or "")
    if not match:
        raise OracleError(f"No complexity score in oracle reply {text!r}")
    return max(0, min(int(match.group(0)), 10))


def parse_keywords(text: str) -> List[KeywordFrequency]:
    match = _JSON_ARRAY_PATTERN.search(text or "")
    if not match:
        raise OracleError("Oracle reply did not contain a JSON array of keywords")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise OracleError("Oracle keyword reply was not valid JSON") from exc
    keywords: List[KeywordFrequency] = []
    for entry in payload:
        if not isinstance(entry, dict) or "word" not in entry:
            continue
        try:
            value = int(entry.get("value", 0))
        except (TypeError, ValueError):
            continue
        keywords.append(KeywordFrequency(word=str(entry["word"]), value=value))
    keywords.sort(key=lambda item: item.value, reverse=True)
    return keywords


class HttpTextOracle(TextOracle):
    """Oracle backed by a ``generateContent`` style HTTP endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str = "gemini-2.5-flash",
        timeout: int = 30,
        verify_ssl: bool = True,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.model = model
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.session = requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-goog-api-key": api_key,
        })

    def _generate(self, parts: List[Dict[str, Any]]) -> str:
        url = f"{self.base_url}v1beta/models/{self.model}:generateContent"
        LOGGER.debug("HTTP POST %s with %s parts", url, len(parts))
        try:
            response = self.session.post(
                url,
                json={"contents": [{"parts": parts}]},
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
            LOGGER.debug("Response status=%s", response.status_code)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise OracleError(f"Oracle request failed: {exc}") from exc
        try:
            return payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise OracleError("Oracle response did not contain generated text") from exc

    def suggest_solution(self, description, category=None, priority=None, image=None) -> str:
        parts: List[Dict[str, Any]] = [{"text": _suggestion_prompt(description, category, priority)}]
        image_part = _image_part(image)
        if image_part:
            parts.append(image_part)
        return self._generate(parts)

    def estimate_complexity(self, description: str) -> int:
        prompt = (
            "Rate the technical complexity of resolving this IT support ticket on a scale "
            "from 0 (trivial) to 10 (very complex). Reply with the number only.\n"
            f'Ticket: "{description}"'
        )
        return parse_complexity(self._generate([{"text": prompt}]))

    def extract_keywords(self, sample_descriptions, label_hint) -> List[KeywordFrequency]:
        joined = "\n".join(f"- {text}" for text in sample_descriptions)
        prompt = (
            f'These support tickets share the root cause "{label_hint}". '
            "List the most characteristic keywords as a JSON array of objects with "
            '"word" and "value" (frequency) fields, most frequent first.\n'
            f"{joined}"
        )
        return parse_keywords(self._generate([{"text": prompt}]))


def suggest_with_retry(
    oracle: TextOracle,
    description: str,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    image: Optional[str] = None,
    *,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    rng: Optional[random.Random] = None,
) -> str:
    """Ask for a suggestion, backing off exponentially with jitter between attempts.

    Returns :data:`DEGRADED_SUGGESTION` once every attempt has failed.
    """
    jitter = rng or random.Random()
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return oracle.suggest_solution(description, category, priority, image)
        except OracleError as exc:
            if attempt == attempts:
                LOGGER.warning("Suggestion failed after %s attempts: %s", attempts, exc)
                break
            delay = backoff_base * (2 ** (attempt - 1)) + jitter.uniform(0, backoff_base)
            LOGGER.info(
                "Suggestion attempt %s/%s failed (%s); retrying in %.2fs", attempt, attempts, exc, delay
            )
            sleep(delay)
    return DEGRADED_SUGGESTION
