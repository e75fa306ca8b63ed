"""Root-cause, heatmap and keyword aggregates over a corpus snapshot."""
from __future__ import annotations

import logging
import random
import re
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .records import (
    OTHER_ROOT_CAUSE,
    UNCATEGORIZED,
    HeatmapCell,
    KeywordFrequency,
    RootCauseAggregate,
    Ticket,
)
from .tokenizer import WORD_CLOUD_STOP_WORDS, tokenize

LOGGER = logging.getLogger(__name__)

KEYWORD_SAMPLE_SIZE = 50
KEYWORD_TOP_N = 30

# Enumeration order decides ties: the first category whose keywords match wins.
ROOT_CAUSE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Account Management": (
        "password", "login", "log in", "locked", "account", "reset", "credentials",
        "sign in", "mfa", "permission",
    ),
    "Network": (
        "vpn", "wifi", "wi-fi", "network", "internet", "connection", "firewall",
        "dns", "proxy", "bandwidth",
    ),
    "Hardware": (
        "printer", "laptop", "monitor", "keyboard", "mouse", "screen", "battery",
        "toner", "docking", "headset",
    ),
    "Software": (
        "install", "update", "application", "crash", "license", "outlook", "excel",
        "browser", "software", "app",
    ),
    "Database": (
        "database", "sql", "query", "table", "backup", "replication", "deadlock",
        "schema", "oracle", "postgres",
    ),
}

PRIORITY_ORDER: Tuple[str, ...] = ("Low", "Medium", "High", "Critical")


def _keyword_patterns(
    categories: Iterable[str], table: Mapping[str, Sequence[str]]
) -> List[Tuple[str, List[re.Pattern[str]]]]:
    present = set(categories)
    patterns: List[Tuple[str, List[re.Pattern[str]]]] = []
    for category, keywords in table.items():
        if category not in present:
            continue
        patterns.append(
            (category, [re.compile(rf"\b{re.escape(keyword.lower())}\b") for keyword in keywords])
        )
    return patterns


def distinct_in_order(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if value and value not in seen:
            seen[value] = None
    return list(seen)


def ordered_priorities(corpus: Sequence[Ticket]) -> List[str]:
    """Distinct priorities, known levels first in severity order."""
    present = distinct_in_order(ticket.priority for ticket in corpus)
    known = [priority for priority in PRIORITY_ORDER if priority in present]
    return known + [priority for priority in present if priority not in PRIORITY_ORDER]


def assign_root_causes(
    corpus: Sequence[Ticket],
    *,
    table: Mapping[str, Sequence[str]] = ROOT_CAUSE_KEYWORDS,
) -> List[str]:
    """Return the claimed root cause for each ticket, in corpus order."""
    categories = distinct_in_order(ticket.category for ticket in corpus)
    known = set(categories)
    patterns = _keyword_patterns(categories, table)
    assignments: List[str] = []
    for ticket in corpus:
        description = ticket.problem_description.lower()
        claimed: Optional[str] = None
        for category, category_patterns in patterns:
            if any(pattern.search(description) for pattern in category_patterns):
                claimed = category
                break
        if claimed is None:
            if ticket.category in known and ticket.category != UNCATEGORIZED:
                claimed = ticket.category
            else:
                claimed = OTHER_ROOT_CAUSE
        assignments.append(claimed)
    return assignments


def summarize_root_causes(assignments: Iterable[str]) -> List[RootCauseAggregate]:
    counts = Counter(assignments)
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [RootCauseAggregate(name=name, tickets=count) for name, count in ordered]


def classify_root_causes(
    corpus: Sequence[Ticket],
    *,
    table: Mapping[str, Sequence[str]] = ROOT_CAUSE_KEYWORDS,
) -> List[RootCauseAggregate]:
    """Count tickets per root cause, largest first."""
    return summarize_root_causes(assign_root_causes(corpus, table=table))


def build_heatmap(
    corpus: Sequence[Ticket],
    *,
    categories: Optional[Sequence[str]] = None,
    priorities: Optional[Sequence[str]] = None,
) -> List[HeatmapCell]:
    """Count tickets for every category x priority pair, zeros included."""
    if categories is None:
        categories = distinct_in_order(ticket.category for ticket in corpus)
    if priorities is None:
        priorities = ordered_priorities(corpus)
    counts: Counter[Tuple[str, str]] = Counter(
        (ticket.category, ticket.priority) for ticket in corpus
    )
    return [
        HeatmapCell(category=category, priority=priority, value=counts.get((category, priority), 0))
        for category in categories
        for priority in priorities
    ]


def extract_keywords(
    descriptions: Sequence[str],
    *,
    sample_size: int = KEYWORD_SAMPLE_SIZE,
    top_n: int = KEYWORD_TOP_N,
    rng: Optional[random.Random] = None,
) -> List[KeywordFrequency]:
    """Top terms across a random sample of ``descriptions``."""
    if not descriptions:
        return []
    if len(descriptions) > sample_size:
        sample = (rng or random.Random()).sample(list(descriptions), sample_size)
    else:
        sample = list(descriptions)
    counts: Counter[str] = Counter()
    for description in sample:
        counts.update(tokenize(description, stop_words=WORD_CLOUD_STOP_WORDS))
    return [KeywordFrequency(word=word, value=value) for word, value in counts.most_common(top_n)]


def group_descriptions(corpus: Sequence[Ticket], assignments: Sequence[str]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = defaultdict(list)
    for ticket, cause in zip(corpus, assignments):
        grouped[cause].append(ticket.problem_description)
    return dict(grouped)


def build_keyword_cache(
    corpus: Sequence[Ticket],
    assignments: Sequence[str],
    *,
    sample_size: int = KEYWORD_SAMPLE_SIZE,
    top_n: int = KEYWORD_TOP_N,
    rng: Optional[random.Random] = None,
) -> Dict[str, Tuple[KeywordFrequency, ...]]:
    """Keyword lists for every root cause present in ``assignments``."""
    cache: Dict[str, Tuple[KeywordFrequency, ...]] = {}
    for cause, descriptions in group_descriptions(corpus, assignments).items():
        cache[cause] = tuple(
            extract_keywords(descriptions, sample_size=sample_size, top_n=top_n, rng=rng)
        )
    LOGGER.debug("Cached keyword lists for %s root causes", len(cache))
    return cache
