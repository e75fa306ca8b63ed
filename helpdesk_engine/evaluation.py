"""Hold-out evaluation of the similarity model."""
from __future__ import annotations

import logging
import random
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from .indexing import build_index
from .records import DEFAULT_PRIORITY, UNCATEGORIZED, AccuracyReport, Ticket
from .similarity import score_similarity

LOGGER = logging.getLogger(__name__)

MIN_EVALUATION_SIZE = 10
STRONG_CATEGORY_THRESHOLD = 0.85
WEAK_CATEGORY_THRESHOLD = 0.60
CATEGORY_WEIGHT = 0.6
PRIORITY_WEIGHT = 0.4


def split_corpus(
    corpus: Sequence[Ticket],
    *,
    holdout_fraction: float = 0.2,
    rng: Optional[random.Random] = None,
) -> Tuple[Tuple[Ticket, ...], Tuple[Ticket, ...]]:
    """Shuffle ``corpus`` and split it into ``(training, held_out)``.

    The training share is ``round(N * (1 - holdout_fraction))`` regardless of
    shuffle order.
    """
    shuffled = list(corpus)
    (rng or random.Random()).shuffle(shuffled)
    training_size = int(round(len(shuffled) * (1.0 - holdout_fraction)))
    return tuple(shuffled[:training_size]), tuple(shuffled[training_size:])


def _category_notes(per_category: Dict[str, List[int]]) -> List[str]:
    strong: List[str] = []
    weak: List[str] = []
    for category, (correct, total) in per_category.items():
        if not total:
            continue
        ratio = correct / total
        if ratio > STRONG_CATEGORY_THRESHOLD:
            strong.append(category)
        elif ratio < WEAK_CATEGORY_THRESHOLD:
            weak.append(category)
    notes: List[str] = []
    if strong:
        notes.append(f"The model performs well on the following categories: {', '.join(strong)}.")
    if weak:
        notes.append(
            f"The model struggles with the following categories and may need more data: {', '.join(weak)}."
        )
    return notes


def evaluate_corpus(
    corpus: Sequence[Ticket],
    *,
    holdout_fraction: float = 0.2,
    min_size: int = MIN_EVALUATION_SIZE,
    rng: Optional[random.Random] = None,
) -> Optional[AccuracyReport]:
    """Train on a random 80% of ``corpus`` and predict the remaining 20%.

    Returns ``None`` when the corpus is too small to evaluate.
    """
    if len(corpus) < min_size:
        LOGGER.info(
            "Skipping evaluation: %s tickets is below the minimum of %s", len(corpus), min_size
        )
        return None

    training, held_out = split_corpus(corpus, holdout_fraction=holdout_fraction, rng=rng)
    index = build_index(training)
    known_categories = {ticket.category for ticket in training}

    category_hits = 0
    priority_hits = 0
    per_category: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
    for ticket in held_out:
        matches = score_similarity(
            ticket.problem_description,
            index.corpus,
            index,
            known_categories=known_categories,
            limit=1,
        )
        if matches:
            predicted_category = matches[0].ticket.category
            predicted_priority = matches[0].ticket.priority
        else:
            predicted_category = UNCATEGORIZED
            predicted_priority = DEFAULT_PRIORITY
        bucket = per_category[ticket.category]
        bucket[1] += 1
        if predicted_category == ticket.category:
            category_hits += 1
            bucket[0] += 1
        if predicted_priority == ticket.priority:
            priority_hits += 1

    total = len(held_out)
    category_accuracy = category_hits / total if total else 0.0
    priority_accuracy = priority_hits / total if total else 0.0
    report = AccuracyReport(
        category_accuracy=category_accuracy,
        priority_accuracy=priority_accuracy,
        overall_score=CATEGORY_WEIGHT * category_accuracy + PRIORITY_WEIGHT * priority_accuracy,
        notes=tuple(_category_notes(per_category)),
        evaluated=total,
        training_size=len(training),
    )
    LOGGER.info(
        "Evaluated %s held-out tickets: category %.1f%%, priority %.1f%%, overall %.1f%%",
        total,
        category_accuracy * 100,
        priority_accuracy * 100,
        report.overall_score * 100,
    )
    return report
