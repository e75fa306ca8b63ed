from __future__ import annotations

import random

import pytest

from helpdesk_engine.evaluation import _category_notes, evaluate_corpus, split_corpus
from helpdesk_engine.records import Ticket


def make_ticket(ticket_no: str, description: str, category: str, priority: str) -> Ticket:
    return Ticket(
        ticket_no=ticket_no, problem_description=description, category=category, priority=priority
    )


def separable_corpus() -> list[Ticket]:
    corpus = []
    for i in range(10):
        corpus.append(make_ticket(f"N{i}", f"vpn tunnel drops branch{i}", "Network", "High"))
        corpus.append(make_ticket(f"H{i}", f"printer toner empty floor{i}", "Hardware", "Low"))
    return corpus


@pytest.mark.parametrize("seed", [0, 1, 2, 17, 99])
def test_split_is_always_eighty_twenty(seed: int) -> None:
    corpus = [make_ticket(str(i), f"ticket body{i}", "Software", "Low") for i in range(100)]

    training, held_out = split_corpus(corpus, holdout_fraction=0.2, rng=random.Random(seed))

    assert len(training) == 80
    assert len(held_out) == 20
    assert set(training) | set(held_out) == set(corpus)


def test_split_is_reproducible_with_seeded_rng() -> None:
    corpus = [make_ticket(str(i), f"ticket body{i}", "Software", "Low") for i in range(30)]

    first = split_corpus(corpus, rng=random.Random(5))
    second = split_corpus(corpus, rng=random.Random(5))

    assert first == second


def test_small_corpus_is_not_evaluated() -> None:
    corpus = separable_corpus()[:9]

    assert evaluate_corpus(corpus, rng=random.Random(1)) is None


def test_separable_categories_are_predicted_perfectly() -> None:
    report = evaluate_corpus(separable_corpus(), rng=random.Random(7))

    assert report is not None
    assert report.category_accuracy == 1.0
    assert report.priority_accuracy == 1.0
    assert report.overall_score == pytest.approx(1.0)
    assert report.evaluated == 4
    assert report.training_size == 16
    assert len(report.notes) == 1
    assert report.notes[0].startswith("The model performs well on the following categories:")


def test_unmatched_tickets_fall_back_to_uncategorized_medium() -> None:
    words = [
        "zebra", "quartz", "violin", "marble", "tundra",
        "pepper", "canyon", "walnut", "saffron", "glacier",
    ]
    corpus = [make_ticket(str(i), word, "Software", "Medium") for i, word in enumerate(words)]

    report = evaluate_corpus(corpus, rng=random.Random(3))

    assert report is not None
    assert report.category_accuracy == 0.0
    assert report.priority_accuracy == 1.0
    assert report.overall_score == pytest.approx(0.4)
    assert report.notes == (
        "The model struggles with the following categories and may need more data: Software.",
    )


def test_category_notes_split_strong_and_weak() -> None:
    notes = _category_notes({"A": [9, 10], "B": [5, 10], "C": [7, 10]})

    assert notes == [
        "The model performs well on the following categories: A.",
        "The model struggles with the following categories and may need more data: B.",
    ]


def test_category_notes_empty_when_nothing_stands_out() -> None:
    assert _category_notes({"A": [7, 10]}) == []
