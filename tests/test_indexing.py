from __future__ import annotations

import math

import pytest

from helpdesk_engine.indexing import SnapshotMismatchError, build_index, document_terms
from helpdesk_engine.records import Ticket


def make_ticket(ticket_no: str, description: str, category: str = "Network") -> Ticket:
    return Ticket(ticket_no=ticket_no, problem_description=description, category=category)


def test_postings_follow_corpus_order_and_dedupe_within_ticket() -> None:
    corpus = [
        make_ticket("T1", "vpn vpn timeout"),
        make_ticket("T2", "printer offline", category="Hardware"),
        make_ticket("T3", "vpn drops"),
    ]

    index = build_index(corpus)

    assert index.postings["vpn"] == (0, 2)
    assert index.postings["printer"] == (1,)
    # the category is indexed alongside the description
    assert index.postings["network"] == (0, 2)
    assert index.postings["hardware"] == (1,)


def test_idf_uses_add_one_smoothing() -> None:
    corpus = [
        make_ticket("T1", "vpn timeout"),
        make_ticket("T2", "vpn drops"),
        make_ticket("T3", "printer offline", category="Hardware"),
    ]

    index = build_index(corpus)

    assert index.idf["vpn"] == pytest.approx(math.log(1 + 4 / 3))
    assert index.idf["printer"] == pytest.approx(math.log(1 + 4 / 2))
    assert index.idf_for("never-seen") == pytest.approx(math.log(1 + 3))


def test_postings_only_reference_positions_in_snapshot() -> None:
    corpus = [make_ticket(f"T{i}", f"ticket number{i} keyboard") for i in range(6)]

    index = build_index(corpus)

    for positions in index.postings.values():
        assert all(0 <= position < len(index.corpus) for position in positions)


def test_index_rejects_other_corpus() -> None:
    corpus_a = [make_ticket("A", "vpn timeout")]
    corpus_b = [make_ticket("B", "printer offline", category="Hardware")]
    index = build_index(corpus_a)

    assert index.matches(corpus_a)
    with pytest.raises(SnapshotMismatchError):
        index.ensure_matches(corpus_b)


def test_explicit_version_is_kept() -> None:
    index = build_index([make_ticket("A", "vpn timeout")], version=42)
    assert index.version == 42


def test_document_terms_are_unique() -> None:
    ticket = make_ticket("A", "network network cable", category="Network")
    assert document_terms(ticket) == ["network", "cable"]
