from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from helpdesk_engine.records import Ticket
from helpdesk_engine.sla import (
    compute_risk_score,
    format_time_remaining,
    is_eligible,
    rank_sla_risks,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def make_ticket(
    ticket_no: str,
    *,
    status: str | None = "Open",
    due_in: timedelta | None = timedelta(days=1),
) -> Ticket:
    return Ticket(
        ticket_no=ticket_no,
        problem_description=f"vpn drops for site {ticket_no}",
        category="Network",
        status=status,
        due_at=NOW + due_in if due_in is not None else None,
    )


def test_due_now_and_most_complex_is_maximum_risk() -> None:
    assert compute_risk_score(NOW, NOW, 10) == pytest.approx(1.0)


def test_far_future_and_trivial_is_minimum_risk() -> None:
    assert compute_risk_score(NOW + timedelta(days=14), NOW, 0) == pytest.approx(0.0)


def test_overdue_counts_as_full_time_pressure() -> None:
    assert compute_risk_score(NOW - timedelta(days=2), NOW, 0) == pytest.approx(0.7)


@pytest.mark.parametrize("days", [-3, 0, 1, 3.5, 7, 30])
@pytest.mark.parametrize("complexity", [-4, 0, 5, 10, 25])
def test_risk_score_stays_in_unit_interval(days: float, complexity: int) -> None:
    score = compute_risk_score(NOW + timedelta(days=days), NOW, complexity)

    assert 0.0 <= score <= 1.0


def test_risk_rises_as_due_date_approaches() -> None:
    later = compute_risk_score(NOW + timedelta(days=5), NOW, 5)
    sooner = compute_risk_score(NOW + timedelta(days=1), NOW, 5)

    assert sooner > later


@pytest.mark.parametrize(
    ("delta", "expected"),
    [
        (timedelta(days=2, hours=3, minutes=20), "2d 3h"),
        (timedelta(hours=5, minutes=12), "5h 12m"),
        (timedelta(minutes=42), "42m"),
        (-timedelta(hours=1, minutes=5), "-1h 5m"),
        (-timedelta(days=3, hours=2), "-3d 2h"),
    ],
)
def test_time_remaining_uses_two_coarsest_units(delta: timedelta, expected: str) -> None:
    assert format_time_remaining(NOW + delta, NOW) == expected


def test_only_open_tickets_with_due_dates_are_eligible() -> None:
    assert is_eligible(make_ticket("1"))
    assert is_eligible(make_ticket("2", status="In Progress"))
    assert not is_eligible(make_ticket("3", status="Closed"))
    assert not is_eligible(make_ticket("4", status=None))
    assert not is_eligible(make_ticket("5", due_in=None))


def test_rank_returns_riskiest_eight() -> None:
    corpus = [make_ticket(f"T{i}", due_in=timedelta(hours=10 * i + 1)) for i in range(10)]
    corpus.append(make_ticket("closed", status="Resolved", due_in=timedelta(minutes=1)))

    entries = rank_sla_risks(corpus, lambda ticket: 5, now=NOW)

    assert [entry.ticket_no for entry in entries] == [f"T{i}" for i in range(8)]
    assert entries[0].time_remaining == "1h 0m"
    assert entries[0].problem_snippet == "vpn drops for site T0"


def test_rank_uses_complexity_estimates() -> None:
    corpus = [make_ticket("easy"), make_ticket("hard")]
    complexity = {"easy": 1, "hard": 9}

    entries = rank_sla_risks(corpus, lambda ticket: complexity[ticket.ticket_no], now=NOW)

    assert [entry.ticket_no for entry in entries] == ["hard", "easy"]


def test_naive_now_is_treated_as_utc() -> None:
    corpus = [make_ticket("T1", due_in=timedelta(hours=3))]

    entries = rank_sla_risks(corpus, lambda ticket: 5, now=NOW.replace(tzinfo=None))

    assert entries[0].time_remaining == "3h 0m"
    assert entries[0].risk_score == pytest.approx(
        compute_risk_score(corpus[0].due_at, NOW, 5)
    )


def test_offset_now_is_converted_to_utc() -> None:
    corpus = [make_ticket("T1", due_in=timedelta(hours=3))]
    local = NOW.astimezone(timezone(timedelta(hours=2)))

    entries = rank_sla_risks(corpus, lambda ticket: 5, now=local)

    assert entries[0].time_remaining == "3h 0m"
