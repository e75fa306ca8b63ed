from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from helpdesk_engine.operations import (
    UNASSIGNED,
    UNKNOWN_STATUS,
    average_resolution_times,
    deflection_rate,
    resolution_hours,
    resolution_summary,
    status_distribution,
    technician_workload,
)
from helpdesk_engine.records import NamedCount, ResolutionTime, Ticket

CREATED = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_ticket(
    ticket_no: str,
    category: str = "Network",
    *,
    technician: Optional[str] = None,
    status: Optional[str] = None,
    hours: Optional[float] = None,
) -> Ticket:
    return Ticket(
        ticket_no=ticket_no,
        problem_description=f"issue {ticket_no}",
        category=category,
        technician=technician,
        status=status,
        created_at=CREATED,
        responded_at=CREATED + timedelta(hours=hours) if hours is not None else None,
    )


def test_workload_counts_unassigned_tickets() -> None:
    corpus = [
        make_ticket("1", technician="Dana"),
        make_ticket("2"),
        make_ticket("3", technician="Dana"),
        make_ticket("4", technician="Lee"),
        make_ticket("5"),
        make_ticket("6", technician="Dana"),
    ]

    assert technician_workload(corpus) == [
        NamedCount("Dana", 3),
        NamedCount(UNASSIGNED, 2),
        NamedCount("Lee", 1),
    ]


def test_status_distribution_names_missing_status() -> None:
    corpus = [
        make_ticket("1", status="Open"),
        make_ticket("2", status="Closed"),
        make_ticket("3"),
        make_ticket("4", status="Open"),
    ]

    assert status_distribution(corpus) == [
        NamedCount("Open", 2),
        NamedCount("Closed", 1),
        NamedCount(UNKNOWN_STATUS, 1),
    ]


def test_resolution_hours_needs_both_timestamps() -> None:
    assert resolution_hours(make_ticket("1", hours=6)) == 6.0
    assert resolution_hours(make_ticket("2")) is None
    # responses logged before creation are clamped to zero
    assert resolution_hours(make_ticket("3", hours=-2)) == 0.0


def test_average_resolution_times_slowest_category_first() -> None:
    corpus = [
        make_ticket("1", "Network", hours=2),
        make_ticket("2", "Network", hours=5),
        make_ticket("3", "Hardware", hours=30),
        make_ticket("4", "Hardware"),
        make_ticket("5", "Software"),
    ]

    assert average_resolution_times(corpus) == [
        ResolutionTime("Hardware", 30.0, 1),
        ResolutionTime("Network", 3.5, 2),
    ]


def test_resolution_summary_uses_first_contact_window() -> None:
    corpus = [
        make_ticket("1", hours=4),
        make_ticket("2", hours=24),
        make_ticket("3", hours=48),
        make_ticket("4", hours=8),
        make_ticket("5"),
    ]

    avg_hours, first_contact = resolution_summary(corpus)

    assert avg_hours == 21.0
    assert first_contact == 75.0


def test_resolution_summary_without_timestamps() -> None:
    assert resolution_summary([make_ticket("1"), make_ticket("2")]) == (None, None)
    assert resolution_summary([]) == (None, None)


def test_deflection_rate() -> None:
    assert deflection_rate(0, 0) is None
    assert deflection_rate(2, 3) == 66.7
    assert deflection_rate(5, 5) == 100.0
