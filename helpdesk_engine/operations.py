"""Operational dashboard metrics: workload, status mix and resolution times."""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime
from statistics import mean
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .records import NamedCount, ResolutionTime, Ticket

LOGGER = logging.getLogger(__name__)

UNASSIGNED = "Unassigned"
UNKNOWN_STATUS = "Unknown"
# A ticket answered within this window counts as resolved on first contact.
FIRST_CONTACT_HOURS = 24.0


def _hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if not start or not end:
        return None
    delta = end - start
    return max(delta.total_seconds() / 3600.0, 0.0)


def resolution_hours(ticket: Ticket) -> Optional[float]:
    """Hours from creation to response, or ``None`` when either is missing."""
    return _hours_between(ticket.created_at, ticket.responded_at)


def _count(values: Iterable[str]) -> List[NamedCount]:
    counter: Counter[str] = Counter(values)
    ordered = sorted(counter.items(), key=lambda item: item[1], reverse=True)
    return [NamedCount(name=name, tickets=count) for name, count in ordered]


def technician_workload(corpus: Sequence[Ticket]) -> List[NamedCount]:
    """Tickets per technician, busiest first; tickets without one are ``Unassigned``."""
    return _count(ticket.technician or UNASSIGNED for ticket in corpus)


def status_distribution(corpus: Sequence[Ticket]) -> List[NamedCount]:
    return _count(ticket.status or UNKNOWN_STATUS for ticket in corpus)


def average_resolution_times(corpus: Sequence[Ticket]) -> List[ResolutionTime]:
    """Mean resolution hours per category, slowest first.

    Categories with no ticket carrying both timestamps are left out.
    """
    hours: Dict[str, List[float]] = defaultdict(list)
    for ticket in corpus:
        value = resolution_hours(ticket)
        if value is not None:
            hours[ticket.category].append(value)
    results = [
        ResolutionTime(name=category, avg_hours=round(mean(values), 2), tickets=len(values))
        for category, values in hours.items()
    ]
    results.sort(key=lambda row: row.avg_hours, reverse=True)
    return results


def resolution_summary(corpus: Sequence[Ticket]) -> Tuple[Optional[float], Optional[float]]:
    """Return ``(average hours, first contact percentage)`` over measurable tickets."""
    values = [value for value in (resolution_hours(ticket) for ticket in corpus) if value is not None]
    if not values:
        LOGGER.debug("No tickets with both created and responded timestamps")
        return None, None
    within = sum(1 for value in values if value <= FIRST_CONTACT_HOURS)
    return round(mean(values), 2), round(within / len(values) * 100, 1)


def deflection_rate(helpful: int, total: int) -> Optional[float]:
    """Percentage of suggestions users marked as solving their problem."""
    if total <= 0:
        return None
    return round(helpful / total * 100, 1)
