"""SLA breach risk scoring for open tickets."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .records import SlaRiskEntry, Ticket, parse_timestamp

LOGGER = logging.getLogger(__name__)

RISK_HORIZON = timedelta(days=7)
TIME_WEIGHT = 0.7
COMPLEXITY_WEIGHT = 0.3
MAX_COMPLEXITY = 10.0
DEFAULT_COMPLEXITY = 5
SLA_TOP_N = 8
SNIPPET_LENGTH = 80

OPEN_STATUSES: FrozenSet[str] = frozenset(
    {"open", "new", "in progress", "pending", "on hold", "assigned", "reopened", "waiting"}
)


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(value, upper))


def is_eligible(ticket: Ticket, *, open_statuses: Iterable[str] = OPEN_STATUSES) -> bool:
    """Only open tickets with a parsed due timestamp can be scored."""
    if ticket.due_at is None or not ticket.status:
        return False
    return ticket.status.strip().lower() in set(open_statuses)


def time_factor(due_at: datetime, now: datetime) -> float:
    remaining = (due_at - now).total_seconds()
    horizon = RISK_HORIZON.total_seconds()
    return 1.0 - _clamp(remaining, 0.0, horizon) / horizon


def compute_risk_score(due_at: datetime, now: datetime, complexity: float) -> float:
    """Blend due-date urgency with a 0-10 complexity estimate into [0, 1]."""
    complexity_factor = _clamp(float(complexity), 0.0, MAX_COMPLEXITY) / MAX_COMPLEXITY
    score = TIME_WEIGHT * time_factor(due_at, now) + COMPLEXITY_WEIGHT * complexity_factor
    return _clamp(score, 0.0, 1.0)


def format_time_remaining(due_at: datetime, now: datetime) -> str:
    """Render the gap as its two coarsest units, e.g. ``2d 3h``; ``-`` marks overdue."""
    delta = due_at - now
    prefix = "-" if delta.total_seconds() < 0 else ""
    total_minutes = int(abs(delta.total_seconds()) // 60)
    days, remainder = divmod(total_minutes, 60 * 24)
    hours, minutes = divmod(remainder, 60)
    if days:
        text = f"{days}d {hours}h"
    elif hours:
        text = f"{hours}h {minutes}m"
    else:
        text = f"{minutes}m"
    return prefix + text


def rank_sla_risks(
    corpus: Sequence[Ticket],
    complexity_for: Callable[[Ticket], float],
    *,
    now: Optional[datetime] = None,
    top_n: int = SLA_TOP_N,
    open_statuses: Iterable[str] = OPEN_STATUSES,
) -> List[SlaRiskEntry]:
    """Score every eligible ticket and return the ``top_n`` riskiest."""
    # naive timestamps are taken as UTC, matching ingested due dates
    now = parse_timestamp(now) or datetime.now(timezone.utc)
    statuses = {status.lower() for status in open_statuses}
    scored: List[Tuple[float, int, SlaRiskEntry]] = []
    for position, ticket in enumerate(corpus):
        if not is_eligible(ticket, open_statuses=statuses):
            continue
        assert ticket.due_at is not None
        risk = compute_risk_score(ticket.due_at, now, complexity_for(ticket))
        entry = SlaRiskEntry(
            ticket_no=ticket.ticket_no,
            risk_score=risk,
            time_remaining=format_time_remaining(ticket.due_at, now),
            problem_snippet=ticket.problem_description[:SNIPPET_LENGTH],
            technician=ticket.technician,
            priority=ticket.priority,
        )
        scored.append((risk, position, entry))
    scored.sort(key=lambda item: (-item[0], item[1]))
    LOGGER.debug("Scored %s open tickets for SLA risk", len(scored))
    return [entry for _, _, entry in scored[:top_n]]
