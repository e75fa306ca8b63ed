"""Data records shared across the engine."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

LOGGER = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
DEFAULT_PRIORITY = "Medium"
OTHER_ROOT_CAUSE = "Other"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ``value`` into an aware UTC datetime, or ``None`` when unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.parse(str(value))
        except (ValueError, TypeError, OverflowError):
            LOGGER.debug("Unable to parse datetime value %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Ticket:
    """One support request in the knowledge base."""

    ticket_no: str
    problem_description: str
    category: str = UNCATEGORIZED
    priority: str = DEFAULT_PRIORITY
    solution_text: Optional[str] = None
    technician: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, payload: Dict[str, Any]) -> "Ticket":
        description = _clean(payload.get("problem_description"))
        if not description:
            raise ValueError(f"Ticket {payload.get('ticket_no')!r} has an empty problem_description")
        return cls(
            ticket_no=str(payload.get("ticket_no") or ""),
            problem_description=description,
            category=_clean(payload.get("category")) or UNCATEGORIZED,
            priority=_clean(payload.get("priority")) or DEFAULT_PRIORITY,
            solution_text=_clean(payload.get("solution_text")),
            technician=_clean(payload.get("technician")),
            status=_clean(payload.get("status")),
            created_at=parse_timestamp(payload.get("created_at")),
            due_at=parse_timestamp(payload.get("due_at")),
            responded_at=parse_timestamp(payload.get("responded_at")),
        )


@dataclass(frozen=True)
class SimilarTicket:
    """A ranked search hit; the score is specific to the query that produced it."""

    ticket: Ticket
    similarity_score: float


@dataclass(frozen=True)
class AccuracyReport:
    category_accuracy: float
    priority_accuracy: float
    overall_score: float
    notes: Tuple[str, ...] = ()
    evaluated: int = 0
    training_size: int = 0


@dataclass(frozen=True)
class RootCauseAggregate:
    name: str
    tickets: int


@dataclass(frozen=True)
class HeatmapCell:
    category: str
    priority: str
    value: int


@dataclass(frozen=True)
class KeywordFrequency:
    word: str
    value: int


@dataclass(frozen=True)
class NamedCount:
    """Ticket count for one technician or status."""

    name: str
    tickets: int


@dataclass(frozen=True)
class ResolutionTime:
    name: str
    avg_hours: float
    tickets: int


@dataclass(frozen=True)
class Kpis:
    """Headline dashboard figures; ``None`` means there is nothing to measure yet."""

    deflection_rate: Optional[float]
    avg_time_to_resolution: Optional[float]
    first_contact_resolution: Optional[float]
    feedback_count: int = 0


@dataclass(frozen=True)
class SlaRiskEntry:
    ticket_no: str
    risk_score: float
    time_remaining: str
    problem_snippet: str = ""
    technician: Optional[str] = None
    priority: Optional[str] = None


@dataclass
class IssueAnalysis:
    """Result of analysing a newly submitted issue."""

    predicted_module: str
    predicted_priority: str
    similar_issues: List[SimilarTicket] = field(default_factory=list)
    ai_suggestion: str = ""
    from_similar_issue: bool = False
