"""Load uploaded ticket exports into engine records."""
from __future__ import annotations

import csv
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from statistics import mean
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from dateutil import parser as date_parser
from rapidfuzz import fuzz, process, utils

from .config import INGESTION_DEFAULTS
from .records import DEFAULT_PRIORITY, UNCATEGORIZED, Ticket

LOGGER = logging.getLogger(__name__)

TICKET_FIELDS: Tuple[str, ...] = (
    "ticket_no",
    "problem_description",
    "category",
    "priority",
    "solution_text",
    "technician",
    "status",
    "created_at",
    "due_at",
    "responded_at",
)
REQUIRED_FIELDS: Tuple[str, ...] = ("problem_description",)

DEFAULT_CATEGORIES: Tuple[str, ...] = INGESTION_DEFAULTS["categories"]
DEFAULT_PRIORITIES: Tuple[str, ...] = INGESTION_DEFAULTS["priorities"]

FUZZY_THRESHOLD: int = INGESTION_DEFAULTS["fuzzy_threshold"]
RARE_CATEGORY_SHARE = 0.01
TYPE_SAMPLE_SIZE = 50
CATEGORICAL_MAX_DISTINCT = 20


class IngestionError(ValueError):
    """Base class for upload problems reported back to the caller."""


class MissingFieldMappingError(IngestionError):
    """A required field has no usable CSV header."""


class EmptyUploadError(IngestionError):
    """The upload contains no header or no data rows."""


class UnparseableUploadError(IngestionError):
    """The upload could not be decoded as CSV."""


@dataclass
class ColumnProfile:
    name: str
    type: str
    missing: int


@dataclass
class OutlierReport:
    rare_categories: List[Tuple[str, int]] = field(default_factory=list)
    min_length: int = 0
    max_length: int = 0
    avg_length: float = 0.0
    short_outlier_threshold: float = 0.0
    long_outlier_threshold: float = 0.0
    short_outliers: int = 0
    long_outliers: int = 0


@dataclass
class UploadProfile:
    """Exploratory summary of an upload, shown before training starts."""

    file_name: str
    file_size: int
    row_count: int
    columns: List[ColumnProfile]
    category_distribution: List[Tuple[str, int]]
    outlier_report: OutlierReport


@dataclass
class IngestionResult:
    tickets: List[Ticket]
    skipped_rows: int
    profile: UploadProfile


def read_upload(path: Path) -> Tuple[List[str], List[Dict[str, str]]]:
    """Return the header row and data rows of a CSV upload."""
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.DictReader(handle)
            headers = [header.strip() for header in (reader.fieldnames or []) if header]
            rows = [
                {(key or "").strip(): (value or "") for key, value in row.items() if key is not None}
                for row in reader
            ]
    except (UnicodeDecodeError, csv.Error) as exc:
        raise UnparseableUploadError(f"Unable to parse upload {path.name}: {exc}") from exc
    if not headers:
        raise EmptyUploadError(f"Upload {path.name} has no header row")
    if not rows:
        raise EmptyUploadError(f"Upload {path.name} has no data rows")
    LOGGER.info("Read %s rows with %s columns from %s", len(rows), len(headers), path)
    return headers, rows


def resolve_mapping(
    headers: Sequence[str], header_mapping: Optional[Dict[str, Optional[str]]] = None
) -> Dict[str, str]:
    """Return field -> header for every mapped field, validating required ones."""
    header_set = set(headers)
    resolved: Dict[str, str] = {}
    for field_name in TICKET_FIELDS:
        if header_mapping is not None and field_name in header_mapping:
            header = header_mapping[field_name]
        else:
            header = field_name if field_name in header_set else None
        if not header:
            continue
        if header not in header_set:
            raise MissingFieldMappingError(
                f"Column '{header}' mapped to {field_name} is not present in the upload"
            )
        resolved[field_name] = header
    missing = [field_name for field_name in REQUIRED_FIELDS if field_name not in resolved]
    if missing:
        raise MissingFieldMappingError(f"No column mapped to required field(s): {', '.join(missing)}")
    return resolved


def normalize_label(
    value: Optional[str],
    vocabulary: Sequence[str],
    *,
    default: str,
    threshold: int = FUZZY_THRESHOLD,
) -> str:
    """Map a free-form label onto ``vocabulary`` exactly, then fuzzily, else ``default``."""
    text = (value or "").strip()
    if not text:
        return default
    for candidate in vocabulary:
        if candidate.lower() == text.lower():
            return candidate
    best = process.extractOne(
        text, vocabulary, scorer=fuzz.ratio, processor=utils.default_process, score_cutoff=threshold
    )
    if best:
        LOGGER.debug("Normalised label %r to %r (score %.0f)", text, best[0], best[1])
        return best[0]
    return default


def build_tickets(
    rows: Iterable[Dict[str, str]],
    mapping: Dict[str, str],
    *,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    priorities: Sequence[str] = DEFAULT_PRIORITIES,
    fuzzy_threshold: int = FUZZY_THRESHOLD,
) -> Tuple[List[Ticket], int]:
    tickets: List[Ticket] = []
    skipped = 0
    for row_number, row in enumerate(rows, start=1):
        record: Dict[str, Any] = {name: row.get(header, "") for name, header in mapping.items()}
        if not (record.get("problem_description") or "").strip():
            LOGGER.debug("Skipping row %s without a problem description", row_number)
            skipped += 1
            continue
        record["ticket_no"] = (record.get("ticket_no") or "").strip() or f"ROW-{row_number}"
        record["category"] = normalize_label(
            record.get("category"), categories, default=UNCATEGORIZED, threshold=fuzzy_threshold
        )
        record["priority"] = normalize_label(
            record.get("priority"), priorities, default=DEFAULT_PRIORITY, threshold=fuzzy_threshold
        )
        tickets.append(Ticket.from_record(record))
    return tickets, skipped


def _looks_like_datetime(value: str) -> bool:
    try:
        date_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return False
    return True


def _infer_column_type(values: Sequence[str]) -> str:
    present = [value.strip() for value in values if value and value.strip()]
    if not present:
        return "string"
    sample = present[:TYPE_SAMPLE_SIZE]
    if all(not value.isdigit() and _looks_like_datetime(value) for value in sample):
        return "datetime"
    distinct = len(set(present))
    if distinct <= CATEGORICAL_MAX_DISTINCT and distinct < len(present) / 2:
        return "categorical"
    return "string"


def _outlier_report(tickets: Sequence[Ticket], category_counts: Counter[str]) -> OutlierReport:
    report = OutlierReport()
    total = sum(category_counts.values())
    if total:
        report.rare_categories = [
            (name, count)
            for name, count in category_counts.most_common()
            if count / total < RARE_CATEGORY_SHARE
        ]
    lengths = [len(ticket.problem_description) for ticket in tickets]
    if lengths:
        report.min_length = min(lengths)
        report.max_length = max(lengths)
        report.avg_length = mean(lengths)
        report.short_outlier_threshold = report.avg_length * 0.25
        report.long_outlier_threshold = report.avg_length * 3
        report.short_outliers = sum(1 for length in lengths if length < report.short_outlier_threshold)
        report.long_outliers = sum(1 for length in lengths if length > report.long_outlier_threshold)
    return report


def profile_upload(
    path: Path,
    headers: Sequence[str],
    rows: Sequence[Dict[str, str]],
    tickets: Sequence[Ticket],
) -> UploadProfile:
    columns = [
        ColumnProfile(
            name=header,
            type=_infer_column_type([row.get(header, "") for row in rows]),
            missing=sum(1 for row in rows if not (row.get(header) or "").strip()),
        )
        for header in headers
    ]
    category_counts: Counter[str] = Counter(ticket.category for ticket in tickets)
    return UploadProfile(
        file_name=path.name,
        file_size=path.stat().st_size,
        row_count=len(rows),
        columns=columns,
        category_distribution=category_counts.most_common(),
        outlier_report=_outlier_report(tickets, category_counts),
    )


def load_tickets_csv(
    path: Path,
    header_mapping: Optional[Dict[str, Optional[str]]] = None,
    *,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    priorities: Sequence[str] = DEFAULT_PRIORITIES,
    fuzzy_threshold: int = FUZZY_THRESHOLD,
) -> IngestionResult:
    """Read, validate and normalise a CSV upload.

    Raises an :class:`IngestionError` subclass before producing any records
    when the upload is empty, unreadable or lacks a description column.
    """
    headers, rows = read_upload(path)
    mapping = resolve_mapping(headers, header_mapping)
    tickets, skipped = build_tickets(
        rows, mapping, categories=categories, priorities=priorities, fuzzy_threshold=fuzzy_threshold
    )
    if not tickets:
        raise EmptyUploadError(f"Upload {path.name} has no rows with a problem description")
    if skipped:
        LOGGER.warning("Skipped %s rows without a problem description", skipped)
    profile = profile_upload(path, headers, rows, tickets)
    return IngestionResult(tickets=tickets, skipped_rows=skipped, profile=profile)
