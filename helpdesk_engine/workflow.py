"""Higher level workflows used by the command-line tools."""
from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .config import engine_settings, ingestion_settings, load_config, oracle_settings, resolve_path
from .ingestion import IngestionResult, load_tickets_csv
from .logging_setup import configure_logging
from .oracle import HttpTextOracle, StaticTextOracle, TextOracle
from .records import SimilarTicket, SlaRiskEntry, parse_timestamp
from .reporting import SnapshotReportWriter
from .task_queue import RateLimitedTaskQueue
from .training import TrainingOrchestrator, TrainingState

LOGGER = logging.getLogger(__name__)


@dataclass
class TrainOptions:
    config_path: Optional[str]
    csv_path: str
    output_directory: Optional[str] = None
    write_reports: bool = False
    simple_console: bool = False
    console_level: Optional[str] = None
    show_console_log: bool = False


@dataclass
class SearchOptions:
    config_path: Optional[str]
    csv_path: str
    query: str
    limit: int = 5
    console_level: Optional[str] = None


@dataclass
class SlaOptions:
    config_path: Optional[str]
    csv_path: str
    now: Optional[str] = None
    console_level: Optional[str] = None


class _ProgressTask:
    """Lightweight textual progress indicator."""

    _BAR_WIDTH = 30

    def __init__(self, description: str, enabled: bool) -> None:
        self.description = description
        self.enabled = enabled
        self.start_time = time.monotonic()
        self.total: Optional[int] = None
        self.count = 0

    def update(self, count: int, total: Optional[int] = None) -> None:
        if not self.enabled:
            return
        if total is not None and total >= 0:
            self.total = total
        self.count = max(count, 0)
        elapsed = max(time.monotonic() - self.start_time, 0.0)
        parts = [self.description]
        if self.total:
            fraction = min(max(self.count / self.total, 0.0), 1.0)
            filled = min(int(round(fraction * self._BAR_WIDTH)), self._BAR_WIDTH)
            parts.append(f"[{'#' * filled}{'-' * (self._BAR_WIDTH - filled)}]")
            parts.append(f"{self.count}/{self.total}")
        else:
            parts.append(str(self.count))
        parts.append(f"elapsed {elapsed:6.1f}s")
        sys.stdout.write("\r" + " ".join(parts))
        sys.stdout.flush()

    def done(self) -> None:
        if not self.enabled:
            return
        self.update(self.count, self.total)
        sys.stdout.write("\n")
        sys.stdout.flush()


def _prepare_logging(
    config: dict,
    *,
    base_dir: Path,
    console_level: Optional[str] = None,
    simple_console: bool = False,
) -> None:
    console_cfg = config.setdefault("logging", {}).setdefault("console", {})
    if simple_console:
        console_cfg["rich_format"] = False
    if console_level:
        console_cfg["level"] = console_level
    configure_logging(config, base_dir=base_dir)


def _create_oracle(oracle_cfg: dict) -> TextOracle:
    if not oracle_cfg["base_url"] or not oracle_cfg["api_key"]:
        LOGGER.info("No oracle endpoint configured; suggestions use the offline fallback")
        return StaticTextOracle()
    return HttpTextOracle(
        base_url=oracle_cfg["base_url"],
        api_key=oracle_cfg["api_key"],
        model=oracle_cfg["model"],
        timeout=oracle_cfg["timeout"],
        verify_ssl=oracle_cfg["verify_ssl"],
    )


def _create_task_queue(oracle_cfg: dict) -> RateLimitedTaskQueue:
    if oracle_cfg["min_interval_seconds"] is not None:
        return RateLimitedTaskQueue(
            min_interval=oracle_cfg["min_interval_seconds"],
            max_concurrency=oracle_cfg["max_concurrency"],
        )
    return RateLimitedTaskQueue.from_rate_limit(
        oracle_cfg["rate_limit_per_minute"], max_concurrency=oracle_cfg["max_concurrency"]
    )


def create_orchestrator(config: dict) -> TrainingOrchestrator:
    oracle_cfg = oracle_settings(config)
    return TrainingOrchestrator(
        oracle=_create_oracle(oracle_cfg),
        task_queue=_create_task_queue(oracle_cfg),
        settings=engine_settings(config),
        max_attempts=oracle_cfg["max_attempts"],
        backoff_base=oracle_cfg["backoff_base_seconds"],
    )


def ingest_csv(config: dict, csv_path: Path) -> IngestionResult:
    ingestion_cfg = ingestion_settings(config)
    return load_tickets_csv(
        csv_path,
        ingestion_cfg["header_mapping"],
        categories=ingestion_cfg["categories"],
        priorities=ingestion_cfg["priorities"],
        fuzzy_threshold=ingestion_cfg["fuzzy_threshold"],
    )


def train_from_csv(
    config: dict, csv_path: Path, *, show_progress: bool = False
) -> Tuple[TrainingOrchestrator, IngestionResult, Optional[TrainingState]]:
    """Ingest ``csv_path`` and run one full training cycle."""
    orchestrator = create_orchestrator(config)
    upload = ingest_csv(config, csv_path)
    version = orchestrator.begin_cycle()
    orchestrator.ingest(version, upload.tickets)
    progress = _ProgressTask("Estimating ticket complexity", show_progress)
    try:
        state = orchestrator.train(version, progress_callback=progress.update)
    finally:
        progress.done()
    return orchestrator, upload, state


def render_summary(upload: IngestionResult, orchestrator: TrainingOrchestrator) -> List[str]:
    """Format the outcome of a training cycle as a plain text table."""
    rows: List[Tuple[str, str]] = [
        ("Rows read", str(upload.profile.row_count)),
        ("Tickets trained", str(len(upload.tickets))),
        ("Rows skipped", str(upload.skipped_rows)),
        ("Training status", orchestrator.status),
    ]
    accuracy = orchestrator.accuracy()
    if accuracy.ok:
        report = accuracy.value
        rows.append(("Category accuracy", f"{report.category_accuracy * 100:.1f}%"))
        rows.append(("Priority accuracy", f"{report.priority_accuracy * 100:.1f}%"))
        rows.append(("Overall score", f"{report.overall_score * 100:.1f}%"))
    else:
        rows.append(("Accuracy", accuracy.reason))
    for cause in orchestrator.root_causes().value:
        rows.append((f"Root cause: {cause.name}", str(cause.tickets)))
    for row in orchestrator.status_distribution().value:
        rows.append((f"Status: {row.name}", str(row.tickets)))
    kpis = orchestrator.kpis()
    if kpis.ok and kpis.value.avg_time_to_resolution is not None:
        rows.append(("Avg resolution", f"{kpis.value.avg_time_to_resolution:.2f}h"))
        rows.append(("First contact", f"{kpis.value.first_contact_resolution:.1f}%"))

    label_width = max(len(label) for label, _ in rows)
    lines = [f"{'Metric'.ljust(label_width)}  Value", f"{'-' * label_width}  -----"]
    for label, value in rows:
        lines.append(f"{label.ljust(label_width)}  {value}")
    if accuracy.ok:
        lines.extend(["", *accuracy.value.notes])
    return lines


def train_knowledge_base(options: TrainOptions, *, base_dir: Optional[Path] = None) -> TrainingOrchestrator:
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    _prepare_logging(
        config,
        base_dir=base_dir,
        console_level=options.console_level,
        simple_console=options.simple_console,
    )
    orchestrator, upload, state = train_from_csv(
        config, resolve_path(options.csv_path), show_progress=not options.show_console_log
    )
    for line in render_summary(upload, orchestrator):
        print(line)

    if options.write_reports and state is not None:
        reporting_cfg = config.get("reporting", {})
        output_directory = resolve_path(
            options.output_directory or reporting_cfg.get("output_directory", "reports"), base=base_dir
        )
        writer = SnapshotReportWriter(output_directory=output_directory)
        paths = writer.write_all(state, orchestrator.sla_risks())
        for path in paths:
            print(f"Report written to {path}")
    return orchestrator


def search_tickets(options: SearchOptions, *, base_dir: Optional[Path] = None) -> List[SimilarTicket]:
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    _prepare_logging(config, base_dir=base_dir, console_level=options.console_level)
    orchestrator, _, _ = train_from_csv(config, resolve_path(options.csv_path))
    matches = orchestrator.search(options.query, limit=options.limit)
    if not matches:
        print("No similar tickets found.")
    for match in matches:
        ticket = match.ticket
        print(
            f"{match.similarity_score:8.2f}  {ticket.ticket_no:<12} {ticket.category:<20} "
            f"{ticket.priority:<9} {ticket.problem_description[:70]}"
        )
    return matches


def sla_risk_report(options: SlaOptions, *, base_dir: Optional[Path] = None) -> List[SlaRiskEntry]:
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    _prepare_logging(config, base_dir=base_dir, console_level=options.console_level)
    now: Optional[datetime] = None
    if options.now:
        now = parse_timestamp(options.now)
        if now is None:
            raise ValueError(f"Unable to parse --now value {options.now!r}")
    orchestrator, _, _ = train_from_csv(config, resolve_path(options.csv_path))
    entries = orchestrator.sla_risks(now=now)
    if not entries:
        print("No open tickets with due dates found in the knowledge base.")
    for entry in entries:
        due = "Overdue" if entry.time_remaining.startswith("-") else f"Due in {entry.time_remaining}"
        print(
            f"{entry.ticket_no:<12} {entry.risk_score * 100:5.0f}%  {due:<16} "
            f"{entry.technician or '-':<16} {entry.problem_snippet}"
        )
    return entries
