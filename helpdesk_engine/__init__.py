"""Ticket similarity search and classification engine for the helpdesk dashboard."""

from .config import load_config, resolve_path
from .logging_setup import configure_logging
from .ingestion import load_tickets_csv
from .records import Ticket
from .similarity import score_similarity
from .training import TrainingOrchestrator, TrainingState
from .reporting import SnapshotReportWriter

__all__ = [
    "load_config",
    "resolve_path",
    "configure_logging",
    "load_tickets_csv",
    "Ticket",
    "score_similarity",
    "TrainingOrchestrator",
    "TrainingState",
    "SnapshotReportWriter",
]
