"""Training cycle orchestration and the read models exposed to callers.

A cycle runs ``begin_cycle -> ingest -> finalize -> train``. Each cycle owns a
version number; the derived structures of a cycle are published together as
one frozen :class:`TrainingState` once training finishes. Starting a new cycle
drops the published state and the complexity cache immediately; callers still
holding the old state keep reading consistent old data, and any work for the
old version that completes later is discarded.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .aggregation import (
    assign_root_causes,
    build_heatmap,
    build_keyword_cache,
    distinct_in_order,
    group_descriptions,
    ordered_priorities,
    summarize_root_causes,
)
from .config import ENGINE_DEFAULTS
from .evaluation import evaluate_corpus
from .indexing import CorpusIndex, build_index
from .operations import (
    average_resolution_times,
    deflection_rate,
    resolution_summary,
    status_distribution,
    technician_workload,
)
from .oracle import NEUTRAL_COMPLEXITY, StaticTextOracle, TextOracle, suggest_with_retry
from .records import (
    DEFAULT_PRIORITY,
    UNCATEGORIZED,
    AccuracyReport,
    HeatmapCell,
    IssueAnalysis,
    KeywordFrequency,
    Kpis,
    NamedCount,
    ResolutionTime,
    RootCauseAggregate,
    SimilarTicket,
    SlaRiskEntry,
    Ticket,
)
from .similarity import score_similarity
from .sla import OPEN_STATUSES, is_eligible, rank_sla_risks
from .task_queue import RateLimitedTaskQueue

LOGGER = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

REASON_OK = "ok"
REASON_NOT_TRAINED = "not_trained"
REASON_INSUFFICIENT_DATA = "insufficient_data"
REASON_NO_ROOT_CAUSES = "no_root_causes"

SIMILAR_ISSUE_LIMIT = 3


class TrainingSuperseded(RuntimeError):
    """A newer cycle started while this one was still running."""


@dataclass(frozen=True)
class ReadResult:
    """A read-model value plus the reason it may be empty."""

    value: Any
    reason: str = REASON_OK

    @property
    def ok(self) -> bool:
        return self.reason == REASON_OK


@dataclass(frozen=True)
class TrainingState:
    version: int
    corpus: Tuple[Ticket, ...]
    index: CorpusIndex
    accuracy: Optional[AccuracyReport]
    root_causes: Tuple[RootCauseAggregate, ...]
    heatmap: Tuple[HeatmapCell, ...]
    keywords: Mapping[str, Tuple[KeywordFrequency, ...]]
    categories: Tuple[str, ...]
    priorities: Tuple[str, ...]
    technician_workload: Tuple[NamedCount, ...]
    status_distribution: Tuple[NamedCount, ...]
    resolution_times: Tuple[ResolutionTime, ...]
    avg_resolution_hours: Optional[float]
    first_contact_rate: Optional[float]
    trained_at: datetime


class TrainingOrchestrator:
    """Sole owner and writer of the corpus and everything derived from it."""

    def __init__(
        self,
        *,
        oracle: Optional[TextOracle] = None,
        task_queue: Optional[RateLimitedTaskQueue] = None,
        settings: Optional[Dict[str, Any]] = None,
        rng: Optional[random.Random] = None,
        seed_corpus: Iterable[Ticket] = (),
        open_statuses: Iterable[str] = OPEN_STATUSES,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.oracle = oracle or StaticTextOracle()
        self.task_queue = task_queue or RateLimitedTaskQueue()
        self.settings = dict(ENGINE_DEFAULTS)
        self.settings.update(settings or {})
        if rng is None:
            seed = self.settings.get("seed")
            rng = random.Random(seed) if seed is not None else random.Random()
        self.rng = rng
        self.seed_corpus: Tuple[Ticket, ...] = tuple(seed_corpus)
        self.open_statuses = frozenset(status.lower() for status in open_statuses)
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep

        self.status = STATUS_IDLE
        self._cycle = 0
        self._staged: List[Ticket] = []
        self._frozen: Optional[Tuple[Ticket, ...]] = None
        self._state: Optional[TrainingState] = None
        self._complexity_cache: Dict[str, int] = {}
        self._feedback_helpful = 0
        self._feedback_total = 0

    # -- Cycle lifecycle -----------------------------------------------------------
    @property
    def version(self) -> int:
        return self._cycle

    @property
    def state(self) -> Optional[TrainingState]:
        return self._state

    def _is_current(self, version: int) -> bool:
        return version == self._cycle

    def _check_current(self, version: int) -> None:
        if not self._is_current(version):
            raise TrainingSuperseded(f"Cycle {version} was superseded by cycle {self._cycle}")

    def begin_cycle(self) -> int:
        """Start a new cycle, discarding the previous snapshot and caches."""
        self._cycle += 1
        self._staged = []
        self._frozen = None
        self._state = None
        self._complexity_cache = {}
        self.status = STATUS_IN_PROGRESS
        LOGGER.info("Started training cycle %s", self._cycle)
        return self._cycle

    def ingest(self, version: int, tickets: Iterable[Ticket]) -> int:
        self._check_current(version)
        if self._frozen is not None:
            raise RuntimeError(f"Cycle {version} is already finalized")
        before = len(self._staged)
        self._staged.extend(tickets)
        LOGGER.debug("Cycle %s staged %s tickets", version, len(self._staged) - before)
        return len(self._staged)

    def finalize(self, version: int) -> Tuple[Ticket, ...]:
        self._check_current(version)
        if self._frozen is None:
            self._frozen = tuple(self._staged)
            self._staged = []
            LOGGER.info("Cycle %s finalized with %s tickets", version, len(self._frozen))
        return self._frozen

    def train(
        self,
        version: int,
        *,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
    ) -> Optional[TrainingState]:
        """Build every derived structure for ``version`` and publish them together.

        Returns ``None`` when a newer cycle superseded this one mid-way.
        ``progress_callback`` follows complexity prefetching for open tickets.
        """
        try:
            corpus = self.finalize(version)
            state = self._build_state(version, corpus)
            self._check_current(version)
        except TrainingSuperseded as exc:
            LOGGER.info("Discarding results of cycle %s: %s", version, exc)
            return None
        except Exception:
            if self._is_current(version):
                self.status = STATUS_FAILED
            LOGGER.exception("Training cycle %s failed", version)
            raise

        self._state = state
        self.status = STATUS_COMPLETED
        LOGGER.info(
            "Published training cycle %s: %s tickets, %s root causes",
            version,
            len(state.corpus),
            len(state.root_causes),
        )
        if self.settings.get("prefetch_complexity"):
            self._prime_complexity(state, progress_callback=progress_callback)
        return state

    def retrain_from(self, tickets: Iterable[Ticket]) -> Optional[TrainingState]:
        version = self.begin_cycle()
        self.ingest(version, tickets)
        return self.train(version)

    def _build_state(self, version: int, corpus: Tuple[Ticket, ...]) -> TrainingState:
        index = build_index(corpus, version=version)
        accuracy = evaluate_corpus(
            corpus,
            holdout_fraction=float(self.settings["holdout_fraction"]),
            min_size=int(self.settings["min_evaluation_size"]),
            rng=self.rng,
        )
        assignments = assign_root_causes(corpus)
        root_causes = summarize_root_causes(assignments)
        categories = distinct_in_order(ticket.category for ticket in corpus)
        priorities = ordered_priorities(corpus)
        heatmap = build_heatmap(corpus, categories=categories, priorities=priorities)
        keywords = build_keyword_cache(
            corpus,
            assignments,
            sample_size=int(self.settings["keyword_sample_size"]),
            top_n=int(self.settings["keyword_top_n"]),
            rng=self.rng,
        )
        if self.settings.get("oracle_keywords"):
            keywords = self._refine_keywords(version, corpus, assignments, keywords)
        avg_hours, first_contact = resolution_summary(corpus)
        return TrainingState(
            version=version,
            corpus=corpus,
            index=index,
            accuracy=accuracy,
            root_causes=tuple(root_causes),
            heatmap=tuple(heatmap),
            keywords=MappingProxyType(dict(keywords)),
            categories=tuple(categories),
            priorities=tuple(priorities),
            technician_workload=tuple(technician_workload(corpus)),
            status_distribution=tuple(status_distribution(corpus)),
            resolution_times=tuple(average_resolution_times(corpus)),
            avg_resolution_hours=avg_hours,
            first_contact_rate=first_contact,
            trained_at=datetime.now(timezone.utc),
        )

    def _refine_keywords(
        self,
        version: int,
        corpus: Sequence[Ticket],
        assignments: Sequence[str],
        local: Dict[str, Tuple[KeywordFrequency, ...]],
    ) -> Dict[str, Tuple[KeywordFrequency, ...]]:
        grouped = group_descriptions(corpus, assignments)
        sample_size = int(self.settings["keyword_sample_size"])
        top_n = int(self.settings["keyword_top_n"])

        def ask(cause: str) -> Tuple[KeywordFrequency, ...]:
            descriptions = grouped[cause]
            if len(descriptions) > sample_size:
                descriptions = self.rng.sample(descriptions, sample_size)
            return tuple(self.oracle.extract_keywords(descriptions, cause)[:top_n])

        causes = list(local)
        refined = self.task_queue.map(
            ask,
            causes,
            fallback=lambda cause: local[cause],
            should_continue=lambda: self._is_current(version),
            label="keyword extraction",
        )
        self._check_current(version)
        return {cause: keywords or local[cause] for cause, keywords in zip(causes, refined)}

    # -- Complexity cache ----------------------------------------------------------
    def _prime_complexity(
        self,
        state: TrainingState,
        *,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
    ) -> None:
        missing = [
            ticket
            for ticket in state.corpus
            if is_eligible(ticket, open_statuses=self.open_statuses)
            and ticket.ticket_no not in self._complexity_cache
        ]
        if not missing:
            return
        scores = self.task_queue.map(
            lambda ticket: self.oracle.estimate_complexity(ticket.problem_description),
            missing,
            fallback=lambda ticket: NEUTRAL_COMPLEXITY,
            should_continue=lambda: self._is_current(state.version),
            progress_callback=progress_callback,
            label="complexity estimate",
        )
        if not self._is_current(state.version) or self._state is not state:
            LOGGER.info("Dropping %s complexity scores for superseded cycle %s", len(scores), state.version)
            return
        for ticket, score in zip(missing, scores):
            self._complexity_cache[ticket.ticket_no] = int(score)
        LOGGER.debug("Cached complexity for %s tickets", len(scores))

    def complexity_for(self, ticket: Ticket) -> int:
        return self._complexity_cache.get(ticket.ticket_no, NEUTRAL_COMPLEXITY)

    # -- Read models ---------------------------------------------------------------
    def root_causes(self) -> ReadResult:
        state = self._state
        if state is None:
            return ReadResult([], REASON_NOT_TRAINED)
        if not state.root_causes:
            return ReadResult([], REASON_NO_ROOT_CAUSES)
        return ReadResult(list(state.root_causes))

    def heatmap(self) -> ReadResult:
        state = self._state
        if state is None:
            return ReadResult([], REASON_NOT_TRAINED)
        return ReadResult(list(state.heatmap))

    def accuracy(self) -> ReadResult:
        state = self._state
        if state is None:
            return ReadResult(None, REASON_NOT_TRAINED)
        if state.accuracy is None:
            return ReadResult(None, REASON_INSUFFICIENT_DATA)
        return ReadResult(state.accuracy)

    def keywords(self, root_cause: str) -> List[KeywordFrequency]:
        state = self._state
        if state is None:
            return []
        return list(state.keywords.get(root_cause, ()))

    def technician_workload(self) -> ReadResult:
        state = self._state
        if state is None:
            return ReadResult([], REASON_NOT_TRAINED)
        return ReadResult(list(state.technician_workload))

    def status_distribution(self) -> ReadResult:
        state = self._state
        if state is None:
            return ReadResult([], REASON_NOT_TRAINED)
        return ReadResult(list(state.status_distribution))

    def resolution_times(self) -> ReadResult:
        state = self._state
        if state is None:
            return ReadResult([], REASON_NOT_TRAINED)
        if not state.resolution_times:
            return ReadResult([], REASON_INSUFFICIENT_DATA)
        return ReadResult(list(state.resolution_times))

    def kpis(self) -> ReadResult:
        """Headline figures: deflection from user feedback, resolution from the corpus."""
        state = self._state
        if state is None:
            return ReadResult(None, REASON_NOT_TRAINED)
        return ReadResult(
            Kpis(
                deflection_rate=deflection_rate(self._feedback_helpful, self._feedback_total),
                avg_time_to_resolution=state.avg_resolution_hours,
                first_contact_resolution=state.first_contact_rate,
                feedback_count=self._feedback_total,
            )
        )

    def submit_feedback(self, helpful: bool) -> Optional[float]:
        """Record whether a suggestion solved the user's problem.

        Returns the updated deflection rate. Feedback counts survive new
        training cycles.
        """
        self._feedback_total += 1
        if helpful:
            self._feedback_helpful += 1
        rate = deflection_rate(self._feedback_helpful, self._feedback_total)
        LOGGER.info(
            "Recorded %s feedback; deflection rate now %s%%",
            "positive" if helpful else "negative",
            rate,
        )
        return rate

    def search(self, query: str, *, limit: Optional[int] = None) -> List[SimilarTicket]:
        state = self._state
        if state is None:
            return score_similarity(query, self.seed_corpus, limit=limit)
        return score_similarity(
            query, state.corpus, state.index, known_categories=state.categories, limit=limit
        )

    def sla_risks(self, *, now: Optional[datetime] = None) -> List[SlaRiskEntry]:
        state = self._state
        if state is None:
            return []
        self._prime_complexity(state)
        return rank_sla_risks(
            state.corpus,
            self.complexity_for,
            now=now,
            top_n=int(self.settings["sla_top_n"]),
            open_statuses=self.open_statuses,
        )

    def analyze_issue(
        self,
        description: str,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        image: Optional[str] = None,
    ) -> IssueAnalysis:
        """Find similar tickets for a new issue and attach a suggested fix."""
        matches = self.search(description, limit=SIMILAR_ISSUE_LIMIT)
        top = matches[0] if matches else None
        analysis = IssueAnalysis(
            predicted_module=top.ticket.category if top else (category or UNCATEGORIZED),
            predicted_priority=top.ticket.priority if top else (priority or DEFAULT_PRIORITY),
            similar_issues=matches,
        )
        reuse_threshold = float(self.settings["reuse_solution_score"])
        if top and top.ticket.solution_text and top.similarity_score >= reuse_threshold:
            LOGGER.info(
                "Reusing solution from ticket %s (score %.1f)", top.ticket.ticket_no, top.similarity_score
            )
            analysis.ai_suggestion = top.ticket.solution_text
            analysis.from_similar_issue = True
            return analysis
        analysis.ai_suggestion = suggest_with_retry(
            self.oracle,
            description,
            category,
            priority,
            image,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            sleep=self._sleep,
            rng=self.rng,
        )
        return analysis
