"""Inverted index and IDF construction over a corpus snapshot."""
from __future__ import annotations

import itertools
import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .records import Ticket
from .tokenizer import tokenize, unique_terms

LOGGER = logging.getLogger(__name__)

_VERSIONS = itertools.count(1)


class SnapshotMismatchError(AssertionError):
    """An index was combined with a corpus it was not built from."""


@dataclass(frozen=True)
class CorpusIndex:
    """Inverted index plus IDF table, bound to the corpus snapshot they came from.

    Postings hold ticket positions in ``corpus`` appended in corpus order;
    callers must not rely on any other ordering.
    """

    corpus: Tuple[Ticket, ...]
    postings: Mapping[str, Tuple[int, ...]]
    idf: Mapping[str, float]
    version: int = field(default_factory=lambda: next(_VERSIONS))

    @property
    def document_count(self) -> int:
        return len(self.corpus)

    @property
    def unseen_idf(self) -> float:
        """IDF weight for a term absent from the table (document frequency 0)."""
        return math.log(1 + self.document_count / 1)

    def matches(self, corpus: Sequence[Ticket]) -> bool:
        return corpus is self.corpus or tuple(corpus) == self.corpus

    def ensure_matches(self, corpus: Sequence[Ticket]) -> None:
        if not self.matches(corpus):
            raise SnapshotMismatchError(
                f"Index version {self.version} was built from a different corpus snapshot"
            )

    def candidates(self, terms: Iterable[str]) -> Set[int]:
        positions: Set[int] = set()
        for term in terms:
            positions.update(self.postings.get(term, ()))
        return positions

    def idf_for(self, term: str) -> float:
        return self.idf.get(term, self.unseen_idf)


def document_terms(ticket: Ticket) -> List[str]:
    """Unique index terms for a ticket: its description plus its category."""
    return unique_terms(tokenize(f"{ticket.problem_description} {ticket.category}"))


def smoothed_idf(document_frequency: int, document_count: int) -> float:
    return math.log(1 + (document_count + 1) / (document_frequency + 1))


def build_index(corpus: Sequence[Ticket], *, version: Optional[int] = None) -> CorpusIndex:
    """Build the inverted index and IDF table for ``corpus``."""
    snapshot = tuple(corpus)
    postings: Dict[str, List[int]] = defaultdict(list)
    doc_freq: Counter[str] = Counter()
    for position, ticket in enumerate(snapshot):
        for term in document_terms(ticket):
            postings[term].append(position)
            doc_freq[term] += 1

    document_count = len(snapshot)
    idf = {term: smoothed_idf(freq, document_count) for term, freq in doc_freq.items()}
    frozen_postings = {term: tuple(positions) for term, positions in postings.items()}
    if version is None:
        index = CorpusIndex(corpus=snapshot, postings=frozen_postings, idf=idf)
    else:
        index = CorpusIndex(corpus=snapshot, postings=frozen_postings, idf=idf, version=version)
    LOGGER.info(
        "Built index version %s over %s tickets with %s terms",
        index.version,
        document_count,
        len(frozen_postings),
    )
    return index
