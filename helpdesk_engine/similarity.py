"""Heuristic similarity ranking of tickets against a free-text query."""
from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .indexing import CorpusIndex
from .records import SimilarTicket, Ticket
from .tokenizer import normalize_text, tokenize, unique_terms

LOGGER = logging.getLogger(__name__)

WORD_MATCH_POINTS = 15.0
SUBSTRING_MATCH_POINTS = 5.0
PHRASE_BONUS = 30.0
CATEGORY_TOKEN_BONUS = 40.0
CATEGORY_NAME_BONUS = 50.0


def _query_bigrams(terms: Sequence[str]) -> List[Tuple[str, str]]:
    return list(dict.fromkeys(zip(terms, terms[1:])))


def _adjacent_words(description: str) -> Set[Tuple[str, str]]:
    """Pairs of neighbouring words in the normalised description."""
    words = normalize_text(description).split()
    return set(zip(words, words[1:]))


def _word_patterns(terms: Iterable[str]) -> Dict[str, re.Pattern[str]]:
    return {term: re.compile(rf"\b{re.escape(term)}\b") for term in terms}


def _tfidf_score(description: str, terms: Sequence[str], index: CorpusIndex) -> float:
    counts = Counter(tokenize(description))
    score = 0.0
    for term in terms:
        tf = counts.get(term, 0)
        if tf > 0:
            score += (1 + math.log(tf)) * index.idf_for(term)
    return score


def _bootstrap_score(description_lower: str, patterns: Dict[str, re.Pattern[str]]) -> float:
    score = 0.0
    for term, pattern in patterns.items():
        if pattern.search(description_lower):
            score += WORD_MATCH_POINTS
        elif term in description_lower:
            score += SUBSTRING_MATCH_POINTS
    return score


def _category_bonus(
    category: str,
    *,
    term_set: set[str],
    query_lower: str,
    known_categories: set[str],
) -> float:
    category_lower = (category or "").lower()
    if not category_lower:
        return 0.0
    bonus = 0.0
    if term_set.intersection(tokenize(category_lower)):
        bonus += CATEGORY_TOKEN_BONUS
    if category_lower in known_categories and category_lower in query_lower:
        bonus += CATEGORY_NAME_BONUS
    return bonus


def _named_category_positions(
    corpus: Sequence[Ticket], query_lower: str, known_categories: Set[str]
) -> Set[int]:
    named = {category for category in known_categories if category in query_lower}
    if not named:
        return set()
    return {
        position
        for position, ticket in enumerate(corpus)
        if (ticket.category or "").lower() in named
    }


def candidate_positions(
    terms: Sequence[str],
    corpus: Sequence[Ticket],
    index: Optional[CorpusIndex],
    *,
    query: str = "",
    known_categories: Iterable[str] = (),
) -> Sequence[int]:
    """Positions that can score above zero for ``terms``.

    Every bonus is reachable from the candidate set: word and phrase matches
    need a shared indexed term, the category-name bonus is added through the
    categories named in ``query``. Pruning therefore never changes a score.
    """
    if index is None:
        return range(len(corpus))
    index.ensure_matches(corpus)
    candidates = index.candidates(terms)
    known = {category.lower() for category in known_categories if category}
    candidates |= _named_category_positions(corpus, (query or "").lower(), known)
    if candidates and len(candidates) < len(corpus):
        return sorted(candidates)
    return range(len(corpus))


def score_similarity(
    query: str,
    corpus: Sequence[Ticket],
    index: Optional[CorpusIndex] = None,
    *,
    known_categories: Optional[Iterable[str]] = None,
    limit: Optional[int] = None,
) -> List[SimilarTicket]:
    """Rank ``corpus`` against ``query``, highest score first.

    With an ``index`` the term score is log-scaled TF times smoothed IDF;
    without one a fixed word/substring point scheme is used. Phrase and
    category bonuses apply in both modes; a phrase counts only when its two
    words are neighbours in the description. Ties keep corpus order.
    """
    terms = tokenize(query)
    if not terms:
        return []
    query_terms = unique_terms(terms)
    term_set = set(query_terms)
    bigrams = _query_bigrams(terms)
    query_lower = (query or "").lower()
    if known_categories is None:
        known_categories = {ticket.category for ticket in corpus}
    known = {category.lower() for category in known_categories if category}
    patterns = _word_patterns(query_terms) if index is None else {}

    scored: List[Tuple[float, int]] = []
    positions = candidate_positions(
        query_terms, corpus, index, query=query, known_categories=known
    )
    for position in positions:
        ticket = corpus[position]
        description_lower = ticket.problem_description.lower()
        if index is not None:
            score = _tfidf_score(ticket.problem_description, query_terms, index)
        else:
            score = _bootstrap_score(description_lower, patterns)
        if bigrams:
            neighbours = _adjacent_words(ticket.problem_description)
            score += PHRASE_BONUS * sum(1 for bigram in bigrams if bigram in neighbours)
        score += _category_bonus(
            ticket.category, term_set=term_set, query_lower=query_lower, known_categories=known
        )
        if score > 0:
            scored.append((score, position))

    scored.sort(key=lambda item: (-item[0], item[1]))
    if limit is not None:
        scored = scored[:limit]
    LOGGER.debug(
        "Query %r scored %s matches (%s mode)",
        query,
        len(scored),
        "trained" if index is not None else "bootstrap",
    )
    return [SimilarTicket(ticket=corpus[position], similarity_score=score) for score, position in scored]
