"""
Term matcher: rank canonical terms for a free-text value.

Each candidate term is scored once:
    1. exact standard          → 1.0   "Exact match"
    2. exact variation         → 1.0   "Exact variation match"
    3. best non-exact signal   → < 1.0 (contains / similar term /
                                        similar variation / word similarity)

Scoring constants are tuned against real inventory pastes; the review
queue size and auto-match propagation depend on them, so keep them as is.
"""

from typing import Iterable, Optional
import structlog

from models.catalog import CanonicalTerm
from models.review import MatchReason, PotentialMatch
from utils.text_utils import normalize, similarity, split_words

logger = structlog.get_logger(__name__)

# Results
MAX_RESULTS = 8
MIN_INPUT_LENGTH = 2
MIN_CANDIDATE_SCORE = 0.3

# Contains: shorter/longer length ratio scaled down
CONTAINS_WEIGHT = 0.8
CONTAINS_MIN_SCORE = 0.4

# Whole-string fuzzy against the standard
SIMILAR_TERM_WEIGHT = 0.7
SIMILAR_TERM_MIN_SIMILARITY = 0.6

# Whole-string fuzzy against each variation
SIMILAR_VARIATION_WEIGHT = 0.65
SIMILAR_VARIATION_MIN_SIMILARITY = 0.6

# Word overlap
WORD_MATCH_MIN_SIMILARITY = 0.7
WORD_SIMILARITY_WEIGHT = 0.6


def find_matches(
    original_value: Optional[str],
    candidate_terms: Iterable[CanonicalTerm],
    limit: int = MAX_RESULTS
) -> list[PotentialMatch]:
    """
    Rank candidate terms for a value.

    Args:
        original_value: Raw cell value
        candidate_terms: Terms of one field (or one system for Device Type)
        limit: Maximum number of results

    Returns:
        Matches sorted by score descending; equal scores keep catalog order.
        Empty when the normalized value is shorter than 2 characters.
    """
    value = normalize(original_value)
    if len(value) < MIN_INPUT_LENGTH:
        return []

    matches: list[PotentialMatch] = []

    for term in candidate_terms:
        if normalize(term.standard) == value:
            matches.append(PotentialMatch(term=term, score=1.0, reason=MatchReason.EXACT))
            continue

        if any(normalize(v) == value for v in term.variations):
            matches.append(PotentialMatch(term=term, score=1.0, reason=MatchReason.EXACT_VARIATION))
            continue

        scored = _best_partial_score(value, term)
        if scored is not None and scored[0] > MIN_CANDIDATE_SCORE:
            matches.append(PotentialMatch(term=term, score=scored[0], reason=scored[1]))

    # sorted() is stable, so ties keep catalog order
    matches = sorted(matches, key=lambda m: m.score, reverse=True)[:limit]

    logger.debug(
        "term_matches_found",
        value=original_value,
        match_count=len(matches),
        top_score=matches[0].score if matches else None
    )

    return matches


def find_exact_term(
    original_value: Optional[str],
    candidate_terms: Iterable[CanonicalTerm]
) -> Optional[CanonicalTerm]:
    """
    First term whose standard or any variation equals the value (normalized).

    Unlike find_matches() this has no minimum length.
    """
    value = normalize(original_value)
    if not value:
        return None

    for term in candidate_terms:
        if normalize(term.standard) == value:
            return term
        if any(normalize(v) == value for v in term.variations):
            return term
    return None


def search_terms(
    query: Optional[str],
    candidate_terms: Iterable[CanonicalTerm],
    limit: int = 50
) -> list[CanonicalTerm]:
    """
    Manual catalog search.

    Returns terms whose standard or a variation contains the query
    (normalized), exact hits first, then by match score, then by name.
    An empty query lists every term alphabetically.
    """
    terms = list(candidate_terms)
    value = normalize(query)
    if not value:
        return sorted(terms, key=lambda t: normalize(t.standard))[:limit]

    ranked = []
    for term in terms:
        names = [normalize(term.standard)] + [normalize(v) for v in term.variations]
        if not any(value in name for name in names):
            continue
        exact = value in names
        best = max(similarity(value, name) for name in names)
        ranked.append((0 if exact else 1, -best, normalize(term.standard), term))

    ranked.sort(key=lambda r: r[:3])
    return [r[3] for r in ranked[:limit]]


def _best_partial_score(value: str, term: CanonicalTerm) -> Optional[tuple[float, MatchReason]]:
    """Best non-exact (score, reason) for a term, or None if no signal fires."""
    standard = normalize(term.standard)
    best: Optional[tuple[float, MatchReason]] = None

    def consider(score: float, reason: MatchReason) -> None:
        nonlocal best
        if best is None or score > best[0]:
            best = (score, reason)

    # Contains
    if standard and (value in standard or standard in value):
        score = min(len(value), len(standard)) / max(len(value), len(standard)) * CONTAINS_WEIGHT
        if score > CONTAINS_MIN_SCORE:
            consider(score, MatchReason.CONTAINS)

    # Similar term
    raw = similarity(value, standard)
    if raw > SIMILAR_TERM_MIN_SIMILARITY:
        consider(raw * SIMILAR_TERM_WEIGHT, MatchReason.SIMILAR_TERM)

    # Similar variation
    variation_score = None
    for variation in term.variations:
        raw = similarity(value, variation)
        if raw > SIMILAR_VARIATION_MIN_SIMILARITY:
            score = raw * SIMILAR_VARIATION_WEIGHT
            if variation_score is None or score > variation_score:
                variation_score = score
    if variation_score is not None:
        consider(variation_score, MatchReason.SIMILAR_VARIATION)

    # Word similarity
    input_words = value.split()
    standard_words = split_words(term.standard)
    if input_words and standard_words:
        matched = sum(
            1 for word in input_words
            if any(similarity(word, other) > WORD_MATCH_MIN_SIMILARITY for other in standard_words)
        )
        if matched:
            score = matched / max(len(input_words), len(standard_words)) * WORD_SIMILARITY_WEIGHT
            consider(score, MatchReason.WORD_SIMILARITY)

    return best
