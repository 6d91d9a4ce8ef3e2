"""
Similarity Engine - sparse term-weight matching for SynapseIndex.

This module provides the scoring primitives used by the ranking engine:
- Term-frequency embeddings (L2-normalized, truncated sparse maps)
- Cosine similarity with exact query-term boosting
- Recency step weighting
- Interaction (click) boosting
- Keyword overlap matching and relevance explanations
"""

import re
import math
import logging
from typing import Dict, Iterable, List, Optional, Sequence
from collections import Counter

import numpy as np

logger = logging.getLogger(__name__)

# Common English function words. Tokens of length <= 2 are dropped separately.
STOP_WORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'from', 'as', 'is', 'was', 'are', 'were', 'been',
    'be', 'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could',
    'should', 'this', 'that', 'these', 'those', 'its'
})

MAX_EMBEDDING_TERMS = 100
MAX_KEYWORDS = 10

EXACT_MATCH_BOOST = 0.1
KEYWORD_MATCH_BOOST = 0.1
INTERACTION_WEIGHT = 0.3

MS_PER_DAY = 1000 * 60 * 60 * 24

# (max age in days, weight) - first bucket the age falls under wins
RECENCY_STEPS = (
    (1, 1.0),
    (7, 0.9),
    (30, 0.7),
    (90, 0.5),
)
RECENCY_FLOOR = 0.3

_NON_WORD = re.compile(r'[^\w\s]')


def tokenize(text: str) -> List[str]:
    """
    Tokenize text into indexable terms.

    - Lowercases
    - Replaces punctuation with whitespace
    - Drops tokens of two characters or fewer
    - Filters stop words
    """
    if not text or not isinstance(text, str):
        return []

    words = _NON_WORD.sub(' ', text.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOP_WORDS]


def query_terms(query: str) -> List[str]:
    """Raw lowercase query terms used for exact-match and keyword boosting."""
    if not query or not isinstance(query, str):
        return []
    return [t for t in query.lower().split() if len(t) > 2]


def embed(text: str, max_terms: int = MAX_EMBEDDING_TERMS) -> Dict[str, float]:
    """
    Build a sparse term-weight map for text.

    Term frequencies are L2-normalized, then only the `max_terms` heaviest
    terms are kept. Ties keep first-seen order.
    """
    tokens = tokenize(text)
    if not tokens:
        return {}

    tf = Counter(tokens)
    magnitude = math.sqrt(sum(count * count for count in tf.values()))
    if magnitude == 0:
        return {}

    weights = {term: count / magnitude for term, count in tf.items()}
    ranked = sorted(weights.items(), key=lambda item: item[1], reverse=True)

    return dict(ranked[:max_terms])


def extract_keywords(text: str, limit: int = MAX_KEYWORDS,
                     max_terms: int = MAX_EMBEDDING_TERMS) -> List[str]:
    """Top terms of the embedding, heaviest first."""
    return list(embed(text, max_terms))[:limit]


def cosine_similarity(vec1: Dict[str, float], vec2: Dict[str, float]) -> float:
    """Cosine similarity over the union of terms; missing terms weigh 0."""
    if not vec1 or not vec2:
        return 0.0

    terms = list(set(vec1) | set(vec2))
    a = np.array([vec1.get(t, 0.0) for t in terms])
    b = np.array([vec2.get(t, 0.0) for t in terms])

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def similarity(
    query_vec: Dict[str, float],
    doc_vec: Dict[str, float],
    terms: Sequence[str] = ()
) -> float:
    """
    Cosine similarity plus an exact-match boost, clamped to 1.0.

    Each query term present in `doc_vec` adds EXACT_MATCH_BOOST.
    """
    score = cosine_similarity(query_vec, doc_vec)

    if terms:
        matched = sum(1 for t in terms if doc_vec.get(t.lower()))
        score += matched * EXACT_MATCH_BOOST

    return min(score, 1.0)


def recency_score(indexed_at: int, now: int) -> float:
    """Step-function weight for a chunk's age (timestamps in ms)."""
    age_days = (now - indexed_at) / MS_PER_DAY

    for max_days, weight in RECENCY_STEPS:
        if age_days < max_days:
            return weight

    return RECENCY_FLOOR


def interaction_score(clicks: Optional[int]) -> float:
    """Logarithmic click boost: 0 clicks = 1.0, 9 clicks = 1.3, 99 clicks = 1.6."""
    if not clicks:
        return 1.0
    return 1.0 + math.log10(clicks + 1) * INTERACTION_WEIGHT


def match_keywords(keywords: Iterable[str], terms: Sequence[str]) -> List[str]:
    """
    Keywords that partially match any query term.

    Matching is substring containment in either direction, so short terms
    can match inside longer keywords.
    """
    return [k for k in keywords if any(t in k or k in t for t in terms)]


def keyword_boost(matched: Sequence[str]) -> float:
    return 1.0 + len(matched) * KEYWORD_MATCH_BOOST


def explain_relevance(
    sim: float,
    recency: float,
    interaction: float,
    matched: Sequence[str]
) -> str:
    """Human-readable summary of why a chunk ranked."""
    parts = []

    if sim > 0.7:
        parts.append("High semantic match")
    elif sim > 0.4:
        parts.append("Moderate match")

    if recency > 0.8:
        parts.append("Recent content")
    if interaction > 1.2:
        parts.append("Frequently accessed")
    if matched:
        parts.append(f"Matches: {', '.join(matched[:3])}")

    return " • ".join(parts) or "Relevant"
