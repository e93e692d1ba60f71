"""
Brute-force cosine-similarity ranking.

Every call rescans the full candidate list it is given: O(n·d) for n
candidates of dimensionality d. There is no index, so results are exact
and deterministic for identical inputs.
"""

import math
from typing import Iterable, List, Optional, Sequence

from memory_core.core.exceptions import DimensionMismatchError, ValidationError
from memory_core.models.chunk import Chunk, RankedChunk


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors of equal length.

    Each vector is divided by its largest absolute component before the
    products are summed, so very large or very small finite magnitudes
    neither overflow nor underflow. Returns 0.0 when either vector has
    zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
        ValidationError: If a component is NaN or infinite.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    scale_a = max((abs(x) for x in a), default=0.0)
    scale_b = max((abs(y) for y in b), default=0.0)
    if scale_a == 0.0 or scale_b == 0.0:
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        x /= scale_a
        y /= scale_b
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    if math.isnan(score):
        raise ValidationError("Cosine similarity is undefined for non-finite vectors")
    # Rounding can push |score| slightly past 1.
    return max(-1.0, min(1.0, score))


def rank(
    query: Sequence[float],
    candidates: Iterable[Chunk],
    top_k: int,
    min_score: Optional[float] = None,
) -> List[RankedChunk]:
    """
    Order *candidates* by cosine similarity to *query*.

    Args:
        query: Query vector.
        candidates: Chunks to score.
        top_k: Maximum number of results.
        min_score: Drop results scoring strictly below this.

    Returns:
        Ranked chunks, best first. Ties keep candidate order.

    Raises:
        ValidationError: If the query vector is empty.
        DimensionMismatchError: If any candidate's dimensionality differs
            from the query's. The whole call fails.
    """
    if not query:
        raise ValidationError("Query vector must not be empty")

    candidates = list(candidates)
    dims = len(query)
    for chunk in candidates:
        if len(chunk.vector) != dims:
            raise DimensionMismatchError(dims, len(chunk.vector), chunk.id)

    if top_k <= 0:
        return []

    scored = [(cosine_similarity(query, c.vector), c) for c in candidates]
    # sort() is stable, so equal scores keep their input order
    scored.sort(key=lambda pair: pair[0], reverse=True)

    results: List[RankedChunk] = []
    for score, chunk in scored[:top_k]:
        if min_score is not None and score < min_score:
            continue
        results.append(RankedChunk.from_chunk(chunk, score))
    return results
