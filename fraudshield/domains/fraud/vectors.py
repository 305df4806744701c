"""Cosine-distance nearest-neighbour search over the fraud pattern catalog."""

from collections.abc import Sequence

import numpy as np
import structlog

from .models import FraudPattern, PatternMatch

logger = structlog.get_logger()


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """1 - cosine similarity. Lower is more similar; range [0, 2]."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0.0:
        return 1.0
    return float(1.0 - np.dot(va, vb) / denom)


def nearest_pattern(
    embedding: Sequence[float],
    patterns: Sequence[FraudPattern],
) -> PatternMatch | None:
    """Return the single closest pattern, ties broken on lowest pattern_id.

    Patterns whose dimensionality differs from the query are skipped.
    """
    query = np.asarray(embedding, dtype=np.float64)
    candidates = sorted(
        (p for p in patterns if len(p.embedding) == query.shape[0]),
        key=lambda p: p.pattern_id,
    )
    skipped = len(patterns) - len(candidates)
    if skipped:
        logger.warning("fraud_patterns_dimension_mismatch", skipped=skipped, dim=query.shape[0])
    if not candidates:
        return None

    matrix = np.asarray([p.embedding for p in candidates], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    with np.errstate(divide="ignore", invalid="ignore"):
        similarity = np.where(norms > 0, matrix @ query / norms, 0.0)
    distances = 1.0 - similarity

    # argmin returns the first minimum, i.e. the lowest pattern_id on ties
    best = int(np.argmin(distances))
    pattern = candidates[best]
    return PatternMatch(
        pattern_id=pattern.pattern_id,
        severity=pattern.severity,
        distance=float(distances[best]),
        description=pattern.description,
    )
