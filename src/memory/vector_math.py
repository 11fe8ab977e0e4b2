"""Cosine similarity for a single pair and for a query against a matrix."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from src.errors import DimensionMismatchError


def cosine_similarities(query: Sequence[float] | np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Score *query* against every row of *matrix* in one pass.

    Args:
        query: vector of shape (dim,)
        matrix: candidates of shape (n, dim)

    Returns:
        Scores of shape (n,), clipped to [-1, 1]. Rows where either side has
        zero magnitude score NaN.
    """
    query = np.asarray(query, dtype=np.float64)
    matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    if matrix.shape[1] != query.shape[0]:
        raise DimensionMismatchError(query.shape[0], matrix.shape[1])

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = np.dot(matrix, query)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = dots / norms
    scores[norms == 0.0] = np.nan
    return np.clip(scores, -1.0, 1.0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of *a* and *b* in [-1, 1].

    Raises ``DimensionMismatchError`` when the lengths differ. Returns NaN
    when either vector has zero magnitude; callers treat NaN as "no
    similarity".
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    return float(cosine_similarities(a, np.asarray([b], dtype=np.float64))[0])
