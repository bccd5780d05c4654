"""
Similarity ranking — pure functions, no I/O, no shared state.

Empty or length-mismatched vectors are the "embedding unavailable"
sentinel: they score 0.0 instead of raising.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterable, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


@dataclass(frozen=True)
class Scored(Generic[T]):
    item: T
    similarity: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*; 0.0 when undefined."""
    if len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude == 0.0 or not np.isfinite(magnitude):
        return 0.0

    return float(np.dot(va, vb) / magnitude)


def top_n(
    query: Sequence[float],
    items: Iterable[tuple[T, Sequence[float]]],
    n: int,
) -> list[Scored[T]]:
    """
    Score every (item, embedding) pair against *query* and keep the best *n*.

    The sort is stable, so equal scores keep their input order.
    """
    if n <= 0:
        return []
    scored = [
        Scored(item=item, similarity=cosine_similarity(query, embedding))
        for item, embedding in items
    ]
    scored.sort(key=lambda s: s.similarity, reverse=True)
    return scored[:n]


def top_n_matrix(
    query: Sequence[float],
    matrix: np.ndarray,
    n: int,
) -> list[tuple[int, float]]:
    """
    Vectorised top-n over the rows of *matrix* (shape: rows x dims).

    Returns (row_index, similarity) pairs, best first, ties in row order.
    Zero rows score 0.0. Used by stores that hold all vectors in memory.
    """
    if n <= 0 or matrix.size == 0 or len(query) == 0:
        return []
    q = np.asarray(query, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] != q.shape[0]:
        return []

    q_norm = np.linalg.norm(q)
    if q_norm == 0.0:
        return [(i, 0.0) for i in range(min(n, matrix.shape[0]))]

    row_norms = np.linalg.norm(matrix, axis=1)
    dots = matrix.astype(np.float64) @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(row_norms > 0, dots / (row_norms * q_norm), 0.0)

    order = np.argsort(-sims, kind="stable")[:n]
    return [(int(i), float(sims[i])) for i in order]
