"""Dense linear-algebra primitives shared by the mean-variance optimizers."""

from __future__ import annotations

import numpy as np

PIVOT_THRESHOLD = 1e-10
# Heuristic ridge added to a near-singular pivot; an approximate inverse is
# returned instead of failing. Tunable, not a derived bound.
REGULARIZATION = 1e-8


def invert_matrix(
    matrix: np.ndarray,
    *,
    pivot_threshold: float = PIVOT_THRESHOLD,
    regularization: float = REGULARIZATION,
) -> np.ndarray:
    """Invert ``matrix`` with Gauss–Jordan elimination and partial pivoting.

    When the selected pivot magnitude falls below ``pivot_threshold`` the
    pivot is nudged by ``regularization`` and elimination continues, so a
    singular covariance matrix yields a (large but finite) approximate
    inverse rather than an exception.
    """

    a = np.array(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError("invert_matrix expects a square two-dimensional array")
    n = a.shape[0]
    augmented = np.hstack([a, np.eye(n, dtype=float)])

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(augmented[col:, col])))
        if pivot_row != col:
            augmented[[col, pivot_row]] = augmented[[pivot_row, col]]

        pivot = augmented[col, col]
        if abs(pivot) < pivot_threshold:
            pivot = pivot + regularization if pivot >= 0.0 else pivot - regularization
            augmented[col, col] = pivot
        augmented[col] /= pivot

        for row in range(n):
            if row == col:
                continue
            factor = augmented[row, col]
            if factor != 0.0:
                augmented[row] -= factor * augmented[col]

    return augmented[:, n:]


def mat_vec(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    return np.asarray(matrix, dtype=float) @ np.asarray(vector, dtype=float)


def dot(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.dot(np.asarray(a, dtype=float), np.asarray(b, dtype=float)))


def clip_to_simplex(weights: np.ndarray) -> np.ndarray:
    """Project onto ``{w >= 0, sum(w) = 1}`` by clipping and renormalizing.

    Falls back to equal weights when every entry clips to zero.
    """

    w = np.maximum(np.asarray(weights, dtype=float), 0.0)
    total = float(w.sum())
    if total <= 0.0 or not np.isfinite(total):
        return np.full(w.size, 1.0 / w.size, dtype=float)
    return w / total


def project_to_simplex(weights: np.ndarray) -> np.ndarray:
    """Euclidean projection onto ``{w >= 0, sum(w) = 1}``.

    Every entry is shifted by one common threshold before clipping, so the
    surviving entries keep their pairwise differences.
    """

    w = np.asarray(weights, dtype=float)
    if w.ndim != 1:
        raise ValueError("Weights must be a one-dimensional vector")
    if w.size == 0:
        return w
    sorted_w = np.sort(w)[::-1]
    cssv = np.cumsum(sorted_w) - 1.0
    ind = np.arange(1, w.size + 1)
    cond = sorted_w - cssv / ind > 0
    if not np.any(cond):
        theta = cssv[-1] / w.size
    else:
        rho = ind[cond][-1]
        theta = cssv[cond][-1] / rho
    projected = np.maximum(w - theta, 0.0)
    total = float(projected.sum())
    if total <= 0.0 or not np.isfinite(total):
        return np.full(w.size, 1.0 / w.size, dtype=float)
    return projected / total


def largest_eigenvalue(matrix: np.ndarray) -> float:
    """Largest eigenvalue of a symmetric matrix (the gradient Lipschitz bound)."""

    sym = np.asarray(matrix, dtype=float)
    return float(np.linalg.eigvalsh(0.5 * (sym + sym.T))[-1])


def l1_change(new: np.ndarray, old: np.ndarray) -> float:
    return float(np.abs(np.asarray(new, dtype=float) - np.asarray(old, dtype=float)).sum())


__all__ = [
    "PIVOT_THRESHOLD",
    "REGULARIZATION",
    "invert_matrix",
    "mat_vec",
    "dot",
    "clip_to_simplex",
    "project_to_simplex",
    "largest_eigenvalue",
    "l1_change",
]
