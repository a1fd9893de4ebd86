from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .exceptions import ValidationError


def make_rng(seed: Optional[int | np.random.Generator] = None) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def nearest_psd(cov: np.ndarray, eps: float = 1e-10) -> np.ndarray:
    """Fast symmetric eigenvalue clip to nearest PSD matrix."""

    cov = 0.5 * (cov + cov.T)
    w, v = np.linalg.eigh(cov)
    w = np.clip(w, eps, None)
    psd = (v * w) @ v.T
    return 0.5 * (psd + psd.T)


def ensure_vector(values: Sequence[float], *, name: str, size: Optional[int] = None) -> np.ndarray:
    """Copy ``values`` into a finite 1-D float array, validating its length."""

    arr = np.array(values, dtype=float)
    if arr.ndim != 1:
        raise ValidationError(f"{name} must be one-dimensional, got shape {arr.shape}")
    if size is not None and arr.size != size:
        raise ValidationError(f"{name} must have {size} entries, got {arr.size}")
    if not np.all(np.isfinite(arr)):
        raise ValidationError(f"{name} contains non-finite values")
    return arr


def ensure_square_matrix(
    matrix: Sequence[Sequence[float]],
    *,
    name: str = "covariance matrix",
    min_size: int = 2,
    symmetric_tol: Optional[float] = 1e-8,
) -> np.ndarray:
    """Copy ``matrix`` into a finite square float array."""

    arr = np.array(matrix, dtype=float)
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise ValidationError(f"{name} must be square, got shape {arr.shape}")
    if arr.shape[0] < min_size:
        raise ValidationError(f"{name} must cover at least {min_size} assets, got {arr.shape[0]}")
    if not np.all(np.isfinite(arr)):
        raise ValidationError(f"{name} contains non-finite values")
    if np.any(np.diag(arr) < 0.0):
        raise ValidationError(f"{name} has negative variances on its diagonal")
    if symmetric_tol is not None:
        scale = max(1.0, float(np.max(np.abs(arr))))
        if not np.allclose(arr, arr.T, atol=symmetric_tol * scale, rtol=0.0):
            raise ValidationError(f"{name} must be symmetric")
    return arr


def ensure_weights(weights: Sequence[float], *, size: Optional[int] = None) -> np.ndarray:
    arr = ensure_vector(weights, name="weights", size=size)
    if np.any(arr < 0.0):
        raise ValidationError("weights must be non-negative (no short selling)")
    return arr
