"""Covariance stress scenarios and worst-window detection."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import numpy as np

from parity_allocator.exceptions import ValidationError
from parity_allocator.optimizer import OptimizationResult
from parity_allocator.risk_budget import optimize_risk_budget
from parity_allocator.utils import ensure_square_matrix

Optimizer = Callable[[np.ndarray], OptimizationResult]


@dataclass
class StressResult:
    """Optimizer output before and after scaling the covariance matrix."""

    scale_factor: float
    base: OptimizationResult
    stressed: OptimizationResult

    @property
    def weight_shift(self) -> np.ndarray:
        return self.stressed.weights - self.base.weights


@dataclass(frozen=True)
class WorstPeriod:
    start_index: int
    end_index: int
    start: Any
    end: Any
    loss: float


def stress_test_volatility(cov: Sequence[Sequence[float]], scale_factor: float) -> np.ndarray:
    """Multiply every covariance entry by ``scale_factor`` (2.0 doubles variances)."""

    sigma = ensure_square_matrix(cov, min_size=1)
    factor = float(scale_factor)
    if not np.isfinite(factor) or factor < 0.0:
        raise ValidationError("scale_factor must be finite and non-negative")
    return sigma * factor


def stress_weight_shift(
    cov: Sequence[Sequence[float]],
    scale_factor: float,
    optimizer: Optional[Optimizer] = None,
) -> StressResult:
    """Re-run ``optimizer`` (ERC by default) on the stressed covariance."""

    run = optimizer or optimize_risk_budget
    sigma = ensure_square_matrix(cov)
    return StressResult(
        scale_factor=float(scale_factor),
        base=run(sigma),
        stressed=run(stress_test_volatility(sigma, scale_factor)),
    )


def find_worst_period(
    values: Sequence[float],
    dates: Optional[Sequence[Any]] = None,
    window_days: int = 30,
) -> WorstPeriod:
    """Window of ``window_days`` steps with the lowest ``(end - start) / start``.

    Paths shorter than the window are evaluated as a single window spanning
    the whole path. ``loss`` is a fraction, never positive: when no window
    declines the first window is reported with a loss of 0.
    """

    curve = np.asarray(values, dtype=float)
    if curve.ndim != 1 or curve.size < 2:
        raise ValidationError("value path needs at least 2 points")
    if window_days < 1:
        raise ValidationError("window_days must be at least 1")
    if dates is not None and len(dates) != curve.size:
        raise ValidationError(f"dates length {len(dates)} != values length {curve.size}")
    if np.any(curve[:-1] <= 0.0):
        raise ValidationError("value path must be positive to measure window losses")

    window = min(int(window_days), curve.size - 1)
    starts = curve[:-window]
    window_returns = (curve[window:] - starts) / starts
    worst_start = int(np.argmin(window_returns))
    loss = float(window_returns[worst_start])
    if loss >= 0.0:
        worst_start, loss = 0, 0.0
    worst_end = worst_start + window
    labels: Sequence[Any] = dates if dates is not None else list(range(curve.size))
    return WorstPeriod(
        start_index=worst_start,
        end_index=worst_end,
        start=labels[worst_start],
        end=labels[worst_end],
        loss=loss,
    )


__all__ = [
    "StressResult",
    "WorstPeriod",
    "find_worst_period",
    "stress_test_volatility",
    "stress_weight_shift",
]
