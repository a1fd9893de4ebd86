"""Equal risk contribution and custom risk-budget portfolios.

Weights are found with cyclical coordinate descent: every pass visits each
asset in order and sets its weight so that its risk contribution matches
its budgeted share of the current portfolio volatility, then the weights
are renormalized to a fully invested portfolio.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .exceptions import ValidationError
from .linalg import l1_change
from .optimizer import (
    OptimizationResult,
    build_result,
    log_convergence,
    portfolio_volatility,
    risk_contributions,
    sharpe_ratio,
)
from .utils import ensure_square_matrix, ensure_vector, ensure_weights

logger = logging.getLogger(__name__)

BUDGET_TOLERANCE = 1e-6


def validate_budget(budget: Optional[Sequence[float]], n_assets: int) -> Optional[np.ndarray]:
    """Return ``budget`` as an array, or ``None`` for the equal-budget default."""

    if budget is None:
        return None
    arr = ensure_vector(budget, name="risk budget", size=n_assets)
    if np.any(arr < 0.0):
        raise ValidationError("risk budget entries must be non-negative")
    total = float(arr.sum())
    if abs(total - 1.0) > BUDGET_TOLERANCE:
        raise ValidationError(f"risk budget must sum to 1 (±{BUDGET_TOLERANCE:g}); got {total:.8f}")
    return arr


def optimize_risk_budget(
    cov: Sequence[Sequence[float]],
    budget: Optional[Sequence[float]] = None,
    max_iter: int = 1000,
    tol: float = 1e-6,
) -> OptimizationResult:
    """Risk-budget weights via cyclical coordinate descent.

    Parameters
    ----------
    cov:
        Annualized ``n x n`` covariance matrix (``n >= 2``).
    budget:
        Target share of total risk per asset, summing to one. ``None``
        requests equal risk contribution.
    max_iter, tol:
        Pass limit and L1 weight-change threshold. Running out of passes is
        reported through ``converged=False`` rather than raised.
    """

    sigma = ensure_square_matrix(cov)
    n = sigma.shape[0]
    targets = validate_budget(budget, n)
    if max_iter <= 0:
        raise ValidationError("max_iter must be positive")

    weights = np.full(n, 1.0 / n, dtype=float)
    converged = False
    iterations = 0

    for iterations in range(1, max_iter + 1):
        previous = weights.copy()
        for i in range(n):
            vol = portfolio_volatility(weights, sigma)
            if vol == 0.0:
                continue
            mrc = float(sigma[i] @ weights) / vol
            target_rc = targets[i] * vol if targets is not None else vol / n
            if mrc > 0.0:
                weights[i] = target_rc / mrc
        total = float(weights.sum())
        if total > 0.0:
            weights = weights / total
        if l1_change(weights, previous) < tol:
            converged = True
            break

    method = "risk_budget" if targets is not None else "erc"
    result = build_result(
        weights,
        sigma,
        converged=converged,
        iterations=iterations,
        objective=portfolio_volatility(weights, sigma),
        method=method,
        message="" if converged else f"weight change above {tol:g} after {max_iter} passes",
    )
    return log_convergence(result)


def optimize_erc(
    cov: Sequence[Sequence[float]],
    max_iter: int = 1000,
    tol: float = 1e-6,
    budget: Optional[Sequence[float]] = None,
) -> OptimizationResult:
    """Equal risk contribution portfolio (``budget`` generalizes it)."""

    return optimize_risk_budget(cov, budget, max_iter=max_iter, tol=tol)


def budget_from_percentages(percentages: Sequence[float], tolerance: float = 0.01) -> np.ndarray:
    """Convert budgets quoted in percent (summing to 100) into fractions."""

    arr = ensure_vector(percentages, name="risk budget")
    total = float(arr.sum())
    if abs(total - 100.0) > tolerance:
        raise ValidationError(f"risk budget percentages must sum to 100; got {total:.2f}")
    return arr / total


@dataclass
class VolatilityTarget:
    """Weights scaled so that ex-ante volatility hits a target."""

    weights: np.ndarray
    scaling_factor: float
    natural_volatility: float
    target_volatility: float

    @property
    def leverage(self) -> float:
        """Borrowed fraction (> 0) or cash buffer (< 0) implied by the scaling."""

        return self.scaling_factor - 1.0

    def describe(self) -> str:
        if self.scaling_factor > 1.0:
            return f"{(self.scaling_factor - 1.0) * 100:.1f}% leverage"
        return f"{(1.0 - self.scaling_factor) * 100:.1f}% cash"


def scale_to_target_volatility(
    weights: Union[OptimizationResult, Sequence[float]],
    cov: Sequence[Sequence[float]],
    target_volatility: float,
) -> VolatilityTarget:
    """Scale fully invested weights by ``target / natural`` volatility.

    This is the only leverage the package produces; the scaled weights sum
    to the scaling factor, with the remainder held as cash (or borrowed).
    """

    w = weights.weights if isinstance(weights, OptimizationResult) else weights
    sigma = ensure_square_matrix(cov, min_size=1)
    arr = ensure_weights(w, size=sigma.shape[0])
    if not (target_volatility > 0.0) or not math.isfinite(target_volatility):
        raise ValidationError("target volatility must be positive and finite")
    natural = portfolio_volatility(arr, sigma)
    if natural == 0.0:
        raise ValidationError("cannot scale a zero-volatility portfolio to a volatility target")
    factor = target_volatility / natural
    logger.info(
        "volatility targeting: %.2f%% -> %.2f%% (factor %.3fx)",
        natural * 100.0,
        target_volatility * 100.0,
        factor,
    )
    return VolatilityTarget(
        weights=arr * factor,
        scaling_factor=factor,
        natural_volatility=natural,
        target_volatility=float(target_volatility),
    )


def portfolio_expected_return(weights: Sequence[float], expected_returns: Sequence[float]) -> float:
    return float(np.dot(np.asarray(weights, dtype=float), np.asarray(expected_returns, dtype=float)))


def portfolio_sharpe(
    weights: Sequence[float],
    expected_returns: Sequence[float],
    cov: Sequence[Sequence[float]],
    risk_free: float = 0.0,
) -> float:
    return sharpe_ratio(np.asarray(weights, dtype=float), np.asarray(expected_returns, dtype=float), np.asarray(cov, dtype=float), risk_free)


__all__ = [
    "BUDGET_TOLERANCE",
    "VolatilityTarget",
    "budget_from_percentages",
    "optimize_erc",
    "optimize_risk_budget",
    "portfolio_expected_return",
    "portfolio_sharpe",
    "portfolio_volatility",
    "risk_contributions",
    "scale_to_target_volatility",
    "validate_budget",
]
