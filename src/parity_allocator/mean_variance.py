"""Markowitz-family optimizers on the long-only, fully invested simplex.

Every optimizer first tries the closed-form unconstrained solution and keeps
it when it happens to be long-only. Otherwise GMV and MVO fall back to
projected gradient descent with step ``1/λ_max(Σ)``, projecting each
iterate back onto the simplex. The max-Sharpe search clips negative weights
and renormalizes instead, since the Sharpe ratio ignores the weight scale.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .exceptions import ValidationError
from .linalg import (
    clip_to_simplex,
    dot,
    invert_matrix,
    l1_change,
    largest_eigenvalue,
    mat_vec,
    project_to_simplex,
)
from .optimizer import (
    OptimizationResult,
    build_result,
    log_convergence,
    portfolio_variance,
    sharpe_ratio,
)
from .refine import refine_slsqp
from .utils import ensure_square_matrix, ensure_vector, make_rng

logger = logging.getLogger(__name__)

NEGATIVE_TOLERANCE = 1e-10
GRADIENT_EPS = 1e-8
# Return-constraint penalty, relative to the covariance curvature.
RETURN_PENALTY = 100.0
MIN_CURVATURE = 1e-12
REFINE_FEASIBILITY_TOL = 1e-6


def _step_size(iteration: int, decay: float = 100.0) -> float:
    return 0.01 / (1.0 + iteration / decay)


def _curvature(sigma: np.ndarray) -> float:
    return max(largest_eigenvalue(sigma), MIN_CURVATURE)


def _accept_closed_form(raw: np.ndarray, total: float) -> Optional[np.ndarray]:
    if not np.isfinite(total) or total <= 0.0 or not np.all(np.isfinite(raw)):
        return None
    weights = raw / total
    if np.all(weights >= -NEGATIVE_TOLERANCE):
        return clip_to_simplex(weights)
    return None


def _maybe_refine(
    weights: np.ndarray,
    objective,
    *,
    Aeq: Optional[np.ndarray] = None,
    beq: Optional[np.ndarray] = None,
) -> tuple[np.ndarray, bool]:
    candidate, success = refine_slsqp(objective, weights, Aeq=Aeq, beq=beq)
    if not success:
        return weights, False
    if Aeq is not None and beq is not None:
        # Feasible candidates replace the gradient iterate regardless of variance.
        if np.allclose(np.atleast_2d(Aeq) @ candidate, beq, atol=REFINE_FEASIBILITY_TOL):
            return candidate, True
        return weights, False
    if objective(candidate) <= objective(weights) + 1e-15:
        return candidate, True
    return weights, False


def optimize_gmv(
    cov: Sequence[Sequence[float]],
    max_iter: int = 1000,
    tol: float = 1e-6,
    *,
    refine: bool = False,
) -> OptimizationResult:
    """Global minimum variance portfolio."""

    sigma = ensure_square_matrix(cov)
    n = sigma.shape[0]
    ones = np.ones(n, dtype=float)
    inv_ones = mat_vec(invert_matrix(sigma), ones)
    accepted = _accept_closed_form(inv_ones, dot(ones, inv_ones))
    if accepted is not None:
        return build_result(
            accepted,
            sigma,
            converged=True,
            iterations=0,
            objective=portfolio_variance(accepted, sigma),
            method="gmv",
            message="closed form",
        )

    weights = np.full(n, 1.0 / n, dtype=float)
    step = 1.0 / _curvature(sigma)
    converged = False
    iterations = max_iter
    for k in range(max_iter):
        previous = weights
        gradient = mat_vec(sigma, weights)
        weights = project_to_simplex(weights - step * gradient)
        if l1_change(weights, previous) < tol:
            converged = True
            iterations = k + 1
            break

    message = "projected gradient"
    if refine:
        weights, polished = _maybe_refine(weights, lambda w: float(w @ sigma @ w))
        if polished:
            converged = True
            message = "projected gradient + SLSQP"

    result = build_result(
        weights,
        sigma,
        converged=converged,
        iterations=iterations,
        objective=portfolio_variance(weights, sigma),
        method="gmv",
        message=message,
    )
    return log_convergence(result)


def _sharpe_gradient(
    weights: np.ndarray,
    mu: np.ndarray,
    sigma: np.ndarray,
    risk_free: float,
) -> np.ndarray:
    """Forward-difference gradient of Sharpe over renormalized weights."""

    base = sharpe_ratio(weights, mu, sigma, risk_free)
    grad = np.empty_like(weights)
    for i in range(weights.size):
        bumped = weights.copy()
        bumped[i] += GRADIENT_EPS
        bumped = bumped / bumped.sum()
        grad[i] = (sharpe_ratio(bumped, mu, sigma, risk_free) - base) / GRADIENT_EPS
    return grad


def optimize_max_sharpe(
    expected_returns: Sequence[float],
    cov: Sequence[Sequence[float]],
    risk_free: float = 0.0,
    max_iter: int = 1000,
    tol: float = 1e-6,
    *,
    seed: Optional[int | np.random.Generator] = None,
    restarts: int = 5,
) -> OptimizationResult:
    """Tangency (maximum Sharpe ratio) portfolio.

    The closed form ``Σ⁻¹(μ - r_f)`` is used when it is long-only. The
    fallback is a heuristic global search, not a guaranteed optimum:
    ``restarts`` random starting points each run projected gradient ascent
    for ``max_iter // restarts`` steps and the best Sharpe ratio seen across
    all of them (equal weights included) is returned. Pass ``seed`` for
    reproducible results.
    """

    sigma = ensure_square_matrix(cov)
    n = sigma.shape[0]
    mu = ensure_vector(expected_returns, name="expected returns", size=n)
    if restarts <= 0:
        raise ValidationError("restarts must be positive")

    raw = mat_vec(invert_matrix(sigma), mu - risk_free)
    accepted = _accept_closed_form(raw, float(raw.sum()))
    if accepted is not None:
        return build_result(
            accepted,
            sigma,
            converged=True,
            iterations=0,
            objective=sharpe_ratio(accepted, mu, sigma, risk_free),
            method="max_sharpe",
            message="closed form",
        )

    rng = make_rng(seed)
    best_weights = np.full(n, 1.0 / n, dtype=float)
    best_sharpe = sharpe_ratio(best_weights, mu, sigma, risk_free)
    steps_per_restart = max(1, max_iter // restarts)
    total_steps = 0
    all_converged = True

    for restart in range(restarts):
        weights = clip_to_simplex(rng.random(n))
        restart_converged = False
        for k in range(steps_per_restart):
            previous = weights
            gradient = _sharpe_gradient(weights, mu, sigma, risk_free)
            weights = clip_to_simplex(weights + _step_size(k, decay=50.0) * gradient)
            total_steps += 1
            current = sharpe_ratio(weights, mu, sigma, risk_free)
            if current > best_sharpe:
                best_sharpe = current
                best_weights = weights.copy()
            if l1_change(weights, previous) < tol:
                restart_converged = True
                break
        logger.debug("max-sharpe restart %d finished, best sharpe %.4f", restart, best_sharpe)
        all_converged = all_converged and restart_converged

    result = build_result(
        best_weights,
        sigma,
        converged=all_converged,
        iterations=total_steps,
        objective=best_sharpe,
        method="max_sharpe",
        message=f"best of {restarts} random restarts (heuristic)",
    )
    return log_convergence(result)


def optimize_mvo(
    expected_returns: Sequence[float],
    cov: Sequence[Sequence[float]],
    target_return: float,
    max_iter: int = 1000,
    tol: float = 1e-6,
    *,
    refine: bool = False,
) -> OptimizationResult:
    """Minimum variance portfolio earning ``target_return``.

    Targets outside ``[min(μ), max(μ)]`` are unreachable without shorting;
    the nearest corner (all weight in the lowest- or highest-return asset)
    is returned with ``converged=False``.
    """

    sigma = ensure_square_matrix(cov)
    n = sigma.shape[0]
    mu = ensure_vector(expected_returns, name="expected returns", size=n)
    target = float(target_return)
    if not np.isfinite(target):
        raise ValidationError("target return must be finite")

    low, high = float(mu.min()), float(mu.max())
    if target < low or target > high:
        corner = np.zeros(n, dtype=float)
        corner[int(np.argmin(mu)) if target < low else int(np.argmax(mu))] = 1.0
        result = build_result(
            corner,
            sigma,
            converged=False,
            iterations=0,
            objective=portfolio_variance(corner, sigma),
            method="mvo",
            message=f"target return {target:.6g} outside achievable range [{low:.6g}, {high:.6g}]",
        )
        return log_convergence(result)

    # Augmented Lagrangian on the return constraint: projected gradient on
    # 0.5 w'Σw + λe + 0.5 ρe², with λ += ρe once the inner iterate settles.
    curvature = _curvature(sigma)
    mu_norm = dot(mu, mu)
    penalty = RETURN_PENALTY * curvature / mu_norm if mu_norm > 0.0 else 0.0
    step = 1.0 / (curvature + penalty * mu_norm)
    multiplier = 0.0
    weights = np.full(n, 1.0 / n, dtype=float)
    converged = False
    iterations = max_iter
    for k in range(max_iter):
        previous = weights
        error = dot(weights, mu) - target
        gradient = mat_vec(sigma, weights) + mu * (multiplier + penalty * error)
        weights = project_to_simplex(weights - step * gradient)
        if l1_change(weights, previous) < tol:
            error = dot(weights, mu) - target
            if abs(error) < tol:
                converged = True
                iterations = k + 1
                break
            multiplier += penalty * error

    message = "augmented Lagrangian projected gradient"
    if refine:
        weights, polished = _maybe_refine(
            weights,
            lambda w: float(w @ sigma @ w),
            Aeq=mu[None, :],
            beq=np.array([target]),
        )
        if polished:
            converged = True
            message = "augmented Lagrangian projected gradient + SLSQP"

    result = build_result(
        weights,
        sigma,
        converged=converged,
        iterations=iterations,
        objective=portfolio_variance(weights, sigma),
        method="mvo",
        message=message,
    )
    return log_convergence(result)


def optimize_equal_weight(n_assets: int, cov: Optional[Sequence[Sequence[float]]] = None) -> OptimizationResult:
    """The naive ``1/N`` portfolio, with risk statistics when ``cov`` is given."""

    if n_assets < 1:
        raise ValidationError("n_assets must be positive")
    weights = np.full(n_assets, 1.0 / n_assets, dtype=float)
    if cov is None:
        return OptimizationResult(
            weights=weights,
            risk_contributions=np.zeros(n_assets),
            volatility=float("nan"),
            converged=True,
            iterations=0,
            objective=0.0,
            method="equal_weight",
        )
    sigma = ensure_square_matrix(cov, min_size=1)
    if sigma.shape[0] != n_assets:
        raise ValidationError(f"covariance covers {sigma.shape[0]} assets, expected {n_assets}")
    return build_result(
        weights,
        sigma,
        converged=True,
        iterations=0,
        objective=portfolio_variance(weights, sigma),
        method="equal_weight",
    )


__all__ = [
    "optimize_equal_weight",
    "optimize_gmv",
    "optimize_max_sharpe",
    "optimize_mvo",
]
