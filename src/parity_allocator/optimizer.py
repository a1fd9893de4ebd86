from __future__ import annotations
from dataclasses import dataclass, asdict, fields
from enum import Enum
import logging
import math
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .exceptions import ValidationError

logger = logging.getLogger(__name__)
# Module loggers propagate to the package logger, which owns the one handler.
_package_logger = logging.getLogger("parity_allocator")
if not _package_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    _package_logger.addHandler(handler)
_package_logger.setLevel(logging.INFO)


@dataclass
class SolverConfig:
    """Iteration controls shared by every optimizer."""

    max_iter: int = 1000
    tol: float = 1e-6
    risk_free: float = 0.0
    seed: Optional[int] = None
    restarts: int = 5
    refine: bool = False

    def __post_init__(self) -> None:
        if self.max_iter <= 0:
            raise ValueError("max_iter must be positive")
        if not (self.tol > 0.0):
            raise ValueError("tol must be positive")
        if self.restarts <= 0:
            raise ValueError("restarts must be positive")
        if not math.isfinite(self.risk_free):
            raise ValueError("risk_free must be finite")

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "SolverConfig":
        if overrides is None:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown solver options: {', '.join(unknown)}")
        base = asdict(cls())
        base.update(overrides)
        return cls(**base)


@dataclass
class OptimizationResult:
    """Tagged optimizer output: the best iterate plus its convergence status."""

    weights: np.ndarray
    risk_contributions: np.ndarray
    volatility: float
    converged: bool
    iterations: int
    objective: float = float("nan")
    method: str = ""
    message: str = ""

    def __post_init__(self) -> None:
        self.weights = np.asarray(self.weights, dtype=float)
        self.risk_contributions = np.asarray(self.risk_contributions, dtype=float)
        self.volatility = float(self.volatility)
        self.converged = bool(self.converged)
        self.iterations = int(self.iterations)
        self.objective = float(self.objective)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "weights": self.weights.tolist(),
            "risk_contributions": self.risk_contributions.tolist(),
            "volatility": self.volatility,
            "converged": self.converged,
            "iterations": self.iterations,
            "objective": self.objective,
            "message": self.message,
        }


class OptimizationObjective(Enum):
    RISK_PARITY = "risk_parity"
    MIN_VARIANCE = "min_variance"
    SHARPE_RATIO = "sharpe_ratio"
    TARGET_RETURN = "target_return"
    EQUAL_WEIGHT = "equal_weight"


def portfolio_variance(weights: np.ndarray, cov: np.ndarray) -> float:
    w = np.asarray(weights, dtype=float)
    return float(w @ np.asarray(cov, dtype=float) @ w)


def portfolio_volatility(weights: np.ndarray, cov: np.ndarray) -> float:
    """``sqrt(w' Σ w)``, with tiny negative variances floored at zero."""

    return math.sqrt(max(0.0, portfolio_variance(weights, cov)))


def risk_contributions(weights: np.ndarray, cov: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Absolute risk contributions ``w_i (Σw)_i / σ_p`` and their percentages.

    Both are zero vectors when the portfolio has no volatility.
    """

    w = np.asarray(weights, dtype=float)
    sigma = np.asarray(cov, dtype=float)
    vol = portfolio_volatility(w, sigma)
    if vol == 0.0:
        zeros = np.zeros_like(w)
        return zeros, zeros.copy()
    contributions = w * (sigma @ w) / vol
    total = float(contributions.sum())
    if total == 0.0:
        return contributions, np.zeros_like(w)
    return contributions, contributions / total * 100.0


def sharpe_ratio(
    weights: np.ndarray,
    expected_returns: np.ndarray,
    cov: np.ndarray,
    risk_free: float = 0.0,
) -> float:
    vol = portfolio_volatility(weights, cov)
    if vol == 0.0:
        return 0.0
    ret = float(np.dot(np.asarray(weights, dtype=float), np.asarray(expected_returns, dtype=float)))
    return (ret - risk_free) / vol


def build_result(
    weights: np.ndarray,
    cov: np.ndarray,
    *,
    converged: bool,
    iterations: int,
    objective: float = float("nan"),
    method: str = "",
    message: str = "",
) -> OptimizationResult:
    _, pct = risk_contributions(weights, cov)
    return OptimizationResult(
        weights=weights,
        risk_contributions=pct,
        volatility=portfolio_volatility(weights, cov),
        converged=converged,
        iterations=iterations,
        objective=objective,
        method=method,
        message=message,
    )


def log_convergence(result: OptimizationResult) -> OptimizationResult:
    if result.converged:
        logger.debug("%s converged after %d iterations", result.method, result.iterations)
    else:
        logger.warning(
            "%s did not converge after %d iterations: %s",
            result.method,
            result.iterations,
            result.message or "result may be approximate",
        )
    return result


def optimize(
    objective: Union[OptimizationObjective, str],
    cov: np.ndarray,
    *,
    expected_returns: Optional[Sequence[float]] = None,
    budget: Optional[Sequence[float]] = None,
    target_return: Optional[float] = None,
    config: Optional[Union[SolverConfig, Mapping[str, Any]]] = None,
) -> OptimizationResult:
    """Dispatch to the optimizer matching ``objective``."""

    from . import mean_variance, risk_budget

    cfg = config if isinstance(config, SolverConfig) else SolverConfig.from_overrides(config)
    obj = objective if isinstance(objective, OptimizationObjective) else OptimizationObjective(str(objective))

    if obj is OptimizationObjective.RISK_PARITY:
        return risk_budget.optimize_risk_budget(cov, budget, max_iter=cfg.max_iter, tol=cfg.tol)
    if obj is OptimizationObjective.MIN_VARIANCE:
        return mean_variance.optimize_gmv(cov, max_iter=cfg.max_iter, tol=cfg.tol, refine=cfg.refine)
    if obj is OptimizationObjective.EQUAL_WEIGHT:
        return mean_variance.optimize_equal_weight(np.asarray(cov).shape[0], cov=cov)
    if expected_returns is None:
        raise ValidationError(f"{obj.value} requires expected_returns")
    if obj is OptimizationObjective.SHARPE_RATIO:
        return mean_variance.optimize_max_sharpe(
            expected_returns,
            cov,
            risk_free=cfg.risk_free,
            max_iter=cfg.max_iter,
            tol=cfg.tol,
            seed=cfg.seed,
            restarts=cfg.restarts,
        )
    if target_return is None:
        raise ValidationError("target_return objective requires target_return")
    return mean_variance.optimize_mvo(
        expected_returns,
        cov,
        target_return,
        max_iter=cfg.max_iter,
        tol=cfg.tol,
        refine=cfg.refine,
    )


__all__ = [
    "OptimizationObjective",
    "OptimizationResult",
    "SolverConfig",
    "build_result",
    "optimize",
    "portfolio_variance",
    "portfolio_volatility",
    "risk_contributions",
    "sharpe_ratio",
]
