"""End-to-end risk-budget workflow: estimate, optimize, backtest, analyse.

The aligned history is split in two. The first part estimates risk and
produces the weights; the second part evaluates them out of sample, so the
backtest never sees the data the weights were fitted on.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from .analytics.compare import StrategyComparison, compare_strategies
from .analytics.stress import WorstPeriod, find_worst_period
from .backtest.backtest import BacktestResult, RebalancePolicy, run_backtest
from .backtest.metrics import asset_max_drawdowns
from .data.series import AlignedSeries
from .estimation import CovarianceEstimate, estimate_covariance
from .exceptions import ValidationError
from .optimizer import OptimizationResult
from .risk_budget import (
    VolatilityTarget,
    budget_from_percentages,
    optimize_risk_budget,
    portfolio_expected_return,
    scale_to_target_volatility,
    validate_budget,
)

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Knobs for :func:`build_risk_budget_portfolio`."""

    budget: Optional[List[float]] = None
    target_volatility: Optional[float] = None
    split_fraction: float = 0.5
    frequency: str = "quarterly"
    transaction_cost_rate: float = 0.001
    initial_value: float = 10_000.0
    reinvest_dividends: bool = True
    risk_free: float = 0.0
    max_iter: int = 1000
    tol: float = 1e-6
    worst_window: int = 30

    def __post_init__(self) -> None:
        if not 0.0 < self.split_fraction < 1.0:
            raise ValueError("split_fraction must lie in (0, 1)")
        if self.target_volatility is not None and not (self.target_volatility > 0.0):
            raise ValueError("target_volatility must be positive when set")
        if self.worst_window < 1:
            raise ValueError("worst_window must be at least 1")
        if self.budget is not None:
            self.budget = [float(b) for b in self.budget]
        # Validates frequency and cost rate.
        self.policy()

    def policy(self) -> RebalancePolicy:
        return RebalancePolicy(self.frequency, self.transaction_cost_rate)

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "PipelineConfig":
        if overrides is None:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown pipeline options: {', '.join(unknown)}")
        base = asdict(cls())
        base.update(overrides)
        return cls(**base)


def normalize_budget(budget: Optional[Sequence[float]], n_assets: int) -> Optional[np.ndarray]:
    """Accept risk budgets in percent (summing to 100) or as fractions."""

    if budget is None:
        return None
    arr = np.asarray(budget, dtype=float)
    if arr.shape != (n_assets,):
        raise ValidationError(f"risk budget has {arr.size} entries for {n_assets} assets")
    if float(arr.sum()) > 1.0 + 1e-3:
        arr = budget_from_percentages(arr)
    return validate_budget(arr, n_assets)


@dataclass
class PortfolioReport:
    assets: List[str]
    optimization: OptimizationResult
    weights: np.ndarray
    expected_return: float
    volatility: float
    sharpe_ratio: float
    hypothetical_max_drawdown: float
    asset_max_drawdowns: np.ndarray
    estimate: CovarianceEstimate
    backtest: BacktestResult
    comparison: StrategyComparison
    worst_period: WorstPeriod
    estimation_period: tuple
    backtest_period: tuple
    volatility_target: Optional[VolatilityTarget] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self, include_series: bool = False) -> Dict[str, Any]:
        target = None
        if self.volatility_target is not None:
            vt = self.volatility_target
            target = {
                "target_volatility": vt.target_volatility,
                "natural_volatility": vt.natural_volatility,
                "scaling_factor": vt.scaling_factor,
                "leverage": vt.describe(),
            }
        worst = self.worst_period
        return {
            "weights": [
                {
                    "asset": name,
                    "weight": float(self.weights[i]),
                    "risk_contribution": float(self.optimization.risk_contributions[i]),
                }
                for i, name in enumerate(self.assets)
            ],
            "metrics": {
                "expected_return": self.expected_return,
                "volatility": self.volatility,
                "sharpe_ratio": self.sharpe_ratio,
                "max_drawdown": self.hypothetical_max_drawdown,
            },
            "optimization": {
                "converged": self.optimization.converged,
                "iterations": self.optimization.iterations,
                "method": self.optimization.method,
            },
            "volatility_targeting": target,
            "correlation_matrix": self.estimate.correlation.tolist(),
            "average_correlation": self.estimate.average_correlation,
            "estimation_period": [d.isoformat() for d in self.estimation_period],
            "backtest_period": [d.isoformat() for d in self.backtest_period],
            "backtest": self.backtest.to_dict(include_series=include_series),
            "comparison": self.comparison.to_dict(),
            "worst_period": {
                "start": worst.start.isoformat() if hasattr(worst.start, "isoformat") else worst.start,
                "end": worst.end.isoformat() if hasattr(worst.end, "isoformat") else worst.end,
                "loss": worst.loss,
            },
            "warnings": list(self.warnings),
        }


def build_risk_budget_portfolio(
    series: AlignedSeries,
    config: Optional[PipelineConfig] = None,
) -> PortfolioReport:
    """Fit ERC (or budgeted) weights on the early window and test them on the late one."""

    cfg = config or PipelineConfig()
    if series.n_assets < 2:
        raise ValidationError(f"need at least 2 assets, got {series.n_assets}")
    budget = normalize_budget(cfg.budget, series.n_assets)
    fit, hold = series.split(cfg.split_fraction)
    logger.info(
        "estimating on %d points (%s..%s), backtesting on %d points",
        fit.n_obs,
        fit.dates[0],
        fit.dates[-1],
        hold.n_obs,
    )

    estimate = estimate_covariance(fit)
    optimization = optimize_risk_budget(
        estimate.covariance, budget, max_iter=cfg.max_iter, tol=cfg.tol
    )
    warnings: List[str] = []
    if not optimization.converged:
        warnings.append("optimization did not fully converge; weights may be approximate")

    weights = optimization.weights
    scaling = 1.0
    vol_target: Optional[VolatilityTarget] = None
    volatility = optimization.volatility
    if cfg.target_volatility is not None:
        vol_target = scale_to_target_volatility(optimization, estimate.covariance, cfg.target_volatility)
        weights = vol_target.weights
        scaling = vol_target.scaling_factor
        volatility = vol_target.target_volatility

    expected = portfolio_expected_return(weights, estimate.expected_returns)
    sharpe = (expected - cfg.risk_free) / volatility if volatility > 0.0 else 0.0

    # Weighted asset drawdowns over the whole history, a rough bound rather
    # than the drawdown of the rebalanced portfolio.
    per_asset = asset_max_drawdowns(series.prices)
    hypothetical_dd = float(np.dot(optimization.weights, per_asset) * scaling)

    policy = cfg.policy()
    backtest = run_backtest(
        hold,
        None,
        optimization.weights,
        policy,
        initial_value=cfg.initial_value,
        reinvest_dividends=cfg.reinvest_dividends,
    )
    comparison = compare_strategies(
        hold,
        None,
        optimization.weights,
        policy,
        cfg.reinvest_dividends,
        initial_value=cfg.initial_value,
    )
    worst = find_worst_period(backtest.values, backtest.dates, cfg.worst_window)
    if math.isnan(backtest.sharpe_ratio):
        warnings.append("backtest volatility is zero; Sharpe ratio undefined")

    return PortfolioReport(
        assets=list(series.assets),
        optimization=optimization,
        weights=weights,
        expected_return=expected,
        volatility=volatility,
        sharpe_ratio=sharpe,
        hypothetical_max_drawdown=hypothetical_dd,
        asset_max_drawdowns=per_asset,
        estimate=estimate,
        backtest=backtest,
        comparison=comparison,
        worst_period=worst,
        estimation_period=(fit.dates[0], fit.dates[-1]),
        backtest_period=(hold.dates[0], hold.dates[-1]),
        volatility_target=vol_target,
        warnings=warnings,
    )


__all__ = ["PipelineConfig", "PortfolioReport", "build_risk_budget_portfolio", "normalize_budget"]
