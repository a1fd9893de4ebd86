"""Parity Allocator public API."""
from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:  # runtime package version
    __version__ = version("parity-allocator")
except PackageNotFoundError:  # editable/dev env
    __version__ = "0.0.0+local"

from .analytics import (
    StrategyComparison,
    StressResult,
    WorstPeriod,
    compare_strategies,
    find_worst_period,
    stress_test_volatility,
    stress_weight_shift,
)
from .backtest import BacktestResult, RebalanceEvent, RebalancePolicy, run_backtest
from .data import AlignedSeries, align_price_series, load_prices_csv
from .estimation import CovarianceEstimate, estimate_covariance
from .exceptions import InsufficientDataError, ParityAllocatorError, ValidationError
from .mean_variance import optimize_equal_weight, optimize_gmv, optimize_max_sharpe, optimize_mvo
from .optimizer import OptimizationObjective, OptimizationResult, SolverConfig, optimize
from .pipeline import PipelineConfig, PortfolioReport, build_risk_budget_portfolio
from .risk_budget import optimize_erc, optimize_risk_budget, scale_to_target_volatility

__all__ = [
    "AlignedSeries",
    "BacktestResult",
    "CovarianceEstimate",
    "InsufficientDataError",
    "OptimizationObjective",
    "OptimizationResult",
    "ParityAllocatorError",
    "PipelineConfig",
    "PortfolioReport",
    "RebalanceEvent",
    "RebalancePolicy",
    "SolverConfig",
    "StrategyComparison",
    "StressResult",
    "ValidationError",
    "WorstPeriod",
    "__version__",
    "align_price_series",
    "build_risk_budget_portfolio",
    "compare_strategies",
    "estimate_covariance",
    "find_worst_period",
    "load_prices_csv",
    "optimize",
    "optimize_equal_weight",
    "optimize_erc",
    "optimize_gmv",
    "optimize_max_sharpe",
    "optimize_mvo",
    "optimize_risk_budget",
    "run_backtest",
    "scale_to_target_volatility",
    "stress_test_volatility",
    "stress_weight_shift",
]
