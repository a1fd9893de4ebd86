"""Backtest simulator and performance metrics."""

from .backtest import (
    BacktestResult,
    BacktestState,
    DividendShadow,
    DrawdownPeriod,
    RebalanceEvent,
    RebalancePolicy,
    WeightChange,
    run_backtest,
)
from .metrics import drawdown_details, max_drawdown

__all__ = [
    "BacktestResult",
    "BacktestState",
    "DividendShadow",
    "DrawdownPeriod",
    "RebalanceEvent",
    "RebalancePolicy",
    "WeightChange",
    "drawdown_details",
    "max_drawdown",
    "run_backtest",
]
