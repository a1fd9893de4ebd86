"""Side-by-side backtests of an optimized allocation against ``1/N``."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from parity_allocator.backtest.backtest import (
    BacktestResult,
    PriceInput,
    RebalancePolicy,
    coerce_series,
    run_backtest,
)


def _clean(value: float) -> Optional[float]:
    return None if math.isnan(value) else float(value)


@dataclass
class StrategyComparison:
    optimized: BacktestResult
    equal_weight: BacktestResult

    @property
    def sharpe_improvement(self) -> float:
        """Optimized minus equal-weight Sharpe ratio (``nan`` if either is undefined)."""

        return self.optimized.sharpe_ratio - self.equal_weight.sharpe_ratio

    def summary(self) -> List[Dict[str, Any]]:
        rows = []
        for name, result in (("optimized", self.optimized), ("equal_weight", self.equal_weight)):
            rows.append(
                {
                    "strategy": name,
                    "annualized_return": result.annualized_return,
                    "annualized_volatility": result.annualized_volatility,
                    "sharpe_ratio": _clean(result.sharpe_ratio),
                    "max_drawdown": result.max_drawdown,
                    "final_value": result.final_value,
                }
            )
        return rows

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "sharpe_improvement": _clean(self.sharpe_improvement),
        }


def compare_strategies(
    prices: PriceInput,
    dividends: Any,
    weights: Sequence[float],
    policy: Optional[RebalancePolicy] = None,
    reinvest_dividends: bool = True,
    *,
    initial_value: float = 10_000.0,
    dates: Optional[Sequence[Any]] = None,
    assets: Optional[Sequence[str]] = None,
) -> StrategyComparison:
    """Backtest ``weights`` and the equal-weight portfolio over identical data."""

    series = coerce_series(prices, dividends, dates, assets)
    equal = np.full(series.n_assets, 1.0 / series.n_assets, dtype=float)
    common = dict(policy=policy, initial_value=initial_value, reinvest_dividends=reinvest_dividends)
    return StrategyComparison(
        optimized=run_backtest(series, None, weights, **common),
        equal_weight=run_backtest(series, None, equal, **common),
    )


__all__ = ["StrategyComparison", "compare_strategies"]
