"""Stress tests, worst-window search and strategy comparison."""

from .compare import StrategyComparison, compare_strategies
from .stress import StressResult, WorstPeriod, find_worst_period, stress_test_volatility, stress_weight_shift

__all__ = [
    "StrategyComparison",
    "StressResult",
    "WorstPeriod",
    "compare_strategies",
    "find_worst_period",
    "stress_test_volatility",
    "stress_weight_shift",
]
