"""Performance and drawdown statistics over value paths and daily returns."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

TRADING_DAYS = 252


@dataclass(frozen=True)
class DrawdownDetail:
    depth: float
    peak_index: int
    trough_index: int
    peak_value: float
    trough_value: float
    recovered: bool


def max_drawdown(equity_curve: np.ndarray) -> float:
    """Return the maximum drawdown for the supplied equity curve."""

    equity = np.asarray(equity_curve, dtype=float)
    if equity.size == 0:
        return 0.0
    running_peak = np.maximum.accumulate(equity)
    drawdown = 1.0 - np.divide(
        equity,
        running_peak,
        out=np.ones_like(equity),
        where=running_peak > 0,
    )
    return float(max(0.0, np.max(drawdown)))


def drawdown_details(values: Sequence[float]) -> DrawdownDetail:
    """Largest ``(peak - value) / peak`` in one forward pass, with its endpoints."""

    curve = np.asarray(values, dtype=float)
    if curve.size == 0:
        return DrawdownDetail(0.0, 0, 0, 0.0, 0.0, False)
    worst = 0.0
    peak = curve[0]
    peak_idx = 0
    worst_peak_idx = 0
    worst_trough_idx = 0
    for idx, value in enumerate(curve):
        if value > peak:
            peak = value
            peak_idx = idx
        depth = (peak - value) / peak if peak > 0 else 0.0
        if depth > worst:
            worst = float(depth)
            worst_peak_idx = peak_idx
            worst_trough_idx = idx
    peak_value = float(curve[worst_peak_idx])
    return DrawdownDetail(
        depth=worst,
        peak_index=worst_peak_idx,
        trough_index=worst_trough_idx,
        peak_value=peak_value,
        trough_value=float(curve[worst_trough_idx]),
        recovered=bool(curve[-1] >= peak_value),
    )


def annualized_return(total: float, n_obs: int, trading_days: int = TRADING_DAYS) -> float:
    """``(1 + total)^(trading_days / n_obs) - 1``; ``nan`` for a wiped-out path."""

    if n_obs <= 0:
        return 0.0
    base = 1.0 + total
    if base <= 0.0:
        return float("nan") if base < 0.0 else -1.0
    return base ** (trading_days / n_obs) - 1.0


def annualized_volatility(returns: Sequence[float], trading_days: int = TRADING_DAYS) -> float:
    arr = np.asarray(returns, dtype=float)
    if arr.size == 0:
        return 0.0
    return float(np.std(arr) * math.sqrt(trading_days))


def ratio_or_nan(numerator: float, denominator: float) -> float:
    """Sharpe-style ratio that is ``nan`` (not an error) for zero risk."""

    if denominator == 0.0 or not math.isfinite(denominator):
        return float("nan")
    return numerator / denominator


def rolling_risk(
    returns: Sequence[float],
    window: int = TRADING_DAYS,
    trading_days: int = TRADING_DAYS,
) -> Tuple[float, float]:
    """Annualized volatility and Sharpe over the trailing ``window`` returns.

    Uses whatever history exists when fewer than ``window`` returns are
    available. Sharpe is 0 when the trailing volatility is 0.
    """

    arr = np.asarray(returns, dtype=float)
    if arr.size == 0:
        return 0.0, 0.0
    recent = arr[-min(window, arr.size):]
    mean = float(recent.mean())
    vol = math.sqrt(float(np.mean((recent - mean) ** 2)) * trading_days)
    sharpe = (mean * trading_days) / vol if vol > 0.0 else 0.0
    return vol, sharpe


def trailing_return(values: Sequence[float], window: int = 60) -> float:
    """Return from ``window`` points back (or the first point) to the last point."""

    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0
    start = arr[-min(window, arr.size)]
    return float((arr[-1] - start) / start)


def asset_max_drawdowns(prices: np.ndarray) -> np.ndarray:
    """Per-column maximum drawdown of a ``(T, n)`` price matrix."""

    matrix = np.asarray(prices, dtype=float)
    if matrix.ndim == 1:
        matrix = matrix[:, None]
    return np.array([max_drawdown(matrix[:, j]) for j in range(matrix.shape[1])], dtype=float)


__all__ = [
    "DrawdownDetail",
    "TRADING_DAYS",
    "annualized_return",
    "annualized_volatility",
    "asset_max_drawdowns",
    "drawdown_details",
    "max_drawdown",
    "ratio_or_nan",
    "rolling_risk",
    "trailing_return",
]
