"""Day-by-day portfolio replay with calendar rebalancing and dividend accounting."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from parity_allocator.data.calendars import FREQUENCIES, RebalanceCalendar
from parity_allocator.data.series import AlignedSeries
from parity_allocator.exceptions import ValidationError
from parity_allocator.utils import ensure_weights

from .metrics import (
    TRADING_DAYS,
    annualized_return,
    annualized_volatility,
    drawdown_details,
    ratio_or_nan,
    rolling_risk,
    trailing_return,
)

logger = logging.getLogger(__name__)

ROLLING_WINDOW = TRADING_DAYS
QUARTER_WINDOW = 60
DEFAULT_INITIAL_VALUE = 10_000.0

RebalanceLogCallback = Callable[["RebalanceEvent"], None]
PriceInput = Union[AlignedSeries, np.ndarray, Mapping[str, Sequence[float]], Sequence[Sequence[float]]]


@dataclass(frozen=True)
class RebalancePolicy:
    """When to rebalance and what it costs."""

    frequency: str = "quarterly"
    transaction_cost_rate: float = 0.001

    def __post_init__(self) -> None:
        if self.frequency not in FREQUENCIES:
            raise ValidationError(
                f"frequency must be one of {', '.join(FREQUENCIES)}; got '{self.frequency}'"
            )
        rate = float(self.transaction_cost_rate)
        if not math.isfinite(rate) or rate < 0.0 or rate >= 1.0:
            raise ValidationError("transaction_cost_rate must lie in [0, 1)")

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "RebalancePolicy":
        if overrides is None:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValidationError(f"Unknown rebalance options: {', '.join(unknown)}")
        base = asdict(cls())
        base.update(overrides)
        return cls(**base)


@dataclass(frozen=True)
class WeightChange:
    asset: str
    before: float
    after: float
    drift: float


@dataclass(frozen=True)
class RebalanceEvent:
    """Snapshot taken on a rebalance day, before trading.

    Weights are fractions of portfolio value; ``quarterly_return`` covers
    the trailing ~60 recorded values.
    """

    date: date
    portfolio_value: float
    changes: Tuple[WeightChange, ...]
    volatility: float
    sharpe: float
    quarterly_return: float
    transaction_cost: float

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["date"] = self.date.isoformat()
        payload["changes"] = [asdict(change) for change in self.changes]
        return payload


@dataclass(frozen=True)
class DrawdownPeriod:
    start: date
    end: date


@dataclass(frozen=True)
class DividendShadow:
    """Counterfactual always-reinvesting portfolio run alongside a cash-dividend one."""

    final_value: float
    total_return: float
    missed_dividend_opportunity: float


@dataclass
class BacktestState:
    """Mutable holdings owned by one simulation run."""

    shares: np.ndarray
    cash: float = 0.0
    dividend_cash: float = 0.0

    def value(self, prices: np.ndarray) -> float:
        return float(self.cash + np.dot(self.shares, prices))

    def collect_dividends(self, dividends: np.ndarray, buy_prices: np.ndarray, reinvest: bool) -> float:
        """Pay ``shares * dividend`` and either reinvest it or hold it as cash."""

        payout = self.shares * dividends
        received = float(payout.sum())
        if received == 0.0:
            return 0.0
        self.dividend_cash += received
        if reinvest:
            self.shares = self.shares + payout / buy_prices
        else:
            self.cash += received
        return received

    def rebalance(self, value: float, cost: float, weights: np.ndarray, prices: np.ndarray) -> None:
        investable = value - cost
        self.shares = investable * weights / prices
        self.cash = investable * (1.0 - float(weights.sum()))


@dataclass
class BacktestResult:
    dates: List[date]
    values: np.ndarray
    returns: np.ndarray
    final_value: float
    total_return: float
    annualized_return: float
    annualized_volatility: float
    sharpe_ratio: float
    max_drawdown: float
    max_drawdown_period: DrawdownPeriod
    rebalance_count: int
    rebalance_events: List[RebalanceEvent] = field(default_factory=list)
    total_dividends: float = 0.0
    shadow: Optional[DividendShadow] = None

    def to_dict(self, include_series: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "final_value": self.final_value,
            "total_return": self.total_return,
            "annualized_return": self.annualized_return,
            "annualized_volatility": self.annualized_volatility,
            "sharpe_ratio": None if math.isnan(self.sharpe_ratio) else self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "max_drawdown_period": {
                "start": self.max_drawdown_period.start.isoformat(),
                "end": self.max_drawdown_period.end.isoformat(),
            },
            "rebalance_count": self.rebalance_count,
            "rebalance_events": [event.to_dict() for event in self.rebalance_events],
            "total_dividends": self.total_dividends,
            "shadow": asdict(self.shadow) if self.shadow is not None else None,
        }
        if include_series:
            payload["dates"] = [d.isoformat() for d in self.dates]
            payload["values"] = self.values.tolist()
            payload["returns"] = self.returns.tolist()
        return payload


def _as_panel(data: Any) -> np.ndarray:
    """Arrays are read as (T, n); plain sequences as one series per asset."""

    if isinstance(data, np.ndarray):
        return np.asarray(data, dtype=float)
    columns = [np.asarray(series, dtype=float) for series in data]
    if len({col.size for col in columns}) > 1:
        raise ValidationError("per-asset series must share one length")
    return np.column_stack(columns)


def coerce_series(
    prices: PriceInput,
    dividends: Any,
    dates: Optional[Sequence[Any]],
    assets: Optional[Sequence[str]],
) -> AlignedSeries:
    if isinstance(prices, AlignedSeries):
        if dividends is None:
            return prices
        if isinstance(dividends, Mapping):
            dividends = [dividends.get(name, np.zeros(prices.n_obs)) for name in prices.assets]
        div = _as_panel(dividends)
        return AlignedSeries(prices.dates, prices.assets, prices.prices, div)
    if dates is None:
        raise ValidationError("dates are required unless prices is an AlignedSeries")
    if isinstance(prices, Mapping):
        if dividends is not None and not isinstance(dividends, Mapping):
            dividends = dict(zip(prices.keys(), _as_panel(dividends).T))
        return AlignedSeries.from_mapping(prices, dates, dividends=dividends)
    matrix = _as_panel(prices)
    div = _as_panel(dividends) if dividends is not None else None
    return AlignedSeries.from_arrays(matrix, dates, assets=assets, dividends=div)


def run_backtest(
    prices: PriceInput,
    dividends: Any,
    weights: Sequence[float],
    policy: Optional[RebalancePolicy] = None,
    initial_value: float = DEFAULT_INITIAL_VALUE,
    reinvest_dividends: bool = True,
    *,
    dates: Optional[Sequence[Any]] = None,
    assets: Optional[Sequence[str]] = None,
    log_callback: Optional[RebalanceLogCallback] = None,
    trading_days: int = TRADING_DAYS,
) -> BacktestResult:
    """Replay a target allocation over aligned history.

    Parameters
    ----------
    prices:
        An :class:`AlignedSeries`, a ``(T, n)`` matrix, a list of per-asset
        series, or a mapping ``asset -> series`` (the latter three require
        ``dates``).
    dividends:
        Per-share cash dividends shaped like ``prices`` (optional).
    weights:
        Target weights, non-negative. They normally sum to one; scaled
        (volatility-targeted) weights leave the remainder in cash, negative
        cash meaning borrowing.
    policy:
        Rebalance frequency and flat proportional transaction cost.
    reinvest_dividends:
        Buy shares with dividends at the previous close (DRIP). When false,
        dividends accrue as cash and a shadow portfolio that does reinvest
        is simulated in the same pass to measure the opportunity cost.
    log_callback:
        Receives every :class:`RebalanceEvent` as it is appended.
    """

    policy = policy or RebalancePolicy()
    series = coerce_series(prices, dividends, dates, assets)
    n_obs, n_assets = series.prices.shape
    target = ensure_weights(weights, size=n_assets)
    if not (initial_value > 0.0) or not math.isfinite(initial_value):
        raise ValidationError("initial_value must be positive and finite")
    calendar = RebalanceCalendar(policy.frequency)

    price_mat = series.prices
    div_mat = series.dividends
    cost_rate = float(policy.transaction_cost_rate)

    initial_alloc = initial_value * target
    state = BacktestState(
        shares=initial_alloc / price_mat[0],
        cash=float(initial_value - initial_alloc.sum()),
    )
    shadow = None
    if not reinvest_dividends:
        shadow = BacktestState(shares=state.shares.copy(), cash=state.cash)
    shadow_value = initial_value

    values = np.empty(n_obs, dtype=float)
    values[0] = initial_value
    returns = np.empty(n_obs - 1, dtype=float)
    events: List[RebalanceEvent] = []
    last_rebalance = series.dates[0]

    for t in range(1, n_obs):
        day_prices = price_mat[t]
        day_divs = div_mat[t]
        if np.any(day_divs > 0.0):
            state.collect_dividends(day_divs, price_mat[t - 1], reinvest_dividends)
            if shadow is not None:
                shadow.collect_dividends(day_divs, price_mat[t - 1], True)

        value = state.value(day_prices)
        values[t] = value
        returns[t - 1] = (value - values[t - 1]) / values[t - 1]
        if shadow is not None:
            shadow_value = shadow.value(day_prices)

        today = series.dates[t]
        if not calendar.should_rebalance(today, last_rebalance):
            continue

        held = state.shares * day_prices
        before = held / value if value != 0.0 else np.zeros(n_assets)
        vol, sharpe = rolling_risk(returns[:t], ROLLING_WINDOW, trading_days)
        quarter = trailing_return(values[: t + 1], QUARTER_WINDOW)
        cost = cost_rate * value
        state.rebalance(value, cost, target, day_prices)
        values[t] = value - cost
        if shadow is not None:
            shadow.rebalance(shadow_value, cost_rate * shadow_value, target, day_prices)
        last_rebalance = today

        event = RebalanceEvent(
            date=today,
            portfolio_value=value,
            changes=tuple(
                WeightChange(
                    asset=series.assets[i],
                    before=float(before[i]),
                    after=float(target[i]),
                    drift=float(before[i] - target[i]),
                )
                for i in range(n_assets)
            ),
            volatility=vol,
            sharpe=sharpe,
            quarterly_return=quarter,
            transaction_cost=cost,
        )
        events.append(event)
        logger.debug("rebalanced on %s at value %.2f (cost %.2f)", today, value, cost)
        if log_callback is not None:
            log_callback(event)

    final_value = float(values[-1])
    total = (final_value - initial_value) / initial_value
    ann_return = annualized_return(total, n_obs, trading_days)
    ann_vol = annualized_volatility(returns, trading_days)
    dd = drawdown_details(values)

    shadow_summary = None
    if shadow is not None:
        shadow_final = shadow.value(price_mat[-1])
        shadow_summary = DividendShadow(
            final_value=shadow_final,
            total_return=(shadow_final - initial_value) / initial_value,
            missed_dividend_opportunity=shadow_final - final_value,
        )

    result = BacktestResult(
        dates=list(series.dates),
        values=values,
        returns=returns,
        final_value=final_value,
        total_return=total,
        annualized_return=ann_return,
        annualized_volatility=ann_vol,
        sharpe_ratio=ratio_or_nan(ann_return, ann_vol),
        max_drawdown=dd.depth,
        max_drawdown_period=DrawdownPeriod(
            start=series.dates[dd.peak_index], end=series.dates[dd.trough_index]
        ),
        rebalance_count=len(events),
        rebalance_events=events,
        total_dividends=state.dividend_cash,
        shadow=shadow_summary,
    )
    logger.info(
        "backtest %s..%s: final %.2f, total %.2f%%, sharpe %.2f, %d rebalances",
        series.dates[0],
        series.dates[-1],
        final_value,
        total * 100.0,
        result.sharpe_ratio,
        result.rebalance_count,
    )
    return result


__all__ = [
    "BacktestResult",
    "BacktestState",
    "DividendShadow",
    "DrawdownPeriod",
    "RebalanceEvent",
    "RebalancePolicy",
    "WeightChange",
    "run_backtest",
]
