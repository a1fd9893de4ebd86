"""Aligned price/dividend panels consumed by the estimator and the backtester."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..exceptions import InsufficientDataError, ValidationError
from .calendars import to_date, to_dates

SeriesLike = Union[Sequence[float], np.ndarray]


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, dtype=float)
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class AlignedSeries:
    """Per-asset prices and dividends sharing one date index.

    ``prices`` and ``dividends`` are ``(T, n)`` read-only arrays; dividends
    default to zero on non-payment days.
    """

    dates: Tuple[date, ...]
    assets: Tuple[str, ...]
    prices: np.ndarray
    dividends: np.ndarray

    def __post_init__(self) -> None:
        prices = np.asarray(self.prices, dtype=float)
        if prices.ndim != 2:
            raise ValidationError("prices must be a (T, n) matrix")
        n_obs, n_assets = prices.shape
        if n_obs < 2:
            raise InsufficientDataError(f"need at least 2 aligned observations, got {n_obs}")
        if len(self.dates) != n_obs:
            raise ValidationError(f"dates length {len(self.dates)} != price rows {n_obs}")
        if len(self.assets) != n_assets:
            raise ValidationError(f"assets length {len(self.assets)} != price columns {n_assets}")
        if not np.all(np.isfinite(prices)) or np.any(prices <= 0.0):
            raise ValidationError("aligned prices must be finite and strictly positive")
        dividends = np.asarray(self.dividends, dtype=float)
        if dividends.shape != prices.shape:
            raise ValidationError(
                f"dividends shape {dividends.shape} does not match prices {prices.shape}"
            )
        if not np.all(np.isfinite(dividends)) or np.any(dividends < 0.0):
            raise ValidationError("dividends must be finite and non-negative")
        if any(later <= earlier for earlier, later in zip(self.dates, self.dates[1:])):
            raise ValidationError("dates must be strictly increasing")
        object.__setattr__(self, "prices", _frozen(prices))
        object.__setattr__(self, "dividends", _frozen(dividends))

    @classmethod
    def from_arrays(
        cls,
        prices: Any,
        dates: Sequence[Any],
        *,
        assets: Optional[Sequence[str]] = None,
        dividends: Any = None,
    ) -> "AlignedSeries":
        price_arr = np.asarray(prices, dtype=float)
        if price_arr.ndim == 1:
            price_arr = price_arr[:, None]
        if assets is None:
            assets = [f"asset_{idx}" for idx in range(price_arr.shape[1])]
        if dividends is None:
            div_arr = np.zeros_like(price_arr)
        else:
            div_arr = np.asarray(dividends, dtype=float)
            if div_arr.ndim == 1:
                div_arr = div_arr[:, None]
        return cls(
            dates=tuple(to_dates(dates)),
            assets=tuple(str(a) for a in assets),
            prices=price_arr,
            dividends=div_arr,
        )

    @classmethod
    def from_mapping(
        cls,
        prices: Mapping[str, SeriesLike],
        dates: Sequence[Any],
        *,
        dividends: Optional[Mapping[str, SeriesLike]] = None,
    ) -> "AlignedSeries":
        """Build from ``asset -> series`` mappings that already share ``dates``."""

        assets = list(prices.keys())
        lengths = {name: len(prices[name]) for name in assets}
        if len(set(lengths.values())) > 1:
            raise ValidationError(f"price series lengths differ: {lengths}")
        matrix = np.column_stack([np.asarray(prices[name], dtype=float) for name in assets])
        div_matrix = None
        if dividends is not None:
            unknown = set(dividends) - set(assets)
            if unknown:
                raise ValidationError(f"dividends given for unknown assets: {sorted(unknown)}")
            div_matrix = np.zeros_like(matrix)
            for col, name in enumerate(assets):
                if name in dividends:
                    series = np.asarray(dividends[name], dtype=float)
                    if series.size != matrix.shape[0]:
                        raise ValidationError(
                            f"dividend series for {name} has {series.size} points, expected {matrix.shape[0]}"
                        )
                    div_matrix[:, col] = series
        return cls.from_arrays(matrix, dates, assets=assets, dividends=div_matrix)

    @classmethod
    def from_frame(cls, prices: "pd.DataFrame", dividends: Optional["pd.DataFrame"] = None) -> "AlignedSeries":
        """Build from a date-indexed wide frame (one column per asset)."""

        frame = prices.sort_index()
        div = None
        if dividends is not None:
            div = (
                dividends.reindex(index=frame.index, columns=frame.columns)
                .fillna(0.0)
                .to_numpy(dtype=float)
            )
        return cls.from_arrays(
            frame.to_numpy(dtype=float),
            list(frame.index),
            assets=[str(c) for c in frame.columns],
            dividends=div,
        )

    @property
    def n_assets(self) -> int:
        return int(self.prices.shape[1])

    @property
    def n_obs(self) -> int:
        return int(self.prices.shape[0])

    @property
    def has_dividends(self) -> bool:
        return bool(np.any(self.dividends > 0.0))

    def slice(self, start: int, stop: Optional[int] = None) -> "AlignedSeries":
        return AlignedSeries(
            dates=self.dates[start:stop],
            assets=self.assets,
            prices=self.prices[start:stop],
            dividends=self.dividends[start:stop],
        )

    def split(self, fraction: float = 0.5) -> Tuple["AlignedSeries", "AlignedSeries"]:
        """Split into an estimation window and a later evaluation window."""

        if not 0.0 < fraction < 1.0:
            raise ValidationError("split fraction must lie in (0, 1)")
        cut = int(self.n_obs * fraction)
        return self.slice(0, cut), self.slice(cut)

    def column(self, asset: str) -> np.ndarray:
        return self.prices[:, self.assets.index(asset)]


def align_price_series(
    data: Mapping[str, Tuple[Sequence[Any], Sequence[Optional[float]]]],
    *,
    dividends: Optional[Mapping[str, Mapping[Any, float]]] = None,
) -> AlignedSeries:
    """Align ``asset -> (dates, prices)`` histories on their common dates.

    Missing prices (``None``/NaN) are dropped per asset before the date
    intersection is taken, so every retained date has a price for every
    asset. Dividends are keyed by date and default to zero.
    """

    if len(data) < 1:
        raise ValidationError("no price histories supplied")
    per_asset: Dict[str, Dict[date, float]] = {}
    for name, (raw_dates, raw_prices) in data.items():
        if len(raw_dates) != len(raw_prices):
            raise ValidationError(
                f"{name}: {len(raw_dates)} dates but {len(raw_prices)} prices"
            )
        clean: Dict[date, float] = {}
        for stamp, price in zip(raw_dates, raw_prices):
            if price is None:
                continue
            value = float(price)
            if not np.isfinite(value):
                continue
            clean[to_date(stamp)] = value
        per_asset[name] = clean

    common = set.intersection(*(set(series) for series in per_asset.values()))
    ordered: List[date] = sorted(common)
    if len(ordered) < 2:
        raise InsufficientDataError(
            f"only {len(ordered)} common dates across {len(per_asset)} assets"
        )

    assets = list(per_asset)
    prices = np.array([[per_asset[name][d] for name in assets] for d in ordered], dtype=float)
    div_matrix = np.zeros_like(prices)
    if dividends is not None:
        for col, name in enumerate(assets):
            payouts = {to_date(k): float(v) for k, v in dividends.get(name, {}).items()}
            for row, d in enumerate(ordered):
                div_matrix[row, col] = payouts.get(d, 0.0)
    return AlignedSeries(
        dates=tuple(ordered),
        assets=tuple(assets),
        prices=prices,
        dividends=div_matrix,
    )


def _read_wide_csv(path: Path) -> "pd.DataFrame":
    frame = pd.read_csv(path)
    if frame.empty:
        raise InsufficientDataError(f"{path} contains no rows")
    lower_cols = [str(col).lower() for col in frame.columns]
    date_col = frame.columns[lower_cols.index("date")] if "date" in lower_cols else frame.columns[0]
    frame[date_col] = pd.to_datetime(frame[date_col])
    return frame.set_index(date_col).sort_index()


def load_prices_csv(path: Union[str, Path], dividends_path: Union[str, Path, None] = None) -> AlignedSeries:
    """Read a wide ``date,<asset>...`` CSV, keeping only rows priced for every asset."""

    prices = _read_wide_csv(Path(path)).apply(pd.to_numeric, errors="coerce").dropna(how="any")
    divs = None
    if dividends_path is not None:
        divs = _read_wide_csv(Path(dividends_path)).apply(pd.to_numeric, errors="coerce")
    return AlignedSeries.from_frame(prices, divs)


__all__ = ["AlignedSeries", "align_price_series", "load_prices_csv"]
