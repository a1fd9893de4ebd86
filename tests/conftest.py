"""Pytest configuration helpers for the test suite."""
from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path
from typing import List

import numpy as np
import pytest

_HERE = Path(__file__).resolve()
_PKG_ROOT = _HERE.parents[1]
_SRC = _PKG_ROOT / "src"

if _SRC.is_dir():
    p = str(_SRC)
    if p not in sys.path:
        sys.path.insert(0, p)

from parity_allocator.data.series import AlignedSeries  # noqa: E402


def business_days(start: date, count: int) -> List[date]:
    days: List[date] = []
    current = start
    while len(days) < count:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


@pytest.fixture
def three_asset_cov() -> np.ndarray:
    vols = np.array([0.20, 0.10, 0.05])
    corr = np.array(
        [
            [1.0, 0.3, 0.1],
            [0.3, 1.0, 0.2],
            [0.1, 0.2, 1.0],
        ]
    )
    return corr * np.outer(vols, vols)


@pytest.fixture
def synthetic_series() -> AlignedSeries:
    """Two years of seeded geometric random walks for three assets."""

    rng = np.random.default_rng(42)
    n_obs = 504
    daily_vol = np.array([0.015, 0.008, 0.004])
    drift = np.array([0.0004, 0.0002, 0.0001])
    shocks = rng.normal(size=(n_obs - 1, 3)) * daily_vol + drift
    prices = np.vstack([np.full(3, 100.0), 100.0 * np.cumprod(1.0 + shocks, axis=0)])
    return AlignedSeries.from_arrays(
        prices,
        business_days(date(2021, 1, 4), n_obs),
        assets=["EQ", "BOND", "CASH"],
    )


@pytest.fixture
def prices_csv(tmp_path: Path, synthetic_series: AlignedSeries) -> Path:
    path = tmp_path / "prices.csv"
    lines = ["date," + ",".join(synthetic_series.assets)]
    for day, row in zip(synthetic_series.dates, synthetic_series.prices):
        lines.append(day.isoformat() + "," + ",".join(f"{value:.6f}" for value in row))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
