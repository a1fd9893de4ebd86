from datetime import date, datetime

import numpy as np
import pandas as pd
import pytest

from parity_allocator.data import (
    AlignedSeries,
    CalendarError,
    RebalanceCalendar,
    align_price_series,
    load_prices_csv,
    period_index,
    to_date,
)
from parity_allocator.exceptions import InsufficientDataError, ValidationError


def test_to_date_accepts_common_inputs():
    expected = date(2024, 3, 15)
    assert to_date("2024-03-15") == expected
    assert to_date(datetime(2024, 3, 15, 16, 30)) == expected
    assert to_date(np.datetime64("2024-03-15")) == expected
    assert to_date(pd.Timestamp("2024-03-15")) == expected
    with pytest.raises(CalendarError):
        to_date("not a date")


def test_weekly_buckets_use_iso_weeks():
    # Sunday and the following Monday fall in different ISO weeks.
    assert period_index(date(2024, 3, 10), "weekly") != period_index(date(2024, 3, 11), "weekly")
    # 30 Dec 2024 and 3 Jan 2025 are both in ISO week 1 of 2025.
    assert period_index(date(2024, 12, 30), "weekly") == period_index(date(2025, 1, 3), "weekly")


def test_quarter_boundaries():
    cal = RebalanceCalendar("quarterly")
    assert not cal.should_rebalance(date(2024, 3, 29), date(2024, 1, 2))
    assert cal.should_rebalance(date(2024, 4, 1), date(2024, 3, 29))
    assert cal.should_rebalance(date(2025, 1, 2), date(2024, 12, 31))


def test_calendar_boundaries_mask():
    days = [date(2024, 1, 30), date(2024, 1, 31), date(2024, 2, 1), date(2024, 2, 2), date(2024, 3, 1)]
    mask = RebalanceCalendar("monthly").boundaries(days)
    assert mask.tolist() == [False, False, True, False, True]
    assert not RebalanceCalendar("never").boundaries(days).any()


def test_unknown_frequency():
    with pytest.raises(CalendarError):
        RebalanceCalendar("hourly")
    assert issubclass(CalendarError, ValidationError)


def test_aligned_series_validation():
    dates = ["2024-01-02", "2024-01-03"]
    with pytest.raises(InsufficientDataError):
        AlignedSeries.from_arrays([[100.0, 50.0]], dates[:1])
    with pytest.raises(ValidationError):
        AlignedSeries.from_arrays([[100.0, 50.0], [-1.0, 50.0]], dates)
    with pytest.raises(ValidationError):
        AlignedSeries.from_arrays([[100.0], [101.0]], ["2024-01-03", "2024-01-02"])
    series = AlignedSeries.from_arrays([[100.0, 50.0], [101.0, 51.0]], dates, assets=["A", "B"])
    assert series.n_assets == 2 and series.n_obs == 2
    assert not series.has_dividends
    with pytest.raises(ValueError):
        series.prices[0, 0] = 1.0


def test_split_halves(synthetic_series):
    fit, hold = synthetic_series.split()
    assert fit.n_obs == synthetic_series.n_obs // 2
    assert fit.n_obs + hold.n_obs == synthetic_series.n_obs
    assert fit.dates[-1] < hold.dates[0]


def test_align_price_series_common_dates():
    data = {
        "A": (["2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05"], [10.0, None, 11.0, 12.0]),
        "B": (["2024-01-02", "2024-01-04", "2024-01-05"], [20.0, 21.0, 22.0]),
    }
    series = align_price_series(data, dividends={"A": {"2024-01-04": 0.5}})
    assert series.dates == (date(2024, 1, 2), date(2024, 1, 4), date(2024, 1, 5))
    np.testing.assert_allclose(series.column("B"), [20.0, 21.0, 22.0])
    np.testing.assert_allclose(series.dividends[:, 0], [0.0, 0.5, 0.0])


def test_align_price_series_needs_overlap():
    data = {
        "A": (["2024-01-02", "2024-01-03"], [10.0, 11.0]),
        "B": (["2024-01-04", "2024-01-05"], [20.0, 21.0]),
    }
    with pytest.raises(InsufficientDataError):
        align_price_series(data)


def test_load_prices_csv(tmp_path):
    prices = tmp_path / "prices.csv"
    prices.write_text(
        "Date,SPY,TLT\n"
        "2024-01-03,101,51\n"
        "2024-01-02,100,50\n"
        "2024-01-04,,52\n"
        "2024-01-05,102,53\n",
        encoding="utf-8",
    )
    divs = tmp_path / "divs.csv"
    divs.write_text("date,TLT\n2024-01-05,0.2\n", encoding="utf-8")
    series = load_prices_csv(prices, divs)
    assert series.assets == ("SPY", "TLT")
    assert series.dates == (date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 5))
    np.testing.assert_allclose(series.dividends[:, 1], [0.0, 0.0, 0.2])
    np.testing.assert_allclose(series.dividends[:, 0], 0.0)
