import math

import numpy as np
import pandas as pd
import pytest

from parity_allocator.analytics import (
    compare_strategies,
    find_worst_period,
    stress_test_volatility,
    stress_weight_shift,
)
from parity_allocator.backtest import RebalancePolicy
from parity_allocator.exceptions import ValidationError
from parity_allocator.mean_variance import optimize_gmv


def test_stress_scales_every_entry(three_asset_cov):
    stressed = stress_test_volatility(three_asset_cov, 2.0)
    np.testing.assert_allclose(stressed, three_asset_cov * 2.0)
    np.testing.assert_array_equal(stress_test_volatility(three_asset_cov, 0.0), np.zeros((3, 3)))
    with pytest.raises(ValidationError):
        stress_test_volatility(three_asset_cov, -1.0)


def test_uniform_stress_leaves_erc_weights_unchanged(three_asset_cov):
    result = stress_weight_shift(three_asset_cov, 2.0)
    assert result.scale_factor == 2.0
    np.testing.assert_allclose(result.weight_shift, np.zeros(3), atol=1e-6)
    assert result.stressed.volatility == pytest.approx(result.base.volatility * math.sqrt(2.0), rel=1e-6)


def test_stress_with_custom_optimizer(three_asset_cov):
    result = stress_weight_shift(three_asset_cov, 3.0, optimizer=optimize_gmv)
    assert result.base.method == "gmv"
    np.testing.assert_allclose(result.stressed.weights, result.base.weights, atol=1e-9)


def test_worst_period_finds_known_crash():
    dates = [stamp.date() for stamp in pd.bdate_range("2024-01-02", periods=120)]
    values = np.full(120, 100.0)
    values[:40] = np.linspace(100.0, 120.0, 40)
    values[40:71] = np.linspace(120.0, 84.0, 31)
    values[71:] = np.linspace(84.0, 100.0, 49)
    worst = find_worst_period(values, dates, window_days=30)
    assert worst.start_index == 40
    assert worst.end_index == 70
    assert worst.start == dates[40]
    assert worst.end == dates[70]
    assert worst.loss == pytest.approx((values[70] - 120.0) / 120.0)


def test_worst_period_short_and_rising_paths():
    short = find_worst_period([100.0, 90.0, 95.0], window_days=30)
    assert (short.start_index, short.end_index) == (0, 2)
    assert short.loss == pytest.approx(-0.05)

    rising = find_worst_period(np.linspace(100.0, 200.0, 50), window_days=10)
    assert rising.loss == 0.0
    assert rising.start_index == 0


def test_worst_period_validation():
    with pytest.raises(ValidationError):
        find_worst_period([100.0], window_days=5)
    with pytest.raises(ValidationError):
        find_worst_period([100.0, 99.0], window_days=0)
    with pytest.raises(ValidationError):
        find_worst_period([100.0, 99.0], dates=["a"], window_days=1)


def test_compare_strategies(synthetic_series):
    weights = [0.1, 0.3, 0.6]
    policy = RebalancePolicy("quarterly", 0.001)
    comparison = compare_strategies(synthetic_series, None, weights, policy, True)
    assert comparison.optimized.final_value != comparison.equal_weight.final_value
    assert comparison.optimized.dates == comparison.equal_weight.dates
    assert comparison.optimized.rebalance_count == comparison.equal_weight.rebalance_count
    rows = comparison.summary()
    assert [row["strategy"] for row in rows] == ["optimized", "equal_weight"]
    assert comparison.sharpe_improvement == pytest.approx(
        comparison.optimized.sharpe_ratio - comparison.equal_weight.sharpe_ratio
    )
    payload = comparison.to_dict()
    assert set(payload) == {"summary", "sharpe_improvement"}
