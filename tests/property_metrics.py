"""Property-based regression tests for key quantitative invariants."""

from __future__ import annotations

import numpy as np
import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given, settings  # type: ignore
from hypothesis import strategies as st  # type: ignore


HYPOTHESIS_EXAMPLES = 50

from parity_allocator.backtest.metrics import max_drawdown
from parity_allocator.estimation import compute_correlation, compute_covariance
from parity_allocator.linalg import clip_to_simplex
from parity_allocator.risk_budget import optimize_risk_budget
from parity_allocator.utils import nearest_psd


@settings(max_examples=HYPOTHESIS_EXAMPLES, deadline=None)
@given(
    st.lists(
        st.floats(min_value=-50, max_value=50, allow_nan=False, allow_infinity=False),
        min_size=2,
        max_size=8,
    )
)
def test_clip_to_simplex_forms_simplex(values: list[float]) -> None:
    out = clip_to_simplex(np.asarray(values, dtype=float))
    assert np.all(out >= 0.0)
    assert out.sum() == pytest.approx(1.0, abs=1e-9)


@settings(max_examples=HYPOTHESIS_EXAMPLES, deadline=None)
@given(
    st.integers(min_value=2, max_value=8),
    st.floats(min_value=1e-8, max_value=1e-2, allow_nan=False, allow_infinity=False),
)
def test_nearest_psd_has_non_negative_eigenvalues(dim: int, jitter: float) -> None:
    rng = np.random.default_rng()
    base = rng.normal(size=(dim, dim))
    cov = base @ base.T
    # introduce asymmetry/negativity
    cov = cov - jitter * np.eye(dim)
    psd = nearest_psd(cov)
    eigvals = np.linalg.eigvalsh(psd)
    assert np.all(eigvals >= -1e-9)


@settings(max_examples=HYPOTHESIS_EXAMPLES, deadline=None)
@given(
    st.integers(min_value=2, max_value=5),
    st.integers(min_value=5, max_value=60),
    st.integers(min_value=0, max_value=2**31 - 1),
)
def test_covariance_symmetric_and_correlation_bounded(n_assets: int, n_obs: int, seed: int) -> None:
    rng = np.random.default_rng(seed)
    returns = rng.normal(scale=0.01, size=(n_obs, n_assets))
    cov = compute_covariance(returns)
    assert np.array_equal(cov, cov.T)
    corr = compute_correlation(cov)
    assert np.all(np.diag(corr) == 1.0)
    assert np.all(np.abs(corr) <= 1.0 + 1e-12)


@settings(max_examples=HYPOTHESIS_EXAMPLES, deadline=None)
@given(
    st.integers(min_value=2, max_value=6),
    st.integers(min_value=0, max_value=2**31 - 1),
)
def test_erc_converged_contributions_are_equal(n_assets: int, seed: int) -> None:
    rng = np.random.default_rng(seed)
    base = rng.normal(size=(n_assets + 5, n_assets))
    cov = nearest_psd(base.T @ base / (n_assets + 5)) * 0.04
    res = optimize_risk_budget(cov)
    assert res.weights.sum() == pytest.approx(1.0, abs=1e-6)
    if res.converged:
        assert np.all(np.abs(res.risk_contributions - 100.0 / n_assets) <= 0.5)


@settings(max_examples=HYPOTHESIS_EXAMPLES, deadline=None)
@given(
    st.lists(
        st.floats(min_value=0.5, max_value=5.0, allow_nan=False, allow_infinity=False),
        min_size=1,
        max_size=512,
    )
)
def test_max_drawdown_is_bounded(equity_points: list[float]) -> None:
    equity = np.asarray(equity_points, dtype=float)
    curve = np.cumprod(1.0 + equity / np.maximum(1.0, equity.max()))
    mdd = max_drawdown(curve)
    assert 0.0 <= mdd <= 1.0
