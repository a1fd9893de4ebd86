import numpy as np
import pytest

from parity_allocator.exceptions import ValidationError
from parity_allocator.mean_variance import (
    optimize_equal_weight,
    optimize_gmv,
    optimize_max_sharpe,
    optimize_mvo,
)
from parity_allocator.optimizer import sharpe_ratio

DIAG = np.array([[0.04, 0.0], [0.0, 0.01]])
# Highly correlated pair whose unconstrained GMV shorts the riskier asset.
SHORTING = np.array([[0.01, 0.027], [0.027, 0.09]])


def _variance(w, cov):
    return float(w @ cov @ w)


def test_gmv_closed_form():
    res = optimize_gmv(DIAG)
    assert res.converged
    assert res.iterations == 0
    np.testing.assert_allclose(res.weights, [0.2, 0.8])


def test_gmv_pairwise_perturbation_never_improves():
    rng = np.random.default_rng(11)
    for _ in range(10):
        vols = rng.uniform(0.10, 0.20, 4)
        corr = np.eye(4)
        upper = np.triu_indices(4, k=1)
        corr[upper] = rng.uniform(-0.1, 0.1, upper[0].size)
        corr = np.triu(corr) + np.triu(corr, 1).T
        cov = corr * np.outer(vols, vols)
        res = optimize_gmv(cov)
        assert res.iterations == 0
        best = _variance(res.weights, cov)
        for i in range(4):
            for j in range(4):
                if i == j:
                    continue
                for delta in (1e-3, 1e-2):
                    moved = res.weights.copy()
                    shift = min(delta, moved[i])
                    moved[i] -= shift
                    moved[j] += shift
                    assert _variance(moved, cov) >= best - 1e-12


def test_gmv_fallback_reaches_corner():
    res = optimize_gmv(SHORTING)
    assert res.converged
    assert 0 < res.iterations < 1000
    assert res.message == "projected gradient"
    np.testing.assert_allclose(res.weights, [1.0, 0.0], atol=1e-6)
    assert res.objective == pytest.approx(0.01, abs=1e-8)


def test_gmv_fallback_finds_face_optimum():
    # Asset 1 tracks asset 0 at three times the volatility; the long-only optimum drops it
    # and holds the two-asset GMV of assets 0 and 2.
    vols = np.array([0.10, 0.30, 0.20])
    corr = np.array([[1.0, 0.9, 0.2], [0.9, 1.0, 0.3], [0.2, 0.3, 1.0]])
    cov = corr * np.outer(vols, vols)
    res = optimize_gmv(cov)
    assert res.converged
    assert res.iterations > 0
    np.testing.assert_allclose(res.weights, [6.0 / 7.0, 0.0, 1.0 / 7.0], atol=1e-4)

    best = _variance(res.weights, cov)
    for i in range(3):
        for j in range(3):
            if i == j:
                continue
            moved = res.weights.copy()
            shift = min(1e-2, moved[i])
            moved[i] -= shift
            moved[j] += shift
            assert _variance(moved, cov) >= best - 1e-12


def test_gmv_fallback_refined_matches_corner():
    res = optimize_gmv(SHORTING, refine=True)
    assert res.converged
    np.testing.assert_allclose(res.weights, [1.0, 0.0], atol=1e-6)
    assert res.message.startswith("projected gradient")


def test_max_sharpe_closed_form():
    res = optimize_max_sharpe([0.08, 0.05], DIAG)
    assert res.converged
    assert res.iterations == 0
    np.testing.assert_allclose(res.weights, [2.0 / 7.0, 5.0 / 7.0])
    assert res.objective == pytest.approx(sharpe_ratio(res.weights, np.array([0.08, 0.05]), DIAG))


def test_max_sharpe_fallback_is_seeded_and_beats_equal_weight():
    mu = [0.10, -0.02]
    first = optimize_max_sharpe(mu, DIAG, seed=7)
    second = optimize_max_sharpe(mu, DIAG, seed=7)
    np.testing.assert_array_equal(first.weights, second.weights)
    assert first.iterations == second.iterations
    assert first.iterations > 0
    equal = sharpe_ratio(np.array([0.5, 0.5]), np.asarray(mu), DIAG)
    assert first.objective >= equal
    assert first.weights[0] >= 0.5 - 1e-12
    assert first.weights.sum() == pytest.approx(1.0)
    assert "heuristic" in first.message


def test_max_sharpe_rejects_bad_restarts():
    with pytest.raises(ValidationError):
        optimize_max_sharpe([0.1, 0.05], DIAG, restarts=0)


@pytest.mark.parametrize(
    ("target", "expected"),
    [(0.20, [0.0, 1.0]), (0.01, [1.0, 0.0])],
)
def test_mvo_infeasible_target_returns_corner(target, expected):
    res = optimize_mvo([0.05, 0.10], DIAG, target)
    assert not res.converged
    assert res.iterations == 0
    np.testing.assert_array_equal(res.weights, expected)
    assert "outside achievable range" in res.message


def test_mvo_hits_target_away_from_equal_weights():
    mu = np.array([0.10, 0.05])
    res = optimize_mvo(mu, DIAG, 0.09)
    assert res.converged
    assert 0 < res.iterations < 1000
    assert float(res.weights @ mu) == pytest.approx(0.09, abs=1e-6)
    np.testing.assert_allclose(res.weights, [0.8, 0.2], atol=1e-4)


def test_mvo_feasible_target():
    mu = np.array([0.10, 0.05])
    res = optimize_mvo(mu, DIAG, 0.075)
    assert res.converged
    assert res.weights.min() >= 0.0
    assert res.weights.sum() == pytest.approx(1.0)

    refined = optimize_mvo(mu, DIAG, 0.075, refine=True)
    assert refined.converged
    assert float(refined.weights @ mu) == pytest.approx(0.075, abs=1e-6)
    np.testing.assert_allclose(refined.weights, [0.5, 0.5], atol=1e-5)


def test_mvo_length_mismatch():
    with pytest.raises(ValidationError):
        optimize_mvo([0.1, 0.2, 0.3], DIAG, 0.15)


def test_equal_weight():
    res = optimize_equal_weight(2, DIAG)
    np.testing.assert_allclose(res.weights, [0.5, 0.5])
    assert res.volatility == pytest.approx(np.sqrt(0.0125))
    bare = optimize_equal_weight(4)
    assert bare.weights.sum() == pytest.approx(1.0)
    with pytest.raises(ValidationError):
        optimize_equal_weight(3, DIAG)
