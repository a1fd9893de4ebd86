"""Return and covariance estimation over aligned daily price series."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Union

import numpy as np

from .data.series import AlignedSeries
from .exceptions import InsufficientDataError, ValidationError
from .utils import nearest_psd

logger = logging.getLogger(__name__)

TRADING_DAYS = 252

ReturnsInput = Union[np.ndarray, Sequence[Sequence[float]]]


@dataclass
class CovarianceEstimate:
    """Annualized covariance/correlation estimated from daily returns."""

    covariance: np.ndarray
    correlation: np.ndarray
    returns: np.ndarray
    expected_returns: np.ndarray

    @property
    def average_correlation(self) -> float:
        return average_correlation(self.correlation)

    @property
    def volatilities(self) -> np.ndarray:
        return np.sqrt(np.clip(np.diag(self.covariance), 0.0, None))


def compute_returns(
    prices: Sequence[float],
    dividends: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """Simple daily returns ``(p[t] - p[t-1]) / p[t-1]``.

    With ``dividends`` the total return ``+ dividend[t] / p[t-1]`` is used.
    """

    p = np.asarray(prices, dtype=float)
    if p.ndim != 1:
        raise ValidationError(f"prices must be one-dimensional, got shape {p.shape}")
    valid = np.isfinite(p) & (p > 0.0)
    if int(valid.sum()) < 2:
        raise InsufficientDataError(
            f"need at least 2 valid prices to compute returns, got {int(valid.sum())}"
        )
    if not bool(valid.all()):
        raise ValidationError("prices must be finite and strictly positive; align series first")

    returns = (p[1:] - p[:-1]) / p[:-1]
    if dividends is not None:
        d = np.asarray(dividends, dtype=float)
        if d.shape != p.shape:
            raise ValidationError(
                f"dividends length {d.size} does not match prices length {p.size}"
            )
        if not np.all(np.isfinite(d)) or np.any(d < 0.0):
            raise ValidationError("dividends must be finite and non-negative")
        returns = returns + d[1:] / p[:-1]
    return returns


def _returns_matrix(returns_by_asset: ReturnsInput) -> np.ndarray:
    if isinstance(returns_by_asset, np.ndarray):
        matrix = np.asarray(returns_by_asset, dtype=float)
        if matrix.ndim != 2:
            raise ValidationError("returns matrix must be two-dimensional (T, n)")
        if matrix.shape[0] < matrix.shape[1]:
            raise ValidationError(
                f"returns matrix has {matrix.shape[0]} rows for {matrix.shape[1]} assets; "
                "pass (T, n) with one column per asset, or a list of per-asset series"
            )
        return matrix
    series = [np.asarray(r, dtype=float) for r in returns_by_asset]
    if not series:
        raise ValidationError("no return series supplied")
    lengths = {s.size for s in series}
    if len(lengths) != 1:
        raise ValidationError(
            f"return series must share one length after alignment, got {sorted(lengths)}"
        )
    return np.column_stack(series)


def compute_covariance(
    returns_by_asset: ReturnsInput,
    *,
    trading_days: int = TRADING_DAYS,
) -> np.ndarray:
    """Annualized sample covariance (``T - 1`` denominator, ``x trading_days``).

    ``returns_by_asset`` is either a sequence of per-asset return series or a
    ``(T, n)`` matrix with one column per asset. A matrix with fewer rows
    than columns is rejected rather than silently read transposed.
    """

    matrix = _returns_matrix(returns_by_asset)
    n_obs = matrix.shape[0]
    if n_obs < 2:
        raise InsufficientDataError(f"need at least 2 return observations, got {n_obs}")
    if not np.all(np.isfinite(matrix)):
        raise ValidationError("returns contain non-finite values")
    demeaned = matrix - matrix.mean(axis=0, keepdims=True)
    cov = (demeaned.T @ demeaned) / (n_obs - 1)
    cov = 0.5 * (cov + cov.T)
    return cov * float(trading_days)


def compute_correlation(cov: np.ndarray) -> np.ndarray:
    """Correlation from covariance; zero-variance assets correlate 0 with others."""

    cov = np.asarray(cov, dtype=float)
    if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
        raise ValidationError(f"covariance must be square, got shape {cov.shape}")
    std = np.sqrt(np.clip(np.diag(cov), 0.0, None))
    denom = np.outer(std, std)
    corr = np.divide(cov, denom, out=np.zeros_like(cov), where=denom > 0.0)
    corr = np.clip(corr, -1.0, 1.0)
    np.fill_diagonal(corr, 1.0)
    return corr


def average_correlation(corr: np.ndarray) -> float:
    """Mean of the strictly upper-triangular entries."""

    corr = np.asarray(corr, dtype=float)
    n = corr.shape[0]
    if n < 2:
        return 0.0
    upper = corr[np.triu_indices(n, k=1)]
    return float(upper.mean())


def expected_returns(
    returns_by_asset: ReturnsInput,
    *,
    trading_days: int = TRADING_DAYS,
) -> np.ndarray:
    """Annualized arithmetic mean of daily returns per asset."""

    matrix = _returns_matrix(returns_by_asset)
    return matrix.mean(axis=0) * float(trading_days)


def estimate_covariance(
    prices_by_asset: Union[AlignedSeries, Mapping[str, Sequence[float]], Sequence[Sequence[float]]],
    dividends_by_asset: Optional[Union[Mapping[str, Sequence[float]], Sequence[Sequence[float]]]] = None,
    *,
    total_return: bool = False,
    make_psd: bool = False,
    trading_days: int = TRADING_DAYS,
) -> CovarianceEstimate:
    """Estimate annualized covariance and correlation from aligned prices.

    Risk is estimated from price-only returns unless ``total_return`` is set,
    in which case dividends are folded into each asset's return series.
    """

    if isinstance(prices_by_asset, AlignedSeries):
        price_cols = [prices_by_asset.prices[:, j] for j in range(prices_by_asset.n_assets)]
        div_cols = [prices_by_asset.dividends[:, j] for j in range(prices_by_asset.n_assets)]
    elif isinstance(prices_by_asset, Mapping):
        names = list(prices_by_asset)
        price_cols = [prices_by_asset[name] for name in names]
        div_cols = None
        if dividends_by_asset is not None:
            if not isinstance(dividends_by_asset, Mapping):
                raise ValidationError("dividends must be keyed like prices")
            div_cols = [dividends_by_asset.get(name) for name in names]
    else:
        price_cols = list(prices_by_asset)
        div_cols = list(dividends_by_asset) if dividends_by_asset is not None else None

    if len(price_cols) < 2:
        raise ValidationError(f"need at least 2 assets, got {len(price_cols)}")

    series = []
    for idx, col in enumerate(price_cols):
        div = div_cols[idx] if (total_return and div_cols is not None) else None
        series.append(compute_returns(col, div))

    returns = _returns_matrix(series)
    cov = compute_covariance(series, trading_days=trading_days)
    if make_psd:
        cov = nearest_psd(cov)
    corr = compute_correlation(cov)
    mu = expected_returns(series, trading_days=trading_days)
    logger.debug(
        "estimated covariance for %d assets over %d returns (avg corr %.3f)",
        cov.shape[0],
        returns.shape[0],
        average_correlation(corr),
    )
    return CovarianceEstimate(covariance=cov, correlation=corr, returns=returns, expected_returns=mu)


__all__ = [
    "TRADING_DAYS",
    "CovarianceEstimate",
    "average_correlation",
    "compute_correlation",
    "compute_covariance",
    "compute_returns",
    "estimate_covariance",
    "expected_returns",
]
