"""Benchmark comparison: alpha, beta, correlation, tracking error."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np
import pandas as pd

from signallab.core.backtest.types import BenchmarkComparison
from signallab.core.data.series import AssetSeries
from signallab.core.utils.errors import BacktestError


def synthesize_benchmark_returns(
    length: int,
    period_return: float,
    daily_noise: float,
    rng: np.random.Generator,
) -> pd.Series:
    """
    Build a synthetic benchmark return path.

    Each day earns the constant drift that compounds to ``period_return``
    over ``length`` days, plus uniform noise in ``[-daily_noise/2, daily_noise/2)``.

    Args:
        length: Number of daily returns.
        period_return: Total period return as a decimal (1.5 == 150%).
        daily_noise: Width of the uniform noise band.
        rng: Random generator; seed it for reproducible runs.

    Returns:
        Daily benchmark returns.
    """
    if length <= 0:
        return pd.Series(dtype=float)
    daily_drift = (1.0 + period_return) ** (1.0 / length) - 1.0
    noise = (rng.random(length) - 0.5) * daily_noise
    return pd.Series(daily_drift + noise, dtype=float)


def asset_benchmark_returns(
    series: AssetSeries,
    days: Sequence[pd.Timestamp],
    tolerance: pd.Timedelta,
) -> tuple[pd.Series, float]:
    """
    Daily returns of a real asset aligned to the simulated days.

    Days without a matching close carry the previous close forward.

    Returns:
        ``(daily_returns, period_return_pct)`` with ``len(days) - 1`` returns.
    """
    closes = pd.Series([series.close_near(day, tolerance) for day in days], dtype=float)
    if closes.isna().all():
        raise BacktestError(f"Benchmark asset '{series.asset_id}' has no prices in the period.")
    closes = closes.ffill().bfill()
    if bool((closes <= 0).any()):
        raise BacktestError(f"Benchmark asset '{series.asset_id}' has non-positive prices.")
    returns = closes.pct_change().iloc[1:].reset_index(drop=True)
    period_return_pct = (float(closes.iloc[-1]) / float(closes.iloc[0]) - 1.0) * 100.0
    return returns.astype(float), period_return_pct


class BenchmarkComparator:
    """Compare strategy daily returns against benchmark daily returns."""

    def __init__(self, risk_free_rate: float = 0.02, trading_days_per_year: int = 252) -> None:
        self.risk_free_rate = risk_free_rate
        self.trading_days_per_year = trading_days_per_year

    @property
    def risk_free_daily(self) -> float:
        return self.risk_free_rate / self.trading_days_per_year

    def compare(
        self,
        strategy_returns: pd.Series,
        benchmark_returns: pd.Series,
        benchmark_return_pct: float = 0.0,
    ) -> BenchmarkComparison:
        """
        Compute alpha, beta, correlation, tracking error and information ratio.

        Args:
            strategy_returns: Strategy daily returns.
            benchmark_returns: Benchmark daily returns, same length.
            benchmark_return_pct: Benchmark period return, echoed in the result.

        Returns:
            Benchmark comparison; every undefined statistic falls back to its
            neutral value.
        """
        strategy = np.asarray(strategy_returns, dtype=float)
        benchmark = np.asarray(benchmark_returns, dtype=float)
        if strategy.shape != benchmark.shape:
            raise BacktestError(
                "Benchmark returns must match strategy returns in length: "
                f"{benchmark.shape[0]} != {strategy.shape[0]}."
            )
        if strategy.size == 0:
            return BenchmarkComparison(benchmark_return=benchmark_return_pct)

        strategy_mean = float(strategy.mean())
        benchmark_mean = float(benchmark.mean())
        strategy_diff = strategy - strategy_mean
        benchmark_diff = benchmark - benchmark_mean

        covariance = float((strategy_diff * benchmark_diff).sum())
        benchmark_variance = float((benchmark_diff**2).sum())
        strategy_variance = float((strategy_diff**2).sum())
        beta = covariance / benchmark_variance if benchmark_variance > 0 else 1.0

        alpha = (strategy_mean - self.risk_free_daily) - beta * (
            benchmark_mean - self.risk_free_daily
        )
        correlation_denominator = math.sqrt(strategy_variance * benchmark_variance)
        correlation = (
            covariance / correlation_denominator if correlation_denominator > 0 else 0.0
        )

        tracking_error = float(np.std(strategy - benchmark)) * math.sqrt(
            self.trading_days_per_year
        )
        information_ratio = alpha / tracking_error if tracking_error > 0 else 0.0

        return BenchmarkComparison(
            benchmark_return=float(benchmark_return_pct),
            alpha=float(alpha),
            beta=float(beta),
            correlation=float(correlation),
            tracking_error=tracking_error * 100.0,
            information_ratio=float(information_ratio),
        )
