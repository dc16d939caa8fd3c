"""Performance, risk, and trade statistics calculations."""

from __future__ import annotations

import math
from collections.abc import Sequence

import pandas as pd

from signallab.core.backtest.types import (
    PerformanceMetrics,
    RiskMetrics,
    Trade,
    TradeStatistics,
)

VAR_CONFIDENCE = 0.95


def _safe_ratio(numerator: float, denominator: float) -> float:
    """Divide, returning 0 for zero denominators and non-finite results."""
    if denominator == 0 or not math.isfinite(denominator):
        return 0.0
    ratio = numerator / denominator
    return float(ratio) if math.isfinite(ratio) else 0.0


def calculate_daily_returns(portfolio_values: Sequence[float] | pd.Series) -> pd.Series:
    """
    Calculate simple daily returns from consecutive portfolio values.

    Args:
        portfolio_values: End-of-day portfolio values in chronological order.

    Returns:
        Series of ``len(values) - 1`` returns.
    """
    values = pd.Series(portfolio_values, dtype=float).reset_index(drop=True)
    if values.shape[0] < 2:
        return pd.Series(dtype=float)
    previous = values.shift(1).iloc[1:]
    returns = (values.iloc[1:] - previous) / previous.where(previous != 0)
    return returns.fillna(0.0).reset_index(drop=True)


def calculate_max_drawdown(equity_curve: pd.Series) -> float:
    """
    Calculate max drawdown from an equity curve.

    Args:
        equity_curve: Cumulative equity curve where 1.0 is starting equity.

    Returns:
        Minimum drawdown as a negative decimal.
    """
    if equity_curve.empty:
        return 0.0

    running_max = equity_curve.cummax()
    drawdowns = equity_curve / running_max - 1.0
    return float(drawdowns.min())


def _annualized_return_pct(
    initial_capital: float,
    final_value: float,
    duration_days: int,
    calendar_days_per_year: int,
) -> float:
    if duration_days <= 0 or initial_capital <= 0:
        return 0.0
    growth = max(final_value / initial_capital, 0.0)
    try:
        annualized = growth ** (calendar_days_per_year / duration_days) - 1.0
    except OverflowError:
        return math.inf
    return float(annualized * 100.0)


def calculate_performance_metrics(
    daily_returns: pd.Series,
    initial_capital: float,
    final_value: float,
    duration_days: int,
    trades: Sequence[Trade] = (),
    risk_free_rate: float = 0.02,
    trading_days_per_year: int = 252,
    calendar_days_per_year: int = 365,
) -> PerformanceMetrics:
    """
    Calculate return and risk-adjusted return metrics.

    Sharpe, Sortino, and Calmar ratios are 0 when fewer than two daily
    returns exist or the returns have zero volatility.

    Args:
        daily_returns: Daily portfolio returns.
        initial_capital: Starting capital.
        final_value: Terminal portfolio value.
        duration_days: Calendar days between period start and end.
        trades: Closed trades, for win rate and profit factor.
        risk_free_rate: Annual risk-free rate as a decimal.
        trading_days_per_year: Volatility annualization factor.
        calendar_days_per_year: Return annualization factor.

    Returns:
        Performance metrics; returns, volatility and drawdown in percent.
    """
    total_return = _safe_ratio(final_value - initial_capital, initial_capital) * 100.0
    annualized_return = _annualized_return_pct(
        initial_capital, final_value, duration_days, calendar_days_per_year
    )

    gross_profit = sum(trade.pnl for trade in trades if trade.pnl > 0)
    gross_loss = -sum(trade.pnl for trade in trades if trade.pnl <= 0)
    winning = sum(1 for trade in trades if trade.pnl > 0)
    win_rate = _safe_ratio(winning, len(trades)) * 100.0
    profit_factor = _safe_ratio(gross_profit, gross_loss)

    sample_size = int(daily_returns.shape[0])
    if sample_size == 0:
        return PerformanceMetrics(
            total_return=total_return,
            annualized_return=annualized_return,
            win_rate=win_rate,
            profit_factor=profit_factor,
        )

    annualization = math.sqrt(trading_days_per_year)
    volatility = float(daily_returns.std(ddof=0) * annualization)
    if not math.isfinite(volatility):
        volatility = 0.0

    equity_curve = pd.concat(
        [pd.Series([1.0]), (1.0 + daily_returns).cumprod()], ignore_index=True
    )
    max_drawdown = abs(calculate_max_drawdown(equity_curve))

    sharpe_ratio = sortino_ratio = calmar_ratio = 0.0
    if sample_size >= 2 and volatility > 0:
        excess_return = annualized_return / 100.0 - risk_free_rate
        sharpe_ratio = _safe_ratio(excess_return, volatility)

        negative_returns = daily_returns[daily_returns < 0]
        downside = (
            math.sqrt(float((negative_returns**2).mean())) * annualization
            if not negative_returns.empty
            else 0.0
        )
        sortino_ratio = _safe_ratio(excess_return, downside)
        calmar_ratio = _safe_ratio(annualized_return / 100.0, max_drawdown)

    return PerformanceMetrics(
        total_return=total_return,
        annualized_return=annualized_return,
        sharpe_ratio=sharpe_ratio,
        sortino_ratio=sortino_ratio,
        max_drawdown=max_drawdown * 100.0,
        volatility=volatility * 100.0,
        win_rate=win_rate,
        profit_factor=profit_factor,
        calmar_ratio=calmar_ratio,
    )


def _capture_ratio(
    strategy_returns: pd.Series,
    benchmark_returns: pd.Series,
    mask: pd.Series,
) -> float:
    if not bool(mask.any()):
        return 0.0
    return _safe_ratio(
        float(strategy_returns[mask].mean()), float(benchmark_returns[mask].mean())
    ) * 100.0


def calculate_risk_metrics(
    daily_returns: pd.Series,
    benchmark_returns: pd.Series | None = None,
    trading_days_per_year: int = 252,
) -> RiskMetrics:
    """
    Calculate historical VaR, expected shortfall, downside deviation, and capture ratios.

    Args:
        daily_returns: Daily portfolio returns.
        benchmark_returns: Optional benchmark returns of the same length,
            used for upside/downside capture.
        trading_days_per_year: Annualization factor.

    Returns:
        Risk metrics in percent.
    """
    if daily_returns.empty:
        return RiskMetrics()

    returns = daily_returns.reset_index(drop=True).astype(float)
    sorted_returns = returns.sort_values(ignore_index=True)
    cutoff_index = int(math.floor(sorted_returns.shape[0] * (1.0 - VAR_CONFIDENCE)))
    value_at_risk = abs(float(sorted_returns.iloc[cutoff_index])) * 100.0
    expected_shortfall = abs(float(sorted_returns.iloc[: cutoff_index + 1].mean())) * 100.0

    mean_return = float(returns.mean())
    below_mean = returns[returns < mean_return]
    downside_deviation = (
        math.sqrt(float(((below_mean - mean_return) ** 2).mean()))
        * math.sqrt(trading_days_per_year)
        * 100.0
        if not below_mean.empty
        else 0.0
    )

    upside_capture = downside_capture = 0.0
    if benchmark_returns is not None and benchmark_returns.shape[0] == returns.shape[0]:
        benchmark = benchmark_returns.reset_index(drop=True).astype(float)
        upside_capture = _capture_ratio(returns, benchmark, benchmark > 0)
        downside_capture = _capture_ratio(returns, benchmark, benchmark < 0)

    return RiskMetrics(
        value_at_risk_95=value_at_risk,
        expected_shortfall=expected_shortfall,
        downside_deviation=downside_deviation,
        upside_capture=upside_capture,
        downside_capture=downside_capture,
    )


def calculate_trade_statistics(trades: Sequence[Trade]) -> TradeStatistics:
    """
    Summarize the closed-trade ledger.

    Winners are trades with positive P&L; every other trade counts as a loser.
    """
    if not trades:
        return TradeStatistics()

    winners = [trade for trade in trades if trade.pnl > 0]
    losers = [trade for trade in trades if trade.pnl <= 0]
    pnl_pcts = [trade.pnl_pct for trade in trades]

    return TradeStatistics(
        total_trades=len(trades),
        winning_trades=len(winners),
        losing_trades=len(losers),
        avg_winning_trade=(
            sum(trade.pnl_pct for trade in winners) / len(winners) if winners else 0.0
        ),
        avg_losing_trade=sum(trade.pnl_pct for trade in losers) / len(losers) if losers else 0.0,
        avg_trade_duration_days=sum(trade.hold_duration_days for trade in trades) / len(trades),
        largest_win=max(max(pnl_pcts), 0.0),
        largest_loss=min(min(pnl_pcts), 0.0),
    )
