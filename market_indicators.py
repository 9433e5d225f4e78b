#!/usr/bin/env python3
"""Technical indicators over a token price history (oldest first)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Sequence

RISK_FREE_RATE = 0.02
RSI_PERIOD = 14
RSI_NEUTRAL = 50.0
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9


@dataclass(frozen=True)
class MACD:
    value: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


@dataclass(frozen=True)
class VolatilityMetrics:
    volatility: float = 0.0  # annualized stdev of returns, fraction
    max_drawdown: float = 0.0  # percent
    sharpe_ratio: float = 0.0


def calculate_rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """Simple-average RSI over the first ``period`` changes; 50 when history is short."""
    if len(prices) < period + 1:
        return RSI_NEUTRAL
    changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
    window = changes[:period]
    avg_gain = sum(c for c in window if c > 0) / period
    avg_loss = sum(-c for c in window if c < 0) / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_ema(prices: Sequence[float], period: int) -> float:
    if not prices:
        return 0.0
    k = 2.0 / (period + 1)
    ema = float(prices[0])
    for price in prices[1:]:
        ema = float(price) * k + ema * (1 - k)
    return ema


def calculate_sma(prices: Sequence[float], period: int) -> float:
    if not prices:
        return 0.0
    if len(prices) < period:
        return float(prices[-1])
    window = prices[-period:]
    return sum(window) / period


def calculate_macd(prices: Sequence[float]) -> MACD:
    if len(prices) < MACD_SLOW:
        return MACD()
    line = calculate_ema(prices, MACD_FAST) - calculate_ema(prices, MACD_SLOW)
    # Signal EMA is seeded with the single latest MACD value.
    signal = calculate_ema([line], MACD_SIGNAL)
    return MACD(value=line, signal=signal, histogram=line - signal)


def calculate_moving_averages(prices: Sequence[float]) -> Dict[str, float]:
    return {
        "sma20": calculate_sma(prices, 20),
        "sma50": calculate_sma(prices, 50),
        "sma200": calculate_sma(prices, 200),
        "ema20": calculate_ema(prices, 20),
    }


def calculate_volatility_metrics(
    prices: Sequence[float],
    risk_free_rate: float = RISK_FREE_RATE,
) -> VolatilityMetrics:
    if len(prices) < 2:
        return VolatilityMetrics()

    returns = []
    for prev, cur in zip(prices, prices[1:]):
        if prev == 0:
            continue
        returns.append((cur - prev) / prev)
    if not returns:
        return VolatilityMetrics()

    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    volatility = math.sqrt(variance) * math.sqrt(365)

    max_drawdown = 0.0
    peak = prices[0]
    for price in prices:
        if price > peak:
            peak = price
        if peak > 0:
            max_drawdown = max(max_drawdown, (peak - price) / peak)

    excess = mean * 365 - risk_free_rate
    sharpe = excess / volatility if volatility > 0 else 0.0
    return VolatilityMetrics(volatility=volatility, max_drawdown=max_drawdown * 100, sharpe_ratio=sharpe)
