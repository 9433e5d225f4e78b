#!/usr/bin/env python3
"""
Pool scoring for the allocation engine.

- risk-adjusted return: Sharpe-like ratio penalized by estimated drawdown
- pool risk score: utilization + volatility + thin-TVL weighted sum
- market fit: sentiment/volume/TVL alignment (unnormalized, ranking only)
- confidence: market alignment + data quality + historical accuracy,
  mapped to none/low/medium/high
"""

from __future__ import annotations

import time
from typing import Any, Optional

from pool_models import Confidence, MarketSentiment, PoolRecord
from strategy_config import RiskStrategyConfig

RISK_FREE_RATE = 0.02
MIN_VOLATILITY = 0.1
MAX_DRAWDOWN_PROXY = 0.3
# Floor for 1/volatility when sentiment is not bullish.
VOLATILITY_EPSILON = 1e-6

TVL_SCALE = 1e7
VOLUME_SCALE = 1e6

FRESHNESS_SECONDS = 3600.0
DEFAULT_HISTORICAL_ACCURACY = 0.5

_REQUIRED_FIELDS = ("apy", "tvl", "volume24h", "liquidity")
_KEY_METRICS = (
    "apy",
    "tvl",
    "volume24h",
    "liquidity",
    "total_supply",
    "total_borrow",
    "volatility",
    "max_drawdown",
    "historical_accuracy",
    "last_update",
)

CONFIDENCE_HIGH = 0.8
CONFIDENCE_MEDIUM = 0.6
CONFIDENCE_LOW = 0.3


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return float(default)
    if out != out:
        return float(default)
    return out


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def volatility_ratio(pool: PoolRecord) -> float:
    """volume24h / max(tvl, 1); a zero-TVL pool gets its raw volume."""
    volume = max(0.0, _safe_float(pool.volume24h))
    tvl = max(0.0, _safe_float(pool.tvl))
    return volume / max(tvl, 1.0)


def pool_volatility(pool: PoolRecord) -> float:
    """Source volatility proxy when reported, else the volume/TVL ratio."""
    if pool.volatility is not None:
        return max(0.0, _safe_float(pool.volatility))
    return volatility_ratio(pool)


def utilization(pool: PoolRecord) -> float:
    supply = _safe_float(pool.total_supply)
    if supply <= 0:
        return 0.0
    # Not clamped above 1: borrow > supply is reported as-is.
    return max(0.0, _safe_float(pool.total_borrow)) / supply


def estimated_drawdown(pool: PoolRecord) -> float:
    return min(volatility_ratio(pool), MAX_DRAWDOWN_PROXY)


def calculate_risk_adjusted_return(
    pool: PoolRecord,
    config: RiskStrategyConfig,
    risk_free_rate: float = RISK_FREE_RATE,
) -> float:
    apy = _safe_float(pool.apy)
    volatility = volatility_ratio(pool)
    sharpe = (apy - risk_free_rate) / max(volatility, MIN_VOLATILITY)
    drawdown = min(volatility, MAX_DRAWDOWN_PROXY)
    penalty = max(0.0, drawdown - _safe_float(config.max_drawdown))
    return max(0.0, sharpe * (1.0 - penalty))


def calculate_pool_risk_score(pool: PoolRecord) -> float:
    tvl = max(0.0, _safe_float(pool.tvl))
    return (
        0.4 * utilization(pool)
        + 0.3 * min(pool_volatility(pool) / 100.0, 1.0)
        + 0.3 * max(0.0, 1.0 - tvl / TVL_SCALE)
    )


def calculate_market_fit(pool: PoolRecord, sentiment: MarketSentiment) -> float:
    if sentiment.overall > 0:
        alignment = _safe_float(pool.apy)
    else:
        alignment = 1.0 / max(pool_volatility(pool), VOLATILITY_EPSILON)
    volume_score = min(max(0.0, _safe_float(pool.volume24h)) / VOLUME_SCALE, 1.0)
    tvl_score = min(max(0.0, _safe_float(pool.tvl)) / TVL_SCALE, 1.0)
    return 0.4 * alignment + 0.3 * volume_score + 0.3 * tvl_score


def calculate_data_quality(
    pool: PoolRecord,
    now: Optional[float] = None,
    freshness_seconds: float = FRESHNESS_SECONDS,
) -> float:
    now = time.time() if now is None else now
    score = 0.0
    if all(getattr(pool, name) is not None for name in _REQUIRED_FIELDS):
        score += 0.4
    if pool.last_update is not None and now - _safe_float(pool.last_update) < freshness_seconds:
        score += 0.3
    populated = sum(1 for name in _KEY_METRICS if getattr(pool, name) is not None)
    score += 0.3 * min(populated / len(_KEY_METRICS), 1.0)
    return score


def calculate_confidence_score(
    pool: PoolRecord,
    sentiment: MarketSentiment,
    historical_accuracy: Optional[float] = None,
    now: Optional[float] = None,
    freshness_seconds: float = FRESHNESS_SECONDS,
) -> float:
    alignment = 0.5 + _safe_float(sentiment.overall) * 0.5
    quality = calculate_data_quality(pool, now=now, freshness_seconds=freshness_seconds)
    accuracy = DEFAULT_HISTORICAL_ACCURACY if historical_accuracy is None else _clamp01(historical_accuracy)
    return 0.4 * alignment + 0.3 * quality + 0.3 * accuracy


def confidence_label(score: float) -> Confidence:
    if score >= CONFIDENCE_HIGH:
        return Confidence.HIGH
    if score >= CONFIDENCE_MEDIUM:
        return Confidence.MEDIUM
    if score >= CONFIDENCE_LOW:
        return Confidence.LOW
    return Confidence.NONE
