#!/usr/bin/env python3
"""
Market sentiment from per-token market snapshots.

Each token votes on four factors (price action, volatility, volume,
technicals). Factor votes are averaged over tokens so every factor lands
in [-1, 1]; ``overall`` is the mean of the four factors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from market_indicators import (
    MACD,
    calculate_macd,
    calculate_moving_averages,
    calculate_rsi,
    calculate_volatility_metrics,
)
from pool_models import MarketSentiment

HIGH_VOLATILITY_PCT = 30.0
PREVIOUS_VOLUME_ESTIMATE = 0.9
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0

TREND_STRONG_BULLISH = "STRONG_BULLISH"
TREND_BULLISH = "BULLISH"
TREND_NEUTRAL = "NEUTRAL"
TREND_BEARISH = "BEARISH"
TREND_STRONG_BEARISH = "STRONG_BEARISH"


@dataclass(frozen=True)
class TokenMarket:
    symbol: str
    price: float
    price_change_24h: float
    volume24h: float
    volume24h_previous: float
    market_cap: float
    volatility: float  # annualized, percent
    max_drawdown: float  # percent
    sharpe_ratio: float
    rsi: float
    macd: MACD
    moving_averages: Dict[str, float] = field(default_factory=dict)
    source: str = "coingecko"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "price_change_24h": self.price_change_24h,
            "volume24h": self.volume24h,
            "volume24h_previous": self.volume24h_previous,
            "market_cap": self.market_cap,
            "volatility": self.volatility,
            "max_drawdown": self.max_drawdown,
            "sharpe_ratio": self.sharpe_ratio,
            "rsi": self.rsi,
            "macd": {
                "value": self.macd.value,
                "signal": self.macd.signal,
                "histogram": self.macd.histogram,
            },
            "moving_averages": dict(self.moving_averages),
            "source": self.source,
        }


def _f(data: Mapping[str, Any], key: str) -> float:
    try:
        return float(data.get(key) or 0.0)
    except (TypeError, ValueError):
        return 0.0


def build_token_market(symbol: str, price_data: Mapping[str, Any]) -> TokenMarket:
    """Turn a fetcher record (price, price_change_24h, volume24h, market_cap, price_history) into a TokenMarket."""
    history: Sequence[float] = [float(p) for p in (price_data.get("price_history") or [])]
    vol = calculate_volatility_metrics(history)
    volume = _f(price_data, "volume24h")
    return TokenMarket(
        symbol=symbol,
        price=_f(price_data, "price"),
        price_change_24h=_f(price_data, "price_change_24h"),
        volume24h=volume,
        volume24h_previous=volume * PREVIOUS_VOLUME_ESTIMATE,
        market_cap=_f(price_data, "market_cap"),
        volatility=vol.volatility * 100.0,
        max_drawdown=vol.max_drawdown,
        sharpe_ratio=vol.sharpe_ratio,
        rsi=calculate_rsi(history),
        macd=calculate_macd(history),
        moving_averages=calculate_moving_averages(history) if history else {},
        source=str(price_data.get("source") or "coingecko"),
    )


def _sign(value: float) -> float:
    if value > 0:
        return 1.0
    if value < 0:
        return -1.0
    return 0.0


def _technicals_vote(market: TokenMarket) -> float:
    rsi_vote = -1.0 if (market.rsi > RSI_OVERBOUGHT or market.rsi < RSI_OVERSOLD) else 1.0
    macd_vote = 1.0 if market.macd.histogram > 0 else -1.0
    mas = market.moving_averages or {}
    ma_vote = 1.0 if mas.get("sma20", 0.0) > mas.get("sma50", 0.0) else -1.0
    return (rsi_vote + macd_vote + ma_vote) / 3.0


def calculate_market_sentiment(markets: Sequence[TokenMarket]) -> MarketSentiment:
    if not markets:
        return MarketSentiment()
    n = float(len(markets))
    price_action = sum(_sign(m.price_change_24h) for m in markets) / n
    volatility = sum(-1.0 if m.volatility > HIGH_VOLATILITY_PCT else 1.0 for m in markets) / n
    volume = sum(1.0 if m.volume24h > m.volume24h_previous else -1.0 for m in markets) / n
    technicals = sum(_technicals_vote(m) for m in markets) / n
    overall = (price_action + volatility + volume + technicals) / 4.0
    return MarketSentiment(
        overall=overall,
        price_action=price_action,
        volatility=volatility,
        volume=volume,
        technicals=technicals,
    )


def detect_market_trend(markets: Sequence[TokenMarket]) -> str:
    if not markets:
        return TREND_NEUTRAL
    avg = sum(m.price_change_24h for m in markets) / len(markets)
    if avg > 5:
        return TREND_STRONG_BULLISH
    if avg > 2:
        return TREND_BULLISH
    if avg < -5:
        return TREND_STRONG_BEARISH
    if avg < -2:
        return TREND_BEARISH
    return TREND_NEUTRAL


def calculate_market_volatility(markets: Sequence[TokenMarket]) -> float:
    if not markets:
        return 0.0
    return sum(m.volatility for m in markets) / len(markets)


def market_conditions(markets: Sequence[TokenMarket]) -> Dict[str, Any]:
    sentiment = calculate_market_sentiment(markets)
    return {
        "sentiment": sentiment.to_dict(),
        "trend": detect_market_trend(markets),
        "volatility": calculate_market_volatility(markets),
        "tokens": [m.symbol for m in markets],
        "sources": sorted({m.source for m in markets}),
    }


def markets_from_price_data(price_data: Mapping[str, Mapping[str, Any]]) -> List[TokenMarket]:
    return [build_token_market(symbol, data) for symbol, data in price_data.items()]
