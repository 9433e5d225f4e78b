#!/usr/bin/env python3
"""
Token market data from CoinGecko.

``get_token_price_data`` never raises: HTTP errors, rate limits, timeouts
and malformed payloads are logged and answered with the static fallback
record for that token (``source="fallback"``).
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, Dict, Iterable, Mapping, Optional

import aiohttp

from logging_utils import get_logger
from protocols import normalize_token

DEFAULT_COINGECKO_BASE = "https://api.coingecko.com/api/v3"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_HISTORY_DAYS = 7
DEFAULT_HISTORY_POINTS = 24

DEFAULT_TOKEN_IDS = {
    "ETH": "ethereum",
    "USDC": "usd-coin",
    "USDT": "tether",
    "STRK": "starknet",
}


class DataUnavailable(RuntimeError):
    """Raised internally when an upstream source cannot serve a request."""


def _empty_fallback() -> Dict[str, Any]:
    return {
        "price": 0.0,
        "price_change_24h": 0.0,
        "market_cap": 0.0,
        "volume24h": 0.0,
        "price_history": [0.0] * DEFAULT_HISTORY_POINTS,
        "source": "fallback",
    }


FALLBACK_PRICE_DATA: Dict[str, Dict[str, Any]] = {
    "starknet": {
        "price": 3.45,
        "price_change_24h": 2.5,
        "market_cap": 345_000_000.0,
        "volume24h": 15_000_000.0,
        "price_history": [3.45 + math.sin(i / 4) * 0.1 for i in range(DEFAULT_HISTORY_POINTS)],
        "tvl": 100_000_000.0,
        "staking_apy": 12.5,
        "source": "fallback",
    },
}


def fallback_price_data(token_id: str) -> Dict[str, Any]:
    record = FALLBACK_PRICE_DATA.get(str(token_id or "").lower())
    if record is None:
        return _empty_fallback()
    out = dict(record)
    out["price_history"] = list(record["price_history"])
    return out


class MarketDataFetcher:
    """CoinGecko client with per-token static fallback."""

    def __init__(
        self,
        base_url: str = DEFAULT_COINGECKO_BASE,
        *,
        api_key: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        history_days: int = DEFAULT_HISTORY_DAYS,
        history_points: int = DEFAULT_HISTORY_POINTS,
        token_ids: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.log = get_logger("market_fetcher")
        self.base_url = (base_url or DEFAULT_COINGECKO_BASE).rstrip("/")
        self.api_key = api_key or ""
        self.timeout_seconds = float(timeout_seconds)
        self.history_days = int(history_days)
        self.history_points = int(history_points)
        self.token_ids = {normalize_token(k): str(v) for k, v in (token_ids or DEFAULT_TOKEN_IDS).items()}
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "MarketDataFetcher":
        cfg = cfg or {}
        return cls(
            base_url=str(cfg.get("coingecko_base") or DEFAULT_COINGECKO_BASE),
            api_key=str(cfg.get("coingecko_api_key") or ""),
            timeout_seconds=float(cfg.get("timeout_seconds") or DEFAULT_TIMEOUT_SECONDS),
            history_days=int(cfg.get("history_days") or DEFAULT_HISTORY_DAYS),
            history_points=int(cfg.get("history_points") or DEFAULT_HISTORY_POINTS),
            token_ids=cfg.get("token_ids") or None,
        )

    async def initialize(self) -> None:
        if self._session and not self._session.closed:
            return
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def token_id(self, symbol: str) -> str:
        sym = normalize_token(symbol)
        return self.token_ids.get(sym, sym.lower())

    async def _get_json(self, path: str, params: Dict[str, str]) -> Any:
        await self.initialize()
        headers = {"x-cg-demo-api-key": self.api_key} if self.api_key else None
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with self._session.get(url, params=params, headers=headers) as resp:
                if resp.status == 429:
                    raise DataUnavailable("rate_limited_429")
                if resp.status != 200:
                    raise DataUnavailable(f"http_{resp.status}")
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise DataUnavailable(f"{type(exc).__name__}: {exc}") from exc

    def _parse(self, token_id: str, price_payload: Any, chart_payload: Any) -> Dict[str, Any]:
        try:
            row = price_payload[token_id]
            points = chart_payload["prices"]
            history = [float(p[1]) for p in points[-self.history_points:]]
            return {
                "price": float(row["usd"]),
                "price_change_24h": float(row.get("usd_24h_change") or 0.0),
                "market_cap": float(row.get("usd_market_cap") or 0.0),
                "volume24h": float(row.get("usd_24h_vol") or 0.0),
                "price_history": history,
                "source": "coingecko",
            }
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise DataUnavailable(f"bad payload for {token_id}: {exc}") from exc

    async def get_token_price_data(self, token_id: str) -> Dict[str, Any]:
        token_id = str(token_id or "").strip().lower()
        try:
            price_payload, chart_payload = await asyncio.gather(
                self._get_json(
                    "simple/price",
                    {
                        "ids": token_id,
                        "vs_currencies": "usd",
                        "include_24hr_change": "true",
                        "include_market_cap": "true",
                        "include_24hr_vol": "true",
                    },
                ),
                self._get_json(
                    f"coins/{token_id}/market_chart",
                    {"vs_currency": "usd", "days": str(self.history_days)},
                ),
            )
            return self._parse(token_id, price_payload, chart_payload)
        except DataUnavailable as exc:
            self.log.warning(f"CoinGecko unavailable for {token_id} ({exc}); using fallback data")
            return fallback_price_data(token_id)

    async def get_market_data(self, symbols: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Symbol -> price record, fetched sequentially to stay under public rate limits."""
        out: Dict[str, Dict[str, Any]] = {}
        for symbol in symbols:
            sym = normalize_token(symbol)
            out[sym] = await self.get_token_price_data(self.token_id(sym))
        return out

    @staticmethod
    def prices(market_data: Mapping[str, Mapping[str, Any]]) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for symbol, rec in market_data.items():
            try:
                price = float(rec.get("price") or 0.0)
            except (TypeError, ValueError):
                continue
            if price > 0:
                out[normalize_token(symbol)] = price
        return out
