#!/usr/bin/env python3
"""
Protocol pool sources (Ekubo AMM, zkLend lending) -> PoolRecord.

Each source is fetched from its configured URL and falls back to the bundled
snapshot when the URL is unset or the request fails. A protocol whose payload
cannot be transformed contributes no pools; ``get_protocol_pools`` never
raises.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import aiohttp

from logging_utils import get_logger
from market_fetcher import DataUnavailable
from pool_models import PoolRecord
from protocols import PROTOCOL_EKUBO, PROTOCOL_ZKLEND, TOKEN_ADDRESSES

AMM_MAX_DRAWDOWN = 0.2
LENDING_MAX_DRAWDOWN = 0.1
AMM_HISTORICAL_ACCURACY = 0.8
LENDING_HISTORICAL_ACCURACY = 0.9
LENDING_VOLUME_SHARE = 0.1
DEFAULT_TIMEOUT_SECONDS = 10.0


def _token_meta(symbol: str, name: str, decimals: int) -> Dict[str, Any]:
    return {
        "name": name,
        "symbol": symbol,
        "decimals": decimals,
        "l2_token_address": TOKEN_ADDRESSES[symbol],
    }


def ekubo_snapshot() -> Dict[str, Any]:
    return {
        "ekubo": [
            {
                "token0Symbol": "ETH",
                "token1Symbol": "USDC",
                "fee": "0",
                "tickSpacing": 1003,
                "volume24h": {"usd": 3_000_000},
                "tvl": {"usd": 100_000_000},
                "apr": 15.5,
                "tokens": {
                    "token0": _token_meta("ETH", "Ether", 18),
                    "token1": _token_meta("USDC", "USD Coin", 6),
                },
            },
            {
                "token0Symbol": "USDT",
                "token1Symbol": "ETH",
                "fee": "0",
                "tickSpacing": 1003,
                "volume24h": {"usd": 2_000_000},
                "tvl": {"usd": 50_000_000},
                "apr": 12.8,
                "tokens": {
                    "token0": _token_meta("USDT", "Tether USD", 6),
                    "token1": _token_meta("ETH", "Ether", 18),
                },
            },
        ]
    }


def zklend_snapshot(now: Optional[float] = None) -> Dict[str, Any]:
    ts = int(time.time() if now is None else now)

    def market(symbol: str, name: str, decimals: int, supply: float, borrow: float,
               liquidity: float, apr: float) -> Dict[str, Any]:
        return {
            "token": {"symbol": symbol, "name": name, "decimals": decimals},
            "totalSupplyUSD": supply,
            "totalBorrowUSD": borrow,
            "availableLiquidityUSD": liquidity,
            "supplyAPR": {"total": apr},
            "utilizationRate": 20,
            "timestamp": ts,
        }

    return {
        "zklend": [
            market("ETH", "Ether", 18, 10_000_000, 2_000_000, 8_000_000, 4.5),
            market("USDC", "USD Coin", 6, 15_000_000, 3_000_000, 12_000_000, 3.8),
            market("USDT", "Tether USD", 6, 12_000_000, 2_400_000, 9_600_000, 3.5),
        ]
    }


def apr_to_apy(apr_pct: float, periods: int = 365) -> float:
    """Daily-compounded APY (percent) from APR (percent)."""
    return ((1 + float(apr_pct) / 100.0 / periods) ** periods - 1) * 100.0


def transform_ekubo(payload: Mapping[str, Any], now: Optional[float] = None) -> List[PoolRecord]:
    """Ekubo APR is used as APY as-is; volatility proxy = volume/TVL * 100."""
    now = time.time() if now is None else now
    pools: List[PoolRecord] = []
    for raw in payload.get("ekubo") or []:
        tvl = float(raw["tvl"]["usd"])
        volume = float(raw["volume24h"]["usd"])
        tokens = raw.get("tokens") or {}
        t0 = tokens.get("token0") or {}
        t1 = tokens.get("token1") or {}
        token0 = str(raw["token0Symbol"])
        token1 = str(raw["token1Symbol"])
        pools.append(
            PoolRecord(
                protocol=PROTOCOL_EKUBO,
                token0=token0,
                token1=token1,
                apy=float(raw.get("apr") or 0.0),
                tvl=tvl,
                volume24h=volume,
                total_supply=tvl,
                total_borrow=tvl / 2,
                last_update=now,
                liquidity=tvl,
                volatility=(volume / tvl * 100.0) if tvl > 0 else 0.0,
                max_drawdown=AMM_MAX_DRAWDOWN,
                historical_accuracy=AMM_HISTORICAL_ACCURACY,
                pool_data={
                    "token0_address": t0.get("l2_token_address") or TOKEN_ADDRESSES.get(token0),
                    "token1_address": t1.get("l2_token_address") or TOKEN_ADDRESSES.get(token1),
                    "token0_decimals": t0.get("decimals"),
                    "token1_decimals": t1.get("decimals"),
                    "fee": str(raw.get("fee", "0")),
                    "tick_spacing": int(raw.get("tickSpacing") or 0),
                },
            )
        )
    return pools


def transform_zklend(payload: Mapping[str, Any]) -> List[PoolRecord]:
    """zkLend supply APR -> APY by daily compounding; volatility proxy = utilization / 2."""
    pools: List[PoolRecord] = []
    for raw in payload.get("zklend") or []:
        supply = float(raw["totalSupplyUSD"])
        borrow = float(raw["totalBorrowUSD"])
        pools.append(
            PoolRecord(
                protocol=PROTOCOL_ZKLEND,
                token0=str(raw["token"]["symbol"]),
                apy=apr_to_apy(raw["supplyAPR"]["total"]),
                tvl=supply,
                volume24h=borrow * LENDING_VOLUME_SHARE,
                total_supply=supply,
                total_borrow=borrow,
                last_update=float(raw["timestamp"]),
                liquidity=float(raw.get("availableLiquidityUSD") or 0.0),
                volatility=float(raw.get("utilizationRate") or 0.0) / 2.0,
                max_drawdown=LENDING_MAX_DRAWDOWN,
                historical_accuracy=LENDING_HISTORICAL_ACCURACY,
            )
        )
    return pools


class ProtocolPoolFetcher:
    """Fetches Ekubo and zkLend pool payloads with snapshot fallback."""

    def __init__(
        self,
        *,
        ekubo_url: str = "",
        zklend_url: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.log = get_logger("protocol_pools")
        self.ekubo_url = ekubo_url or ""
        self.zklend_url = zklend_url or ""
        self.timeout_seconds = float(timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "ProtocolPoolFetcher":
        cfg = cfg or {}
        return cls(
            ekubo_url=str(cfg.get("ekubo_url") or ""),
            zklend_url=str(cfg.get("zklend_url") or ""),
            timeout_seconds=float(cfg.get("timeout_seconds") or DEFAULT_TIMEOUT_SECONDS),
        )

    async def initialize(self) -> None:
        if self._session and not self._session.closed:
            return
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, url: str) -> Any:
        await self.initialize()
        try:
            async with self._session.get(url) as resp:
                if resp.status != 200:
                    raise DataUnavailable(f"http_{resp.status}")
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise DataUnavailable(f"{type(exc).__name__}: {exc}") from exc

    async def _load(self, name: str, url: str, snapshot: Callable[[], Dict[str, Any]]) -> Any:
        if not url:
            return snapshot()
        try:
            return await self._get_json(url)
        except DataUnavailable as exc:
            self.log.warning(f"{name} source unavailable ({exc}); using bundled snapshot")
            return snapshot()

    async def _pools_for(
        self,
        name: str,
        url: str,
        snapshot: Callable[[], Dict[str, Any]],
        transform: Callable[[Mapping[str, Any]], List[PoolRecord]],
    ) -> List[PoolRecord]:
        payload = await self._load(name, url, snapshot)
        try:
            return transform(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            self.log.warning(f"{name} payload malformed ({exc}); protocol contributes no pools")
            return []

    async def get_protocol_pools(self) -> List[PoolRecord]:
        ekubo, zklend = await asyncio.gather(
            self._pools_for("ekubo", self.ekubo_url, ekubo_snapshot, transform_ekubo),
            self._pools_for("zkLend", self.zklend_url, zklend_snapshot, transform_zklend),
        )
        pools = list(ekubo) + list(zklend)
        self.log.info(f"Loaded {len(pools)} pools (ekubo={len(ekubo)} zkLend={len(zklend)})")
        return pools
