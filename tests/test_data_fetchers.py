#!/usr/bin/env python3
"""CoinGecko and protocol pool fetchers: parsing, transforms, fallbacks."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from market_fetcher import DataUnavailable, MarketDataFetcher
from protocol_pools import (
    ProtocolPoolFetcher,
    apr_to_apy,
    ekubo_snapshot,
    transform_ekubo,
    transform_zklend,
    zklend_snapshot,
)


class DummyResp:
    def __init__(self, status: int, json_data=None):
        self.status = status
        self._json_data = json_data

    async def json(self):
        return self._json_data


class DummyCM:
    def __init__(self, resp: DummyResp):
        self.resp = resp

    async def __aenter__(self):
        return self.resp

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummySession:
    closed = False

    def __init__(self, responses):
        self._responses = dict(responses)
        self.calls = []

    def get(self, url, params=None, headers=None):
        self.calls.append(url)
        for suffix, resp in self._responses.items():
            if url.endswith(suffix):
                return DummyCM(resp)
        return DummyCM(DummyResp(404))

    async def close(self):
        return None


def _chart(n: int):
    return {"prices": [[i * 3600_000, 100.0 + i] for i in range(n)]}


def test_coingecko_success_parses_and_trims_history() -> None:
    fetcher = MarketDataFetcher()
    fetcher._session = DummySession(
        {
            "simple/price": DummyResp(
                200,
                {"ethereum": {"usd": 2500.0, "usd_24h_change": -1.5, "usd_market_cap": 3e11, "usd_24h_vol": 1e10}},
            ),
            "coins/ethereum/market_chart": DummyResp(200, _chart(30)),
        }
    )
    data = asyncio.run(fetcher.get_token_price_data("ethereum"))
    assert data["source"] == "coingecko"
    assert data["price"] == 2500.0
    assert data["price_change_24h"] == -1.5
    assert len(data["price_history"]) == 24
    assert data["price_history"][-1] == 129.0


def test_coingecko_rate_limit_falls_back() -> None:
    fetcher = MarketDataFetcher()
    fetcher._session = DummySession(
        {
            "simple/price": DummyResp(429),
            "coins/starknet/market_chart": DummyResp(200, _chart(30)),
        }
    )
    data = asyncio.run(fetcher.get_token_price_data("starknet"))
    assert data["source"] == "fallback"
    assert data["price"] == pytest.approx(3.45)
    assert len(data["price_history"]) == 24


def test_coingecko_bad_payload_falls_back_to_empty_record() -> None:
    fetcher = MarketDataFetcher()
    fetcher._get_json = AsyncMock(return_value={"unexpected": True})
    data = asyncio.run(fetcher.get_token_price_data("tether"))
    assert data["source"] == "fallback"
    assert data["price"] == 0.0
    assert data["price_history"] == [0.0] * 24


def test_get_market_data_maps_symbols_to_ids() -> None:
    fetcher = MarketDataFetcher()
    fetcher._get_json = AsyncMock(side_effect=DataUnavailable("down"))
    data = asyncio.run(fetcher.get_market_data(["strk", "USDC"]))
    assert list(data) == ["STRK", "USDC"]
    assert data["STRK"]["price"] == pytest.approx(3.45)
    assert MarketDataFetcher.prices(data) == {"STRK": pytest.approx(3.45)}


def test_apr_to_apy_daily_compounding() -> None:
    assert apr_to_apy(4.5) == pytest.approx(((1 + 0.045 / 365) ** 365 - 1) * 100)
    assert apr_to_apy(4.5) > 4.5
    assert apr_to_apy(0.0) == 0.0


def test_transform_zklend_snapshot() -> None:
    pools = transform_zklend(zklend_snapshot(now=1_700_000_000))
    assert [p.token0 for p in pools] == ["ETH", "USDC", "USDT"]
    eth = pools[0]
    assert eth.protocol == "zkLend"
    assert eth.apy == pytest.approx(apr_to_apy(4.5))
    assert eth.volatility == pytest.approx(10.0)
    assert eth.volume24h == pytest.approx(200_000.0)
    assert eth.liquidity == pytest.approx(8_000_000.0)
    assert eth.max_drawdown == 0.1
    assert eth.historical_accuracy == 0.9
    assert eth.last_update == 1_700_000_000
    assert eth.token1 is None


def test_transform_ekubo_snapshot() -> None:
    pools = transform_ekubo(ekubo_snapshot(), now=1_700_000_000.0)
    eth_usdc = pools[0]
    assert (eth_usdc.token0, eth_usdc.token1) == ("ETH", "USDC")
    assert eth_usdc.apy == 15.5
    assert eth_usdc.volatility == pytest.approx(3.0)
    assert eth_usdc.total_borrow == pytest.approx(50_000_000.0)
    assert eth_usdc.total_supply == pytest.approx(100_000_000.0)
    assert eth_usdc.max_drawdown == 0.2
    assert eth_usdc.pool_data["fee"] == "0"
    assert eth_usdc.pool_data["tick_spacing"] == 1003
    assert eth_usdc.label == "ETH/USDC"


@pytest.mark.asyncio
async def test_pool_fetcher_uses_snapshots_without_urls() -> None:
    fetcher = ProtocolPoolFetcher()
    pools = await fetcher.get_protocol_pools()
    assert len(pools) == 5
    assert {p.protocol for p in pools} == {"ekubo", "zkLend"}


@pytest.mark.asyncio
async def test_pool_fetcher_falls_back_when_source_down() -> None:
    fetcher = ProtocolPoolFetcher(ekubo_url="https://ekubo.example/pools", zklend_url="https://zklend.example/markets")
    fetcher._get_json = AsyncMock(side_effect=DataUnavailable("http_503"))
    pools = await fetcher.get_protocol_pools()
    assert len(pools) == 5


@pytest.mark.asyncio
async def test_malformed_protocol_payload_contributes_no_pools() -> None:
    fetcher = ProtocolPoolFetcher(zklend_url="https://zklend.example/markets")
    fetcher._get_json = AsyncMock(return_value={"zklend": [{"bad": 1}]})
    pools = await fetcher.get_protocol_pools()
    assert {p.protocol for p in pools} == {"ekubo"}
    assert len(pools) == 2
