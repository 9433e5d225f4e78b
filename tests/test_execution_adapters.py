#!/usr/bin/env python3
"""Starknet adapter call building/retries, dry-run adapter and router."""

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from adapters import (
    DryRunAdapter,
    ExecutionFailure,
    ExecutionRouter,
    ExecutionRoutingError,
    StarknetAdapter,
)
from adapters.starknet_adapter import split_u256, usd_to_base_units
from protocols import PROTOCOL_CONTRACTS, TOKEN_ADDRESSES


def _account(execute_side_effect=None, execute_return="0xabc"):
    account = SimpleNamespace()
    account.execute = AsyncMock(side_effect=execute_side_effect, return_value=execute_return)
    account.wait_for_transaction = AsyncMock(return_value=None)
    return account


def _adapter(account, **kw) -> StarknetAdapter:
    kw.setdefault("retry_delay_seconds", 0.0)
    adapter = StarknetAdapter(account, **kw)
    adapter.set_prices({"ETH": 2000.0, "USDC": 1.0, "usdt": 1.0})
    return adapter


def test_u256_split_and_unit_conversion() -> None:
    assert split_u256(5) == [5, 0]
    assert split_u256((1 << 128) + 7) == [7, 1]
    assert usd_to_base_units(1000.0, 2000.0, 18) == 5 * 10**17
    assert usd_to_base_units(500.0, 1.0, 6) == 500 * 10**6


def test_lending_allocation_maps_to_approve_and_deposit() -> None:
    calls = _adapter(_account()).build_calls("zklend", "ETH", 1000.0)
    assert [c["entrypoint"] for c in calls] == ["approve", "deposit"]
    deposit = calls[1]
    assert deposit["contract_address"] == PROTOCOL_CONTRACTS["zkLend"]
    assert deposit["calldata"] == [int(TOKEN_ADDRESSES["ETH"], 16), 5 * 10**17, 0]
    assert calls[0]["contract_address"] == TOKEN_ADDRESSES["ETH"]


def test_amm_allocation_maps_to_add_liquidity() -> None:
    pool_data = {
        "token0_address": TOKEN_ADDRESSES["ETH"],
        "token1_address": TOKEN_ADDRESSES["USDC"],
        "fee": "0",
        "tick_spacing": 1003,
    }
    calls = _adapter(_account()).build_calls("ekubo", "ETH/USDC", 1000.0, pool_data)
    assert [c["entrypoint"] for c in calls] == ["approve", "approve", "add_liquidity"]
    calldata = calls[2]["calldata"]
    assert calldata[:4] == [int(TOKEN_ADDRESSES["ETH"], 16), int(TOKEN_ADDRESSES["USDC"], 16), 0, 1003]
    assert calldata[4:] == [25 * 10**16, 0, 500 * 10**6, 0]


def test_missing_price_fails_without_submitting() -> None:
    account = _account()
    adapter = _adapter(account)
    with pytest.raises(ExecutionFailure):
        asyncio.run(adapter.submit("zkLend", "STRK", 100.0))
    account.execute.assert_not_called()


def test_submit_returns_tx_hash_and_waits() -> None:
    account = _account(execute_return=SimpleNamespace(transaction_hash=0xBEEF))
    tx = asyncio.run(_adapter(account).submit("zkLend", "USDC", 100.0))
    assert tx == "0xbeef"
    account.wait_for_transaction.assert_awaited_once_with("0xbeef")


def test_submit_retries_then_succeeds() -> None:
    account = _account(execute_side_effect=[RuntimeError("nonce"), "0x123"])
    tx = asyncio.run(_adapter(account).submit("zkLend", "ETH", 100.0))
    assert tx == "0x123"
    assert account.execute.await_count == 2


def test_submit_raises_after_three_attempts() -> None:
    account = _account(execute_side_effect=RuntimeError("rpc down"))
    adapter = _adapter(account)

    with pytest.raises(ExecutionFailure) as excinfo:
        asyncio.run(adapter.submit("zkLend", "ETH", 100.0))

    assert excinfo.value.attempts == 3
    assert "rpc down" in str(excinfo.value)
    assert account.execute.await_count == 3
    account.wait_for_transaction.assert_not_called()


def test_each_attempt_is_bounded_by_timeout() -> None:
    async def hang(calls):
        await asyncio.sleep(10)

    account = _account()
    account.execute = hang
    adapter = _adapter(account, attempt_timeout_seconds=0.01, max_retries=2)
    with pytest.raises(ExecutionFailure) as excinfo:
        asyncio.run(adapter.submit("zkLend", "ETH", 100.0))
    assert "timed out" in str(excinfo.value)


def test_explorer_url() -> None:
    assert _adapter(_account()).explorer_url("0xabc") == "https://starkscan.co/tx/0xabc"


def test_dry_run_ids_are_deterministic() -> None:
    adapter = DryRunAdapter()
    first = asyncio.run(adapter.submit("zkLend", "ETH", 800.0))
    second = asyncio.run(adapter.submit("zkLend", "ETH", 800.0))
    other = asyncio.run(adapter.submit("ekubo", "ETH/USDC", 200.0))
    assert first == second
    assert first.startswith("dryrun-")
    assert other != first
    assert len(adapter.submissions) == 3


def test_router_validates_protocols_at_construction() -> None:
    dry = DryRunAdapter()
    with pytest.raises(ExecutionRoutingError):
        ExecutionRouter({"nostra": dry})
    with pytest.raises(ExecutionRoutingError):
        ExecutionRouter({"zkLend": dry}, required=["zkLend", "ekubo"])


def test_router_select_normalizes_and_rejects_unknown() -> None:
    dry = DryRunAdapter()
    router = ExecutionRouter({"ZKLEND": dry})
    assert router.select("zklend") is dry
    with pytest.raises(ExecutionRoutingError):
        router.select("ekubo")


def test_single_router_dedupes_adapters() -> None:
    dry = DryRunAdapter()
    router = ExecutionRouter.single(dry)
    assert set(router.protocols()) == {"zkLend", "ekubo"}
    assert router.adapters() == [dry]
