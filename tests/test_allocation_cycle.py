#!/usr/bin/env python3
"""End-to-end allocation cycle over snapshot pools with dry-run execution."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from adapters import DryRunAdapter, ExecutionAdapter, ExecutionFailure, ExecutionRouter
from agent_deps import AgentDeps, build_deps
from allocation_cycle import STATUS_NO_ACTION, STATUS_OK, run_cycle
from memory_store import KEY_CYCLE, MemoryStore
from performance_history import HistoryStore
from pool_models import PortfolioPosition
from protocol_pools import ProtocolPoolFetcher
from rebalance_trigger import REASON_DRAWDOWN, RebalanceState
from strategy_config import AgentSettings, RiskLevel, load_strategy_configs


class FailingZkLendAdapter(ExecutionAdapter):
    def __init__(self) -> None:
        super().__init__(log=MagicMock())
        self.submitted = []

    async def submit(self, protocol, token, amount, pool_data=None) -> str:
        if protocol == "zkLend":
            raise ExecutionFailure("submission failed after 3 attempts: rpc down", attempts=3)
        self.submitted.append((protocol, token))
        return f"0x{len(self.submitted)}"


def _deps(router=None, memory=None) -> AgentDeps:
    market = MagicMock()
    market.get_market_data = AsyncMock(return_value={})
    market.close = AsyncMock()
    return AgentDeps(
        config={},
        strategies=load_strategy_configs({}),
        market=market,
        pools=ProtocolPoolFetcher(),
        memory=memory if memory is not None else MemoryStore(),
        history=HistoryStore(),
        router=router if router is not None else ExecutionRouter.single(DryRunAdapter()),
    )


def _by_protocol(recs):
    totals = {}
    for rec in recs:
        totals[rec.protocol] = totals.get(rec.protocol, 0.0) + rec.amount
    return totals


def test_conservative_cycle_respects_bounds_and_submits() -> None:
    deps = _deps()
    settings = AgentSettings(profile="conservative", total_amount=1000.0)
    result = asyncio.run(run_cycle(deps, settings))

    assert result.status == STATUS_OK
    assert result.risk_level == RiskLevel.LOW.value
    totals = _by_protocol(result.recommendations)
    assert 600.0 - 1e-6 <= totals["zkLend"] <= 800.0 + 1e-6
    assert 100.0 - 1e-6 <= totals["ekubo"] <= 200.0 + 1e-6
    assert result.allocated <= 1000.0 + 1e-6
    assert len([r for r in result.recommendations if r.protocol == "zkLend"]) <= 3

    assert len(result.executions) == len(result.recommendations)
    assert all(e.status == "submitted" for e in result.executions)
    assert all(e.transaction_id.startswith("dryrun-") for e in result.executions)

    assert deps.memory.query_recent(KEY_CYCLE, 1)[0]["status"] == STATUS_OK
    assert deps.memory.query_prefix("recommendation:")
    assert result.rebalance is not None
    assert result.next_rebalance_at == result.started_at + 168 * 3600.0


def test_failed_submission_does_not_stop_other_recommendations() -> None:
    adapter = FailingZkLendAdapter()
    deps = _deps(router=ExecutionRouter.single(adapter))
    result = asyncio.run(run_cycle(deps, AgentSettings(profile="moderate", total_amount=1000.0)))

    failed = [e for e in result.executions if e.status == "failed"]
    submitted = [e for e in result.executions if e.status == "submitted"]
    assert failed and all(e.protocol == "zkLend" for e in failed)
    assert submitted and all(e.protocol == "ekubo" for e in submitted)
    assert "rpc down" in failed[0].error
    assert deps.memory.query_recent(KEY_CYCLE, 1)[0]["failed_executions"] == len(failed)


def test_stored_risk_profile_overrides_settings() -> None:
    memory = MemoryStore()
    memory.set_risk_profile("I am an aggressive investor")
    deps = _deps(memory=memory)
    result = asyncio.run(run_cycle(deps, AgentSettings(profile="conservative", total_amount=1000.0)))

    assert result.risk_level == RiskLevel.HIGH.value
    totals = _by_protocol(result.recommendations)
    assert 500.0 - 1e-6 <= totals["ekubo"] <= 700.0 + 1e-6
    assert 200.0 - 1e-6 <= totals["zkLend"] <= 300.0 + 1e-6


def test_zero_amount_is_no_action() -> None:
    deps = _deps()
    result = asyncio.run(run_cycle(deps, AgentSettings(total_amount=0.0)))

    assert result.status == STATUS_NO_ACTION
    assert result.recommendations == []
    assert result.executions == []
    record = deps.memory.query_recent(KEY_CYCLE, 1)[0]
    assert record["status"] == STATUS_NO_ACTION
    assert record["allocated"] == 0.0


def test_existing_positions_are_checked_without_new_allocation() -> None:
    deps = _deps()
    held = [
        PortfolioPosition("zkLend", "ETH", 700.0, expected_return=4.6, risk_score=0.2, max_drawdown=0.5),
        PortfolioPosition("ekubo", "ETH/USDC", 300.0, expected_return=15.5, risk_score=0.3, max_drawdown=0.2),
    ]
    settings = AgentSettings(profile="conservative", total_amount=0.0)
    result = asyncio.run(run_cycle(deps, settings, positions=held))

    assert result.status == STATUS_NO_ACTION
    assert result.recommendations == []
    assert result.metrics.total_value == pytest.approx(1000.0)
    assert result.rebalance.state == RebalanceState.NEEDS_REBALANCE
    assert result.rebalance.reason == REASON_DRAWDOWN
    assert deps.memory.query_recent(KEY_CYCLE, 1)[0]["rebalance"]["reason"] == REASON_DRAWDOWN


def test_cycle_without_execution_only_recommends() -> None:
    deps = _deps()
    result = asyncio.run(run_cycle(deps, AgentSettings(total_amount=1000.0), execute=False))
    assert result.recommendations
    assert result.executions == []


def test_build_deps_wires_dry_run_and_hydrates_history(tmp_path) -> None:
    path = tmp_path / "memory.jsonl"
    MemoryStore(str(path)).record_outcome("zkLend", "ETH", predicted_return=5.0, actual_return=4.0)

    deps = build_deps({}, AgentSettings(memory_path=str(path)))
    try:
        assert isinstance(deps.router.select("zkLend"), DryRunAdapter)
        assert set(deps.strategies) == {RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH}
        assert deps.history.accuracy("zkLend", "ETH") == pytest.approx(0.8)
        assert len(deps.memory) == 1
    finally:
        asyncio.run(deps.close())
