#!/usr/bin/env python3
"""Typed dependency registry for the allocation agent, resolved once at startup."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from adapters import DryRunAdapter, ExecutionRouter, StarknetAdapter
from env_utils import YIELDPILOT_MEMORY_PATH, ensure_runtime_dir
from logging_utils import get_logger
from market_fetcher import MarketDataFetcher
from memory_store import MemoryStore
from performance_history import HistoryStore
from protocol_pools import ProtocolPoolFetcher
from strategy_config import (
    AgentSettings,
    RiskLevel,
    RiskStrategyConfig,
    load_agent_settings,
    load_strategy_configs,
)


class Capability(str, enum.Enum):
    MARKET_DATA = "market_data"
    PROTOCOL_POOLS = "protocol_pools"
    MEMORY = "memory"
    HISTORY = "history"
    EXECUTION = "execution"


class DependencyError(RuntimeError):
    """Raised at startup when a required capability is missing."""


@dataclass
class AgentDeps:
    config: Dict[str, Any]
    strategies: Dict[RiskLevel, RiskStrategyConfig]
    market: MarketDataFetcher
    pools: ProtocolPoolFetcher
    memory: MemoryStore
    history: HistoryStore
    router: Optional[ExecutionRouter] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        required = {
            Capability.MARKET_DATA: self.market,
            Capability.PROTOCOL_POOLS: self.pools,
            Capability.MEMORY: self.memory,
            Capability.HISTORY: self.history,
        }
        missing = [cap.value for cap, impl in required.items() if impl is None]
        if missing:
            raise DependencyError(f"missing capabilities: {', '.join(missing)}")
        if not self.strategies:
            raise DependencyError("no risk strategies configured")

    def resolve(self, capability: Capability) -> Any:
        mapping = {
            Capability.MARKET_DATA: self.market,
            Capability.PROTOCOL_POOLS: self.pools,
            Capability.MEMORY: self.memory,
            Capability.HISTORY: self.history,
            Capability.EXECUTION: self.router,
        }
        impl = mapping.get(capability)
        if impl is None:
            raise DependencyError(f"capability {capability.value} not configured")
        return impl

    def strategy_for(self, level: RiskLevel) -> Optional[RiskStrategyConfig]:
        return self.strategies.get(level)

    async def close(self) -> None:
        await self.market.close()
        await self.pools.close()
        if self.router is not None:
            for adapter in self.router.adapters():
                await adapter.close()


def _section(config: Mapping[str, Any], name: str) -> Dict[str, Any]:
    root = (config.get("config") or {}) if isinstance(config, Mapping) else {}
    sec = root.get(name) if isinstance(root, Mapping) else None
    return dict(sec) if isinstance(sec, Mapping) else {}


def build_router(
    config: Mapping[str, Any],
    settings: AgentSettings,
    strategies: Mapping[RiskLevel, RiskStrategyConfig],
    account: Any = None,
) -> ExecutionRouter:
    """Dry-run adapter unless a Starknet account is injected and dry_run is off."""
    required = sorted({p for s in strategies.values() for p in s.protocols})
    if settings.dry_run or account is None:
        if not settings.dry_run:
            get_logger("agent_deps").warning("No Starknet account injected; falling back to dry-run execution")
        return ExecutionRouter.single(DryRunAdapter(), required)

    exec_cfg = _section(config, "execution")
    adapter = StarknetAdapter(
        account,
        contracts=exec_cfg.get("contracts") or None,
        max_retries=int(exec_cfg.get("max_retries") or 3),
        retry_delay_seconds=float(exec_cfg.get("retry_delay_seconds") or 5.0),
        attempt_timeout_seconds=float(exec_cfg.get("attempt_timeout_seconds") or 60.0),
    )
    return ExecutionRouter.single(adapter, required)


def build_deps(
    config: Mapping[str, Any],
    settings: Optional[AgentSettings] = None,
    *,
    account: Any = None,
) -> AgentDeps:
    settings = settings or load_agent_settings(config)
    strategies = load_strategy_configs(config)

    memory_path = settings.memory_path or YIELDPILOT_MEMORY_PATH
    if memory_path and not settings.memory_path:
        ensure_runtime_dir()
    memory = MemoryStore(memory_path or None)

    history = HistoryStore()
    history.hydrate(memory.query_prefix("outcome:", count=10_000))

    return AgentDeps(
        config=dict(config),
        strategies=strategies,
        market=MarketDataFetcher.from_config(_section(config, "market_data")),
        pools=ProtocolPoolFetcher.from_config(_section(config, "protocol_sources")),
        memory=memory,
        history=history,
        router=build_router(config, settings, strategies, account=account),
    )
