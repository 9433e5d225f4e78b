#!/usr/bin/env python3
"""
One allocation cycle.

fetch market + pools -> sentiment -> score -> allocate -> metrics ->
rebalance check -> persist -> execute

A cycle always returns a CycleResult. Fetch problems degrade to fallback
data, an empty allocation reports ``no_action``, and execution failures are
reported per recommendation while the remaining ones still run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from adapters import ExecutionFailure, ExecutionRoutingError, SubmissionResult
from agent_deps import AgentDeps
from allocation_engine import generate_recommendations, score_pools
from logging_utils import get_logger
from market_fetcher import MarketDataFetcher
from market_sentiment import calculate_market_sentiment, market_conditions, markets_from_price_data
from memory_store import KEY_CYCLE, recommendation_key
from pool_models import PortfolioPosition, Recommendation
from portfolio_metrics import (
    PortfolioMetrics,
    StrategyPerformance,
    calculate_portfolio_metrics,
    calculate_strategy_performance,
)
from rebalance_trigger import RebalanceDecision, evaluate_rebalance
from strategy_config import AgentSettings, RiskLevel, classify_risk_level

log = get_logger("allocation_cycle")

STATUS_OK = "ok"
STATUS_NO_ACTION = "no_action"


@dataclass
class CycleResult:
    status: str
    risk_level: str
    total_amount: float
    recommendations: List[Recommendation] = field(default_factory=list)
    metrics: PortfolioMetrics = field(default_factory=PortfolioMetrics)
    performance: StrategyPerformance = field(default_factory=StrategyPerformance)
    rebalance: Optional[RebalanceDecision] = None
    executions: List[SubmissionResult] = field(default_factory=list)
    market_conditions: Dict[str, Any] = field(default_factory=dict)
    next_rebalance_at: Optional[float] = None
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def allocated(self) -> float:
        return sum(r.amount for r in self.recommendations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "risk_level": self.risk_level,
            "total_amount": self.total_amount,
            "allocated": self.allocated,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "metrics": self.metrics.to_dict(),
            "performance": self.performance.to_dict(),
            "rebalance": self.rebalance.to_dict() if self.rebalance else None,
            "executions": [e.to_dict() for e in self.executions],
            "market_conditions": dict(self.market_conditions),
            "next_rebalance_at": self.next_rebalance_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


def resolve_risk_level(deps: AgentDeps, settings: AgentSettings) -> RiskLevel:
    """Stored user risk profile first, then the configured profile label."""
    label = deps.memory.latest_risk_profile()
    return classify_risk_level(label if label else settings.profile)


async def execute_recommendations(
    deps: AgentDeps,
    recommendations: Sequence[Recommendation],
    prices: Dict[str, float],
) -> List[SubmissionResult]:
    results: List[SubmissionResult] = []
    if deps.router is None:
        return [
            SubmissionResult(r.protocol, r.token, r.amount, status="skipped", error="no execution router")
            for r in recommendations
        ]

    for adapter in deps.router.adapters():
        adapter.set_prices(prices)

    for rec in recommendations:
        try:
            adapter = deps.router.select(rec.protocol)
            tx_id = await adapter.submit(rec.protocol, rec.token, rec.amount, rec.pool_data)
        except (ExecutionFailure, ExecutionRoutingError) as exc:
            log.error(f"Execution failed for {rec.protocol} {rec.token}: {exc}")
            results.append(SubmissionResult(rec.protocol, rec.token, rec.amount, status="failed", error=str(exc)))
            continue
        results.append(
            SubmissionResult(
                rec.protocol,
                rec.token,
                rec.amount,
                status="submitted",
                transaction_id=tx_id,
                explorer_url=adapter.explorer_url(tx_id),
            )
        )
    return results


async def run_cycle(
    deps: AgentDeps,
    settings: AgentSettings,
    *,
    positions: Optional[Sequence[PortfolioPosition]] = None,
    execute: bool = True,
    now: Optional[float] = None,
) -> CycleResult:
    started = time.time() if now is None else now
    level = resolve_risk_level(deps, settings)
    config = deps.strategy_for(level)
    result = CycleResult(
        status=STATUS_NO_ACTION,
        risk_level=level.value,
        total_amount=float(settings.total_amount),
        started_at=started,
    )

    price_data = await deps.market.get_market_data(settings.supported_tokens)
    markets = markets_from_price_data(price_data)
    sentiment = calculate_market_sentiment(markets)
    result.market_conditions = market_conditions(markets)

    pools = await deps.pools.get_protocol_pools()

    if config is not None:
        scored = score_pools(
            pools,
            config,
            sentiment,
            deps.history,
            now=started,
            risk_free_rate=settings.risk_free_rate,
            freshness_seconds=settings.freshness_seconds,
        )
        result.recommendations = generate_recommendations(
            settings.total_amount,
            config,
            scored,
            sentiment,
            settings.supported_tokens,
            now=started,
        )
    else:
        log.warning(f"No strategy configured for {level.value}; no action this cycle")

    # Existing holdings are checked even when nothing new is allocated.
    held = list(positions) if positions else [r.to_position() for r in result.recommendations]
    if held and config is not None:
        result.metrics = calculate_portfolio_metrics(held)
        result.rebalance = evaluate_rebalance(held, config, metrics=result.metrics)

    if result.recommendations:
        result.status = STATUS_OK
        result.performance = calculate_strategy_performance(result.recommendations, config.target_return)
        result.next_rebalance_at = started + config.rebalance_interval_hours * 3600.0

        for rec in result.recommendations:
            deps.memory.append({"key": recommendation_key(rec.protocol, rec.token), **rec.to_dict()})

        if execute:
            prices = MarketDataFetcher.prices(price_data)
            result.executions = await execute_recommendations(deps, result.recommendations, prices)

    result.finished_at = time.time()
    failed = sum(1 for e in result.executions if e.status == "failed")
    deps.memory.append(
        {
            "key": KEY_CYCLE,
            "status": result.status,
            "risk_level": result.risk_level,
            "total_amount": result.total_amount,
            "allocated": result.allocated,
            "recommendations": len(result.recommendations),
            "failed_executions": failed,
            "rebalance": result.rebalance.to_dict() if result.rebalance else None,
            "sentiment": result.market_conditions.get("sentiment"),
        }
    )
    log.info(
        f"Cycle {result.status}: level={result.risk_level} allocated={result.allocated:.2f}/"
        f"{result.total_amount:.2f} recs={len(result.recommendations)} failed={failed}"
        + (f" rebalance={result.rebalance.state.value}" if result.rebalance else "")
    )
    return result
