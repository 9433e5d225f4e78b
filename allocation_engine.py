#!/usr/bin/env python3
"""
Allocation engine: scored pools -> bounded per-protocol recommendations.

For each protocol in strategy order, the top pool's market fit picks a
fraction inside [min_allocation, max_allocation]; that protocol amount is
split across its top 3 pools in proportion to risk-adjusted return.
Protocols without eligible pools are skipped and their share stays
unallocated (no renormalization across protocols).
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from logging_utils import get_logger
from performance_history import HistoryStore
from pool_models import MarketSentiment, PoolRecord, Recommendation, ScoredPool
from protocols import normalize_protocol, normalize_token
from scoring import (
    FRESHNESS_SECONDS,
    RISK_FREE_RATE,
    calculate_confidence_score,
    calculate_market_fit,
    calculate_pool_risk_score,
    calculate_risk_adjusted_return,
    confidence_label,
    estimated_drawdown,
    volatility_ratio,
)
from strategy_config import RiskStrategyConfig

log = get_logger("allocation_engine")

MAX_POOLS_PER_PROTOCOL = 3


def resolve_historical_accuracy(pool: PoolRecord, history: Optional[HistoryStore]) -> Optional[float]:
    """HistoryStore samples first, then the source prior; None lets scoring default."""
    if history is not None:
        acc = history.accuracy(pool.protocol, pool.token0)
        if acc is not None:
            return acc
    return pool.historical_accuracy


def score_pool(
    pool: PoolRecord,
    config: RiskStrategyConfig,
    sentiment: MarketSentiment,
    history: Optional[HistoryStore] = None,
    now: Optional[float] = None,
    risk_free_rate: float = RISK_FREE_RATE,
    freshness_seconds: float = FRESHNESS_SECONDS,
) -> ScoredPool:
    score = calculate_confidence_score(
        pool,
        sentiment,
        historical_accuracy=resolve_historical_accuracy(pool, history),
        now=now,
        freshness_seconds=freshness_seconds,
    )
    return ScoredPool(
        pool=pool,
        volatility_ratio=volatility_ratio(pool),
        risk_adjusted_return=calculate_risk_adjusted_return(pool, config, risk_free_rate),
        market_fit=calculate_market_fit(pool, sentiment),
        risk_score=calculate_pool_risk_score(pool),
        estimated_drawdown=estimated_drawdown(pool),
        confidence_score=score,
        confidence=confidence_label(score),
    )


def score_pools(
    pools: Iterable[PoolRecord],
    config: RiskStrategyConfig,
    sentiment: MarketSentiment,
    history: Optional[HistoryStore] = None,
    now: Optional[float] = None,
    risk_free_rate: float = RISK_FREE_RATE,
    freshness_seconds: float = FRESHNESS_SECONDS,
) -> List[ScoredPool]:
    now = time.time() if now is None else now
    return [score_pool(p, config, sentiment, history, now, risk_free_rate, freshness_seconds) for p in pools]


def group_eligible_pools(
    scored_pools: Iterable[ScoredPool],
    config: RiskStrategyConfig,
    supported_tokens: Optional[Sequence[str]] = None,
) -> Dict[str, List[ScoredPool]]:
    """Protocol -> pools sorted by risk-adjusted return (desc), filtered to config + allow-list."""
    allowed = {normalize_token(t) for t in supported_tokens} if supported_tokens else None
    groups: Dict[str, List[ScoredPool]] = defaultdict(list)
    for sp in scored_pools:
        protocol = normalize_protocol(sp.protocol)
        if protocol not in config.protocols:
            continue
        if allowed is not None and normalize_token(sp.token0) not in allowed:
            continue
        groups[protocol].append(sp)
    for protocol in groups:
        # Stable sort keeps source order among equal scores.
        groups[protocol].sort(key=lambda sp: sp.risk_adjusted_return, reverse=True)
    return dict(groups)


def protocol_allocation_fraction(config: RiskStrategyConfig, protocol: str, top_market_fit: float) -> float:
    bounds = config.protocols[protocol]
    lo, hi = bounds.min_allocation, bounds.max_allocation
    pct = lo + top_market_fit * (hi - lo)
    pct = max(lo, min(hi, pct))
    return pct / 100.0


def generate_recommendations(
    total_amount: float,
    config: Optional[RiskStrategyConfig],
    scored_pools: Iterable[ScoredPool],
    sentiment: Optional[MarketSentiment] = None,
    supported_tokens: Optional[Sequence[str]] = None,
    now: Optional[float] = None,
) -> List[Recommendation]:
    """Core allocation pass. Invalid input (amount <= 0, no config) returns []."""
    if config is None:
        log.warning("No strategy config for this risk level; no allocation")
        return []
    try:
        total_amount = float(total_amount)
    except (TypeError, ValueError):
        total_amount = 0.0
    if not total_amount > 0:
        log.warning(f"Invalid total amount {total_amount}; no allocation")
        return []

    created_at = time.time() if now is None else now
    if sentiment is not None:
        log.debug(f"Allocating {total_amount:.2f} at {config.level.value} (sentiment={sentiment.overall:+.2f})")
    groups = group_eligible_pools(scored_pools, config, supported_tokens)
    recommendations: List[Recommendation] = []

    for protocol in config.protocols:
        pools = groups.get(protocol)
        if not pools:
            log.debug(f"{protocol}: no eligible pools, skipping")
            continue

        top = pools[0]
        fraction = protocol_allocation_fraction(config, protocol, top.market_fit)
        protocol_amount = total_amount * fraction
        if protocol_amount <= 0:
            log.debug(f"{protocol}: zero allocation fraction, skipping")
            continue

        selected = pools[:MAX_POOLS_PER_PROTOCOL]
        total_rar = sum(sp.risk_adjusted_return for sp in selected)
        if total_rar <= 0:
            log.info(f"{protocol}: selected pools have zero risk-adjusted return, nothing allocated")
            continue

        for sp in selected:
            weight = sp.risk_adjusted_return / total_rar
            if weight <= 0:
                continue
            amount = protocol_amount * weight
            if amount <= 0:
                continue
            pool = sp.pool
            recommendations.append(
                Recommendation(
                    protocol=protocol,
                    token=pool.label if pool.is_amm and pool.token1 else pool.token0,
                    amount=amount,
                    expected_return=float(pool.apy or 0.0),
                    risk_score=sp.risk_score,
                    confidence=sp.confidence,
                    pool_data=dict(pool.pool_data) if (pool.is_amm and pool.pool_data) else None,
                    risk_level=config.level.value,
                    estimated_drawdown=sp.estimated_drawdown,
                    created_at=created_at,
                )
            )

        log.info(
            f"{protocol}: fraction={fraction:.3f} amount={protocol_amount:.2f} "
            f"pools={len(selected)} top={top.pool.label} fit={top.market_fit:.3f}"
        )

    return recommendations
