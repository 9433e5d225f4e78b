#!/usr/bin/env python3
"""
Rebalance trigger.

Checks run in a fixed order and the first violation wins:
  1. portfolio max drawdown above the strategy's max_drawdown
  2. diversification below the strategy's diversification_target
  3. any protocol weight drifted more than rebalance_threshold from target
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from portfolio_metrics import PortfolioMetrics, calculate_portfolio_metrics
from protocols import normalize_protocol
from strategy_config import RiskStrategyConfig

REASON_DRAWDOWN = "Maximum drawdown exceeded"
REASON_DIVERSIFICATION = "Portfolio diversification below target"
REASON_DRIFT = "Position weights drifted beyond threshold"
REASON_BALANCED = "No rebalancing needed"


class RebalanceState(str, enum.Enum):
    BALANCED = "BALANCED"
    NEEDS_REBALANCE = "NEEDS_REBALANCE"


@dataclass(frozen=True)
class RebalanceDecision:
    state: RebalanceState
    reason: str
    max_drift: float = 0.0

    @property
    def needs_rebalance(self) -> bool:
        return self.state == RebalanceState.NEEDS_REBALANCE

    def to_dict(self) -> Dict[str, Any]:
        return {"state": self.state.value, "reason": self.reason, "max_drift": self.max_drift}


def weight_drift(
    exposure: Mapping[str, float],
    target_weights: Mapping[str, float],
) -> Dict[str, float]:
    """|current - target| per protocol over the union of both maps."""
    current = {normalize_protocol(p): w for p, w in exposure.items()}
    target = {normalize_protocol(p): w for p, w in target_weights.items()}
    return {
        p: abs(current.get(p, 0.0) - target.get(p, 0.0))
        for p in sorted(set(current) | set(target))
    }


def evaluate_rebalance(
    positions: Iterable[Any],
    config: RiskStrategyConfig,
    target_weights: Optional[Mapping[str, float]] = None,
    metrics: Optional[PortfolioMetrics] = None,
) -> RebalanceDecision:
    if metrics is None:
        metrics = calculate_portfolio_metrics(positions)
    if metrics.total_value <= 0:
        return RebalanceDecision(RebalanceState.BALANCED, REASON_BALANCED)

    targets = target_weights if target_weights is not None else config.resolved_target_weights()
    drift = weight_drift(metrics.protocol_exposure, targets)
    max_drift = max(drift.values()) if drift else 0.0
    cpm = config.cross_protocol_metrics

    if metrics.max_drawdown > config.max_drawdown:
        return RebalanceDecision(RebalanceState.NEEDS_REBALANCE, REASON_DRAWDOWN, max_drift)
    if metrics.diversification_score < cpm.diversification_target:
        return RebalanceDecision(RebalanceState.NEEDS_REBALANCE, REASON_DIVERSIFICATION, max_drift)
    if max_drift > cpm.rebalance_threshold:
        return RebalanceDecision(RebalanceState.NEEDS_REBALANCE, REASON_DRIFT, max_drift)
    return RebalanceDecision(RebalanceState.BALANCED, REASON_BALANCED, max_drift)
