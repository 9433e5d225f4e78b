#!/usr/bin/env python3
"""Portfolio-level aggregation over positions or recommendations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from strategy_config import RiskLevel, parse_risk_level

RISK_FREE_RATE = 0.02
LOW_RISK_SCORE_CUTOFF = 0.33
MEDIUM_RISK_SCORE_CUTOFF = 0.66


@dataclass
class PortfolioMetrics:
    total_value: float = 0.0
    weighted_risk: float = 0.0
    expected_return: float = 0.0
    diversification_score: float = 0.0
    protocol_exposure: Dict[str, float] = field(default_factory=dict)
    token_exposure: Dict[str, float] = field(default_factory=dict)
    max_drawdown: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_value": self.total_value,
            "weighted_risk": self.weighted_risk,
            "expected_return": self.expected_return,
            "diversification_score": self.diversification_score,
            "protocol_exposure": dict(self.protocol_exposure),
            "token_exposure": dict(self.token_exposure),
            "max_drawdown": self.max_drawdown,
        }


@dataclass
class StrategyPerformance:
    expected_annual_return: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    diversification_score: float = 0.0
    meets_target: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expected_annual_return": self.expected_annual_return,
            "volatility": self.volatility,
            "sharpe_ratio": self.sharpe_ratio,
            "diversification_score": self.diversification_score,
            "meets_target": self.meets_target,
        }


def risk_level_for(item: Any) -> RiskLevel:
    """Explicit risk_level when set, else bucketed from risk_score."""
    explicit = parse_risk_level(getattr(item, "risk_level", None))
    if explicit is not None:
        return explicit
    score = float(getattr(item, "risk_score", 0.0) or 0.0)
    if score < LOW_RISK_SCORE_CUTOFF:
        return RiskLevel.LOW
    if score < MEDIUM_RISK_SCORE_CUTOFF:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def _hhi(exposure: Dict[str, float]) -> float:
    return sum(w * w for w in exposure.values())


def _positive(items: Iterable[Any]) -> List[Any]:
    return [i for i in items if float(getattr(i, "amount", 0.0) or 0.0) > 0]


def calculate_portfolio_metrics(positions: Iterable[Any]) -> PortfolioMetrics:
    """Aggregate anything with protocol/token/amount/expected_return/risk_score."""
    items = _positive(positions)
    total = sum(float(i.amount) for i in items)
    if total <= 0:
        return PortfolioMetrics()

    protocol_exposure: Dict[str, float] = {}
    token_exposure: Dict[str, float] = {}
    weighted_risk = 0.0
    expected_return = 0.0
    max_drawdown = 0.0
    for item in items:
        share = float(item.amount) / total
        weighted_risk += risk_level_for(item).ordinal * share
        expected_return += float(getattr(item, "expected_return", 0.0) or 0.0) * share
        protocol_exposure[item.protocol] = protocol_exposure.get(item.protocol, 0.0) + share
        token_exposure[item.token] = token_exposure.get(item.token, 0.0) + share
        drawdown = getattr(item, "max_drawdown", None)
        if drawdown is None:
            drawdown = getattr(item, "estimated_drawdown", 0.0)
        max_drawdown = max(max_drawdown, float(drawdown or 0.0))

    diversification = 1.0 - (_hhi(protocol_exposure) + _hhi(token_exposure)) / 2.0
    return PortfolioMetrics(
        total_value=total,
        weighted_risk=weighted_risk,
        expected_return=expected_return,
        diversification_score=max(0.0, min(1.0, diversification)),
        protocol_exposure=protocol_exposure,
        token_exposure=token_exposure,
        max_drawdown=max_drawdown,
    )


def calculate_strategy_performance(
    recommendations: Iterable[Any],
    target_return: Optional[float] = None,
    risk_free_rate: float = RISK_FREE_RATE,
) -> StrategyPerformance:
    """Expected return / volatility / Sharpe-like summary for one allocation.

    Returns are APY percent; ``target_return`` is a fraction (0.10 = 10%).
    """
    items = _positive(recommendations)
    metrics = calculate_portfolio_metrics(items)
    if metrics.total_value <= 0:
        return StrategyPerformance()

    volatility = sum(
        float(i.risk_score or 0.0) * float(i.amount) / metrics.total_value for i in items
    )
    annual = metrics.expected_return / 100.0
    sharpe = (annual - risk_free_rate) / volatility if volatility > 0 else 0.0
    meets = target_return is not None and annual >= float(target_return)
    return StrategyPerformance(
        expected_annual_return=annual,
        volatility=volatility,
        sharpe_ratio=sharpe,
        diversification_score=metrics.diversification_score,
        meets_target=meets,
    )
