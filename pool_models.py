#!/usr/bin/env python3
"""Shared dataclasses for pools, scores, recommendations and positions."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from protocols import is_amm


class Confidence(str, enum.Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def ordinal(self) -> int:
        return _CONFIDENCE_ORDER.index(self)


_CONFIDENCE_ORDER = [Confidence.NONE, Confidence.LOW, Confidence.MEDIUM, Confidence.HIGH]


@dataclass(frozen=True)
class PoolRecord:
    """One yield opportunity as reported by a protocol source."""
    protocol: str
    token0: str
    apy: float = 0.0  # percent
    tvl: float = 0.0
    volume24h: float = 0.0
    total_supply: Optional[float] = None
    total_borrow: Optional[float] = None
    last_update: Optional[float] = None  # epoch seconds
    token1: Optional[str] = None
    liquidity: Optional[float] = None
    volatility: Optional[float] = None
    max_drawdown: Optional[float] = None
    historical_accuracy: Optional[float] = None
    pool_data: Optional[Dict[str, Any]] = None

    @property
    def is_amm(self) -> bool:
        return bool(self.token1) or is_amm(self.protocol)

    @property
    def label(self) -> str:
        if self.token1:
            return f"{self.token0}/{self.token1}"
        return self.token0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol,
            "token0": self.token0,
            "token1": self.token1,
            "apy": self.apy,
            "tvl": self.tvl,
            "volume24h": self.volume24h,
            "total_supply": self.total_supply,
            "total_borrow": self.total_borrow,
            "last_update": self.last_update,
            "liquidity": self.liquidity,
            "volatility": self.volatility,
            "max_drawdown": self.max_drawdown,
            "historical_accuracy": self.historical_accuracy,
            "pool_data": self.pool_data,
        }


@dataclass(frozen=True)
class ScoredPool:
    pool: PoolRecord
    volatility_ratio: float
    risk_adjusted_return: float
    market_fit: float
    risk_score: float
    estimated_drawdown: float
    confidence_score: float
    confidence: Confidence

    @property
    def protocol(self) -> str:
        return self.pool.protocol

    @property
    def token0(self) -> str:
        return self.pool.token0


@dataclass(frozen=True)
class MarketSentiment:
    """Overall sentiment in [-1, 1] plus the factor values it was averaged from."""
    overall: float = 0.0
    price_action: float = 0.0
    volatility: float = 0.0
    volume: float = 0.0
    technicals: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "overall": self.overall,
            "price_action": self.price_action,
            "volatility": self.volatility,
            "volume": self.volume,
            "technicals": self.technicals,
        }


@dataclass(frozen=True)
class Recommendation:
    """One allocation line produced by the allocation engine."""
    protocol: str
    token: str
    amount: float
    expected_return: float
    risk_score: float
    confidence: Confidence
    pool_data: Optional[Dict[str, Any]] = None
    risk_level: Optional[str] = None
    estimated_drawdown: float = 0.0
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "protocol": self.protocol,
            "token": self.token,
            "amount": self.amount,
            "expected_return": self.expected_return,
            "risk_score": self.risk_score,
            "confidence": self.confidence.value,
            "pool_data": self.pool_data,
            "risk_level": self.risk_level,
            "estimated_drawdown": self.estimated_drawdown,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recommendation":
        """Create from dictionary."""
        try:
            confidence = Confidence(str(data.get("confidence") or "none").lower())
        except ValueError:
            confidence = Confidence.NONE
        return cls(
            protocol=data.get("protocol", ""),
            token=data.get("token", ""),
            amount=float(data.get("amount", 0.0) or 0.0),
            expected_return=float(data.get("expected_return", 0.0) or 0.0),
            risk_score=float(data.get("risk_score", 0.0) or 0.0),
            confidence=confidence,
            pool_data=data.get("pool_data"),
            risk_level=data.get("risk_level"),
            estimated_drawdown=float(data.get("estimated_drawdown", 0.0) or 0.0),
            created_at=float(data.get("created_at") or time.time()),
        )

    def to_position(self) -> "PortfolioPosition":
        return PortfolioPosition(
            protocol=self.protocol,
            token=self.token,
            amount=self.amount,
            expected_return=self.expected_return,
            risk_score=self.risk_score,
            risk_level=self.risk_level,
            max_drawdown=self.estimated_drawdown,
        )


@dataclass
class PortfolioPosition:
    """Unified holding representation across protocols."""
    protocol: str
    token: str
    amount: float
    expected_return: float = 0.0
    risk_score: float = 0.0
    risk_level: Optional[str] = None  # LOW, MEDIUM, HIGH
    max_drawdown: float = 0.0  # fraction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol,
            "token": self.token,
            "amount": self.amount,
            "expected_return": self.expected_return,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "max_drawdown": self.max_drawdown,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortfolioPosition":
        return cls(
            protocol=data.get("protocol", ""),
            token=data.get("token", ""),
            amount=float(data.get("amount", 0.0) or 0.0),
            expected_return=float(data.get("expected_return", 0.0) or 0.0),
            risk_score=float(data.get("risk_score", 0.0) or 0.0),
            risk_level=data.get("risk_level"),
            max_drawdown=float(data.get("max_drawdown", 0.0) or 0.0),
        )
