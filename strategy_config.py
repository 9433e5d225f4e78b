#!/usr/bin/env python3
"""
Risk strategy configuration for YieldPilot.

One RiskStrategyConfig per RiskLevel (LOW/MEDIUM/HIGH). Values come from the
``strategies`` block of strategy.yaml; missing or malformed files degrade to
the built-in defaults below. Per-protocol bounds are validated on load
(``0 <= min <= max <= 100``, and max_allocation summing to at most 100
across a strategy's protocols).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from config_env import apply_env_overrides
from env_utils import YIELDPILOT_CONFIG_PATH
from logging_utils import get_logger
from protocols import PROTOCOL_EKUBO, PROTOCOL_ZKLEND, normalize_protocol, parse_supported_tokens

log = get_logger("strategy_config")


class StrategyConfigError(ValueError):
    """Raised when a strategy block has invalid allocation bounds."""


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def ordinal(self) -> int:
        return _ORDINALS[self]


_ORDINALS = {RiskLevel.LOW: 1, RiskLevel.MEDIUM: 2, RiskLevel.HIGH: 3}

_LABEL_KEYWORDS = (
    ("conservative", RiskLevel.LOW),
    ("moderate", RiskLevel.MEDIUM),
    ("aggressive", RiskLevel.HIGH),
)


def classify_risk_level(label: Optional[str]) -> RiskLevel:
    """Case-insensitive substring match on the profile label; MEDIUM when unmatched."""
    text = str(label or "").lower()
    for keyword, level in _LABEL_KEYWORDS:
        if keyword in text:
            return level
    return RiskLevel.MEDIUM


def parse_risk_level(value: Any) -> Optional[RiskLevel]:
    if isinstance(value, RiskLevel):
        return value
    raw = str(value or "").strip().upper()
    try:
        return RiskLevel(raw)
    except ValueError:
        return None


def risk_ordinal(level: Any) -> int:
    parsed = parse_risk_level(level)
    return parsed.ordinal if parsed else 0


@dataclass(frozen=True)
class ProtocolBounds:
    """Allocation bounds for one protocol, in percent of the total amount."""
    min_allocation: float
    max_allocation: float

    def __post_init__(self) -> None:
        lo, hi = float(self.min_allocation), float(self.max_allocation)
        if not (0.0 <= lo <= hi <= 100.0):
            raise StrategyConfigError(
                f"invalid allocation bounds min={lo} max={hi} (need 0 <= min <= max <= 100)"
            )

    @property
    def midpoint(self) -> float:
        return (self.min_allocation + self.max_allocation) / 2.0


@dataclass(frozen=True)
class CrossProtocolMetrics:
    rebalance_threshold: float = 0.1
    max_volatility: float = 0.35
    correlation_limit: float = 0.7
    total_drawdown_limit: float = 0.2
    diversification_target: float = 0.25


@dataclass(frozen=True)
class RiskStrategyConfig:
    level: RiskLevel
    max_drawdown: float
    protocols: Dict[str, ProtocolBounds]
    cross_protocol_metrics: CrossProtocolMetrics = field(default_factory=CrossProtocolMetrics)
    target_weights: Dict[str, float] = field(default_factory=dict)
    target_return: float = 0.0
    rebalance_interval_hours: float = 24.0

    def resolved_target_weights(self) -> Dict[str, float]:
        """Explicit target weights, else normalized midpoints of the protocol bounds."""
        if self.target_weights:
            return dict(self.target_weights)
        mids = {p: b.midpoint for p, b in self.protocols.items()}
        total = sum(mids.values())
        if total <= 0:
            return {p: 0.0 for p in mids}
        return {p: m / total for p, m in mids.items()}


@dataclass(frozen=True)
class AgentSettings:
    """Runtime knobs for one agent process (resolved once at startup)."""
    profile: str = "moderate"
    total_amount: float = 1000.0
    interval_seconds: float = 3600.0
    dry_run: bool = True
    memory_path: str = ""
    supported_tokens: List[str] = field(default_factory=lambda: parse_supported_tokens(None))
    risk_free_rate: float = 0.02
    freshness_seconds: float = 3600.0

    @property
    def risk_level(self) -> RiskLevel:
        return classify_risk_level(self.profile)


DEFAULT_STRATEGIES: Dict[str, Dict[str, Any]] = {
    "LOW": {
        "max_drawdown": 0.05,
        "target_return": 0.10,
        "rebalance_interval_hours": 168,
        "protocols": {
            PROTOCOL_ZKLEND: {"min_allocation": 60, "max_allocation": 80},
            PROTOCOL_EKUBO: {"min_allocation": 10, "max_allocation": 20},
        },
        "cross_protocol_metrics": {
            "rebalance_threshold": 0.05,
            "max_volatility": 0.2,
            "correlation_limit": 0.5,
            "total_drawdown_limit": 0.08,
            "diversification_target": 0.3,
        },
    },
    "MEDIUM": {
        "max_drawdown": 0.15,
        "target_return": 0.25,
        "rebalance_interval_hours": 72,
        "protocols": {
            PROTOCOL_ZKLEND: {"min_allocation": 40, "max_allocation": 55},
            PROTOCOL_EKUBO: {"min_allocation": 30, "max_allocation": 45},
        },
        "cross_protocol_metrics": {
            "rebalance_threshold": 0.1,
            "max_volatility": 0.35,
            "correlation_limit": 0.7,
            "total_drawdown_limit": 0.2,
            "diversification_target": 0.25,
        },
    },
    "HIGH": {
        "max_drawdown": 0.30,
        "target_return": 0.50,
        "rebalance_interval_hours": 24,
        "protocols": {
            PROTOCOL_ZKLEND: {"min_allocation": 20, "max_allocation": 30},
            PROTOCOL_EKUBO: {"min_allocation": 50, "max_allocation": 70},
        },
        "cross_protocol_metrics": {
            "rebalance_threshold": 0.15,
            "max_volatility": 0.6,
            "correlation_limit": 0.85,
            "total_drawdown_limit": 0.35,
            "diversification_target": 0.2,
        },
    },
}


def _as_float(value: Any, default: float) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return float(default)
    if out != out:
        return float(default)
    return out


def build_strategy(level: RiskLevel, raw: Mapping[str, Any]) -> RiskStrategyConfig:
    """Build one strategy from its YAML/dict block. Raises StrategyConfigError."""
    protocols_raw = raw.get("protocols") or {}
    if not isinstance(protocols_raw, Mapping) or not protocols_raw:
        raise StrategyConfigError(f"{level.value}: strategy has no protocols")

    protocols: Dict[str, ProtocolBounds] = {}
    for name, bounds in protocols_raw.items():
        bounds = bounds or {}
        protocols[normalize_protocol(name)] = ProtocolBounds(
            min_allocation=_as_float(bounds.get("min_allocation"), 0.0),
            max_allocation=_as_float(bounds.get("max_allocation"), 0.0),
        )

    # Every protocol can hit its max in the same cycle.
    max_total = sum(b.max_allocation for b in protocols.values())
    if max_total > 100.0 + 1e-9:
        raise StrategyConfigError(f"{level.value}: max_allocation sums to {max_total:g}% (> 100%)")

    cpm_raw = raw.get("cross_protocol_metrics") or {}
    defaults = CrossProtocolMetrics()
    cpm = CrossProtocolMetrics(
        rebalance_threshold=_as_float(cpm_raw.get("rebalance_threshold"), defaults.rebalance_threshold),
        max_volatility=_as_float(cpm_raw.get("max_volatility"), defaults.max_volatility),
        correlation_limit=_as_float(cpm_raw.get("correlation_limit"), defaults.correlation_limit),
        total_drawdown_limit=_as_float(cpm_raw.get("total_drawdown_limit"), defaults.total_drawdown_limit),
        diversification_target=_as_float(cpm_raw.get("diversification_target"), defaults.diversification_target),
    )

    weights_raw = raw.get("target_weights") or {}
    target_weights = {
        normalize_protocol(p): _as_float(w, 0.0) for p, w in weights_raw.items()
    } if isinstance(weights_raw, Mapping) else {}

    max_drawdown = _as_float(raw.get("max_drawdown"), 0.0)
    if max_drawdown < 0:
        raise StrategyConfigError(f"{level.value}: max_drawdown must be >= 0")

    return RiskStrategyConfig(
        level=level,
        max_drawdown=max_drawdown,
        protocols=protocols,
        cross_protocol_metrics=cpm,
        target_weights=target_weights,
        target_return=_as_float(raw.get("target_return"), 0.0),
        rebalance_interval_hours=_as_float(raw.get("rebalance_interval_hours"), 24.0),
    )


def build_strategies(raw: Optional[Mapping[str, Any]]) -> Dict[RiskLevel, RiskStrategyConfig]:
    """Merge YAML strategies over the defaults; a level missing from YAML keeps its default."""
    merged: Dict[str, Mapping[str, Any]] = dict(DEFAULT_STRATEGIES)
    for key, block in (raw or {}).items():
        level = parse_risk_level(key)
        if level is None:
            log.warning(f"Ignoring unknown strategy level '{key}'")
            continue
        if isinstance(block, Mapping):
            merged[level.value] = block
    return {RiskLevel(key): build_strategy(RiskLevel(key), block) for key, block in merged.items()}


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load strategy.yaml (with env overrides); missing or malformed files yield {}."""
    cfg_path = Path(path or YIELDPILOT_CONFIG_PATH)
    raw: Dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
            raw = loaded if isinstance(loaded, dict) else {}
        except (OSError, yaml.YAMLError) as exc:
            log.warning(f"Failed to read {cfg_path}: {exc}; using defaults")
            raw = {}
    return apply_env_overrides(raw)


def load_strategy_configs(config: Optional[Mapping[str, Any]] = None) -> Dict[RiskLevel, RiskStrategyConfig]:
    cfg = config if config is not None else load_config()
    root = (cfg.get("config") or {}) if isinstance(cfg, Mapping) else {}
    return build_strategies(root.get("strategies") if isinstance(root, Mapping) else None)


def load_agent_settings(config: Optional[Mapping[str, Any]] = None) -> AgentSettings:
    cfg = config if config is not None else load_config()
    root = (cfg.get("config") or {}) if isinstance(cfg, Mapping) else {}
    agent = root.get("agent") or {}
    scoring = root.get("scoring") or {}
    defaults = AgentSettings()
    return AgentSettings(
        profile=str(agent.get("profile") or defaults.profile),
        total_amount=_as_float(agent.get("total_amount"), defaults.total_amount),
        interval_seconds=_as_float(agent.get("interval_seconds"), defaults.interval_seconds),
        dry_run=bool(agent.get("dry_run", defaults.dry_run)),
        memory_path=str(agent.get("memory_path") or ""),
        supported_tokens=parse_supported_tokens(agent.get("supported_tokens")),
        risk_free_rate=_as_float(scoring.get("risk_free_rate"), defaults.risk_free_rate),
        freshness_seconds=_as_float(scoring.get("freshness_seconds"), defaults.freshness_seconds),
    )
