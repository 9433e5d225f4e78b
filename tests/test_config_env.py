#!/usr/bin/env python3
"""config_env YAML-first guard regressions."""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from config_env import apply_env_overrides


def _set_env(updates: dict[str, str | None]) -> dict[str, str | None]:
    prev: dict[str, str | None] = {}
    for key, value in updates.items():
        prev[key] = os.environ.get(key)
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value
    return prev


def _restore_env(prev: dict[str, str | None]) -> None:
    for key, value in prev.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


def test_whitelisted_runtime_overrides_apply() -> None:
    cfg = {"config": {"agent": {"profile": "moderate", "total_amount": 1000.0, "dry_run": True}}}
    prev = _set_env(
        {
            "YIELDPILOT_PROFILE": "conservative",
            "YIELDPILOT_TOTAL_AMOUNT": "2500",
            "YIELDPILOT_DRY_RUN": "false",
            "YIELDPILOT_SUPPORTED_TOKENS": "ETH,USDC",
        }
    )
    try:
        out = apply_env_overrides(cfg)
    finally:
        _restore_env(prev)

    agent = out["config"]["agent"]
    assert agent["profile"] == "conservative"
    assert agent["total_amount"] == 2500.0
    assert agent["dry_run"] is False
    assert agent["supported_tokens"] == ["ETH", "USDC"]


def test_overrides_do_not_mutate_input() -> None:
    cfg = {"config": {"agent": {"total_amount": 1000.0}}}
    prev = _set_env({"YIELDPILOT_TOTAL_AMOUNT": "50"})
    try:
        out = apply_env_overrides(cfg)
    finally:
        _restore_env(prev)

    assert cfg["config"]["agent"]["total_amount"] == 1000.0
    assert out["config"]["agent"]["total_amount"] == 50.0


def test_missing_sections_are_created() -> None:
    prev = _set_env({"YIELDPILOT_COINGECKO_BASE": "https://cg.example/api/v3", "YIELDPILOT_PROFILE": None})
    try:
        out = apply_env_overrides({})
    finally:
        _restore_env(prev)

    assert out["config"]["market_data"]["coingecko_base"] == "https://cg.example/api/v3"
    assert "profile" not in out["config"].get("agent", {})


def test_strategy_tuning_is_not_env_driven() -> None:
    cfg = {"config": {"strategies": {"LOW": {"max_drawdown": 0.05}}}}
    prev = _set_env({"YIELDPILOT_MAX_DRAWDOWN": "0.9"})
    try:
        out = apply_env_overrides(cfg)
    finally:
        _restore_env(prev)

    assert out["config"]["strategies"] == cfg["config"]["strategies"]
