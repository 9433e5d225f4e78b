"""Apply env overrides to strategy.yaml config."""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Dict, Tuple

from env_utils import (
    env_present,
    env_str,
    env_float,
    env_bool,
    env_list,
)


PathKey = Tuple[str, ...]

# Env overrides cover runtime plumbing only.
# Allocation bounds and scoring params come from strategy.yaml.
ENV_OVERRIDES: Tuple[Tuple[PathKey, str, str], ...] = (
    (("config", "agent", "profile"), "YIELDPILOT_PROFILE", "str"),
    (("config", "agent", "total_amount"), "YIELDPILOT_TOTAL_AMOUNT", "float"),
    (("config", "agent", "interval_seconds"), "YIELDPILOT_INTERVAL_SECONDS", "float"),
    (("config", "agent", "dry_run"), "YIELDPILOT_DRY_RUN", "bool"),
    (("config", "agent", "memory_path"), "YIELDPILOT_MEMORY_PATH", "str"),
    (("config", "agent", "supported_tokens"), "YIELDPILOT_SUPPORTED_TOKENS", "list"),
    (("config", "market_data", "coingecko_base"), "YIELDPILOT_COINGECKO_BASE", "str"),
    (("config", "market_data", "coingecko_api_key"), "YIELDPILOT_COINGECKO_API_KEY", "str"),
    (("config", "market_data", "timeout_seconds"), "YIELDPILOT_FETCH_TIMEOUT_SECONDS", "float"),
)


def _get_path(cfg: Dict[str, Any], path: PathKey, default: Any = None) -> Any:
    cur: Any = cfg
    for key in path:
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def _set_path(cfg: Dict[str, Any], path: PathKey, value: Any) -> None:
    cur: Any = cfg
    for key in path[:-1]:
        if key not in cur or not isinstance(cur[key], dict):
            cur[key] = {}
        cur = cur[key]
    cur[path[-1]] = value


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``config`` with the ENV_OVERRIDES values applied."""
    cfg = deepcopy(config) if config else {}
    for path, env_name, kind in ENV_OVERRIDES:
        if not env_present(env_name):
            continue
        default = _get_path(cfg, path)
        if kind == "float":
            value = env_float(env_name, float(default) if default is not None else 0.0)
        elif kind == "bool":
            value = env_bool(env_name, bool(default) if default is not None else False)
        elif kind == "list":
            value = env_list(env_name, default if isinstance(default, list) else [])
        else:
            value = env_str(env_name, default if default is not None else "")
        _set_path(cfg, path, value)
    return cfg
