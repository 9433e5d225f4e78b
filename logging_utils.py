#!/usr/bin/env python3
"""Shared logging helpers for YieldPilot.

All component loggers live under the ``yieldpilot`` namespace so a single
``setup_logging`` call (console + optional file) covers the whole agent.
"""

from __future__ import annotations

import logging
from typing import Optional

from env_utils import env_str

ROOT_LOGGER = "yieldpilot"

_DEFAULT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _env_level(default: int) -> int:
    raw = env_str("YIELDPILOT_LOG_LEVEL")
    if not raw:
        return default
    val = str(raw).strip().upper()
    if val.isdigit():
        return int(val)
    return getattr(logging, val, default)


def _formatter() -> logging.Formatter:
    return logging.Formatter(_DEFAULT_FORMAT, datefmt=_DEFAULT_DATEFMT)


def _qualified(name: str) -> str:
    name = (name or "").strip(".")
    if not name or name == ROOT_LOGGER:
        return ROOT_LOGGER
    if name.startswith(ROOT_LOGGER + "."):
        return name
    return f"{ROOT_LOGGER}.{name}"


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Return ``yieldpilot.<name>``; the root gets a console handler on first use."""
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(_formatter())
        root.addHandler(handler)
        root.setLevel(_env_level(logging.INFO))
        root.propagate = False

    logger = logging.getLogger(_qualified(name))
    if level is not None:
        logger.setLevel(level)
    return logger


def setup_logging(
    name: str = ROOT_LOGGER,
    log_file: Optional[str] = None,
    verbose: bool = False,
    level: Optional[int] = None,
) -> logging.Logger:
    """Reset the ``yieldpilot`` handlers (console + optional file) and return ``name``."""
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers = []
    root.propagate = False
    root.setLevel(_env_level(logging.DEBUG if verbose else logging.INFO) if level is None else level)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(_formatter())
        root.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(_formatter())
    root.addHandler(console_handler)

    return logging.getLogger(_qualified(name))
