#!/usr/bin/env python3
"""Shared JSONL append/read helpers for the memory log."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator

from logging_utils import get_logger

log = get_logger("jsonl_io")


def append_jsonl(path: str, record: Dict[str, Any]) -> None:
    """Append one record as a compact JSON line, creating parent directories."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str) + "\n")


def iter_jsonl(path: str) -> Iterator[Dict[str, Any]]:
    """Yield dict records in file order; unreadable lines are skipped."""
    p = Path(path)
    if not p.exists():
        return
    with p.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                rec = json.loads(line)
            except json.JSONDecodeError:
                log.warning(f"{p.name}:{lineno}: skipping malformed JSONL line")
                continue
            if isinstance(rec, dict):
                yield rec
