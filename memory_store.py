#!/usr/bin/env python3
"""
Append-only key/value memory log.

Records are dicts carrying a ``key``; ``created_at`` is stamped on append.
With a path the log is a JSONL file (loaded once, appended thereafter);
without one it lives in memory only.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from jsonl_io import append_jsonl, iter_jsonl
from logging_utils import get_logger
from protocols import normalize_protocol, normalize_token

KEY_CYCLE = "cycle"
KEY_RISK_PROFILE = "risk_profile"


def recommendation_key(protocol: str, token: str) -> str:
    return f"recommendation:{normalize_protocol(protocol)}:{token}"


def outcome_key(protocol: str, token: str) -> str:
    return f"outcome:{normalize_protocol(protocol)}:{normalize_token(token)}"


class MemoryStore:
    def __init__(self, path: Optional[str] = None) -> None:
        self.log = get_logger("memory_store")
        self.path = path or None
        self._records: List[Dict[str, Any]] = []
        self._seq = 0
        if self.path:
            for rec in iter_jsonl(self.path):
                if rec.get("key"):
                    self._store(rec)
            if self._records:
                self.log.info(f"Loaded {len(self._records)} memory records from {self.path}")

    def _store(self, record: Dict[str, Any]) -> None:
        self._seq += 1
        record["_seq"] = self._seq
        self._records.append(record)

    def append(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Persist one record and return the stored copy."""
        key = str(record.get("key") or "").strip()
        if not key:
            raise ValueError("memory record requires a non-empty 'key'")
        stored = dict(record)
        stored["key"] = key
        stored.setdefault("created_at", time.time())
        if self.path:
            append_jsonl(self.path, stored)
        self._store(stored)
        return {k: v for k, v in stored.items() if k != "_seq"}

    def query_recent(self, key: str, count: int = 10) -> List[Dict[str, Any]]:
        """Newest-first records for ``key``; ties on created_at resolve by append order."""
        if count <= 0:
            return []
        matches = [r for r in self._records if r.get("key") == key]
        matches.sort(key=lambda r: (float(r.get("created_at") or 0.0), r["_seq"]), reverse=True)
        return [{k: v for k, v in r.items() if k != "_seq"} for r in matches[:count]]

    def query_prefix(self, prefix: str, count: int = 100) -> List[Dict[str, Any]]:
        """Newest-first records whose key starts with ``prefix``."""
        matches = [r for r in self._records if str(r.get("key", "")).startswith(prefix)]
        matches.sort(key=lambda r: (float(r.get("created_at") or 0.0), r["_seq"]), reverse=True)
        return [{k: v for k, v in r.items() if k != "_seq"} for r in matches[:count]]

    def latest_risk_profile(self) -> Optional[str]:
        recent = self.query_recent(KEY_RISK_PROFILE, 1)
        if not recent:
            return None
        label = recent[0].get("profile")
        return str(label) if label else None

    def set_risk_profile(self, profile: str) -> Dict[str, Any]:
        return self.append({"key": KEY_RISK_PROFILE, "profile": str(profile)})

    def record_outcome(
        self,
        protocol: str,
        token: str,
        predicted_return: float,
        actual_return: float,
    ) -> Dict[str, Any]:
        return self.append(
            {
                "key": outcome_key(protocol, token),
                "protocol": normalize_protocol(protocol),
                "token": normalize_token(token),
                "predicted_return": float(predicted_return),
                "actual_return": float(actual_return),
            }
        )

    def __len__(self) -> int:
        return len(self._records)
