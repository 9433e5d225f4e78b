#!/usr/bin/env python3
"""Dry-run adapter: logs the allocation and returns a deterministic pseudo tx id."""

from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Optional

from logging_utils import get_logger

from .base import ExecutionAdapter


class DryRunAdapter(ExecutionAdapter):
    def __init__(self, log=None) -> None:
        super().__init__(log or get_logger("dry_run_adapter"))
        self.submissions: List[Dict[str, Any]] = []

    async def submit(
        self,
        protocol: str,
        token: str,
        amount: float,
        pool_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        digest = hashlib.sha256(f"{protocol}|{token}|{amount:.6f}".encode("utf-8")).hexdigest()
        tx_id = f"dryrun-{digest[:16]}"
        self.submissions.append({"protocol": protocol, "token": token, "amount": amount, "tx_id": tx_id})
        self.log.info(f"[DRY RUN] {protocol} {token} {amount:.2f} USD -> {tx_id}")
        return tx_id
