#!/usr/bin/env python3
"""
Shared execution adapter interface and dataclasses.

An adapter turns one allocation (protocol, token, USD amount) into an
on-chain submission and returns the transaction id. Retries live inside
the adapter; callers see either a transaction id or ExecutionFailure.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ExecutionFailure(RuntimeError):
    """Raised when a submission exhausts its retry budget (or cannot be built)."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


@dataclass
class SubmissionResult:
    """Per-recommendation execution outcome reported by the cycle."""
    protocol: str
    token: str
    amount: float
    status: str  # submitted, failed, skipped
    transaction_id: Optional[str] = None
    error: str = ""
    explorer_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol,
            "token": self.token,
            "amount": self.amount,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "error": self.error,
            "explorer_url": self.explorer_url,
        }


class ExecutionAdapter(abc.ABC):
    """Base class for execution adapters."""

    def __init__(self, log):
        self.log = log
        self._initialized = False

    @property
    def name(self) -> str:
        return self.__class__.__name__

    async def initialize(self) -> bool:
        self._initialized = True
        return True

    async def close(self) -> None:
        return None

    def set_prices(self, prices: Dict[str, float]) -> None:
        """Latest USD prices by token symbol; adapters that ignore prices keep the no-op."""
        return None

    @abc.abstractmethod
    async def submit(
        self,
        protocol: str,
        token: str,
        amount: float,
        pool_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Submit one allocation. Returns the transaction id; raises ExecutionFailure."""
        raise NotImplementedError

    def explorer_url(self, transaction_id: str) -> str:
        return ""
