"""Execution adapters and router."""

from .base import ExecutionAdapter, ExecutionFailure, SubmissionResult
from .dry_run_adapter import DryRunAdapter
from .starknet_adapter import StarknetAdapter
from .router import (
    ExecutionRouter,
    ExecutionRoutingError,
    VALID_PROTOCOLS,
)

__all__ = [
    "ExecutionAdapter",
    "ExecutionFailure",
    "SubmissionResult",
    "DryRunAdapter",
    "StarknetAdapter",
    "ExecutionRouter",
    "ExecutionRoutingError",
    "VALID_PROTOCOLS",
]
