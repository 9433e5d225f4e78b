#!/usr/bin/env python3
"""Execution router: protocol -> adapter, validated once at construction."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional

from protocols import known_protocols, normalize_protocol

from .base import ExecutionAdapter

VALID_PROTOCOLS = frozenset(known_protocols())


class ExecutionRoutingError(RuntimeError):
    """Raised when routing cannot select an adapter for a protocol."""


class ExecutionRouter:
    """Routes allocations to execution adapters by protocol."""

    def __init__(
        self,
        adapters: Mapping[str, ExecutionAdapter],
        *,
        required: Optional[Iterable[str]] = None,
        log=None,
    ) -> None:
        self.log = log
        self._adapters: Dict[str, ExecutionAdapter] = {}
        for protocol, adapter in (adapters or {}).items():
            norm = normalize_protocol(protocol)
            if norm not in VALID_PROTOCOLS:
                raise ExecutionRoutingError(f"Unknown protocol: {protocol}")
            if adapter is None:
                raise ExecutionRoutingError(f"No adapter given for {norm}")
            self._adapters[norm] = adapter

        missing = [p for p in (normalize_protocol(r) for r in (required or [])) if p not in self._adapters]
        if missing:
            raise ExecutionRoutingError(f"No adapter configured for: {', '.join(missing)}")

    @classmethod
    def single(cls, adapter: ExecutionAdapter, protocols: Optional[Iterable[str]] = None, log=None) -> "ExecutionRouter":
        """Route every protocol through one adapter."""
        targets = list(protocols) if protocols is not None else sorted(VALID_PROTOCOLS)
        return cls({p: adapter for p in targets}, log=log)

    def select(self, protocol: str) -> ExecutionAdapter:
        norm = normalize_protocol(protocol)
        adapter = self._adapters.get(norm)
        if adapter is None:
            raise ExecutionRoutingError(f"No execution route for {protocol}")
        return adapter

    def adapters(self) -> list:
        seen = []
        for adapter in self._adapters.values():
            if all(adapter is not s for s in seen):
                seen.append(adapter)
        return seen

    def protocols(self) -> list:
        return list(self._adapters)
