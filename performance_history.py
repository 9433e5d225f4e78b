#!/usr/bin/env python3
"""Per protocol+token prediction accuracy, fed from realized outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from logging_utils import get_logger
from protocols import normalize_protocol, normalize_token

log = get_logger("performance_history")


def _key(protocol: str, token: str) -> Tuple[str, str]:
    return normalize_protocol(protocol), normalize_token(token)


@dataclass
class _Stats:
    samples: int = 0
    error_sum: float = 0.0

    @property
    def mean_error(self) -> float:
        return self.error_sum / self.samples if self.samples else 0.0


class HistoryStore:
    """Running accuracy stats keyed by (protocol, token).

    Accuracy is ``clamp(1 - mean relative error, 0, 1)`` where relative error
    compares a predicted return against the realized one.
    """

    def __init__(self) -> None:
        self._stats: Dict[Tuple[str, str], _Stats] = {}

    def record_outcome(self, protocol: str, token: str, predicted: float, actual: float) -> None:
        predicted = float(predicted)
        actual = float(actual)
        denom = max(abs(predicted), 1e-9)
        error = min(abs(actual - predicted) / denom, 1.0)
        stats = self._stats.setdefault(_key(protocol, token), _Stats())
        stats.samples += 1
        stats.error_sum += error

    def accuracy(self, protocol: str, token: str) -> Optional[float]:
        stats = self._stats.get(_key(protocol, token))
        if stats is None or stats.samples == 0:
            return None
        return max(0.0, min(1.0, 1.0 - stats.mean_error))

    def samples(self, protocol: str, token: str) -> int:
        stats = self._stats.get(_key(protocol, token))
        return stats.samples if stats else 0

    def hydrate(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Load ``outcome`` memory records; returns how many were usable."""
        loaded = 0
        for rec in records:
            try:
                self.record_outcome(
                    str(rec["protocol"]),
                    str(rec["token"]),
                    float(rec["predicted_return"]),
                    float(rec["actual_return"]),
                )
            except (KeyError, TypeError, ValueError):
                log.debug(f"Skipping malformed outcome record: {rec!r}")
                continue
            loaded += 1
        return loaded

    def reset(self) -> None:
        self._stats.clear()

    def __len__(self) -> int:
        return len(self._stats)
