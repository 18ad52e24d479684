from __future__ import annotations

from collections import Counter
from threading import Lock
import time
from typing import Callable


class CompositionMetrics:
    def __init__(self, *, time_fn: Callable[[], float] | None = None) -> None:
        self._time_fn = time_fn or time.monotonic
        self._started_at = self._time_fn()
        self._lock = Lock()
        self._reorders_committed = 0
        self._reorders_rolled_back = 0
        self._reorders_rejected = 0
        self._undos_persisted = 0
        self._undos_failed = 0
        self._mutations: Counter[str] = Counter()
        self._persistence_failures: Counter[str] = Counter()
        self._invariant_violations = 0

    def record_reorder(self, *, committed: bool) -> None:
        with self._lock:
            if committed:
                self._reorders_committed += 1
            else:
                self._reorders_rolled_back += 1

    def record_reorder_rejected(self) -> None:
        with self._lock:
            self._reorders_rejected += 1

    def record_undo(self, *, persisted: bool) -> None:
        with self._lock:
            if persisted:
                self._undos_persisted += 1
            else:
                self._undos_failed += 1

    def record_mutation(self, *, operation: str, persisted: bool) -> None:
        with self._lock:
            self._mutations[operation] += 1
            if not persisted:
                self._persistence_failures[operation] += 1

    def record_persistence_failure(self, *, operation: str) -> None:
        with self._lock:
            self._persistence_failures[operation] += 1

    def record_invariant_violation(self) -> None:
        with self._lock:
            self._invariant_violations += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            reorder_attempts = self._reorders_committed + self._reorders_rolled_back
            rollback_rate = (
                self._reorders_rolled_back / reorder_attempts if reorder_attempts else 0.0
            )
            return {
                "window_seconds": round(max(self._time_fn() - self._started_at, 0.0), 3),
                "reorders": {
                    "committed": self._reorders_committed,
                    "rolled_back": self._reorders_rolled_back,
                    "rejected_concurrent": self._reorders_rejected,
                    "rollback_rate": round(rollback_rate, 6),
                },
                "undo": {
                    "persisted": self._undos_persisted,
                    "failed": self._undos_failed,
                },
                "mutations": dict(self._mutations),
                "persistence_failures": dict(self._persistence_failures),
                "invariant_violations": self._invariant_violations,
            }
