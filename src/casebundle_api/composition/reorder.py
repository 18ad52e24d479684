"""Optimistic reorder with rollback and a time-boxed undo window.

Phases: ``IDLE -> REORDERING -> COMMITTED | ROLLED_BACK -> IDLE``. The
orchestrator is the single source of truth for whether a reorder is in flight;
at most one may be in flight per composition.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import Callable, Collection, Sequence

from casebundle_api.composition.entries import Entry, persisted_row_type
from casebundle_api.composition.notices import Notice, NoticeLog
from casebundle_api.composition.pagination import recalculate_page_ranges, reorder_array
from casebundle_api.errors import (
    ConcurrentReorderRejectedError,
    PersistenceRejectedError,
    UndoUnavailableError,
)
from casebundle_api.schemas import MutationStatus, PersistedRowType
from casebundle_api.services.entry_persistence import EntryPersistence, call_persistence
from casebundle_api.telemetry import CompositionMetrics


LOGGER = logging.getLogger(__name__)

DEFAULT_UNDO_WINDOW_SECONDS = 5.0
DEFAULT_TRACKED_ROW_TYPES: tuple[PersistedRowType, ...] = ("file", "component")

Projection = Callable[[Sequence[Entry]], tuple[Entry, ...]]
Publisher = Callable[[tuple[Entry, ...]], None]


class ReorderPhase(str, Enum):
    IDLE = "idle"
    REORDERING = "reordering"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class UndoWindow:
    previous: tuple[Entry, ...]
    from_index: int
    to_index: int
    expires_at: float


@dataclass(frozen=True)
class ReorderOutcome:
    status: MutationStatus
    entries: tuple[Entry, ...]
    previous: tuple[Entry, ...]
    notice: Notice
    error: PersistenceRejectedError | None = None

    @property
    def persisted(self) -> bool:
        return self.error is None


class ReorderOrchestrator:
    def __init__(
        self,
        *,
        container_id: str,
        persistence: EntryPersistence,
        publish: Publisher,
        notices: NoticeLog,
        project: Projection = recalculate_page_ranges,
        undo_window_seconds: float = DEFAULT_UNDO_WINDOW_SECONDS,
        tracked_row_types: Collection[PersistedRowType] = DEFAULT_TRACKED_ROW_TYPES,
        metrics: CompositionMetrics | None = None,
        time_fn: Callable[[], float] | None = None,
        is_persisted: Callable[[str], bool] | None = None,
    ) -> None:
        if undo_window_seconds <= 0:
            raise ValueError("undo_window_seconds must be > 0")
        self._container_id = container_id
        self._persistence = persistence
        self._publish = publish
        self._notices = notices
        self._project = project
        self._undo_window_seconds = float(undo_window_seconds)
        self._tracked_row_types = frozenset(tracked_row_types)
        self._metrics = metrics
        self._time_fn = time_fn or time.monotonic
        self._is_persisted = is_persisted
        self._in_flight = False
        self._settled: asyncio.Event | None = None
        self._undo_window: UndoWindow | None = None
        self._last_terminal_phase: ReorderPhase | None = None

    @property
    def phase(self) -> ReorderPhase:
        if self._in_flight:
            return ReorderPhase.REORDERING
        if self.undo_window is not None:
            return ReorderPhase.COMMITTED
        return ReorderPhase.IDLE

    @property
    def last_terminal_phase(self) -> ReorderPhase | None:
        return self._last_terminal_phase

    @property
    def undo_window(self) -> UndoWindow | None:
        window = self._undo_window
        if window is None:
            return None
        if self._time_fn() >= window.expires_at:
            self._undo_window = None
            return None
        return window

    def discard_undo(self) -> None:
        self._undo_window = None

    def tracked_ids(self, entries: Sequence[Entry]) -> list[str]:
        """IDs of the rows the adapter orders, in list order.

        Entries the adapter never stored are left out.
        """
        return [
            entry.id
            for entry in entries
            if persisted_row_type(entry) in self._tracked_row_types
            and (self._is_persisted is None or self._is_persisted(entry.id))
        ]

    async def wait_until_settled(self) -> None:
        while self._in_flight and self._settled is not None:
            await self._settled.wait()

    def _reject_if_in_flight(self) -> None:
        if self._in_flight:
            if self._metrics is not None:
                self._metrics.record_reorder_rejected()
            raise ConcurrentReorderRejectedError()

    def _begin_flight(self) -> None:
        self._in_flight = True
        self._settled = asyncio.Event()

    def _end_flight(self) -> None:
        self._in_flight = False
        if self._settled is not None:
            self._settled.set()

    async def _send_order(self, entries: Sequence[Entry]) -> bool:
        ordered_ids = self.tracked_ids(entries)
        if not ordered_ids:
            return True
        result = await call_persistence(
            self._persistence.reorder,
            self._container_id,
            ordered_ids,
            operation="reorder",
            container_id=self._container_id,
        )
        return bool(result)

    async def reorder(
        self,
        entries: Sequence[Entry],
        from_index: int,
        to_index: int,
    ) -> ReorderOutcome:
        self._reject_if_in_flight()
        previous = tuple(entries)
        reordered = self._project(reorder_array(previous, from_index, to_index))

        self._begin_flight()
        self._undo_window = None
        try:
            self._publish(reordered)
            LOGGER.info(
                "Reordering composition entry",
                extra={
                    "container_id": self._container_id,
                    "from_index": from_index,
                    "to_index": to_index,
                },
            )
            persisted = await self._send_order(reordered)
        except asyncio.CancelledError:
            self._publish(previous)
            self._last_terminal_phase = ReorderPhase.ROLLED_BACK
            raise
        finally:
            self._end_flight()

        if self._metrics is not None:
            self._metrics.record_reorder(committed=persisted)

        if not persisted:
            self._publish(previous)
            self._last_terminal_phase = ReorderPhase.ROLLED_BACK
            error = PersistenceRejectedError(
                "Failed to reorder. Changes reverted.",
                operation="reorder",
                container_id=self._container_id,
            )
            notice = self._notices.publish(
                Notice(
                    level="error",
                    message="Failed to reorder. Changes reverted.",
                    container_id=self._container_id,
                )
            )
            LOGGER.warning(
                "Reorder rejected by persistence; restored previous order",
                extra={"container_id": self._container_id},
            )
            return ReorderOutcome(
                status="rolled_back",
                entries=previous,
                previous=previous,
                notice=notice,
                error=error,
            )

        expires_at = self._time_fn() + self._undo_window_seconds
        self._undo_window = UndoWindow(
            previous=previous,
            from_index=from_index,
            to_index=to_index,
            expires_at=expires_at,
        )
        self._last_terminal_phase = ReorderPhase.COMMITTED
        notice = self._notices.publish(
            Notice(
                level="success",
                message=f"Moved to position {to_index + 1}",
                description="All page numbers recalculated automatically.",
                action="undo",
                expires_at=expires_at,
                container_id=self._container_id,
            )
        )
        return ReorderOutcome(
            status="committed",
            entries=reordered,
            previous=previous,
            notice=notice,
        )

    async def undo(self) -> ReorderOutcome:
        """Restore the order from before the last committed reorder.

        A failed compensating call is reported but not rolled back: the
        restored order stays published even though storage may still hold
        the newer order.
        """
        self._reject_if_in_flight()
        window = self.undo_window
        if window is None:
            raise UndoUnavailableError()

        self._begin_flight()
        try:
            persisted = await self._send_order(window.previous)
        finally:
            self._end_flight()

        self._undo_window = None
        self._publish(window.previous)
        if self._metrics is not None:
            self._metrics.record_undo(persisted=persisted)

        if persisted:
            notice = self._notices.publish(
                Notice(level="info", message="Reorder undone", container_id=self._container_id)
            )
            return ReorderOutcome(
                status="undone",
                entries=window.previous,
                previous=window.previous,
                notice=notice,
            )

        LOGGER.warning(
            "Undo could not be persisted; stored order may differ from the composition",
            extra={"container_id": self._container_id},
        )
        notice = self._notices.publish(
            Notice(
                level="error",
                message="Undo could not be saved",
                description="The restored order is shown but was not stored.",
                container_id=self._container_id,
            )
        )
        return ReorderOutcome(
            status="undone",
            entries=window.previous,
            previous=window.previous,
            notice=notice,
            error=PersistenceRejectedError(
                "Undo could not be saved",
                operation="undo",
                container_id=self._container_id,
            ),
        )


__all__ = [
    "DEFAULT_TRACKED_ROW_TYPES",
    "DEFAULT_UNDO_WINDOW_SECONDS",
    "ReorderOrchestrator",
    "ReorderOutcome",
    "ReorderPhase",
    "UndoWindow",
]
