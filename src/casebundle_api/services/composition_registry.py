from __future__ import annotations

import asyncio
from threading import Lock
from typing import Callable, Collection

from casebundle_api.composition.notices import Notifier
from casebundle_api.composition.reorder import (
    DEFAULT_TRACKED_ROW_TYPES,
    DEFAULT_UNDO_WINDOW_SECONDS,
)
from casebundle_api.composition.store import CompositionStore
from casebundle_api.schemas import CompositionMode, ExhibitLabelStyle, PersistedRowType
from casebundle_api.services.entry_persistence import EntryPersistence
from casebundle_api.services.file_metadata import FileMetadataProvider
from casebundle_api.telemetry import CompositionMetrics


class CompositionRegistry:
    """Keeps one loaded :class:`CompositionStore` per container."""

    def __init__(
        self,
        *,
        persistence: EntryPersistence,
        file_catalog: FileMetadataProvider | None = None,
        mode: CompositionMode = "bundle",
        exhibit_style: ExhibitLabelStyle = "alphabetical",
        exhibit_prefix: str = "",
        undo_window_seconds: float = DEFAULT_UNDO_WINDOW_SECONDS,
        tracked_row_types: Collection[PersistedRowType] = DEFAULT_TRACKED_ROW_TYPES,
        strict_invariants: bool = True,
        max_notices: int = 50,
        notifier: Notifier | None = None,
        metrics: CompositionMetrics | None = None,
        time_fn: Callable[[], float] | None = None,
    ) -> None:
        self._persistence = persistence
        self._file_catalog = file_catalog
        self._mode: CompositionMode = mode
        self._exhibit_style: ExhibitLabelStyle = exhibit_style
        self._exhibit_prefix = exhibit_prefix
        self._undo_window_seconds = undo_window_seconds
        self._tracked_row_types = tuple(tracked_row_types)
        self._strict_invariants = strict_invariants
        self._max_notices = max_notices
        self._notifier = notifier
        self._metrics = metrics
        self._time_fn = time_fn
        self._lock = Lock()
        self._stores: dict[str, CompositionStore] = {}
        self._loading: dict[str, asyncio.Task[object]] = {}

    @property
    def persistence(self) -> EntryPersistence:
        return self._persistence

    def _build_store(self, container_id: str) -> CompositionStore:
        return CompositionStore(
            container_id=container_id,
            persistence=self._persistence,
            file_catalog=self._file_catalog,
            mode=self._mode,
            exhibit_style=self._exhibit_style,
            exhibit_prefix=self._exhibit_prefix,
            undo_window_seconds=self._undo_window_seconds,
            tracked_row_types=self._tracked_row_types,
            strict_invariants=self._strict_invariants,
            notifier=self._notifier,
            max_notices=self._max_notices,
            metrics=self._metrics,
            time_fn=self._time_fn,
        )

    async def get(self, container_id: str) -> CompositionStore:
        """Return the store for ``container_id``, loading it on first access."""
        normalized_container_id = str(container_id).strip()
        with self._lock:
            store = self._stores.get(normalized_container_id)
            if store is not None and normalized_container_id not in self._loading:
                return store
            if store is None:
                store = self._build_store(normalized_container_id)
                self._stores[normalized_container_id] = store
                self._loading[normalized_container_id] = asyncio.ensure_future(store.load())
            loading = self._loading[normalized_container_id]
        try:
            await asyncio.shield(loading)
        except Exception:
            with self._lock:
                if self._loading.get(normalized_container_id) is loading:
                    del self._loading[normalized_container_id]
                    self._stores.pop(normalized_container_id, None)
            raise
        with self._lock:
            if self._loading.get(normalized_container_id) is loading:
                del self._loading[normalized_container_id]
        return store

    async def reload(self, container_id: str) -> CompositionStore:
        store = await self.get(container_id)
        await store.load()
        return store

    def forget(self, container_id: str) -> None:
        with self._lock:
            self._stores.pop(str(container_id).strip(), None)

    def container_ids(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._stores))


__all__ = ["CompositionRegistry"]
