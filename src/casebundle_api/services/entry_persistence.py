from __future__ import annotations

from datetime import datetime, timezone
import hashlib
import json
import logging
from threading import Lock
from typing import Any, Callable, Protocol
import uuid

from starlette.concurrency import run_in_threadpool

from casebundle_api.schemas import ArtifactEntry, PersistedRowType


LOGGER = logging.getLogger(__name__)
_VALID_ROW_TYPES = frozenset({"file", "component", "artifact"})


class EntryPersistence(Protocol):
    """Store of the persisted shadow rows of a composition.

    Failures are reported through the return value (``None``, an empty
    reorder result or ``False``); callers also treat a raised exception as a
    failure. An empty ``list_entries`` result means the container has no rows.
    """

    def list_entries(self, container_id: str) -> list[ArtifactEntry] | None: ...

    def reorder(self, container_id: str, ordered_ids: list[str]) -> list[ArtifactEntry]: ...

    def create_entry(
        self,
        container_id: str,
        sequence_order: int,
        row_type: PersistedRowType,
        ref_id: str | None = None,
        config_json: str | None = None,
        *,
        entry_id: str | None = None,
        label_override: str | None = None,
    ) -> ArtifactEntry | None: ...

    def update_entry(
        self,
        entry_id: str,
        *,
        config_json: str | None = None,
        sequence_order: int | None = None,
    ) -> ArtifactEntry | None: ...

    def delete_entry(self, entry_id: str) -> bool: ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sorted_rows(rows: list[ArtifactEntry]) -> list[ArtifactEntry]:
    return sorted(rows, key=lambda row: (row.sequence_order, row.created_at, row.id))


def _validate_new_row(
    *,
    row_type: str,
    ref_id: str | None,
    config_json: str | None,
) -> str | None:
    if row_type not in _VALID_ROW_TYPES:
        return f"Invalid row_type: {row_type}. Must be one of: file, component, artifact"
    if row_type in {"file", "artifact"} and not ref_id:
        return f"ref_id is required when row_type is '{row_type}'"
    if row_type == "component" and not config_json:
        return "config_json is required when row_type is 'component'"
    return None


def _build_row(
    *,
    container_id: str,
    sequence_order: int,
    row_type: PersistedRowType,
    ref_id: str | None,
    config_json: str | None,
    entry_id: str | None,
    label_override: str | None,
) -> ArtifactEntry:
    return ArtifactEntry(
        id=entry_id or str(uuid.uuid4()),
        container_id=container_id,
        sequence_order=int(sequence_order),
        row_type=row_type,
        file_id=ref_id,
        config_json=config_json,
        label_override=label_override,
        created_at=_utc_now(),
    )


class InMemoryEntryPersistence:
    def __init__(self) -> None:
        self._lock = Lock()
        self._rows: dict[str, ArtifactEntry] = {}

    def list_entries(self, container_id: str) -> list[ArtifactEntry]:
        with self._lock:
            rows = [row for row in self._rows.values() if row.container_id == container_id]
        return _sorted_rows(rows)

    def reorder(self, container_id: str, ordered_ids: list[str]) -> list[ArtifactEntry]:
        with self._lock:
            unknown_ids = [
                entry_id
                for entry_id in ordered_ids
                if entry_id not in self._rows
                or self._rows[entry_id].container_id != container_id
            ]
            if unknown_ids:
                LOGGER.warning(
                    "Rejecting reorder with entries outside the container",
                    extra={"container_id": container_id, "unknown_ids": unknown_ids},
                )
                return []
            for index, entry_id in enumerate(ordered_ids):
                self._rows[entry_id] = self._rows[entry_id].model_copy(
                    update={"sequence_order": index}
                )
            rows = [row for row in self._rows.values() if row.container_id == container_id]
        return _sorted_rows(rows)

    def create_entry(
        self,
        container_id: str,
        sequence_order: int,
        row_type: PersistedRowType,
        ref_id: str | None = None,
        config_json: str | None = None,
        *,
        entry_id: str | None = None,
        label_override: str | None = None,
    ) -> ArtifactEntry | None:
        problem = _validate_new_row(row_type=row_type, ref_id=ref_id, config_json=config_json)
        if problem:
            LOGGER.warning(problem, extra={"container_id": container_id})
            return None
        row = _build_row(
            container_id=container_id,
            sequence_order=sequence_order,
            row_type=row_type,
            ref_id=ref_id,
            config_json=config_json,
            entry_id=entry_id,
            label_override=label_override,
        )
        with self._lock:
            if row.id in self._rows:
                LOGGER.warning(
                    "Entry id already exists",
                    extra={"container_id": container_id, "entry_id": row.id},
                )
                return None
            self._rows[row.id] = row
        return row

    def update_entry(
        self,
        entry_id: str,
        *,
        config_json: str | None = None,
        sequence_order: int | None = None,
    ) -> ArtifactEntry | None:
        changes: dict[str, Any] = {}
        if config_json is not None:
            changes["config_json"] = config_json
        if sequence_order is not None:
            changes["sequence_order"] = int(sequence_order)
        with self._lock:
            row = self._rows.get(entry_id)
            if row is None:
                return None
            updated = row.model_copy(update=changes)
            self._rows[entry_id] = updated
        return updated

    def delete_entry(self, entry_id: str) -> bool:
        with self._lock:
            return self._rows.pop(entry_id, None) is not None


class RedisEntryPersistence:
    """One Redis hash per container, keyed by entry id, plus an id -> container index."""

    def __init__(
        self,
        redis_client,
        *,
        prefix: str = "casebundle:compositions",
        ttl_seconds: int = 30 * 24 * 60 * 60,
    ) -> None:
        self.redis_client = redis_client
        self.prefix = prefix
        self.ttl_seconds = max(int(ttl_seconds), 1)

    def _container_key(self, container_id: str) -> str:
        digest = hashlib.sha256(container_id.encode("utf-8")).hexdigest()
        return f"{self.prefix}:entries:{digest}"

    def _index_key(self, entry_id: str) -> str:
        return f"{self.prefix}:entry-index:{entry_id}"

    @staticmethod
    def _decode(payload: Any) -> str:
        if isinstance(payload, bytes):
            return payload.decode("utf-8")
        return str(payload)

    def _load_rows(self, container_id: str) -> dict[str, ArtifactEntry]:
        raw_rows = self.redis_client.hgetall(self._container_key(container_id)) or {}
        rows: dict[str, ArtifactEntry] = {}
        for raw_id, raw_payload in raw_rows.items():
            entry_id = self._decode(raw_id)
            try:
                rows[entry_id] = ArtifactEntry.model_validate(
                    json.loads(self._decode(raw_payload))
                )
            except Exception:
                LOGGER.warning(
                    "Skipping undecodable persisted entry",
                    exc_info=True,
                    extra={"container_id": container_id, "entry_id": entry_id},
                )
        return rows

    def _write_rows(self, container_id: str, rows: list[ArtifactEntry]) -> None:
        key = self._container_key(container_id)
        self.redis_client.hset(
            key,
            mapping={row.id: json.dumps(row.model_dump(mode="json")) for row in rows},
        )
        self.redis_client.expire(key, self.ttl_seconds)
        for row in rows:
            self.redis_client.set(self._index_key(row.id), container_id, ex=self.ttl_seconds)

    def _container_for(self, entry_id: str) -> str | None:
        payload = self.redis_client.get(self._index_key(entry_id))
        if not payload:
            return None
        return self._decode(payload)

    def list_entries(self, container_id: str) -> list[ArtifactEntry] | None:
        try:
            rows = self._load_rows(container_id)
        except Exception:
            LOGGER.warning(
                "Unable to read composition entries from Redis",
                exc_info=True,
                extra={"container_id": container_id},
            )
            return None
        return _sorted_rows(list(rows.values()))

    def reorder(self, container_id: str, ordered_ids: list[str]) -> list[ArtifactEntry]:
        try:
            rows = self._load_rows(container_id)
            unknown_ids = [entry_id for entry_id in ordered_ids if entry_id not in rows]
            if unknown_ids:
                LOGGER.warning(
                    "Rejecting reorder with entries outside the container",
                    extra={"container_id": container_id, "unknown_ids": unknown_ids},
                )
                return []
            updated = [
                rows[entry_id].model_copy(update={"sequence_order": index})
                for index, entry_id in enumerate(ordered_ids)
            ]
            if updated:
                self._write_rows(container_id, updated)
            for row in updated:
                rows[row.id] = row
        except Exception:
            LOGGER.warning(
                "Unable to persist composition order in Redis",
                exc_info=True,
                extra={"container_id": container_id},
            )
            return []
        return _sorted_rows(list(rows.values()))

    def create_entry(
        self,
        container_id: str,
        sequence_order: int,
        row_type: PersistedRowType,
        ref_id: str | None = None,
        config_json: str | None = None,
        *,
        entry_id: str | None = None,
        label_override: str | None = None,
    ) -> ArtifactEntry | None:
        problem = _validate_new_row(row_type=row_type, ref_id=ref_id, config_json=config_json)
        if problem:
            LOGGER.warning(problem, extra={"container_id": container_id})
            return None
        row = _build_row(
            container_id=container_id,
            sequence_order=sequence_order,
            row_type=row_type,
            ref_id=ref_id,
            config_json=config_json,
            entry_id=entry_id,
            label_override=label_override,
        )
        try:
            if self._container_for(row.id) is not None:
                LOGGER.warning(
                    "Entry id already exists",
                    extra={"container_id": container_id, "entry_id": row.id},
                )
                return None
            self._write_rows(container_id, [row])
        except Exception:
            LOGGER.warning(
                "Unable to create composition entry in Redis",
                exc_info=True,
                extra={"container_id": container_id, "entry_id": row.id},
            )
            return None
        return row

    def update_entry(
        self,
        entry_id: str,
        *,
        config_json: str | None = None,
        sequence_order: int | None = None,
    ) -> ArtifactEntry | None:
        changes: dict[str, Any] = {}
        if config_json is not None:
            changes["config_json"] = config_json
        if sequence_order is not None:
            changes["sequence_order"] = int(sequence_order)
        try:
            container_id = self._container_for(entry_id)
            if container_id is None:
                return None
            row = self._load_rows(container_id).get(entry_id)
            if row is None:
                return None
            updated = row.model_copy(update=changes)
            self._write_rows(container_id, [updated])
        except Exception:
            LOGGER.warning(
                "Unable to update composition entry in Redis",
                exc_info=True,
                extra={"entry_id": entry_id},
            )
            return None
        return updated

    def delete_entry(self, entry_id: str) -> bool:
        try:
            container_id = self._container_for(entry_id)
            if container_id is None:
                return False
            removed = self.redis_client.hdel(self._container_key(container_id), entry_id)
            self.redis_client.delete(self._index_key(entry_id))
        except Exception:
            LOGGER.warning(
                "Unable to delete composition entry from Redis",
                exc_info=True,
                extra={"entry_id": entry_id},
            )
            return False
        return bool(removed)


def build_entry_persistence(
    *,
    redis_url: str | None,
    ttl_seconds: int = 30 * 24 * 60 * 60,
) -> EntryPersistence:
    if not redis_url:
        LOGGER.info("Using in-memory entry persistence (redis_url not configured)")
        return InMemoryEntryPersistence()

    try:
        import redis

        redis_client = redis.Redis.from_url(
            redis_url,
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        )
        redis_client.ping()
        LOGGER.info("Using Redis-backed entry persistence")
        return RedisEntryPersistence(redis_client, ttl_seconds=ttl_seconds)
    except Exception:
        LOGGER.warning(
            "Redis entry persistence unavailable; falling back to in-memory store",
            exc_info=True,
        )
        return InMemoryEntryPersistence()


async def call_persistence(
    method: Callable[..., Any],
    *args: Any,
    operation: str,
    container_id: str | None = None,
    **kwargs: Any,
) -> Any:
    """Run a blocking adapter call off the event loop; a raised error becomes ``None``."""
    try:
        return await run_in_threadpool(method, *args, **kwargs)
    except Exception:
        LOGGER.warning(
            "Persistence adapter call failed",
            exc_info=True,
            extra={"operation": operation, "container_id": container_id},
        )
        return None


__all__ = [
    "EntryPersistence",
    "InMemoryEntryPersistence",
    "RedisEntryPersistence",
    "build_entry_persistence",
    "call_persistence",
]
