from __future__ import annotations

import asyncio
import json

import pytest

from casebundle_api.composition import CompositionStore
from casebundle_api.services import (
    FileMetadata,
    InMemoryEntryPersistence,
    RedisEntryPersistence,
    build_entry_persistence,
    call_persistence,
)


class _FakeRedis:
    def __init__(self) -> None:
        self._hashes: dict[str, dict[str, bytes]] = {}
        self._values: dict[str, bytes] = {}
        self.expire_calls: list[tuple[str, int]] = []

    def hgetall(self, key: str) -> dict[bytes, bytes]:
        return {
            field.encode("utf-8"): value for field, value in self._hashes.get(key, {}).items()
        }

    def hset(self, key: str, mapping: dict[str, str]) -> int:
        bucket = self._hashes.setdefault(key, {})
        for field, value in mapping.items():
            bucket[field] = value.encode("utf-8")
        return len(mapping)

    def hdel(self, key: str, field: str) -> int:
        return 1 if self._hashes.get(key, {}).pop(field, None) is not None else 0

    def expire(self, key: str, ttl_seconds: int) -> bool:
        self.expire_calls.append((key, ttl_seconds))
        return True

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        del ex
        self._values[key] = value.encode("utf-8")
        return True

    def get(self, key: str):
        return self._values.get(key)

    def delete(self, key: str) -> int:
        return 1 if self._values.pop(key, None) is not None else 0


class _FailingRedis:
    def hgetall(self, key: str):
        del key
        raise RuntimeError("redis unavailable")

    def get(self, key: str):
        del key
        raise RuntimeError("redis unavailable")


def _component_config(label: str) -> str:
    return json.dumps({"template": "section-break", "section_label": label})


@pytest.fixture(params=["memory", "redis"])
def persistence(request: pytest.FixtureRequest):
    if request.param == "memory":
        return InMemoryEntryPersistence()
    return RedisEntryPersistence(_FakeRedis(), ttl_seconds=3600)


def test_create_and_list_entries_in_sequence_order(persistence) -> None:
    persistence.create_entry("bundle-1", 1, "file", "file-b", entry_id="b")
    persistence.create_entry("bundle-1", 0, "file", "file-a", entry_id="a")
    persistence.create_entry("bundle-2", 0, "file", "file-z", entry_id="z")

    rows = persistence.list_entries("bundle-1")

    assert [row.id for row in rows] == ["a", "b"]
    assert rows[0].file_id == "file-a"
    assert rows[0].created_at


def test_create_validates_row_shape(persistence) -> None:
    assert persistence.create_entry("bundle-1", 0, "file") is None
    assert persistence.create_entry("bundle-1", 0, "component") is None
    assert persistence.create_entry("bundle-1", 0, "sticker", config_json="{}") is None
    assert persistence.list_entries("bundle-1") == []


def test_create_rejects_duplicate_ids(persistence) -> None:
    assert persistence.create_entry("bundle-1", 0, "component", config_json=_component_config("TAB A"), entry_id="x")
    assert persistence.create_entry("bundle-1", 1, "component", config_json=_component_config("TAB B"), entry_id="x") is None


def test_reorder_writes_dense_sequence_order(persistence) -> None:
    for index, entry_id in enumerate(["a", "b", "c"]):
        persistence.create_entry("bundle-1", index, "file", f"file-{entry_id}", entry_id=entry_id)

    rows = persistence.reorder("bundle-1", ["c", "a", "b"])

    assert [(row.id, row.sequence_order) for row in rows] == [("c", 0), ("a", 1), ("b", 2)]
    assert [row.id for row in persistence.list_entries("bundle-1")] == ["c", "a", "b"]


def test_reorder_with_foreign_ids_fails_without_partial_writes(persistence) -> None:
    persistence.create_entry("bundle-1", 0, "file", "file-a", entry_id="a")
    persistence.create_entry("bundle-1", 1, "file", "file-b", entry_id="b")
    persistence.create_entry("bundle-2", 0, "file", "file-z", entry_id="z")

    assert persistence.reorder("bundle-1", ["b", "z", "a"]) == []
    assert [row.id for row in persistence.list_entries("bundle-1")] == ["a", "b"]


def test_update_and_delete_entries(persistence) -> None:
    persistence.create_entry("bundle-1", 0, "component", config_json=_component_config("TAB A"), entry_id="s")

    updated = persistence.update_entry("s", config_json=_component_config("Exhibits"))

    assert updated is not None
    assert json.loads(updated.config_json)["section_label"] == "Exhibits"
    assert persistence.update_entry("missing", config_json="{}") is None
    assert persistence.delete_entry("s") is True
    assert persistence.delete_entry("s") is False
    assert persistence.list_entries("bundle-1") == []


def test_redis_persistence_sets_ttl_on_container_hash() -> None:
    redis_client = _FakeRedis()
    persistence = RedisEntryPersistence(redis_client, ttl_seconds=120)

    persistence.create_entry("bundle-1", 0, "file", "file-a", entry_id="a")

    key = persistence._container_key("bundle-1")
    assert (key, 120) in redis_client.expire_calls
    assert "bundle-1" not in key


def test_redis_persistence_reports_failures_through_return_values() -> None:
    persistence = RedisEntryPersistence(_FailingRedis())

    assert persistence.list_entries("bundle-1") is None
    assert persistence.reorder("bundle-1", ["a"]) == []
    assert persistence.create_entry("bundle-1", 0, "file", "file-a", entry_id="a") is None
    assert persistence.update_entry("a", config_json="{}") is None
    assert persistence.delete_entry("a") is False


def test_build_entry_persistence_defaults_to_memory_without_redis_url() -> None:
    assert isinstance(build_entry_persistence(redis_url=None), InMemoryEntryPersistence)


def test_build_entry_persistence_falls_back_when_redis_is_unreachable(monkeypatch) -> None:
    import redis

    class _UnreachableRedis:
        def ping(self) -> None:
            raise ConnectionError("no route to host")

    monkeypatch.setattr(redis.Redis, "from_url", classmethod(lambda cls, *args, **kwargs: _UnreachableRedis()))

    persistence = build_entry_persistence(redis_url="redis://redis.invalid:6379/0")

    assert isinstance(persistence, InMemoryEntryPersistence)


def test_build_entry_persistence_uses_redis_when_reachable(monkeypatch) -> None:
    import redis

    class _ReachableRedis(_FakeRedis):
        def ping(self) -> bool:
            return True

    monkeypatch.setattr(redis.Redis, "from_url", classmethod(lambda cls, *args, **kwargs: _ReachableRedis()))

    persistence = build_entry_persistence(redis_url="redis://localhost:6379/0", ttl_seconds=60)

    assert isinstance(persistence, RedisEntryPersistence)
    assert persistence.ttl_seconds == 60


def test_call_persistence_turns_raised_errors_into_none() -> None:
    def _explode(container_id: str) -> list:
        raise RuntimeError(f"cannot read {container_id}")

    result = asyncio.run(
        call_persistence(_explode, "bundle-1", operation="list_entries", container_id="bundle-1")
    )

    assert result is None


def test_call_persistence_returns_adapter_result() -> None:
    persistence = InMemoryEntryPersistence()
    persistence.create_entry("bundle-1", 0, "file", "file-a", entry_id="a")

    rows = asyncio.run(
        call_persistence(persistence.list_entries, "bundle-1", operation="list_entries")
    )

    assert [row.id for row in rows] == ["a"]


def test_store_keeps_entries_when_redis_read_fails() -> None:
    persistence = RedisEntryPersistence(_FakeRedis(), ttl_seconds=3600)
    store = CompositionStore(container_id="bundle-1", persistence=persistence)

    async def scenario():
        for name in ("a", "b"):
            await store.insert_document(
                FileMetadata(
                    file_id=f"file-{name}",
                    path=f"/uploads/{name}.pdf",
                    original_name=f"{name}.pdf",
                    page_count=2,
                )
            )
        persistence.redis_client = _FailingRedis()
        return await store.load()

    entries = asyncio.run(scenario())

    assert [entry.description for entry in entries] == ["a.pdf", "b.pdf"]
    assert [(entry.page_start, entry.page_end) for entry in store.entries] == [(1, 2), (3, 4)]
    assert store.notices()[-1].message == "Failed to load entries"
    assert store.notices()[-1].level == "error"
