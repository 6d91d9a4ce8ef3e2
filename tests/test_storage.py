"""Tests for snapshot storage backends."""

import json
from pathlib import Path

import pytest

from synapse_index.config import Settings
from synapse_index.storage import (
    JsonFileStorage,
    MemoryStorage,
    SqliteStorage,
    StorageError,
    create_storage,
)

DOCUMENT = {"version": "3.0.0", "chunks": [], "sources": {"chat": ["a"]}}


class TestMemoryStorage:

    @pytest.mark.asyncio
    async def test_missing_document(self):
        storage = MemoryStorage()
        assert await storage.load("index") is None

    @pytest.mark.asyncio
    async def test_roundtrip_copies(self):
        storage = MemoryStorage()
        doc = {"sources": {"chat": ["a"]}}
        await storage.save("index", doc)
        doc["sources"]["chat"].append("b")

        assert await storage.load("index") == {"sources": {"chat": ["a"]}}
        assert storage.save_count == 1

    @pytest.mark.asyncio
    async def test_corrupt_document(self):
        storage = MemoryStorage()
        storage.documents["index"] = "{not json"
        with pytest.raises(StorageError) as exc:
            await storage.load("index")
        assert exc.value.document == "index"

    @pytest.mark.asyncio
    async def test_unserializable_document(self):
        storage = MemoryStorage()
        with pytest.raises(StorageError):
            await storage.save("index", {"bad": object()})


class TestJsonFileStorage:

    @pytest.mark.asyncio
    async def test_missing_document(self, temp_storage):
        storage = JsonFileStorage(temp_storage)
        assert await storage.load("index") is None

    @pytest.mark.asyncio
    async def test_writes_readable_json(self, temp_storage):
        storage = JsonFileStorage(temp_storage)
        await storage.save("index", DOCUMENT)

        path = Path(temp_storage) / "synapse-index.json"
        assert path.exists()
        text = path.read_text(encoding="utf-8")
        assert json.loads(text) == DOCUMENT
        assert "\n  " in text  # pretty-printed
        assert await storage.load("index") == DOCUMENT

    @pytest.mark.asyncio
    async def test_save_replaces_document(self, temp_storage):
        storage = JsonFileStorage(temp_storage)
        await storage.save("analytics", {"searches": [1]})
        await storage.save("analytics", {"searches": []})

        assert await storage.load("analytics") == {"searches": []}
        leftovers = [p.name for p in Path(temp_storage).iterdir() if p.name.startswith(".")]
        assert leftovers == []

    @pytest.mark.asyncio
    async def test_corrupt_file(self, temp_storage):
        storage = JsonFileStorage(temp_storage)
        storage.path_for("index").write_text("{truncated", encoding="utf-8")

        with pytest.raises(StorageError):
            await storage.load("index")

    @pytest.mark.asyncio
    async def test_unwritable_directory(self, temp_storage):
        storage = JsonFileStorage(temp_storage)
        storage.storage_path = Path(temp_storage) / "missing" / "nested"

        with pytest.raises(StorageError):
            await storage.save("index", DOCUMENT)


class TestSqliteStorage:

    @pytest.mark.asyncio
    async def test_roundtrip(self, temp_storage):
        storage = SqliteStorage(temp_storage)
        try:
            assert await storage.load("index") is None
            await storage.save("index", DOCUMENT)
            assert await storage.load("index") == DOCUMENT
        finally:
            await storage.close()

        assert (Path(temp_storage) / "synapse.db").exists()

    @pytest.mark.asyncio
    async def test_save_replaces_row(self, temp_storage):
        storage = SqliteStorage(temp_storage)
        try:
            await storage.save("analytics", {"searches": [1, 2]})
            await storage.save("analytics", {"searches": []})
            assert await storage.load("analytics") == {"searches": []}
        finally:
            await storage.close()

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, temp_storage):
        first = SqliteStorage(temp_storage)
        await first.save("index", DOCUMENT)
        await first.close()

        second = SqliteStorage(temp_storage)
        try:
            assert await second.load("index") == DOCUMENT
        finally:
            await second.close()


class TestCreateStorage:

    def test_memory_backend(self):
        assert isinstance(create_storage(Settings(storage_backend="memory")), MemoryStorage)

    def test_json_backend(self, temp_storage):
        storage = create_storage(Settings(storage_backend="json", storage_path=temp_storage))
        assert isinstance(storage, JsonFileStorage)

    def test_sqlite_backend(self, temp_storage):
        storage = create_storage(Settings(storage_backend="sqlite", storage_path=temp_storage))
        assert isinstance(storage, SqliteStorage)
