"""
Snapshot storage backends.

The engine persists two documents ("index" and "analytics") and rewrites each
in full after every mutation. Backends only move whole JSON-compatible dicts;
validation happens in the engine.

Backends:
- JsonFileStorage: one pretty-printed JSON file per document (default)
- SqliteStorage: one row per document in a SQLite database
- MemoryStorage: process-local dict, for tests and embedding
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, JSON, String, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from .config import Settings

logger = logging.getLogger(__name__)

DOCUMENT_NAMES = ("index", "analytics")


class SynapseError(Exception):
    """Base error for SynapseIndex."""


class StorageError(SynapseError):
    """A snapshot could not be read or written."""

    def __init__(self, document: str, message: str):
        super().__init__(f"{document}: {message}")
        self.document = document


class SnapshotStorage(ABC):
    """Reads and writes whole documents by name."""

    @abstractmethod
    async def load(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Load a document.

        Returns None if the document has never been saved.
        Raises StorageError if it exists but cannot be read or parsed.
        """

    @abstractmethod
    async def save(self, name: str, document: Dict[str, Any]) -> None:
        """Replace a document. Raises StorageError on failure."""

    async def close(self) -> None:
        """Release any resources held by the backend."""


class MemoryStorage(SnapshotStorage):
    """Keeps serialized documents in a dict."""

    def __init__(self):
        self.documents: Dict[str, str] = {}
        self.save_count = 0

    async def load(self, name: str) -> Optional[Dict[str, Any]]:
        raw = self.documents.get(name)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(name, f"invalid JSON: {e}") from e

    async def save(self, name: str, document: Dict[str, Any]) -> None:
        try:
            self.documents[name] = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise StorageError(name, f"not serializable: {e}") from e
        self.save_count += 1


class JsonFileStorage(SnapshotStorage):
    """Stores each document as synapse-<name>.json in a directory."""

    def __init__(self, storage_path: str):
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.storage_path / f"synapse-{name}.json"

    async def load(self, name: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(name, f"failed to read {path}: {e}") from e

    async def save(self, name: str, document: Dict[str, Any]) -> None:
        path = self.path_for(name)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{path.name}.", dir=str(self.storage_path)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(name, f"failed to write {path}: {e}") from e


class Base(DeclarativeBase):
    pass


class Snapshot(Base):
    """One persisted document."""
    __tablename__ = "snapshots"

    name = Column(String, primary_key=True)
    body = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))


class SqliteStorage(SnapshotStorage):
    """
    Stores documents as rows of a SQLite database.

    The async engine is created lazily so it binds to the running event loop.
    """

    def __init__(self, storage_path: str, db_name: str = "synapse.db"):
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

        self.db_path = self.storage_path / db_name
        self.db_url = f"sqlite+aiosqlite:///{self.db_path}"
        self._engine = None
        self._session_factory = None
        self._initialized = False

    async def _get_session_factory(self) -> async_sessionmaker:
        if self._engine is None:
            self._engine = create_async_engine(
                self.db_url,
                connect_args={"check_same_thread": False},
                poolclass=NullPool,
            )
            self._session_factory = async_sessionmaker(
                bind=self._engine,
                expire_on_commit=False,
                class_=AsyncSession
            )

        if not self._initialized:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._initialized = True
            logger.info(f"Snapshot database initialized at {self.db_path}")

        return self._session_factory

    async def load(self, name: str) -> Optional[Dict[str, Any]]:
        try:
            factory = await self._get_session_factory()
            async with factory() as session:
                result = await session.execute(
                    select(Snapshot.body).where(Snapshot.name == name)
                )
                return result.scalar_one_or_none()
        except Exception as e:
            raise StorageError(name, f"failed to read from {self.db_path}: {e}") from e

    async def save(self, name: str, document: Dict[str, Any]) -> None:
        try:
            factory = await self._get_session_factory()
            async with factory() as session:
                await session.merge(Snapshot(
                    name=name,
                    body=document,
                    updated_at=datetime.now(timezone.utc)
                ))
                await session.commit()
        except Exception as e:
            raise StorageError(name, f"failed to write to {self.db_path}: {e}") from e

    async def close(self) -> None:
        """Dispose of the engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._initialized = False


def create_storage(config: Settings) -> SnapshotStorage:
    """Build the backend selected by `storage_backend`."""
    if config.storage_backend == "memory":
        return MemoryStorage()

    storage_path = config.get_storage_path()
    if config.storage_backend == "sqlite":
        return SqliteStorage(storage_path)
    return JsonFileStorage(storage_path)
