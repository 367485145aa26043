"""
Snapshot persistence for the microgrid market.

The whole ``MarketSnapshot`` is stored as one JSON document. Callers always
read the full aggregate, mutate an in-memory copy and write it back whole.

``save(snapshot)`` is an unconditional overwrite: two writers that loaded the
same version race and the last write wins. ``save(snapshot,
expected_version=n)`` is a compare-and-set that rejects stale writers with
``SnapshotVersionConflictError``. The check holds across store instances
and processes sharing the same file or Redis key.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import redis.asyncio as redis
from filelock import FileLock, Timeout
from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError

from microgrid.core.config import Settings
from microgrid.core.exceptions import SnapshotStorageError, SnapshotVersionConflictError
from microgrid.core.timeutils import Clock, utc_now
from microgrid.models.market import MarketSnapshot
from microgrid.services.baseline import build_baseline_snapshot

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class SnapshotStore(ABC):
    """Durable key-value persistence of one MarketSnapshot document"""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    async def load(self) -> MarketSnapshot:
        """Load the snapshot, creating and persisting the baseline if none exists"""
        document = await self._read()
        if document is None:
            baseline = build_baseline_snapshot(self._clock())
            try:
                await self._compare_and_write(baseline.to_document(), 0)
            except SnapshotVersionConflictError:
                # Another writer seeded and moved on first
                document = await self._read()
            else:
                logger.info("Initialized microgrid snapshot from baseline")
                return baseline

        try:
            return MarketSnapshot.model_validate(document)
        except ValidationError as e:
            logger.error(f"Persisted snapshot is invalid: {e}")
            raise SnapshotStorageError("Persisted snapshot is invalid") from e

    async def save(self, snapshot: MarketSnapshot, expected_version: Optional[int] = None) -> MarketSnapshot:
        """Persist the whole snapshot, bumping its version"""
        if expected_version is None:
            snapshot.version += 1
            await self._write(snapshot.to_document())
        else:
            snapshot.version = expected_version + 1
            await self._compare_and_write(snapshot.to_document(), expected_version)

        logger.debug(f"Snapshot saved at version {snapshot.version}")
        return snapshot

    async def reset(self) -> MarketSnapshot:
        """Replace persisted state with a fresh baseline"""
        document = await self._read()
        previous_version = int(document.get("version", 0)) if document else 0

        baseline = build_baseline_snapshot(self._clock(), version=previous_version + 1)
        await self._write(baseline.to_document())
        logger.info(f"Microgrid snapshot reset to baseline (version {baseline.version})")
        return baseline

    @abstractmethod
    async def _read(self) -> Optional[Document]:
        """Return the raw document, or None when nothing is stored"""

    @abstractmethod
    async def _write(self, document: Document) -> None:
        """Overwrite the stored document"""

    @abstractmethod
    async def _compare_and_write(self, document: Document, expected_version: int) -> None:
        """Overwrite only if the stored version equals expected_version"""


class FileSnapshotStore(SnapshotStore):
    """JSON file backend; writes go through a temp file and an atomic rename.

    Writers hold ``<path>.lock`` for the whole read-compare-replace, so two
    stores (or two processes) on one file cannot both pass the version check.
    """

    def __init__(self, path: str, clock: Clock = utc_now, lock_timeout: float = 10.0):
        super().__init__(clock)
        self.path = Path(path)
        self._lock = threading.Lock()
        self._file_lock = FileLock(f"{self.path}.lock", timeout=lock_timeout)

    async def _read(self) -> Optional[Document]:
        return await asyncio.to_thread(self._read_document)

    async def _write(self, document: Document) -> None:
        await asyncio.to_thread(self._locked_write, document)

    async def _compare_and_write(self, document: Document, expected_version: int) -> None:
        await asyncio.to_thread(self._locked_compare_and_write, document, expected_version)

    def _read_document(self) -> Optional[Document]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Snapshot file {self.path} is not valid JSON: {e}")
            raise SnapshotStorageError(f"Snapshot file is corrupt: {self.path}") from e
        except OSError as e:
            logger.error(f"Failed to read snapshot file {self.path}: {e}")
            raise SnapshotStorageError(f"Failed to read snapshot: {e}") from e

    def _write_document(self, document: Document) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error(f"Failed to write snapshot file {self.path}: {e}")
            raise SnapshotStorageError(f"Failed to write snapshot: {e}") from e

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock, self._file_lock:
                yield
        except Timeout as e:
            logger.error(f"Timed out waiting for {self._file_lock.lock_file}")
            raise SnapshotStorageError(f"Snapshot file is locked: {self.path}") from e
        except OSError as e:
            logger.error(f"Failed to lock snapshot file {self.path}: {e}")
            raise SnapshotStorageError(f"Failed to lock snapshot: {e}") from e

    def _locked_write(self, document: Document) -> None:
        with self._exclusive():
            self._write_document(document)

    def _locked_compare_and_write(self, document: Document, expected_version: int) -> None:
        with self._exclusive():
            current = self._read_document()
            actual = int(current.get("version", 0)) if current else 0
            if actual != expected_version:
                raise SnapshotVersionConflictError(expected_version, actual)
            self._write_document(document)


class RedisSnapshotStore(SnapshotStore):
    """Redis backend; the snapshot lives under a single string key"""

    def __init__(self, client: redis.Redis, key: str, clock: Clock = utc_now):
        super().__init__(clock)
        self.client = client
        self.key = key

    async def _read(self) -> Optional[Document]:
        try:
            raw = await self.client.get(self.key)
        except RedisError as e:
            logger.error(f"Redis GET error for {self.key}: {e}")
            raise SnapshotStorageError(f"Failed to read snapshot: {e}") from e
        return self._decode(raw)

    async def _write(self, document: Document) -> None:
        try:
            await self.client.set(self.key, json.dumps(document))
        except RedisError as e:
            logger.error(f"Redis SET error for {self.key}: {e}")
            raise SnapshotStorageError(f"Failed to write snapshot: {e}") from e

    async def _compare_and_write(self, document: Document, expected_version: int) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                await pipe.watch(self.key)
                current = self._decode(await pipe.get(self.key))
                actual = int(current.get("version", 0)) if current else 0
                if actual != expected_version:
                    raise SnapshotVersionConflictError(expected_version, actual)

                pipe.multi()
                pipe.set(self.key, json.dumps(document))
                await pipe.execute()
        except WatchError as e:
            raise SnapshotVersionConflictError(expected_version) from e
        except RedisError as e:
            logger.error(f"Redis transaction error for {self.key}: {e}")
            raise SnapshotStorageError(f"Failed to write snapshot: {e}") from e

    def _decode(self, raw: Optional[str]) -> Optional[Document]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise SnapshotStorageError(f"Snapshot under {self.key} is corrupt") from e


def build_snapshot_store(config: Settings, redis_client: Optional[redis.Redis] = None,
                         clock: Clock = utc_now) -> SnapshotStore:
    """Create the store selected by SNAPSHOT_BACKEND"""
    backend = config.SNAPSHOT_BACKEND.lower()
    if backend == "redis":
        if redis_client is None:
            raise ValueError("SNAPSHOT_BACKEND=redis requires a Redis client")
        return RedisSnapshotStore(redis_client, config.SNAPSHOT_REDIS_KEY, clock=clock)
    if backend == "file":
        return FileSnapshotStore(config.SNAPSHOT_FILE, clock=clock)
    raise ValueError(f"Unknown SNAPSHOT_BACKEND: {config.SNAPSHOT_BACKEND}")
