import asyncio
import json
from typing import Dict, Optional

import pytest
from filelock import FileLock
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from microgrid.core.config import Settings
from microgrid.core.exceptions import SnapshotStorageError, SnapshotVersionConflictError
from microgrid.models.market import TradeStatus
from microgrid.services.snapshot_store import (
    FileSnapshotStore, RedisSnapshotStore, build_snapshot_store,
)


class FakePipeline:
    """Just enough of redis.asyncio's Pipeline for WATCH/MULTI/EXEC."""

    def __init__(self, server: "FakeRedis"):
        self.server = server
        self.queued: Dict[str, str] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def watch(self, key: str) -> None:
        self.watched = key

    async def get(self, key: str) -> Optional[str]:
        return self.server.data.get(key)

    def multi(self) -> None:
        pass

    def set(self, key: str, value: str) -> "FakePipeline":
        self.queued[key] = value
        return self

    async def execute(self):
        if self.server.interfere:
            raise WatchError("Watched variable changed")
        self.server.data.update(self.queued)
        return [True] * len(self.queued)


class FakeRedis:
    def __init__(self):
        self.data: Dict[str, str] = {}
        self.interfere = False
        self.fail = False

    async def get(self, key: str) -> Optional[str]:
        if self.fail:
            raise RedisConnectionError("connection refused")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.data[key] = value
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


class TestFileSnapshotStore:
    async def test_first_load_persists_baseline(self, store: FileSnapshotStore) -> None:
        assert not store.path.exists()

        snapshot = await store.load()

        assert store.path.exists()
        assert [c.name for c in snapshot.communities] == ["Sunrise Enclave", "Lakeview Society"]
        assert snapshot.version == 0

    async def test_document_is_camel_case(self, store: FileSnapshotStore) -> None:
        await store.load()
        document = json.loads(store.path.read_text(encoding="utf-8"))

        assert "recentTrades" in document
        assert "peakCutPercent" in document["communities"][0]["members"][0]

    async def test_save_bumps_version(self, store: FileSnapshotStore) -> None:
        snapshot = await store.load()
        await store.save(snapshot)
        assert (await store.load()).version == 1

    async def test_versioned_save_rejects_stale_writer(self, store: FileSnapshotStore) -> None:
        first = await store.load()
        second = await store.load()

        first.recent_trades[1].status = TradeStatus.SETTLED
        await store.save(first, expected_version=first.version)

        second.recent_trades[1].status = TradeStatus.CANCELLED
        with pytest.raises(SnapshotVersionConflictError) as exc_info:
            await store.save(second, expected_version=0)

        assert exc_info.value.http_status == 409
        assert exc_info.value.actual == 1
        assert (await store.load()).recent_trades[1].status == TradeStatus.SETTLED

    async def test_plain_save_is_last_write_wins(self, store: FileSnapshotStore) -> None:
        first = await store.load()
        second = await store.load()

        first.recent_trades[1].status = TradeStatus.SETTLED
        await store.save(first)
        second.recent_trades[1].status = TradeStatus.CANCELLED
        await store.save(second)

        assert (await store.load()).recent_trades[1].status == TradeStatus.CANCELLED

    async def test_reset_restores_baseline(self, store: FileSnapshotStore) -> None:
        snapshot = await store.load()
        snapshot.communities = []
        snapshot.recent_trades = []
        await store.save(snapshot)

        await store.reset()
        restored = await store.load()

        assert len(restored.communities) == 2
        assert [t.id for t in restored.recent_trades] == ["trade_001", "trade_002"]
        assert restored.version == 2

    async def test_corrupt_file(self, store: FileSnapshotStore) -> None:
        store.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SnapshotStorageError):
            await store.load()

    async def test_invalid_document(self, store: FileSnapshotStore) -> None:
        store.path.write_text(json.dumps({"communities": "nope"}), encoding="utf-8")
        with pytest.raises(SnapshotStorageError):
            await store.load()


class TestSharedSnapshotFile:
    """Two stores pointed at one file behave like two processes sharing it."""

    @pytest.fixture
    def other(self, store: FileSnapshotStore, now) -> FileSnapshotStore:
        return FileSnapshotStore(str(store.path), clock=lambda: now)

    async def test_stale_writer_in_other_store(self, store: FileSnapshotStore, other: FileSnapshotStore) -> None:
        first = await store.load()
        second = await other.load()

        first.recent_trades[1].status = TradeStatus.SETTLED
        await store.save(first, expected_version=0)

        second.recent_trades[1].status = TradeStatus.CANCELLED
        with pytest.raises(SnapshotVersionConflictError):
            await other.save(second, expected_version=0)
        assert (await other.load()).recent_trades[1].status == TradeStatus.SETTLED

    async def test_concurrent_versioned_saves_have_one_winner(self, store: FileSnapshotStore,
                                                              other: FileSnapshotStore) -> None:
        for _ in range(10):
            await store.reset()
            first = await store.load()
            second = await other.load()
            first.recent_trades[1].status = TradeStatus.SETTLED
            second.recent_trades[1].status = TradeStatus.CANCELLED

            results = await asyncio.gather(
                store.save(first, expected_version=first.version),
                other.save(second, expected_version=second.version),
                return_exceptions=True,
            )

            conflicts = [r for r in results if isinstance(r, SnapshotVersionConflictError)]
            winners = [r for r in results if not isinstance(r, Exception)]
            assert len(conflicts) == 1
            assert len(winners) == 1
            stored = await store.load()
            assert stored.version == winners[0].version
            assert stored.recent_trades[1].status == winners[0].recent_trades[1].status

    async def test_concurrent_first_loads_share_one_baseline(self, store: FileSnapshotStore,
                                                             other: FileSnapshotStore) -> None:
        first, second = await asyncio.gather(store.load(), other.load())

        assert first.version == second.version == 0
        snapshot = await store.load()
        await other.save(snapshot, expected_version=0)
        assert (await store.load()).version == 1

    async def test_held_lock_times_out(self, store: FileSnapshotStore, now) -> None:
        impatient = FileSnapshotStore(str(store.path), clock=lambda: now, lock_timeout=0.1)
        snapshot = await store.load()

        with FileLock(f"{store.path}.lock"):
            with pytest.raises(SnapshotStorageError):
                await impatient.save(snapshot, expected_version=0)

        assert (await store.load()).version == 0


class TestRedisSnapshotStore:
    @pytest.fixture
    def server(self) -> FakeRedis:
        return FakeRedis()

    @pytest.fixture
    def redis_store(self, server: FakeRedis, now) -> RedisSnapshotStore:
        return RedisSnapshotStore(server, "microgrid:test", clock=lambda: now)

    async def test_first_load_persists_baseline(self, redis_store: RedisSnapshotStore, server: FakeRedis) -> None:
        snapshot = await redis_store.load()
        assert json.loads(server.data["microgrid:test"])["version"] == snapshot.version == 0

    async def test_versioned_save(self, redis_store: RedisSnapshotStore, server: FakeRedis) -> None:
        snapshot = await redis_store.load()
        await redis_store.save(snapshot, expected_version=0)
        assert json.loads(server.data["microgrid:test"])["version"] == 1

    async def test_stale_version_conflict(self, redis_store: RedisSnapshotStore) -> None:
        first = await redis_store.load()
        second = await redis_store.load()
        await redis_store.save(first, expected_version=0)

        with pytest.raises(SnapshotVersionConflictError):
            await redis_store.save(second, expected_version=0)

    async def test_watch_error_is_conflict(self, redis_store: RedisSnapshotStore, server: FakeRedis) -> None:
        snapshot = await redis_store.load()
        server.interfere = True

        with pytest.raises(SnapshotVersionConflictError) as exc_info:
            await redis_store.save(snapshot, expected_version=0)
        assert exc_info.value.actual is None

    async def test_connection_failure(self, redis_store: RedisSnapshotStore, server: FakeRedis) -> None:
        server.fail = True
        with pytest.raises(SnapshotStorageError):
            await redis_store.load()


class TestBuildSnapshotStore:
    def test_file_backend(self, tmp_path) -> None:
        config = Settings(SNAPSHOT_BACKEND="file", SNAPSHOT_FILE=str(tmp_path / "s.json"))
        assert isinstance(build_snapshot_store(config), FileSnapshotStore)

    def test_redis_backend_needs_client(self) -> None:
        config = Settings(SNAPSHOT_BACKEND="redis")
        with pytest.raises(ValueError):
            build_snapshot_store(config)
        assert isinstance(build_snapshot_store(config, FakeRedis()), RedisSnapshotStore)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            build_snapshot_store(Settings(SNAPSHOT_BACKEND="sqlite"))
