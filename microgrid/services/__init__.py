from .snapshot_store import SnapshotStore, FileSnapshotStore, RedisSnapshotStore, build_snapshot_store
from .drift import DriftSimulator
from .market_service import MarketService, build_market_service

__all__ = [
    "SnapshotStore", "FileSnapshotStore", "RedisSnapshotStore", "build_snapshot_store",
    "DriftSimulator",
    "MarketService", "build_market_service",
]
