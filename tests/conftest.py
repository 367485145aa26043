"""Shared test fixtures."""

import random
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from microgrid.core.security import create_access_token
from microgrid.main import create_app
from microgrid.models.market import MarketSnapshot
from microgrid.services.baseline import build_baseline_snapshot
from microgrid.services.drift import DriftSimulator
from microgrid.services.market_service import MarketService
from microgrid.services.snapshot_store import FileSnapshotStore

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def snapshot() -> MarketSnapshot:
    """Fresh baseline snapshot stamped at NOW."""
    return build_baseline_snapshot(NOW)


@pytest.fixture
def store(tmp_path) -> FileSnapshotStore:
    return FileSnapshotStore(str(tmp_path / "microgrid-state.json"), clock=fixed_clock)


@pytest.fixture
def market_service(store: FileSnapshotStore) -> MarketService:
    """Service with drift on but read-side settlement off, for deterministic trade state."""
    simulator = DriftSimulator(seed=7, settle_probability=0.0, clock=fixed_clock)
    return MarketService(store, simulator=simulator, clock=fixed_clock, rng=random.Random(7))


@pytest.fixture
async def client(market_service: MarketService) -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    app = create_app()
    app.state.market_service = market_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def bearer(**claims) -> dict:
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def user_headers() -> dict:
    return bearer(sub="user-1", email="villa12@example.com", role="user", member_id="mem_a1")


@pytest.fixture
def admin_headers() -> dict:
    return bearer(sub="admin-1", email="ops@example.com", role="admin")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def auth_headers():
    """Build bearer headers for arbitrary token claims."""
    return bearer
