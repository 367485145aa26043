import asyncio
import random
from typing import Callable, Dict, List, Optional, TypeVar

from microgrid.core.config import Settings
from microgrid.core.exceptions import SnapshotVersionConflictError
from microgrid.core.logging import get_logger
from microgrid.core.timeutils import Clock, utc_now
from microgrid.models.market import (
    LEADERBOARD_CATEGORIES, Community, LeaderboardEntry, MarketSnapshot, Member, Trade, TradeStatus,
)
from microgrid.schemas.market import (
    CommunitiesSummary, CommunityDraft, CommunityStats, MarketStats, MemberDraft,
    MemberUpdate, MembershipView, Portfolio, TradeDraft,
)
from microgrid.services import community_registry, market_stats, trade_engine
from microgrid.services.drift import DriftSimulator
from microgrid.services.leaderboard import community_leaderboard, rebuild_leaderboards
from microgrid.services.portfolio import get_member_portfolio
from microgrid.services.snapshot_store import SnapshotStore

T = TypeVar("T")


class MarketService:
    """
    Service layer for the microgrid market.

    Read paths load the snapshot and run one simulation tick without
    persisting it; only ``get_live_snapshot`` writes the tick back. Mutation
    paths skip the tick, run under a single in-process writer lock and persist
    with a version check, so a concurrent writer in another process surfaces
    as ``SnapshotVersionConflictError`` instead of a silent overwrite.
    """

    def __init__(
        self,
        store: SnapshotStore,
        simulator: Optional[DriftSimulator] = None,
        clock: Clock = utc_now,
        ledger_limit: int = trade_engine.DEFAULT_LEDGER_LIMIT,
        default_price: float = market_stats.DEFAULT_MARKET_PRICE,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.simulator = simulator or DriftSimulator(enabled=False, clock=clock)
        self._clock = clock
        self.ledger_limit = ledger_limit
        self.default_price = default_price
        self._rng = rng or random.Random()
        self._write_lock = asyncio.Lock()
        self.log = get_logger(__name__)

    # --- snapshot ---

    async def read_snapshot(self) -> MarketSnapshot:
        """Load the snapshot with one simulation tick applied (not persisted)"""
        snapshot = await self.store.load()
        return self.simulator.tick(snapshot)

    async def get_live_snapshot(self) -> MarketSnapshot:
        """Load, tick and persist the snapshot"""
        async with self._write_lock:
            snapshot = await self.store.load()
            ticked = self.simulator.tick(snapshot)
            if ticked is snapshot:
                return snapshot

            try:
                await self.store.save(ticked, expected_version=snapshot.version)
            except SnapshotVersionConflictError as e:
                self.log.warning("Drift not persisted, snapshot changed concurrently", detail=e.message)
            return ticked

    async def reset(self) -> MarketSnapshot:
        async with self._write_lock:
            snapshot = await self.store.reset()
        self.log.info("Market snapshot reset", version=snapshot.version)
        return snapshot

    async def _mutate(self, operation: Callable[[MarketSnapshot], T]) -> T:
        """Run load -> operation -> versioned save as one serialized step"""
        async with self._write_lock:
            snapshot = await self.store.load()
            expected_version = snapshot.version
            result = operation(snapshot)
            await self.store.save(snapshot, expected_version=expected_version)
            return result

    # --- trades ---

    async def create_trade(self, draft: TradeDraft) -> Trade:
        trade = await self._mutate(
            lambda snapshot: trade_engine.create_trade(snapshot, draft, self._clock(), self.ledger_limit)
        )
        self.log.info("Trade created", trade_id=trade.id, buyer=trade.buyer_id, seller=trade.seller_id,
                      amount_kwh=trade.amount_kwh, price_per_kwh=trade.price_per_kwh)
        return trade

    async def execute_trade(self, trade_id: str) -> Trade:
        trade = await self._mutate(lambda snapshot: trade_engine.execute_trade(snapshot, trade_id, self._clock()))
        self.log.info("Trade executed", trade_id=trade.id)
        return trade

    async def cancel_trade(self, trade_id: str) -> Trade:
        trade = await self._mutate(lambda snapshot: trade_engine.cancel_trade(snapshot, trade_id, self._clock()))
        self.log.info("Trade cancelled", trade_id=trade.id)
        return trade

    async def get_recent_trades(self) -> List[Trade]:
        snapshot = await self.read_snapshot()
        return snapshot.recent_trades

    async def get_trade_history(
        self,
        community_id: Optional[str] = None,
        member_id: Optional[str] = None,
        status: Optional[TradeStatus] = None,
    ) -> List[Trade]:
        snapshot = await self.read_snapshot()
        return market_stats.get_trade_history(snapshot, community_id, member_id, status)

    async def get_market_data(self) -> MarketStats:
        snapshot = await self.read_snapshot()
        return market_stats.get_market_data(snapshot, self._clock(), self._rng, self.default_price)

    async def get_member_portfolio(self, member_id: str) -> Portfolio:
        snapshot = await self.read_snapshot()
        return get_member_portfolio(snapshot, member_id, self._clock())

    # --- communities ---

    async def list_communities(self) -> List[Community]:
        snapshot = await self.read_snapshot()
        return snapshot.communities

    async def get_community(self, community_id: str) -> Community:
        snapshot = await self.read_snapshot()
        return community_registry.find_community(snapshot, community_id)

    async def get_community_stats(self, community_id: str) -> CommunityStats:
        return community_registry.get_community_stats(await self.get_community(community_id))

    async def get_community_leaderboards(self, community_id: str) -> Dict[str, List[LeaderboardEntry]]:
        community = await self.get_community(community_id)
        return {
            category: community_leaderboard(community, category)
            for category in LEADERBOARD_CATEGORIES
        }

    async def get_communities_for_member(self, member_id: str) -> List[Community]:
        snapshot = await self.read_snapshot()
        return community_registry.communities_for_member(snapshot, member_id)

    async def get_leaderboards(self) -> Dict[str, List[LeaderboardEntry]]:
        snapshot = await self.read_snapshot()
        return snapshot.leaderboards

    async def get_communities_summary(self) -> CommunitiesSummary:
        snapshot = await self.read_snapshot()
        return community_registry.get_communities_summary(snapshot.communities)

    async def get_membership(self, member_id: str) -> MembershipView:
        snapshot = await self.read_snapshot()
        community, member = community_registry.find_member(snapshot, member_id)
        pending_invites = (
            snapshot.user_membership.pending_invites
            if snapshot.user_membership.member_id == member_id else 0
        )
        return MembershipView(community=community, member=member, pending_invites=pending_invites)

    async def create_community(self, draft: CommunityDraft) -> Community:
        community = await self._mutate(
            lambda snapshot: community_registry.create_community(snapshot, draft, self._clock())
        )
        self.log.info("Community created", community_id=community.id, name=community.name)
        return community

    async def join_community(self, community_id: str, draft: MemberDraft) -> Community:
        def operation(snapshot: MarketSnapshot) -> Community:
            community = community_registry.join_community(snapshot, community_id, draft, self._clock())
            rebuild_leaderboards(snapshot)
            return community

        community = await self._mutate(operation)
        self.log.info("Member joined community", community_id=community_id, member_id=draft.id)
        return community

    async def leave_community(self, community_id: str, member_id: str) -> Community:
        def operation(snapshot: MarketSnapshot) -> Community:
            community = community_registry.leave_community(snapshot, community_id, member_id)
            rebuild_leaderboards(snapshot)
            return community

        community = await self._mutate(operation)
        self.log.info("Member left community", community_id=community_id, member_id=member_id)
        return community

    async def update_member(self, community_id: str, update: MemberUpdate) -> Member:
        def operation(snapshot: MarketSnapshot) -> Member:
            member = community_registry.update_member(snapshot, community_id, update)
            rebuild_leaderboards(snapshot)
            return member

        member = await self._mutate(operation)
        self.log.info("Member updated", community_id=community_id, member_id=member.id)
        return member


def build_market_service(config: Settings, store: SnapshotStore, clock: Clock = utc_now) -> MarketService:
    """Create the market service from application settings"""
    simulator = DriftSimulator(
        seed=config.SIMULATION_SEED,
        settle_probability=config.SETTLE_PROBABILITY,
        enabled=config.SIMULATION_ENABLED,
        clock=clock,
    )
    return MarketService(
        store,
        simulator=simulator,
        clock=clock,
        ledger_limit=config.TRADE_LEDGER_LIMIT,
        default_price=config.DEFAULT_MARKET_PRICE,
        rng=random.Random(config.SIMULATION_SEED),
    )
