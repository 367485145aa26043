"""Live-telemetry drift simulation for the microgrid snapshot."""

import logging
import random
from datetime import datetime
from typing import List, Optional

from microgrid.core.timeutils import Clock, utc_now
from microgrid.models.market import MarketSnapshot, SURPLUS, Trade, TradeStatus
from microgrid.services.leaderboard import rank_leaderboard

logger = logging.getLogger(__name__)

PEAK_CUT_MIN = 0.0
PEAK_CUT_MAX = 50.0


class DriftSimulator:
    """
    Emulates live sensor movement without a telemetry ingest pipeline.

    One simulation tick is two separate steps:
    - ``apply_drift``: perturbs community, member and leaderboard figures
    - ``settle_pending_trades``: randomly settles pending trades

    The second step changes trade state as a side effect of reading the
    market. It is kept apart so it can be disabled or tested on its own.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        settle_probability: float = 0.3,
        enabled: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize the simulator.

        Args:
            seed: Random seed for reproducibility. If None, results will vary.
            settle_probability: Chance per observation that a pending trade settles
            enabled: When False, ``tick`` returns the snapshot unchanged
            clock: Source of the current UTC time
        """
        if not 0.0 <= settle_probability <= 1.0:
            raise ValueError("settle_probability must be between 0 and 1")
        self._random = random.Random(seed)
        self.settle_probability = settle_probability
        self.enabled = enabled
        self._clock = clock

    def drift(self) -> float:
        """Draw one perturbation from Uniform(-2, 2)"""
        return self._random.uniform(-2, 2)

    def _clamp(self, value: float, min_val: float, max_val: float) -> float:
        """Clamp value between min and max."""
        return max(min_val, min(max_val, value))

    def apply_drift(self, snapshot: MarketSnapshot) -> MarketSnapshot:
        """Return a drifted copy of the snapshot; the input is left untouched"""
        drifted = snapshot.copy_deep()

        for community in drifted.communities:
            delta = self.drift()
            community.net_flow = round(community.net_flow + delta, 1)
            community.total_generation = round(community.total_generation + delta * 1.5, 1)
            community.total_consumption = round(community.total_consumption + delta, 1)

            for member in community.members:
                member.surplus_kwh = round(member.surplus_kwh + self.drift() * 0.3, 1)
                member.peak_cut_percent = self._clamp(
                    round(member.peak_cut_percent + self.drift(), 1), PEAK_CUT_MIN, PEAK_CUT_MAX
                )

        for category, entries in drifted.leaderboards.items():
            scale = 0.2 if category == SURPLUS else 1.0
            for entry in entries:
                entry.value = round(entry.value + self.drift() * scale, 1)
                entry.change = round(self.drift() * 0.5, 1)
            drifted.leaderboards[category] = rank_leaderboard(entries)

        return drifted

    def settle_pending_trades(self, snapshot: MarketSnapshot, now: Optional[datetime] = None) -> List[Trade]:
        """Settle each pending trade with ``settle_probability``; mutates the snapshot"""
        now = now or self._clock()
        settled = []

        for trade in snapshot.recent_trades:
            if trade.status != TradeStatus.PENDING:
                continue
            if self._random.random() < self.settle_probability:
                trade.status = TradeStatus.SETTLED
                trade.timestamp = now
                trade.executed_at = now
                settled.append(trade)

        if settled:
            logger.info(f"Simulation settled {len(settled)} pending trade(s): {[t.id for t in settled]}")
        return settled

    def tick(self, snapshot: MarketSnapshot) -> MarketSnapshot:
        """Run one simulation step on a copy of the snapshot"""
        if not self.enabled:
            return snapshot
        ticked = self.apply_drift(snapshot)
        self.settle_pending_trades(ticked)
        return ticked
