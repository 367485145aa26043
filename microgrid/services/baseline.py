"""Canonical baseline snapshot used on first access and on reset."""

from datetime import datetime, timedelta
from typing import Optional

from microgrid.core.timeutils import utc_now
from microgrid.models.market import (
    Community, LeaderboardEntry, MarketSnapshot, Member, RewardsPool, Trade,
    TradeStatus, UserMembership, SURPLUS, PEAK_CUT,
)

SUNRISE_ENCLAVE = "mg_sunrise_enclave"
LAKEVIEW_SOCIETY = "mg_lakeview_society"


def _sunrise_enclave() -> Community:
    return Community(
        id=SUNRISE_ENCLAVE,
        name="Sunrise Enclave",
        households=24,
        total_generation=612,
        total_consumption=540,
        net_flow=72,
        shared_capacity=45,
        description="Premium villa cluster pooling 120 kW rooftop solar & 2 community batteries.",
        invites_open=True,
        members=[
            Member(id="mem_a1", household="Villa 12 · Mehta Family", surplus_kwh=8.4,
                   peak_cut_percent=36, credits=124, tier="Gold", badges=["Solar OG", "Peak Slayer"]),
            Member(id="mem_a2", household="Villa 05 · Banerjees", surplus_kwh=6.1,
                   peak_cut_percent=28, credits=102, tier="Silver", badges=["Night Owl"]),
            Member(id="mem_a3", household="Villa 08 · Murthys", surplus_kwh=4.4,
                   peak_cut_percent=22, credits=84, tier="Silver", badges=["Eco Champ"]),
        ],
    )


def _lakeview_society() -> Community:
    return Community(
        id=LAKEVIEW_SOCIETY,
        name="Lakeview Society",
        households=60,
        total_generation=820,
        total_consumption=910,
        net_flow=-90,
        shared_capacity=30,
        description="High-rise apartments leveraging peer-to-peer trading and smart EV fleets.",
        invites_open=False,
        members=[
            Member(id="mem_b1", household="Tower B · Apt 1803", surplus_kwh=3.1,
                   peak_cut_percent=18, credits=65, tier="Bronze", badges=["Night Owl"]),
            Member(id="mem_b2", household="Tower C · Apt 2101", surplus_kwh=2.2,
                   peak_cut_percent=15, credits=48, tier="Bronze", badges=[]),
        ],
    )


def build_baseline_snapshot(now: Optional[datetime] = None, version: int = 0) -> MarketSnapshot:
    """Return a fresh copy of the baseline market state stamped at ``now``"""
    now = now or utc_now()

    leaderboards = {
        SURPLUS: [
            LeaderboardEntry(member_id="mem_a1", household="Villa 12 · Mehta Family", value=8.4, change=1.2, tier="Gold"),
            LeaderboardEntry(member_id="mem_a2", household="Villa 05 · Banerjees", value=6.1, change=0.5, tier="Silver"),
            LeaderboardEntry(member_id="mem_b1", household="Tower B · Apt 1803", value=3.1, change=-0.2, tier="Bronze"),
        ],
        PEAK_CUT: [
            LeaderboardEntry(member_id="mem_a1", household="Villa 12 · Mehta Family", value=36, change=4, tier="Gold"),
            LeaderboardEntry(member_id="mem_a3", household="Villa 08 · Murthys", value=22, change=1, tier="Silver"),
            LeaderboardEntry(member_id="mem_b2", household="Tower C · Apt 2101", value=15, change=-1, tier="Bronze"),
        ],
    }

    recent_trades = [
        Trade(
            id="trade_001",
            seller_id="mem_a1",
            buyer_id="mem_b1",
            community_id=SUNRISE_ENCLAVE,
            from_household="Villa 12 · Mehta Family",
            to_household="Tower B · Apt 1803",
            amount_kwh=6,
            credit_value=30,
            price_per_kwh=5,
            timestamp=now,
            status=TradeStatus.SETTLED,
            executed_at=now,
        ),
        Trade(
            id="trade_002",
            seller_id="mem_a2",
            buyer_id="mem_b2",
            community_id=SUNRISE_ENCLAVE,
            from_household="Villa 05 · Banerjees",
            to_household="Tower C · Apt 2101",
            amount_kwh=4,
            credit_value=18,
            price_per_kwh=4.5,
            timestamp=now,
            status=TradeStatus.PENDING,
        ),
    ]

    return MarketSnapshot(
        communities=[_sunrise_enclave(), _lakeview_society()],
        leaderboards=leaderboards,
        recent_trades=recent_trades,
        rewards_pool=RewardsPool(total_credits=540, next_payout=now + timedelta(days=3)),
        user_membership=UserMembership(member_id="mem_a1", community_id=SUNRISE_ENCLAVE, pending_invites=1),
        version=version,
    )
