"""Leaderboard ranking for the microgrid communities."""

from typing import Callable, Dict, Iterable, List

from microgrid.models.market import (
    LEADERBOARD_SIZE, Community, LeaderboardEntry, MarketSnapshot, Member, PEAK_CUT, SURPLUS,
)

# Metric each category ranks members by
CATEGORY_METRICS: Dict[str, Callable[[Member], float]] = {
    SURPLUS: lambda member: member.surplus_kwh,
    PEAK_CUT: lambda member: member.peak_cut_percent,
}


def rank_leaderboard(entries: Iterable[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """Sort entries by value, highest first, and keep the top three"""
    return sorted(entries, key=lambda entry: entry.value, reverse=True)[:LEADERBOARD_SIZE]


def rebuild_leaderboards(snapshot: MarketSnapshot) -> Dict[str, List[LeaderboardEntry]]:
    """
    Recompute every leaderboard from current member telemetry.

    ``change`` is the delta against the member's previous value in the same
    category, or 0 when the member was not ranked before. The snapshot is
    updated in place and the new boards are returned.
    """
    members = [member for community in snapshot.communities for member in community.members]

    for category, metric in CATEGORY_METRICS.items():
        previous = {entry.member_id: entry.value for entry in snapshot.leaderboards.get(category, [])}
        entries = []
        for member in members:
            value = round(metric(member), 1)
            change = round(value - previous[member.id], 1) if member.id in previous else 0.0
            entries.append(LeaderboardEntry(
                member_id=member.id,
                household=member.household,
                value=value,
                change=change,
                tier=member.tier,
            ))
        snapshot.leaderboards[category] = rank_leaderboard(entries)

    return snapshot.leaderboards


def community_leaderboard(community: Community, category: str) -> List[LeaderboardEntry]:
    """Rank a single community's members for one category"""
    metric = CATEGORY_METRICS[category]
    return rank_leaderboard(
        LeaderboardEntry(
            member_id=member.id,
            household=member.household,
            value=round(metric(member), 1),
            tier=member.tier,
        )
        for member in community.members
    )
