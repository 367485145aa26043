from .market import (
    Member, Community, Trade, LeaderboardEntry, RewardsPool, UserMembership,
    MarketSnapshot, MemberTier, TradeStatus,
    SURPLUS, PEAK_CUT, LEADERBOARD_CATEGORIES, LEADERBOARD_SIZE
)

__all__ = [
    "Member", "Community", "Trade", "LeaderboardEntry", "RewardsPool",
    "UserMembership", "MarketSnapshot", "MemberTier", "TradeStatus",
    "SURPLUS", "PEAK_CUT", "LEADERBOARD_CATEGORIES", "LEADERBOARD_SIZE"
]
