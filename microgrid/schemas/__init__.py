from .market import (
    TradeDraft, TradeActionRequest, CommunityDraft, MemberDraft, MemberUpdate,
    CommunityActionRequest, CounterpartyVolume, MarketStats, Portfolio,
    CommunityStats, CommunitiesSummary, MembershipView
)
from .response import ApiResponse, success_response

__all__ = [
    # Market schemas
    "TradeDraft", "TradeActionRequest", "CommunityDraft", "MemberDraft",
    "MemberUpdate", "CommunityActionRequest", "CounterpartyVolume",
    "MarketStats", "Portfolio", "CommunityStats", "CommunitiesSummary",
    "MembershipView",

    # Envelope
    "ApiResponse", "success_response"
]
