from pydantic import Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from microgrid.models.market import CamelModel, Community, Member, MemberTier


class TradeDraft(CamelModel):
    """Schema for creating a trade"""
    buyer_id: str = Field(..., min_length=1)
    seller_id: str = Field(..., min_length=1)
    community_id: Optional[str] = None
    from_household: Optional[str] = None
    to_household: Optional[str] = None
    amount_kwh: float = Field(..., gt=0, description="Energy traded in kWh")
    price_per_kwh: float = Field(..., gt=0, description="Credits per kWh")
    credit_value: Optional[float] = Field(None, ge=0)


class TradeActionRequest(CamelModel):
    """Schema for trade lifecycle actions"""
    action: Optional[str] = None
    trade: Optional[Dict[str, Any]] = None


class CommunityDraft(CamelModel):
    """Schema for creating a community"""
    name: str = Field(..., min_length=1, max_length=255)
    households: int = Field(1, gt=0)
    description: str = ""
    location: Optional[str] = None
    invites_open: bool = True
    shared_capacity: float = Field(0.0, ge=0)


class MemberDraft(CamelModel):
    """Schema for a household joining a community"""
    id: str = Field(..., min_length=1)
    household: str = Field(..., min_length=1)
    tier: MemberTier = MemberTier.BRONZE
    badges: List[str] = Field(default_factory=list)
    surplus_kwh: float = 0.0
    peak_cut_percent: float = Field(0.0, ge=0, le=50)
    credits: float = 0.0


class MemberUpdate(CamelModel):
    """Schema for member updates; peak cut is clamped, not rejected"""
    id: str = Field(..., min_length=1)
    household: Optional[str] = None
    tier: Optional[MemberTier] = None
    badges: Optional[List[str]] = None
    surplus_kwh: Optional[float] = None
    peak_cut_percent: Optional[float] = None
    credits: Optional[float] = None


class CommunityActionRequest(CamelModel):
    """Schema for community management actions"""
    action: Optional[str] = None
    community: Optional[Dict[str, Any]] = None
    member: Optional[Dict[str, Any]] = None


class CounterpartyVolume(CamelModel):
    member_id: str
    volume: float


class MarketStats(CamelModel):
    """Market statistics derived from the settled trade ledger"""
    current_price: float
    volume_24h: float = Field(..., alias="volume24h")
    price_change: float
    price_change_simulated: bool = True
    top_buyers: List[CounterpartyVolume]
    top_sellers: List[CounterpartyVolume]
    market_status: str = "Active"
    settled_trades: int = 0
    last_updated: datetime


class Portfolio(CamelModel):
    """Member-scoped roll-up of the trade ledger"""
    member_id: str
    bought_energy: float
    sold_energy: float
    net_energy: float
    pending_trades: int
    total_spent: float
    total_earned: float
    net_profit: float
    average_price: float
    last_updated: datetime


class CommunityStats(CamelModel):
    community_id: str
    total_members: int
    total_surplus: float
    average_peak_cut: float
    net_flow: float
    total_generation: float
    total_consumption: float
    efficiency: float


class CommunitiesSummary(CamelModel):
    total_communities: int
    total_members: int
    total_generation: float
    total_consumption: float
    total_surplus: float
    net_flow: float
    average_efficiency: float


class MembershipView(CamelModel):
    """Requesting member's community and profile"""
    community: Community
    member: Member
    pending_invites: int = 0
