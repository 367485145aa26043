from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum

from microgrid.core.timeutils import ensure_utc


SURPLUS = "surplus"
PEAK_CUT = "peak_cut"
LEADERBOARD_CATEGORIES = (SURPLUS, PEAK_CUT)
LEADERBOARD_SIZE = 3


class CamelModel(BaseModel):
    """Base document: snake_case attributes, camelCase on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemberTier(str, Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


class TradeStatus(str, Enum):
    PENDING = "Pending"
    SETTLED = "Settled"
    CANCELLED = "Cancelled"


class Member(CamelModel):
    """Household participating in a microgrid community"""
    id: str = Field(..., min_length=1)
    household: str
    tier: MemberTier = MemberTier.BRONZE
    badges: List[str] = Field(default_factory=list)
    surplus_kwh: float = 0.0
    peak_cut_percent: float = Field(0.0, ge=0, le=50)
    credits: float = 0.0
    joined_at: Optional[datetime] = None

    @field_validator("badges")
    @classmethod
    def dedupe_badges(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


class Community(CamelModel):
    """Microgrid community; owns its members"""
    id: str = Field(..., min_length=1)
    name: str
    households: int = Field(..., gt=0)
    description: str = ""
    invites_open: bool = True
    total_generation: float = 0.0
    total_consumption: float = 0.0
    net_flow: float = 0.0
    shared_capacity: float = 0.0
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    members: List[Member] = Field(default_factory=list)


class Trade(CamelModel):
    """Peer-to-peer energy trade"""
    id: str
    buyer_id: str
    seller_id: str
    community_id: Optional[str] = None
    from_household: Optional[str] = None
    to_household: Optional[str] = None
    amount_kwh: float = Field(..., gt=0)
    price_per_kwh: float = Field(..., gt=0)
    credit_value: Optional[float] = None
    status: TradeStatus = TradeStatus.PENDING
    timestamp: datetime
    executed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @field_validator("timestamp", "executed_at", "cancelled_at")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Stored documents may carry naive ISO strings
        return ensure_utc(v)

    @property
    def total_value(self) -> float:
        return self.amount_kwh * self.price_per_kwh


class LeaderboardEntry(CamelModel):
    member_id: str
    household: str
    value: float
    change: float = 0.0
    tier: MemberTier = MemberTier.BRONZE


class RewardsPool(CamelModel):
    total_credits: float = 0.0
    next_payout: Optional[datetime] = None


class UserMembership(CamelModel):
    member_id: Optional[str] = None
    community_id: Optional[str] = None
    pending_invites: int = Field(0, ge=0)


class MarketSnapshot(CamelModel):
    """The single persisted document holding the whole market state"""
    communities: List[Community] = Field(default_factory=list)
    leaderboards: Dict[str, List[LeaderboardEntry]] = Field(default_factory=dict)
    recent_trades: List[Trade] = Field(default_factory=list)
    rewards_pool: RewardsPool = Field(default_factory=RewardsPool)
    user_membership: UserMembership = Field(default_factory=UserMembership)
    version: int = Field(0, ge=0)

    def to_document(self) -> dict:
        """Convert snapshot to its persisted JSON form"""
        return self.model_dump(mode="json", by_alias=True)

    def copy_deep(self) -> "MarketSnapshot":
        return self.model_copy(deep=True)
