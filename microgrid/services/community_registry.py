"""
Community and member management on the microgrid snapshot.

Member ids are unique across the whole snapshot: a household belongs to
exactly one community at a time. Mutations work in place; the caller persists.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from microgrid.core.exceptions import CommunityNotFoundError, MemberAlreadyExistsError, MemberNotFoundError
from microgrid.core.timeutils import utc_now
from microgrid.models.market import Community, MarketSnapshot, Member
from microgrid.schemas.market import (
    CommunitiesSummary, CommunityDraft, CommunityStats, MemberDraft, MemberUpdate,
)
from microgrid.services.drift import PEAK_CUT_MAX, PEAK_CUT_MIN


def find_community(snapshot: MarketSnapshot, community_id: str) -> Community:
    for community in snapshot.communities:
        if community.id == community_id:
            return community
    raise CommunityNotFoundError(community_id)


def find_member(snapshot: MarketSnapshot, member_id: str) -> Tuple[Community, Member]:
    """Locate a member and the community that owns it"""
    for community in snapshot.communities:
        for member in community.members:
            if member.id == member_id:
                return community, member
    raise MemberNotFoundError(member_id)


def communities_for_member(snapshot: MarketSnapshot, member_id: str) -> List[Community]:
    return [
        community for community in snapshot.communities
        if any(member.id == member_id for member in community.members)
    ]


def _efficiency(generation: float, consumption: float) -> float:
    if generation <= 0:
        return 0.0
    return round(consumption / generation * 100, 1)


def get_community_stats(community: Community) -> CommunityStats:
    total_members = len(community.members)
    total_surplus = sum(member.surplus_kwh for member in community.members)
    average_peak_cut = (
        sum(member.peak_cut_percent for member in community.members) / total_members
        if total_members else 0.0
    )

    return CommunityStats(
        community_id=community.id,
        total_members=total_members,
        total_surplus=round(total_surplus, 2),
        average_peak_cut=round(average_peak_cut, 1),
        net_flow=community.net_flow,
        total_generation=community.total_generation,
        total_consumption=community.total_consumption,
        efficiency=_efficiency(community.total_generation, community.total_consumption),
    )


def get_communities_summary(communities: List[Community]) -> CommunitiesSummary:
    total_generation = sum(community.total_generation for community in communities)
    total_consumption = sum(community.total_consumption for community in communities)
    total_surplus = sum(
        member.surplus_kwh for community in communities for member in community.members
    )

    return CommunitiesSummary(
        total_communities=len(communities),
        total_members=sum(len(community.members) for community in communities),
        total_generation=round(total_generation, 2),
        total_consumption=round(total_consumption, 2),
        total_surplus=round(total_surplus, 2),
        net_flow=round(total_generation - total_consumption, 2),
        average_efficiency=_efficiency(total_generation, total_consumption),
    )


def create_community(snapshot: MarketSnapshot, draft: CommunityDraft, now: Optional[datetime] = None) -> Community:
    community = Community(
        id=f"community_{uuid.uuid4().hex}",
        name=draft.name,
        households=draft.households,
        description=draft.description,
        location=draft.location,
        invites_open=draft.invites_open,
        shared_capacity=draft.shared_capacity,
        created_at=now or utc_now(),
    )
    snapshot.communities.append(community)
    return community


def join_community(
    snapshot: MarketSnapshot,
    community_id: str,
    draft: MemberDraft,
    now: Optional[datetime] = None,
) -> Community:
    community = find_community(snapshot, community_id)

    try:
        find_member(snapshot, draft.id)
    except MemberNotFoundError:
        pass
    else:
        raise MemberAlreadyExistsError(draft.id)

    community.members.append(Member(**draft.model_dump(), joined_at=now or utc_now()))
    return community


def leave_community(snapshot: MarketSnapshot, community_id: str, member_id: str) -> Community:
    community = find_community(snapshot, community_id)
    remaining = [member for member in community.members if member.id != member_id]
    if len(remaining) == len(community.members):
        raise MemberNotFoundError(member_id)

    community.members = remaining
    return community


def update_member(snapshot: MarketSnapshot, community_id: str, update: MemberUpdate) -> Member:
    community = find_community(snapshot, community_id)
    member = next((m for m in community.members if m.id == update.id), None)
    if member is None:
        raise MemberNotFoundError(update.id)

    changes = update.model_dump(exclude_unset=True, exclude={"id"})
    if changes.get("peak_cut_percent") is not None:
        changes["peak_cut_percent"] = max(PEAK_CUT_MIN, min(PEAK_CUT_MAX, changes["peak_cut_percent"]))
    changes = {field: value for field, value in changes.items() if value is not None}

    updated = Member.model_validate({**member.model_dump(), **changes})
    community.members[community.members.index(member)] = updated
    return updated
