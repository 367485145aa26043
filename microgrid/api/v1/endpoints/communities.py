from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import ValidationError
from typing import Any, Dict, Optional, Type, TypeVar
import logging

from microgrid.core.deps import get_current_active_user, get_market_service, AuthUser
from microgrid.core.exceptions import MarketError
from microgrid.models.market import CamelModel
from microgrid.schemas.market import CommunityActionRequest, CommunityDraft, MemberDraft, MemberUpdate
from microgrid.schemas.response import ApiResponse, success_response
from microgrid.services.market_service import MarketService

logger = logging.getLogger(__name__)

router = APIRouter()

DraftT = TypeVar("DraftT", bound=CamelModel)

COMMUNITY_ACTIONS = ("create_community", "join_community", "leave_community", "update_member")


def _parse(model: Type[DraftT], data: Dict[str, Any], label: str) -> DraftT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} data: {e.errors(include_url=False)}"
        )


def _require_id(data: Dict[str, Any], label: str) -> str:
    value = data.get("id")
    if not value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Missing {label} id")
    return value


@router.get("/", response_model=ApiResponse)
async def get_communities(
    community_id: Optional[str] = Query(None, alias="communityId", description="Scope to one community"),
    member_id: Optional[str] = Query(None, alias="memberId", description="Communities containing this member"),
    view: Optional[str] = Query(None, alias="type", description="members | stats | leaderboard | summary"),
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Get communities, or one community's members, stats or leaderboards"""
    try:
        if community_id:
            if view == "members":
                community = await market_service.get_community(community_id)
                return success_response(community.members)
            if view == "stats":
                return success_response(await market_service.get_community_stats(community_id))
            if view == "leaderboard":
                return success_response(await market_service.get_community_leaderboards(community_id))
            return success_response(await market_service.get_community(community_id))

        if member_id:
            return success_response(await market_service.get_communities_for_member(member_id))

        if view == "leaderboard":
            return success_response(await market_service.get_leaderboards())

        if view == "summary":
            return success_response(await market_service.get_communities_summary())

        return success_response(await market_service.list_communities())

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Community fetch error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch community data"
        )


@router.post("/", response_model=ApiResponse)
async def manage_community(
    request_data: CommunityActionRequest,
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Create a community or manage its members"""
    action = request_data.action
    if action not in COMMUNITY_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid action. Use: " + ", ".join(COMMUNITY_ACTIONS)
        )

    community_data = request_data.community
    member_data = request_data.member

    try:
        if action == "create_community":
            if not community_data:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing community data")
            community = await market_service.create_community(_parse(CommunityDraft, community_data, "community"))
            logger.info(f"Community {community.id} created by user {current_user.id}")
            return success_response(community, "Community created successfully")

        if not community_data or not member_data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing community or member data"
            )
        community_id = _require_id(community_data, "community")

        if action == "join_community":
            draft = _parse(MemberDraft, member_data, "member")
            community = await market_service.join_community(community_id, draft)
            return success_response(community, "Member joined community successfully")

        if action == "leave_community":
            community = await market_service.leave_community(community_id, _require_id(member_data, "member"))
            return success_response(community, "Member left community successfully")

        update = _parse(MemberUpdate, member_data, "member")
        member = await market_service.update_member(community_id, update)
        return success_response(member, "Member updated successfully")

    except HTTPException:
        raise
    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Community {action} error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to manage community"
        )
