from fastapi import APIRouter, Depends, HTTPException, status
import logging

from microgrid.core.deps import get_current_active_user, get_current_admin_user, get_market_service, AuthUser
from microgrid.core.exceptions import MarketError
from microgrid.schemas.response import ApiResponse, success_response
from microgrid.services.market_service import MarketService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=ApiResponse)
async def get_microgrid_snapshot(
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Get the live microgrid snapshot; each call advances the simulation"""
    try:
        snapshot = await market_service.get_live_snapshot()
        return success_response(snapshot)

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Microgrid snapshot error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load microgrid data"
        )


@router.post("/reset", response_model=ApiResponse)
async def reset_microgrid(
    current_user: AuthUser = Depends(get_current_admin_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Restore the baseline snapshot (admin only)"""
    try:
        snapshot = await market_service.reset()
        logger.info(f"Microgrid reset by admin {current_user.id}")
        return success_response(snapshot, "Microgrid state reset to baseline")

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Microgrid reset error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reset microgrid data"
        )


@router.get("/membership", response_model=ApiResponse)
async def get_membership(
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Get the caller's community and member profile"""
    if not current_user.member_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No microgrid membership for this user"
        )

    try:
        membership = await market_service.get_membership(current_user.member_id)
        return success_response(membership)

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Membership lookup error for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load membership"
        )
