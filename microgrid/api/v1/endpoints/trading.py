from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import ValidationError
from typing import Optional
import logging

from microgrid.core.deps import get_current_active_user, get_market_service, AuthUser
from microgrid.core.exceptions import MarketError
from microgrid.models.market import TradeStatus
from microgrid.schemas.market import TradeActionRequest, TradeDraft
from microgrid.schemas.response import ApiResponse, success_response
from microgrid.services.market_service import MarketService

logger = logging.getLogger(__name__)

router = APIRouter()

TRADE_ACTIONS = ("create", "execute", "cancel")


def _normalize_action(action: Optional[str]) -> Optional[str]:
    """Accept both ``create`` and ``create_trade`` spellings"""
    if action and action.endswith("_trade"):
        action = action[:-len("_trade")]
    return action if action in TRADE_ACTIONS else None


@router.get("/", response_model=ApiResponse)
async def get_recent_trades(
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Get the recent trade ledger, newest first"""
    try:
        trades = await market_service.get_recent_trades()
        return success_response(trades)

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Trade ledger error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch trading data"
        )


@router.get("/history", response_model=ApiResponse)
async def get_trade_history(
    community_id: Optional[str] = Query(None, alias="communityId", description="Filter by community"),
    member_id: Optional[str] = Query(None, alias="memberId", description="Filter by buyer or seller"),
    trade_status: Optional[TradeStatus] = Query(None, alias="status", description="Filter by trade status"),
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Get filtered trade history, newest first"""
    try:
        trades = await market_service.get_trade_history(community_id, member_id, trade_status)
        return success_response(trades)

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Trade history error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch trading data"
        )


@router.get("/market", response_model=ApiResponse)
async def get_market_data(
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Get market statistics derived from settled trades"""
    try:
        stats = await market_service.get_market_data()
        return success_response(stats)

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Market data error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch trading data"
        )


@router.get("/portfolio", response_model=ApiResponse)
async def get_portfolio(
    member_id: Optional[str] = Query(None, alias="memberId", description="Member to roll up"),
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Get a member's trading portfolio"""
    if not member_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing memberId for portfolio data"
        )

    try:
        portfolio = await market_service.get_member_portfolio(member_id)
        return success_response(portfolio)

    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Portfolio error for member {member_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch trading data"
        )


@router.post("/", response_model=ApiResponse)
async def manage_trade(
    request_data: TradeActionRequest,
    current_user: AuthUser = Depends(get_current_active_user),
    market_service: MarketService = Depends(get_market_service)
):
    """Create, execute or cancel a trade"""
    action = _normalize_action(request_data.action)
    if action is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid action. Use: create_trade, execute_trade, cancel_trade"
        )

    trade_data = request_data.trade or {}

    try:
        if action == "create":
            if not trade_data:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing trade data")
            try:
                draft = TradeDraft.model_validate(trade_data)
            except ValidationError as e:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Invalid trade data: {e.errors(include_url=False)}"
                )

            trade = await market_service.create_trade(draft)
            logger.info(f"Trade {trade.id} created by user {current_user.id}")
            return success_response(trade, "Trade created successfully")

        trade_id = trade_data.get("id")
        if not trade_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing trade ID")

        if action == "execute":
            trade = await market_service.execute_trade(trade_id)
            return success_response(trade, "Trade executed successfully")

        trade = await market_service.cancel_trade(trade_id)
        return success_response(trade, "Trade cancelled successfully")

    except HTTPException:
        raise
    except MarketError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    except Exception as e:
        logger.error(f"Trade {action} error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to manage trades"
        )
