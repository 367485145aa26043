"""
Trade lifecycle engine.

State machine per trade::

    Pending -> Settled
    Pending -> Cancelled

Settled and Cancelled are terminal. Every operation mutates the snapshot in
place and returns the affected trade; persisting is the caller's job.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from microgrid.core.exceptions import InvalidTradeTransitionError, TradeNotFoundError
from microgrid.core.timeutils import utc_now
from microgrid.models.market import MarketSnapshot, Trade, TradeStatus
from microgrid.schemas.market import TradeDraft

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_LIMIT = 100


def new_trade_id() -> str:
    return f"trade_{uuid.uuid4().hex}"


def find_trade(snapshot: MarketSnapshot, trade_id: str) -> Trade:
    for trade in snapshot.recent_trades:
        if trade.id == trade_id:
            return trade
    raise TradeNotFoundError(trade_id)


def create_trade(
    snapshot: MarketSnapshot,
    draft: TradeDraft,
    now: Optional[datetime] = None,
    ledger_limit: int = DEFAULT_LEDGER_LIMIT,
) -> Trade:
    """
    Record a new pending trade at the head of the ledger.

    The ledger keeps only the ``ledger_limit`` most recent trades; older ones
    are dropped silently, so history beyond the cap is lost. Buyer and seller
    ids are not checked against the community members.
    """
    now = now or utc_now()
    credit_value = draft.credit_value
    if credit_value is None:
        credit_value = round(draft.amount_kwh * draft.price_per_kwh, 2)

    trade = Trade(
        id=new_trade_id(),
        buyer_id=draft.buyer_id,
        seller_id=draft.seller_id,
        community_id=draft.community_id,
        from_household=draft.from_household,
        to_household=draft.to_household,
        amount_kwh=draft.amount_kwh,
        price_per_kwh=draft.price_per_kwh,
        credit_value=credit_value,
        status=TradeStatus.PENDING,
        timestamp=now,
    )

    snapshot.recent_trades.insert(0, trade)
    if len(snapshot.recent_trades) > ledger_limit:
        dropped = len(snapshot.recent_trades) - ledger_limit
        del snapshot.recent_trades[ledger_limit:]
        logger.debug(f"Trade ledger truncated to {ledger_limit}, dropped {dropped} oldest trade(s)")

    return trade


def _require_pending(trade: Trade, action: str) -> None:
    if trade.status != TradeStatus.PENDING:
        raise InvalidTradeTransitionError(trade.id, action, trade.status.value)


def execute_trade(snapshot: MarketSnapshot, trade_id: str, now: Optional[datetime] = None) -> Trade:
    """Settle a pending trade"""
    trade = find_trade(snapshot, trade_id)
    _require_pending(trade, "executed")

    trade.status = TradeStatus.SETTLED
    trade.executed_at = now or utc_now()
    return trade


def cancel_trade(snapshot: MarketSnapshot, trade_id: str, now: Optional[datetime] = None) -> Trade:
    """Cancel a pending trade"""
    trade = find_trade(snapshot, trade_id)
    _require_pending(trade, "cancelled")

    trade.status = TradeStatus.CANCELLED
    trade.cancelled_at = now or utc_now()
    return trade
