"""Member portfolio: a member-scoped roll-up of the trade ledger."""

from datetime import datetime
from typing import Optional

from microgrid.core.timeutils import utc_now
from microgrid.models.market import MarketSnapshot, TradeStatus
from microgrid.schemas.market import Portfolio


def get_member_portfolio(snapshot: MarketSnapshot, member_id: str, now: Optional[datetime] = None) -> Portfolio:
    """Fold the ledger into one member's net energy and credit position"""
    member_trades = [
        trade for trade in snapshot.recent_trades
        if member_id in (trade.buyer_id, trade.seller_id)
    ]

    bought_energy = sold_energy = 0.0
    total_spent = total_earned = 0.0
    pending_trades = 0

    for trade in member_trades:
        if trade.status == TradeStatus.PENDING:
            pending_trades += 1
            continue
        if trade.status != TradeStatus.SETTLED:
            continue
        # A self-trade counts on both sides
        if trade.buyer_id == member_id:
            bought_energy += trade.amount_kwh
            total_spent += trade.total_value
        if trade.seller_id == member_id:
            sold_energy += trade.amount_kwh
            total_earned += trade.total_value

    average_price = total_spent / bought_energy if bought_energy > 0 else 0.0

    return Portfolio(
        member_id=member_id,
        bought_energy=round(bought_energy, 2),
        sold_energy=round(sold_energy, 2),
        net_energy=round(sold_energy - bought_energy, 2),
        pending_trades=pending_trades,
        total_spent=round(total_spent, 2),
        total_earned=round(total_earned, 2),
        net_profit=round(total_earned - total_spent, 2),
        average_price=round(average_price, 2),
        last_updated=now or utc_now(),
    )
