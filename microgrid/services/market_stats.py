"""Market statistics and trade history derived from the trade ledger."""

import random
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from microgrid.core.timeutils import utc_now
from microgrid.models.market import MarketSnapshot, Trade, TradeStatus
from microgrid.schemas.market import CounterpartyVolume, MarketStats

DEFAULT_MARKET_PRICE = 5.5
TOP_COUNTERPARTIES = 5
VOLUME_WINDOW = timedelta(hours=24)


def settled_trades(trades: Iterable[Trade]) -> List[Trade]:
    return [trade for trade in trades if trade.status == TradeStatus.SETTLED]


def _top_by_volume(volumes: Dict[str, float]) -> List[CounterpartyVolume]:
    ranked = sorted(volumes.items(), key=lambda item: item[1], reverse=True)[:TOP_COUNTERPARTIES]
    return [CounterpartyVolume(member_id=member_id, volume=round(volume, 2)) for member_id, volume in ranked]


def get_market_data(
    snapshot: MarketSnapshot,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    default_price: float = DEFAULT_MARKET_PRICE,
) -> MarketStats:
    """
    Derive market statistics from settled trades.

    ``price_change`` is cosmetic jitter in [-1, 1], not computed from price
    history; the response flags it with ``price_change_simulated``.
    """
    now = now or utc_now()
    rng = rng or random.Random()
    trades = settled_trades(snapshot.recent_trades)

    if trades:
        current_price = sum(trade.price_per_kwh for trade in trades) / len(trades)
    else:
        current_price = default_price

    window_start = now - VOLUME_WINDOW
    volume_24h = sum(trade.amount_kwh for trade in trades if trade.timestamp > window_start)

    bought: Dict[str, float] = defaultdict(float)
    sold: Dict[str, float] = defaultdict(float)
    for trade in trades:
        bought[trade.buyer_id] += trade.amount_kwh
        sold[trade.seller_id] += trade.amount_kwh

    return MarketStats(
        current_price=round(current_price, 2),
        volume_24h=round(volume_24h, 2),
        price_change=round(rng.uniform(-1, 1), 2),
        price_change_simulated=True,
        top_buyers=_top_by_volume(bought),
        top_sellers=_top_by_volume(sold),
        market_status="Active",
        settled_trades=len(trades),
        last_updated=now,
    )


def get_trade_history(
    snapshot: MarketSnapshot,
    community_id: Optional[str] = None,
    member_id: Optional[str] = None,
    status: Optional[TradeStatus] = None,
) -> List[Trade]:
    """Filter the ledger (all given filters must match), newest first"""
    trades = snapshot.recent_trades

    if community_id:
        trades = [trade for trade in trades if trade.community_id == community_id]

    if member_id:
        trades = [trade for trade in trades if member_id in (trade.buyer_id, trade.seller_id)]

    if status:
        trades = [trade for trade in trades if trade.status == status]

    return sorted(trades, key=lambda trade: trade.timestamp, reverse=True)
