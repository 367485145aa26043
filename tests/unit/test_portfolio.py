from microgrid.models.market import MarketSnapshot, Trade, TradeStatus
from microgrid.schemas.market import TradeDraft
from microgrid.services.portfolio import get_member_portfolio
from microgrid.services.trade_engine import create_trade, execute_trade


class TestMemberPortfolio:
    def test_executed_purchase(self, now) -> None:
        snapshot = MarketSnapshot()
        trade = create_trade(
            snapshot, TradeDraft(buyer_id="mem_x", seller_id="mem_y", amount_kwh=12, price_per_kwh=5.5), now
        )
        execute_trade(snapshot, trade.id, now)

        portfolio = get_member_portfolio(snapshot, "mem_x", now)

        assert portfolio.bought_energy == 12
        assert portfolio.total_spent == 66.0
        assert portfolio.net_profit == -66.0
        assert portfolio.pending_trades == 0
        assert portfolio.average_price == 5.5

        seller = get_member_portfolio(snapshot, "mem_y", now)
        assert seller.sold_energy == 12
        assert seller.total_earned == 66.0
        assert seller.net_energy == 12

    def test_no_settled_buys_means_zero_average(self, snapshot: MarketSnapshot, now) -> None:
        portfolio = get_member_portfolio(snapshot, "mem_a1", now)

        assert portfolio.bought_energy == 0
        assert portfolio.average_price == 0
        assert portfolio.sold_energy == 6
        assert portfolio.total_earned == 30.0

    def test_pending_trades_counted_not_summed(self, snapshot: MarketSnapshot, now) -> None:
        portfolio = get_member_portfolio(snapshot, "mem_b2", now)

        assert portfolio.pending_trades == 1
        assert portfolio.bought_energy == 0
        assert portfolio.total_spent == 0

    def test_cancelled_trades_ignored(self, now) -> None:
        snapshot = MarketSnapshot(recent_trades=[
            Trade(id="t1", buyer_id="A", seller_id="B", amount_kwh=5, price_per_kwh=5,
                  timestamp=now, status=TradeStatus.CANCELLED),
        ])
        portfolio = get_member_portfolio(snapshot, "A", now)
        assert portfolio.bought_energy == 0
        assert portfolio.pending_trades == 0

    def test_self_trade_counts_both_sides(self, now) -> None:
        snapshot = MarketSnapshot(recent_trades=[
            Trade(id="t1", buyer_id="A", seller_id="A", amount_kwh=2, price_per_kwh=5,
                  timestamp=now, status=TradeStatus.SETTLED),
        ])
        portfolio = get_member_portfolio(snapshot, "A", now)

        assert portfolio.bought_energy == 2
        assert portfolio.sold_energy == 2
        assert portfolio.net_profit == 0

    def test_unknown_member_gets_empty_portfolio(self, snapshot: MarketSnapshot, now) -> None:
        portfolio = get_member_portfolio(snapshot, "nobody", now)
        assert portfolio.member_id == "nobody"
        assert portfolio.net_energy == 0
        assert portfolio.last_updated == now
