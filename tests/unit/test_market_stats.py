import random
from datetime import datetime, timedelta, timezone

from microgrid.models.market import MarketSnapshot, Trade, TradeStatus
from microgrid.services.market_stats import DEFAULT_MARKET_PRICE, get_market_data, get_trade_history


def make_trade(trade_id, buyer, seller, amount, price, timestamp, status=TradeStatus.SETTLED, community=None):
    return Trade(
        id=trade_id,
        buyer_id=buyer,
        seller_id=seller,
        community_id=community,
        amount_kwh=amount,
        price_per_kwh=price,
        timestamp=timestamp,
        status=status,
    )


class TestGetMarketData:
    def test_prices_and_top_buyers(self, now) -> None:
        snapshot = MarketSnapshot(recent_trades=[
            make_trade("t1", "A", "S1", 10, 5, now),
            make_trade("t2", "B", "S2", 5, 6, now),
            make_trade("t3", "C", "A", 4, 7, now),
        ])

        stats = get_market_data(snapshot, now, random.Random(1))

        assert stats.current_price == 6.0
        assert [(b.member_id, b.volume) for b in stats.top_buyers][:2] == [("A", 10), ("B", 5)]
        assert stats.top_sellers[0].member_id == "S1"
        assert stats.volume_24h == 19
        assert stats.settled_trades == 3

    def test_default_price_without_settled_trades(self, now) -> None:
        snapshot = MarketSnapshot(recent_trades=[
            make_trade("t1", "A", "B", 3, 9, now, status=TradeStatus.PENDING),
        ])
        stats = get_market_data(snapshot, now, random.Random(1))

        assert stats.current_price == DEFAULT_MARKET_PRICE
        assert stats.volume_24h == 0
        assert stats.top_buyers == []

    def test_volume_window_excludes_old_trades(self, now) -> None:
        snapshot = MarketSnapshot(recent_trades=[
            make_trade("t1", "A", "B", 3, 5, now - timedelta(hours=1)),
            make_trade("t2", "A", "B", 7, 5, now - timedelta(hours=25)),
        ])
        assert get_market_data(snapshot, now, random.Random(1)).volume_24h == 3

    def test_price_change_is_flagged_jitter(self, now) -> None:
        stats = get_market_data(MarketSnapshot(), now, random.Random(1))
        assert -1 <= stats.price_change <= 1
        assert stats.price_change_simulated is True

    def test_top_lists_capped_at_five(self, now) -> None:
        trades = [make_trade(f"t{i}", f"buyer{i}", f"seller{i}", i + 1, 5, now) for i in range(8)]
        stats = get_market_data(MarketSnapshot(recent_trades=trades), now, random.Random(1))
        assert len(stats.top_buyers) == 5
        assert stats.top_buyers[0].member_id == "buyer7"

    def test_wire_names(self, now) -> None:
        document = get_market_data(MarketSnapshot(), now, random.Random(1)).model_dump(by_alias=True)
        assert {"currentPrice", "volume24h", "priceChange", "topBuyers", "topSellers", "marketStatus"} <= set(document)


class TestGetTradeHistory:
    def test_filters_combine(self, now) -> None:
        snapshot = MarketSnapshot(recent_trades=[
            make_trade("t1", "A", "B", 1, 5, now, community="c1"),
            make_trade("t2", "A", "C", 1, 5, now, community="c2"),
            make_trade("t3", "D", "A", 1, 5, now, status=TradeStatus.PENDING, community="c1"),
        ])

        assert {t.id for t in get_trade_history(snapshot, member_id="A")} == {"t1", "t2", "t3"}
        assert {t.id for t in get_trade_history(snapshot, community_id="c1")} == {"t1", "t3"}
        assert [t.id for t in get_trade_history(snapshot, "c1", "A", TradeStatus.SETTLED)] == ["t1"]

    def test_newest_first(self, now) -> None:
        snapshot = MarketSnapshot(recent_trades=[
            make_trade("old", "A", "B", 1, 5, now - timedelta(hours=2)),
            make_trade("new", "A", "B", 1, 5, now),
        ])
        assert [t.id for t in get_trade_history(snapshot)] == ["new", "old"]


class TestNaiveTimestamps:
    """Persisted trades written without an offset are read as UTC."""

    @staticmethod
    def stored_trade(trade_id, timestamp) -> dict:
        return {"id": trade_id, "buyerId": "A", "sellerId": "B", "amountKwh": 2, "pricePerKwh": 5,
                "status": "Settled", "timestamp": timestamp}

    def test_trade_timestamps_become_utc(self) -> None:
        trade = Trade.model_validate({**self.stored_trade("t1", "2025-01-15T11:00:00"),
                                      "executedAt": "2025-01-15T13:30:00+02:00"})

        assert trade.timestamp == datetime(2025, 1, 15, 11, 0, tzinfo=timezone.utc)
        assert trade.executed_at == datetime(2025, 1, 15, 11, 30, tzinfo=timezone.utc)
        assert trade.executed_at.tzinfo == timezone.utc

    def test_mixed_documents_aggregate(self, now) -> None:
        snapshot = MarketSnapshot.model_validate({"recentTrades": [
            self.stored_trade("naive", "2025-01-15T11:00:00"),
            self.stored_trade("stale", "2025-01-13T11:00:00"),
            self.stored_trade("aware", "2025-01-15T10:00:00Z"),
        ]})

        assert get_market_data(snapshot, now, random.Random(1)).volume_24h == 4
        assert [t.id for t in get_trade_history(snapshot)] == ["naive", "aware", "stale"]
