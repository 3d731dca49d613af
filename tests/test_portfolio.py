"""
Ledger bookkeeping tests.
"""
import random

import pytest

from arena_trader.agents.portfolio import PortfolioLedger
from arena_trader.agents.schemas import Order, OrderAction


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records = []

    def log_trade(self, trade):
        if self.fail:
            raise OSError("disk full")
        self.records.append(trade)


class TestBuyAndSell:
    """Cash and position accounting."""

    def test_buy_reduces_cash_and_opens_position(self, ledger):
        assert ledger.buy("tcs", 10, 3720.0) is True
        assert ledger.cash == pytest.approx(62800.0)
        position = ledger.get_position("TCS")
        assert position.quantity == 10
        assert position.avg_price == pytest.approx(3720.0)

    def test_weighted_average_price(self, ledger):
        ledger.buy("AAA", 10, 100.0)
        ledger.buy("AAA", 10, 200.0)
        assert ledger.get_position("AAA").avg_price == pytest.approx(150.0)
        assert ledger.get_position("AAA").quantity == 20

    def test_sell_does_not_move_average_price(self, ledger):
        ledger.buy("AAA", 10, 100.0)
        ledger.buy("AAA", 10, 200.0)
        assert ledger.sell("AAA", 5, 300.0) is True
        position = ledger.get_position("AAA")
        assert position.avg_price == pytest.approx(150.0)
        assert position.quantity == 15
        assert ledger.realized_pnl == pytest.approx(750.0)

    def test_full_sell_closes_position(self, ledger):
        ledger.buy("TCS", 10, 3720.0)
        assert ledger.sell("TCS", 10, 3800.0) is True
        assert ledger.get_position("TCS") is None
        assert ledger.cash == pytest.approx(100800.0)
        assert ledger.realized_pnl == pytest.approx(800.0)

    def test_sell_more_than_held_is_rejected_without_change(self, ledger):
        ledger.buy("AAA", 5, 100.0)
        assert ledger.sell("AAA", 6, 110.0) is False
        assert ledger.get_position("AAA").quantity == 5
        assert ledger.cash == pytest.approx(99500.0)

    def test_sell_unknown_symbol_rejected(self, ledger):
        assert ledger.sell("NOPE", 1, 10.0) is False

    def test_buy_beyond_cash_rejected(self, ledger):
        assert ledger.buy("AAA", 1000, 101.0) is False
        assert ledger.cash == pytest.approx(100000.0)
        assert ledger.positions == {}

    def test_non_positive_inputs_rejected(self, ledger):
        assert ledger.buy("AAA", 0, 100.0) is False
        assert ledger.buy("AAA", 1, 0.0) is False
        assert ledger.sell("AAA", -1, 100.0) is False

    def test_invalid_initial_cash(self):
        with pytest.raises(ValueError):
            PortfolioLedger(0)


class TestAccountState:
    """Derived account view."""

    def test_marks_positions_to_supplied_prices(self, ledger):
        ledger.buy("AAA", 10, 100.0)
        account = ledger.get_account_state({"AAA": 120.0})
        assert account.cash == pytest.approx(99000.0)
        assert account.positions == {"AAA": 10}
        assert account.portfolio_value == pytest.approx(100200.0)
        assert account.buying_power == account.cash
        assert account.total_pnl == pytest.approx(200.0)

    def test_missing_price_falls_back_to_average(self, ledger):
        ledger.buy("AAA", 10, 100.0)
        account = ledger.get_account_state({})
        assert account.portfolio_value == pytest.approx(100000.0)
        assert account.total_pnl == pytest.approx(0.0)

    def test_positions_property_is_a_copy(self, ledger):
        ledger.buy("AAA", 10, 100.0)
        ledger.positions["AAA"].quantity = 999
        assert ledger.get_position("AAA").quantity == 10


class TestTradeLog:
    """Trade history and the durable sink."""

    def _buy(self, quantity=10, price=100.0):
        return Order(
            action=OrderAction.BUY,
            symbol="AAA",
            quantity=quantity,
            estimated_execution_price=price,
            confidence=0.8,
            rationale="breakout",
        )

    def test_log_trade_snapshot(self, ledger):
        order = self._buy()
        assert ledger.execute_order(order)
        record = ledger.log_trade("2024-01-15", order, {"AAA": 100.0})
        assert record.id == 1
        assert record.this_action.symbol == "AAA"
        assert record.this_action.amount == 10
        assert record.positions == {"AAA": 10}
        assert record.portfolio_value == pytest.approx(100000.0)
        assert record.reasoning == "breakout"
        assert ledger.get_trade_history() == [record]

    def test_sink_receives_records(self):
        sink = RecordingSink()
        ledger = PortfolioLedger(100000.0, sink=sink)
        order = self._buy()
        ledger.execute_order(order)
        ledger.log_trade("2024-01-15", order, {})
        assert [r.id for r in sink.records] == [1]

    def test_sink_failure_does_not_lose_trade(self):
        ledger = PortfolioLedger(100000.0, sink=RecordingSink(fail=True))
        order = self._buy()
        ledger.execute_order(order)
        record = ledger.log_trade("2024-01-15", order, {})
        assert ledger.get_trade_history() == [record]
        assert ledger.get_position("AAA").quantity == 10

    def test_hold_is_not_executed(self, ledger):
        hold = Order(action=OrderAction.HOLD, confidence=0.9)
        assert ledger.execute_order(hold) is False
        assert ledger.cash == pytest.approx(100000.0)

    def test_performance_metrics_and_reset(self, ledger):
        order = self._buy()
        ledger.execute_order(order)
        ledger.log_trade("2024-01-15", order, {})
        metrics = ledger.get_performance_metrics({"AAA": 110.0})
        assert metrics.current_value == pytest.approx(100100.0)
        assert metrics.total_return_pct == pytest.approx(0.1)
        assert metrics.num_positions == 1
        assert metrics.num_trades == 1

        ledger.reset()
        assert ledger.cash == pytest.approx(100000.0)
        assert ledger.positions == {}
        assert ledger.get_trade_history() == []


class TestInvariants:

    def test_cash_never_negative_over_random_sequence(self):
        rng = random.Random(42)
        ledger = PortfolioLedger(10000.0)
        for _ in range(500):
            symbol = rng.choice(["AAA", "BBB", "CCC"])
            quantity = rng.randint(1, 50)
            price = rng.uniform(10.0, 500.0)
            if rng.random() < 0.5:
                ledger.buy(symbol, quantity, price)
            else:
                ledger.sell(symbol, quantity, price)
            assert ledger.cash >= 0
            assert all(p.quantity > 0 for p in ledger.positions.values())
