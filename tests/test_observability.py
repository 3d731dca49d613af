"""
Audit trail tests.
"""
from arena_trader.agents.decision import create_empty_decision
from arena_trader.agents.observability import ObservabilityAgent
from arena_trader.agents.schemas import OrderAction, PerformanceMetrics, TradeAction, TradeLog


def trade_log(id=1):
    return TradeLog(
        date="2024-01-15",
        id=id,
        this_action=TradeAction(action=OrderAction.BUY, symbol="TCS", amount=10, price=3720.0),
        positions={"TCS": 10},
        portfolio_value=100000.0,
        pnl=0.0,
        reasoning="breakout",
    )


class TestAuditFiles:

    def test_layout_per_signature(self, tmp_path):
        agent = ObservabilityAgent(str(tmp_path), "ollama-llama")
        assert agent.log_dir == tmp_path / "ollama-llama"
        assert (tmp_path / "ollama-llama" / "decisions").is_dir()

    def test_trades_are_appended(self, tmp_path):
        agent = ObservabilityAgent(str(tmp_path), "s")
        agent.log_trade(trade_log(1))
        agent.log_trade(trade_log(2))
        trades = agent.get_trades()
        assert [t["id"] for t in trades] == [1, 2]
        assert trades[0]["thisAction"] == {"action": "buy", "symbol": "TCS", "amount": 10, "price": 3720.0}

    def test_decisions_by_date(self, tmp_path):
        agent = ObservabilityAgent(str(tmp_path), "s")
        agent.log_decision("2024-01-15", create_empty_decision("2024-01-15T15:30:00+05:30", "no trades"))
        assert (tmp_path / "s" / "decisions" / "decisions_20240115.jsonl").exists()
        records = agent.get_decisions("2024-01-15")
        assert records[0]["decision"]["diagnostics"]["summary"] == "no trades"
        assert records[0]["decision"]["portfolioUpdates"] is None
        assert agent.get_decisions("2024-01-16") == []

    def test_performance_history(self, tmp_path):
        agent = ObservabilityAgent(str(tmp_path), "s")
        metrics = PerformanceMetrics(
            initial_cash=100000.0, current_value=100800.0, total_return_pct=0.8,
            total_pnl=800.0, realized_pnl=800.0, cash=100800.0, num_positions=0, num_trades=2,
        )
        agent.log_performance("2024-01-16", metrics)
        history = agent.get_performance_history()
        assert history == [{**metrics.to_wire(), "date": "2024-01-16", "signature": "s"}]

    def test_unwritable_directory_is_not_fatal(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        agent = ObservabilityAgent(str(blocker), "s")
        agent.log_trade(trade_log())
        assert agent.get_trades() == []
