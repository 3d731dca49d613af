"""
Retrieval store, embedding templates and context retriever tests.
"""
import pytest

from arena_trader.agents.schemas import OHLCVData, SymbolMarketData
from arena_trader.memory import (
    MARKET_SCENARIOS,
    ContextRetriever,
    RetrievalStore,
    TradingContext,
    cosine_similarity,
    format_context_for_llm,
)
from arena_trader.memory.embeddings import decision_text, get_embedding_provider, scenario_text

from conftest import MockEmbedding, candle


@pytest.fixture
def store():
    s = RetrievalStore(":memory:")
    s.initialize()
    yield s
    s.close()


def seed_prices(store, symbol="TCS", dates=("2024-01-10", "2024-01-11", "2024-01-12")):
    for i, date in enumerate(dates):
        close = 3700.0 + i * 10
        store.store_stock_price(symbol, date, close, close + 20, close - 20, close, 1000 + i)


class TestStore:

    def test_cosine_similarity(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [1, 0, 0]) == 0.0
        assert cosine_similarity([0, 0], [1, 0]) == 0.0

    def test_price_upsert_is_unique_per_day(self, store):
        store.store_stock_price("TCS", "2024-01-15", 1, 2, 0.5, 1.5, 100)
        store.store_stock_price("TCS", "2024-01-15", 1, 2, 0.5, 1.8, 200)
        prices = store.get_historical_prices("TCS")
        assert len(prices) == 1
        assert prices[0]["close"] == pytest.approx(1.8)

    def test_historical_prices_newest_first_and_point_in_time(self, store):
        seed_prices(store)
        assert [p["date"] for p in store.get_historical_prices("TCS")] == ["2024-01-12", "2024-01-11", "2024-01-10"]
        assert [p["date"] for p in store.get_historical_prices("TCS", as_of="2024-01-11")] == ["2024-01-11", "2024-01-10"]

    def test_trading_history(self, store):
        first = store.store_trading_decision("s1", "TCS", "buy", 10, 3720.0, "2024-01-10", "breakout", {"close": 3720.0})
        store.store_trading_decision("s1", "TCS", "buy", 5, 3750.0, "2024-01-12", "add")
        store.update_trade_outcome(first, 2.5)

        trades = store.get_similar_trades("TCS", "buy")
        assert [t["date"] for t in trades] == ["2024-01-12", "2024-01-10"]
        assert trades[1]["outcome_pnl"] == pytest.approx(2.5)
        assert trades[1]["market_context"] == {"close": 3720.0}
        assert len(store.get_similar_trades("TCS", "buy", as_of="2024-01-11")) == 1
        assert store.get_similar_trades("TCS", "sell") == []

    def test_vector_search(self, store):
        store.upsert_vector(MARKET_SCENARIOS, "a", [1.0, 0.0], {"symbol": "TCS", "date": "2024-01-10"})
        store.upsert_vector(MARKET_SCENARIOS, "b", [0.6, 0.8], {"symbol": "TCS", "date": "2024-01-11"})
        store.upsert_vector(MARKET_SCENARIOS, "c", [1.0, 0.0], {"symbol": "INFY", "date": "2024-01-11"})
        store.upsert_vector("other", "d", [1.0, 0.0], {"symbol": "TCS"})

        results = store.search_vectors(MARKET_SCENARIOS, [1.0, 0.0], limit=5, symbol="TCS")
        assert [r["date"] for r in results] == ["2024-01-10", "2024-01-11"]
        assert results[0]["similarity"] == pytest.approx(1.0)

        assert len(store.search_vectors(MARKET_SCENARIOS, [1.0, 0.0], score_threshold=0.7)) == 2
        assert store.count("vectors") == 4

    def test_vector_search_as_of_filters_before_limit(self, store):
        for day in range(20, 25):
            store.upsert_vector(MARKET_SCENARIOS, f"TCS_202401{day}", [1.0, 0.0], {"symbol": "TCS", "date": f"2024-01-{day}"})
        store.upsert_vector(MARKET_SCENARIOS, "TCS_20240110", [1.0, 0.0], {"symbol": "TCS", "date": "2024-01-10"})

        results = store.search_vectors(MARKET_SCENARIOS, [1.0, 0.0], limit=3, symbol="TCS", as_of="2024-01-15")
        assert [r["date"] for r in results] == ["2024-01-10"]

    def test_vector_upsert_replaces(self, store):
        store.upsert_vector(MARKET_SCENARIOS, "a", [1.0, 0.0], {"symbol": "TCS", "v": 1})
        store.upsert_vector(MARKET_SCENARIOS, "a", [1.0, 0.0], {"symbol": "TCS", "v": 2})
        results = store.search_vectors(MARKET_SCENARIOS, [1.0, 0.0])
        assert [r["v"] for r in results] == [2]

    def test_count_rejects_unknown_table(self, store):
        with pytest.raises(ValueError):
            store.count("sqlite_master")

    def test_file_backed_store_creates_directory(self, tmp_path):
        s = RetrievalStore(str(tmp_path / "nested" / "memory.db"))
        s.store_stock_price("TCS", "2024-01-15", 1, 1, 1, 1, 1)
        assert (tmp_path / "nested" / "memory.db").exists()
        s.close()


class TestEmbeddingText:

    def test_scenario_text(self):
        candles = [
            OHLCVData.model_validate(candle("TCS", "2024-01-15", 110.0, open=100.0)),
            OHLCVData.model_validate(candle("TCS", "2024-01-12", 90.0)),
        ]
        text = scenario_text("TCS", candles)
        lines = text.splitlines()
        assert lines[0] == "Stock: TCS"
        assert lines[1] == "Price: 110.0, Change: 10.00%"
        assert lines[3] == "Price vs MA5: 10.00%"
        assert lines[4].startswith("5-day Volatility:")

    def test_decision_text(self):
        text = decision_text("TCS", "buy", 3720.0, "breakout", outcome_pct=1.5)
        assert "Trading Decision for TCS" in text
        assert text.endswith("Rationale: breakout Outcome: +1.50%")

    def test_factory_strips_prefix(self):
        provider = get_embedding_provider("openai/text-embedding-3-small", api_key="sk-test")
        assert provider.model == "text-embedding-3-small"
        assert provider.dimensions == 1536

    def test_local_server_gets_placeholder_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = get_embedding_provider("nomic-embed-text", base_url="http://localhost:1234/v1")
        assert provider.api_key == "lm-studio"
        assert provider.dimensions == 768


class TestRetriever:

    def _market(self, date="2024-01-15", close=3730.0):
        return SymbolMarketData.model_validate({"latestCandle": candle("TCS", date, close)})

    @pytest.mark.asyncio
    async def test_empty_store_gives_empty_context(self, store):
        retriever = ContextRetriever(store, MockEmbedding())
        context = await retriever.build_compact_context("TCS", self._market(), as_of="2024-01-15")
        assert context.is_empty

    @pytest.mark.asyncio
    async def test_context_from_all_sources(self, store):
        seed_prices(store)
        store.upsert_vector(MARKET_SCENARIOS, "TCS_20240110", [1.0, 0.0, 0.0, 0.0], {"symbol": "TCS", "date": "2024-01-10"})
        store.upsert_vector(MARKET_SCENARIOS, "TCS_20240115", [1.0, 0.0, 0.0, 0.0], {"symbol": "TCS", "date": "2024-01-15"})
        store.store_trading_decision("s1", "TCS", "buy", 10, 3710.0, "2024-01-11", "dip buy")
        store.store_trading_decision("s1", "TCS", "sell", 10, 3790.0, "2024-01-16", "future sale")

        retriever = ContextRetriever(store, MockEmbedding())
        context = await retriever.build_compact_context("TCS", self._market(), as_of="2024-01-15")

        # same-day and later entries never leak in
        assert [s["date"] for s in context.similar_scenarios] == ["2024-01-10"]
        assert [t["date"] for t in context.past_trades] == ["2024-01-11"]
        assert len(context.historical_prices) == 3

    @pytest.mark.asyncio
    async def test_later_scenarios_do_not_crowd_out_earlier_ones(self, store):
        seed_prices(store)
        for day in range(20, 25):
            store.upsert_vector(MARKET_SCENARIOS, f"TCS_202401{day}", [1.0, 0.0, 0.0, 0.0], {"symbol": "TCS", "date": f"2024-01-{day}"})
        store.upsert_vector(MARKET_SCENARIOS, "TCS_20240110", [1.0, 0.0, 0.0, 0.0], {"symbol": "TCS", "date": "2024-01-10"})

        retriever = ContextRetriever(store, MockEmbedding(), max_examples=5)
        scenarios = await retriever.get_similar_scenarios("TCS", self._market(), as_of="2024-01-15")
        assert [s["date"] for s in scenarios] == ["2024-01-10"]

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades_to_other_sources(self, store):
        seed_prices(store)
        retriever = ContextRetriever(store, MockEmbedding(fail=True))
        context = await retriever.build_compact_context("TCS", self._market(), as_of="2024-01-15")
        assert context.similar_scenarios == []
        assert len(context.historical_prices) == 3

    def test_format_context(self):
        context = TradingContext(
            similar_scenarios=[{"date": "2024-01-10", "similarity": 0.91}],
            past_trades=[{"action": "buy", "price": 3710.0, "date": "2024-01-11", "rationale": "dip buy", "outcome_pnl": 1.2}],
            historical_prices=[{"date": "2024-01-12", "close": 3720.0}, {"date": "2024-01-11", "close": 3700.0}],
        )
        text = format_context_for_llm(context, "TCS")
        assert text.startswith("[HISTORICAL CONTEXT FOR TCS]")
        assert "SIMILAR PAST SCENARIOS (1):" in text
        assert "(91% match)" in text
        assert "1. 2024-01-11: BUY @ ₹3710.00 -> +1.20%" in text
        assert "   Why: dip buy" in text
        assert "Recent trend: 3720 -> 3700" in text
