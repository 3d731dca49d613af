"""
RAGTradingAgent - Retrieval overlay around the day orchestrator.

Purpose: Feed the oracle extra historical context and record each day's
market data and accepted orders for later retrieval.
Retrieval is strictly additive: every store/search call is best-effort,
bounded by a timeout, and can never change validation or ledger results.
"""
import asyncio
import logging
import random
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from .schemas import Order, PerformanceMetrics, SymbolMarketData, TradeLog, TradingDecision
from .orchestrator import TradingAgent
from ..memory.embeddings import EmbeddingProvider, embed_market_scenario, embed_trading_decision
from ..memory.retriever import ContextRetriever, format_context_for_llm
from ..memory.store import MARKET_SCENARIOS, TRADING_OUTCOMES, RetrievalStore
from ..resilience import best_effort

logger = logging.getLogger("arena_trader.agents.rag_agent")

SCENARIO_SAMPLE_RATE = 0.2


class RAGTradingAgent:
    """Wraps a TradingAgent without changing its contract."""

    def __init__(
        self,
        base_agent: TradingAgent,
        store: RetrievalStore,
        embedder: EmbeddingProvider,
        retriever: Optional[ContextRetriever] = None,
        sample_rate: float = SCENARIO_SAMPLE_RATE,
        timeout: float = 30.0,
        rng: Optional[random.Random] = None,
    ):
        self.base_agent = base_agent
        self.store = store
        self.embedder = embedder
        self.retriever = retriever or ContextRetriever(
            store,
            embedder,
            similarity_threshold=base_agent.config.similarity_threshold,
            max_examples=base_agent.config.max_context_examples,
        )
        self.sample_rate = sample_rate
        self.timeout = timeout
        self.rng = rng or random.Random()

    @property
    def signature(self) -> str:
        return self.base_agent.signature

    @property
    def ledger(self):
        return self.base_agent.ledger

    @staticmethod
    def _valid_market_data(date: str, market_data: Mapping[str, Any]) -> Dict[str, SymbolMarketData]:
        """
        Parse what can be parsed; the base agent reports anything malformed.

        Candles dated after `date` are dropped so they never reach the store.
        """
        parsed = {}
        for symbol, data in (market_data or {}).items():
            try:
                symbol_data = SymbolMarketData.model_validate(data)
            except ValidationError:
                continue
            if symbol_data.latest_candle.date[:10] > date:
                logger.warning(f"Not storing {symbol}: candle {symbol_data.latest_candle.date} is after {date}")
                continue
            parsed[symbol.upper()] = symbol_data
        return parsed

    async def _store_symbol(self, symbol: str, data: SymbolMarketData):
        # keyed by the candle's own date, not the trading date
        candle = data.latest_candle
        date = candle.date[:10]
        self.store.store_stock_price(
            symbol=symbol,
            date=date,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
            volume=candle.volume,
        )

        # embed only a sample of scenarios to save compute
        if self.rng.random() < self.sample_rate:
            embedding = await embed_market_scenario(self.embedder, symbol, [candle])
            self.store.upsert_vector(
                MARKET_SCENARIOS,
                f"{symbol}_{date}".replace("-", ""),
                embedding,
                {"symbol": symbol, "date": date, "close": candle.close, "volume": candle.volume},
            )

    async def store_market_data(self, date: str, market_data: Dict[str, SymbolMarketData]):
        await asyncio.gather(*(
            best_effort(
                lambda s=symbol, d=data: self._store_symbol(s, d),
                f"storing market data for {symbol} on {date}",
                timeout=self.timeout,
            )
            for symbol, data in market_data.items()
        ))

    async def build_historical_context(
        self,
        date: str,
        market_data: Dict[str, SymbolMarketData],
    ) -> Dict[str, str]:
        async def one(symbol: str, data: SymbolMarketData) -> Optional[str]:
            context = await self.retriever.build_compact_context(symbol, data, as_of=date)
            return None if context.is_empty else format_context_for_llm(context, symbol)

        symbols = list(market_data)
        texts = await asyncio.gather(*(
            best_effort(
                lambda s=symbol: one(s, market_data[s]),
                f"retrieving context for {symbol}",
                timeout=self.timeout,
            )
            for symbol in symbols
        ))
        return {s: t for s, t in zip(symbols, texts) if t}

    async def _store_order(
        self,
        date: str,
        order: Order,
        decision: TradingDecision,
        market_data: Dict[str, SymbolMarketData],
    ):
        price = order.estimated_execution_price or order.limit_price or 0.0
        symbol_data = market_data.get(order.symbol)
        trade_id = self.store.store_trading_decision(
            model_signature=self.signature,
            symbol=order.symbol,
            action=order.action.value,
            quantity=order.quantity,
            price=price,
            date=date,
            rationale=order.rationale or decision.diagnostics.summary,
            market_context={"close": symbol_data.latest_candle.close if symbol_data else None},
        )
        embedding = await embed_trading_decision(
            self.embedder, order.symbol, order.action.value, price, order.rationale
        )
        self.store.upsert_vector(
            TRADING_OUTCOMES,
            f"trade_{trade_id}",
            embedding,
            {"symbol": order.symbol, "action": order.action.value, "date": date, "trade_id": trade_id},
        )

    async def store_decision(
        self,
        date: str,
        decision: TradingDecision,
        market_data: Dict[str, SymbolMarketData],
    ):
        await asyncio.gather(*(
            best_effort(
                lambda o=order: self._store_order(date, o, decision, market_data),
                f"storing {order.action.value} {order.symbol} for learning",
                timeout=self.timeout,
            )
            for order in decision.orders
        ))

    async def process_trading_day(
        self,
        date: str,
        market_data: Mapping[str, Any],
        news: Optional[Sequence[Any]] = None,
        fundamentals: Optional[Mapping[str, Any]] = None,
    ) -> TradingDecision:
        parsed = self._valid_market_data(date, market_data)

        await self.store_market_data(date, parsed)
        historical_context = await self.build_historical_context(date, parsed)
        if historical_context:
            logger.info(f"{self.signature}: retrieved context for {len(historical_context)} symbols")

        decision = await self.base_agent.process_trading_day(
            date, market_data, news, fundamentals, historical_context=historical_context
        )

        await self.store_decision(date, decision, parsed)
        return decision

    def get_performance_metrics(self, current_prices: Dict[str, float]) -> PerformanceMetrics:
        return self.base_agent.get_performance_metrics(current_prices)

    def get_trade_history(self) -> List[TradeLog]:
        return self.base_agent.get_trade_history()
