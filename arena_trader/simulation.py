"""
ArenaSimulation - run every enabled strategy over the same trading days.

Each strategy owns an independent ledger and agent; strategies run
concurrently per day, and each one's validation and execution is
sequential on its own ledger.
"""
import asyncio
import logging
import random
from datetime import date as date_cls
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from .agents.decision import create_empty_decision
from .agents.observability import ObservabilityAgent
from .agents.orchestrator import TradingAgent, market_close_timestamp, LLM_FAILED
from .agents.portfolio import PortfolioLedger
from .agents.rag_agent import RAGTradingAgent
from .agents.schemas import NewsItem, PerformanceMetrics, SymbolMarketData, TradingDecision
from .config import TradingConfig
from .data import DayData, news_as_of
from .llm.manager import MultiProviderManager
from .memory.embeddings import EmbeddingProvider
from .memory.store import RetrievalStore

logger = logging.getLogger("arena_trader.simulation")

StrategyAgent = Union[TradingAgent, RAGTradingAgent]


class ArenaSimulation:
    def __init__(
        self,
        config: TradingConfig,
        manager: MultiProviderManager,
        store: Optional[RetrievalStore] = None,
        embedder: Optional[EmbeddingProvider] = None,
        rng: Optional[random.Random] = None,
        audit: bool = True,
    ):
        self.config = config
        self.manager = manager
        self.agents: Dict[str, StrategyAgent] = {}
        self.observers: Dict[str, ObservabilityAgent] = {}
        self.last_prices: Dict[str, float] = {}

        use_rag = config.rag_enabled and store is not None and embedder is not None
        if config.rag_enabled and not use_rag:
            logger.warning("RAG enabled but no retrieval store/embedder supplied - running without context")

        for signature, provider in manager.get_all_providers().items():
            observer = ObservabilityAgent(config.log_dir, signature) if audit else None
            ledger = PortfolioLedger(config.initial_cash, sink=observer)
            agent: StrategyAgent = TradingAgent(provider, ledger, config, observer, signature)
            if use_rag:
                agent = RAGTradingAgent(
                    agent,
                    store,
                    embedder,
                    sample_rate=config.rag_sample_rate,
                    timeout=config.retrieval_timeout_seconds,
                    rng=rng,
                )
            self.agents[signature] = agent
            if observer is not None:
                self.observers[signature] = observer

        logger.info(f"Simulation initialized with {len(self.agents)} strategies (RAG: {use_rag})")

    def _point_in_time(
        self,
        date: str,
        market_data: Mapping[str, Any],
        news: Optional[Sequence[Any]],
    ) -> tuple[Dict[str, Any], List[Any]]:
        """Drop history candles after `date` and news stamped after the close."""
        sliced: Dict[str, Any] = {}
        for symbol, data in market_data.items():
            try:
                parsed = SymbolMarketData.model_validate(data)
            except ValidationError:
                sliced[symbol] = data  # let the agent report it
                continue
            history = [c for c in parsed.history if c.date[:10] <= date]
            sliced[symbol] = parsed.model_copy(update={"history": history})

        hours = self.config.market.trading_hours
        try:
            cutoff = market_close_timestamp(date_cls.fromisoformat(date), hours.end, hours.timezone)
        except ValueError:
            return sliced, list(news or [])

        parsed_news, passthrough = [], []
        for item in news or []:
            try:
                parsed_news.append(NewsItem.model_validate(item))
            except ValidationError:
                passthrough.append(item)
        return sliced, news_as_of(parsed_news, cutoff, hours.timezone) + passthrough

    async def _run_strategy(
        self,
        signature: str,
        agent: StrategyAgent,
        date: str,
        market_data: Dict[str, Any],
        news: List[Any],
        fundamentals: Optional[Mapping[str, Any]],
    ) -> TradingDecision:
        try:
            return await agent.process_trading_day(date, market_data, news, fundamentals)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Strategy {signature} crashed on {date}: {e}")
            return create_empty_decision(None, LLM_FAILED, str(e))

    async def run_day(
        self,
        date: str,
        market_data: Mapping[str, Any],
        news: Optional[Sequence[Any]] = None,
        fundamentals: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, TradingDecision]:
        """One decision per strategy for `date`."""
        sliced_market, sliced_news = self._point_in_time(date, market_data, news)

        signatures = list(self.agents)
        decisions = await asyncio.gather(*(
            self._run_strategy(s, self.agents[s], date, sliced_market, sliced_news, fundamentals)
            for s in signatures
        ))

        for symbol, data in sliced_market.items():
            if isinstance(data, SymbolMarketData):
                self.last_prices[symbol.upper()] = data.latest_candle.close

        for signature in signatures:
            observer = self.observers.get(signature)
            if observer is not None:
                metrics = self.agents[signature].get_performance_metrics(self.last_prices)
                observer.log_performance(date, metrics)

        return dict(zip(signatures, decisions))

    async def run_replay(self, days: List[DayData]) -> List[Dict[str, TradingDecision]]:
        """Run the given days in date order."""
        results = []
        for day in sorted(days, key=lambda d: d.date):
            logger.info(f"=== DAY {day.date} ({len(day.market_data)} symbols, {len(day.news)} news) ===")
            results.append(await self.run_day(day.date, day.market_data, day.news, day.fundamentals))
        return results

    def get_results(self, current_prices: Optional[Dict[str, float]] = None) -> Dict[str, PerformanceMetrics]:
        prices = current_prices if current_prices is not None else self.last_prices
        return {s: agent.get_performance_metrics(prices) for s, agent in self.agents.items()}
