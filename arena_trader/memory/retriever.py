"""
Context retriever for the enrichment overlay.

Builds a compact, read-only view of what the store knows about a symbol
(similar past scenarios, past trades, recent prices) and formats it as
prompt text.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .embeddings import EmbeddingProvider, embed_market_scenario
from .store import MARKET_SCENARIOS, RetrievalStore
from ..agents.schemas import SymbolMarketData

logger = logging.getLogger("arena_trader.memory.retriever")

MAX_SCENARIOS = 3
MAX_TRADES = 3
MAX_PRICES = 30


@dataclass
class TradingContext:
    similar_scenarios: List[Dict[str, Any]] = field(default_factory=list)
    past_trades: List[Dict[str, Any]] = field(default_factory=list)
    historical_prices: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.similar_scenarios or self.past_trades or self.historical_prices)


class ContextRetriever:
    def __init__(
        self,
        store: RetrievalStore,
        embedder: EmbeddingProvider,
        similarity_threshold: float = 0.7,
        max_examples: int = 5,
    ):
        self.store = store
        self.embedder = embedder
        self.similarity_threshold = similarity_threshold
        self.max_examples = max_examples

    async def build_compact_context(
        self,
        symbol: str,
        market_data: SymbolMarketData,
        as_of: Optional[str] = None,
    ) -> TradingContext:
        """Gather all three context sources for one symbol concurrently."""
        scenarios, trades, prices = await asyncio.gather(
            self.get_similar_scenarios(symbol, market_data, as_of),
            self.get_relevant_trade_history(symbol, as_of),
            self.get_historical_context(symbol, as_of),
        )
        return TradingContext(
            similar_scenarios=scenarios[:MAX_SCENARIOS],
            past_trades=trades[:MAX_TRADES],
            historical_prices=prices[:MAX_PRICES],
        )

    async def get_similar_scenarios(
        self,
        symbol: str,
        market_data: SymbolMarketData,
        as_of: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Vector search over stored scenarios for the same symbol."""
        try:
            if not self.store.get_historical_prices(symbol, limit=10, as_of=as_of):
                return []
            candles = [market_data.latest_candle] + list(reversed(market_data.history))
            embedding = await embed_market_scenario(self.embedder, symbol, candles)
            results = self.store.search_vectors(
                MARKET_SCENARIOS,
                embedding,
                limit=self.max_examples,
                score_threshold=self.similarity_threshold,
                symbol=symbol,
                as_of=as_of,
            )
            return results
        except Exception as e:
            logger.error(f"Error finding similar scenarios for {symbol}: {e}")
            return []

    async def get_relevant_trade_history(
        self,
        symbol: str,
        as_of: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        try:
            buys = self.store.get_similar_trades(symbol, "buy", 3, as_of=as_of)
            sells = self.store.get_similar_trades(symbol, "sell", 2, as_of=as_of)
        except Exception as e:
            logger.error(f"Error getting trade history for {symbol}: {e}")
            return []

        return [
            {
                "action": t["action"],
                "price": float(t["price"] or 0.0),
                "date": t["date"],
                "rationale": t["rationale"],
                "outcome_pnl": float(t["outcome_pnl"]) if t["outcome_pnl"] is not None else None,
                "context": t["market_context"],
            }
            for t in buys + sells
        ]

    async def get_historical_context(
        self,
        symbol: str,
        as_of: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        try:
            prices = self.store.get_historical_prices(symbol, limit=MAX_PRICES, as_of=as_of)
        except Exception as e:
            logger.error(f"Error getting historical prices for {symbol}: {e}")
            return []

        return [
            {
                "date": p["date"],
                "close": float(p["close"]),
                "volume": p["volume"],
                "change_pct": p["change_pct"],
            }
            for p in prices
        ]


def format_context_for_llm(context: TradingContext, symbol: str) -> str:
    """Token-lean text block for one symbol's historical context."""
    lines = [f"[HISTORICAL CONTEXT FOR {symbol}]", ""]

    if context.similar_scenarios:
        lines.append(f"SIMILAR PAST SCENARIOS ({len(context.similar_scenarios)}):")
        for i, scenario in enumerate(context.similar_scenarios, 1):
            summary = scenario.get("summary") or "Similar market conditions"
            lines.append(
                f"{i}. {scenario.get('date')}: {summary} ({scenario.get('similarity', 0) * 100:.0f}% match)"
            )
            if scenario.get("outcome"):
                lines.append(f"   Outcome: {scenario['outcome']}")
        lines.append("")

    if context.past_trades:
        lines.append(f"PAST TRADES IN THIS STOCK ({len(context.past_trades)}):")
        for i, trade in enumerate(context.past_trades, 1):
            pnl = ""
            if trade.get("outcome_pnl") is not None:
                pnl = f" -> {trade['outcome_pnl']:+.2f}%"
            lines.append(f"{i}. {trade['date']}: {trade['action'].upper()} @ ₹{trade['price']:.2f}{pnl}")
            rationale = trade.get("rationale")
            if rationale and len(rationale) < 100:
                lines.append(f"   Why: {rationale}")
        lines.append("")

    if context.historical_prices:
        recent = context.historical_prices[:5]
        avg_5day = sum(p["close"] for p in recent) / len(recent)
        current = recent[0]["close"]
        vs_avg = (current - avg_5day) / avg_5day * 100 if avg_5day else 0.0
        trend = " -> ".join(f"{p['close']:.0f}" for p in recent)

        lines.append("PRICE CONTEXT:")
        lines.append(f"Current: ₹{current:.2f} ({vs_avg:.2f}% vs 5-day avg)")
        lines.append(f"Recent trend: {trend}")
        lines.append("")

    return "\n".join(lines)
