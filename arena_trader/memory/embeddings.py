"""
Embeddings provider adapter.

Pluggable interface for generating text embeddings, plus the text
templates used to embed market scenarios and trading decisions.
OpenAI and any OpenAI-compatible server (LM Studio) are supported.
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import httpx
import openai

from ..agents.schemas import OHLCVData
from ..resilience import RetryConfig, with_retry

logger = logging.getLogger("arena_trader.memory.embeddings")

EMBEDDING_RETRY = RetryConfig(
    max_attempts=2,
    base_delay_sec=0.5,
    retryable_exceptions=(openai.APIConnectionError, openai.RateLimitError),
)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        pass

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the dimensionality of embeddings."""
        pass


class OpenAIEmbedding(EmbeddingProvider):
    """OpenAI (or OpenAI-compatible) embedding provider."""

    DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
        "nomic-embed-text": 768,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self.base_url = base_url
        # local servers ignore the key but the SDK requires one
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY") or ("lm-studio" if base_url else None)
        self._http_client = http_client
        self._client: Optional[openai.AsyncOpenAI] = None

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                http_client=self._http_client,
            )
        return self._client

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        client = self._get_client()
        response = await with_retry(
            lambda: client.embeddings.create(model=self.model, input=text),
            description=f"embedding ({self.model})",
            config=EMBEDDING_RETRY,
        )
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        if not texts:
            return []
        client = self._get_client()
        response = await with_retry(
            lambda: client.embeddings.create(model=self.model, input=texts),
            description=f"batch embedding ({self.model})",
            config=EMBEDDING_RETRY,
        )
        return [item.embedding for item in sorted(response.data, key=lambda x: x.index)]

    @property
    def dimensions(self) -> int:
        return self.DIMENSIONS.get(self.model, 1536)


def get_embedding_provider(
    model: str = "text-embedding-3-small",
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
) -> EmbeddingProvider:
    """
    Factory function to get the embedding provider.

    Args:
        model: Model identifier, optionally prefixed with 'openai/'
        base_url: OpenAI-compatible server (e.g. LM Studio's /v1); None for OpenAI
    """
    if model.startswith("openai/"):
        model = model.replace("openai/", "", 1)
    return OpenAIEmbedding(model, api_key=api_key, base_url=base_url)


def scenario_text(symbol: str, candles: Sequence[OHLCVData]) -> str:
    """
    Textual fingerprint of a market state, newest candle first.

    Includes the day's change, distance from the 5-candle mean close and
    the average 5-candle high/low range.
    """
    latest = candles[0]
    recent = list(candles[:5])

    change_pct = (latest.close - latest.open) / latest.open * 100 if latest.open else 0.0
    avg_close = sum(c.close for c in recent) / len(recent)
    vs_ma = (latest.close - avg_close) / avg_close * 100
    ranges = [(c.high - c.low) / c.low * 100 for c in recent if c.low]
    volatility = sum(ranges) / len(ranges) if ranges else 0.0

    return "\n".join([
        f"Stock: {symbol}",
        f"Price: {latest.close}, Change: {change_pct:.2f}%",
        f"Volume: {latest.volume:g}",
        f"Price vs MA5: {vs_ma:.2f}%",
        f"5-day Volatility: {volatility:.2f}%",
        f"High: {latest.high}, Low: {latest.low}",
    ])


def decision_text(
    symbol: str,
    action: str,
    price: float,
    rationale: str,
    outcome_pct: Optional[float] = None,
) -> str:
    outcome = f" Outcome: {outcome_pct:+.2f}%" if outcome_pct is not None else ""
    return "\n".join([
        f"Trading Decision for {symbol}",
        f"Action: {action}",
        f"Price: {price}",
        f"Rationale: {rationale}{outcome}",
    ])


async def embed_market_scenario(
    provider: EmbeddingProvider,
    symbol: str,
    candles: List[OHLCVData],
) -> list[float]:
    return await provider.embed(scenario_text(symbol, candles))


async def embed_trading_decision(
    provider: EmbeddingProvider,
    symbol: str,
    action: str,
    price: float,
    rationale: str,
) -> list[float]:
    return await provider.embed(decision_text(symbol, action, price, rationale))
