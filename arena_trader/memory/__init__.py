"""
Retrieval memory for the context-enrichment overlay.

Provides:
- SQLite storage for daily prices and accepted trades
- Named vector collections with cosine similarity search
- Scenario/decision embedding templates
- Prompt-ready context formatting
"""

from .embeddings import EmbeddingProvider, OpenAIEmbedding, get_embedding_provider
from .store import RetrievalStore, cosine_similarity, MARKET_SCENARIOS, TRADING_OUTCOMES
from .retriever import ContextRetriever, TradingContext, format_context_for_llm

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbedding",
    "get_embedding_provider",
    "RetrievalStore",
    "cosine_similarity",
    "MARKET_SCENARIOS",
    "TRADING_OUTCOMES",
    "ContextRetriever",
    "TradingContext",
    "format_context_for_llm",
]
