"""
Arena Trader agent system - one pipeline per strategy.

Components (in handoff order):
1. TradingAgent - builds the day's input and orchestrates the handoffs
2. Oracle (llm package) - proposes a TradingDecision as JSON
3. Decision parser - tolerant extraction and per-order validation
4. RiskGateAgent - deterministic validation against RiskConfig
5. PortfolioLedger - simulated cash, positions and P&L
6. ObservabilityAgent - JSONL audit trail

RAGTradingAgent optionally wraps a TradingAgent with retrieval context.
"""

from .schemas import (
    AgentInput,
    AgentMode,
    AgentState,
    Order,
    OrderAction,
    OrderType,
    TradingDecision,
    Diagnostics,
    RiskConfig,
    ValidationResult,
    TradeLog,
    PerformanceMetrics,
)

__all__ = [
    "AgentInput",
    "AgentMode",
    "AgentState",
    "Order",
    "OrderAction",
    "OrderType",
    "TradingDecision",
    "Diagnostics",
    "RiskConfig",
    "ValidationResult",
    "TradeLog",
    "PerformanceMetrics",
]
