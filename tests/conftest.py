"""
Shared fixtures for arena tests.

Provides a scripted oracle, a deterministic embedding provider, and
helpers for building market data and decision payloads.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

import pytest

from arena_trader.agents.portfolio import PortfolioLedger
from arena_trader.agents.schemas import LLMResponse, RiskConfig, SlippageModel, TokenUsage
from arena_trader.config import TradingConfig
from arena_trader.llm.base import OracleProvider

pytest_plugins = ('pytest_asyncio',)


class FakeProvider(OracleProvider):
    """Oracle that replays scripted replies; an Exception entry is raised instead."""

    kind = "fake"

    def __init__(self, replies: List[Union[str, Exception]], model: str = "fake-model", delay: float = 0.0):
        super().__init__(model)
        self.replies = list(replies)
        self.delay = delay
        self.prompts: List[str] = []

    async def generate(self, prompt, system_prompt=None, json_mode=False, timeout=None):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=reply, usage=TokenUsage(total_tokens=len(reply)))


class MockEmbedding:
    """Every text embeds to the same unit vector, so every stored vector is a perfect match."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []

    @property
    def dimensions(self) -> int:
        return 4

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise ConnectionError("embedding server down")
        return [1.0, 0.0, 0.0, 0.0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(t) for t in texts]


def candle(symbol: str, date: str, close: float, open: Optional[float] = None, volume: float = 1000) -> Dict[str, Any]:
    open = open if open is not None else close
    return {
        "symbol": symbol,
        "date": date,
        "open": open,
        "high": max(open, close) * 1.01,
        "low": min(open, close) * 0.99,
        "close": close,
        "volume": volume,
    }


def market(date: str, **closes: float) -> Dict[str, Any]:
    """Wire-format market data: market(date, TCS=3720.0, INFY=1500.0)."""
    return {symbol: {"latestCandle": candle(symbol, date, close)} for symbol, close in closes.items()}


def order(action: str, symbol: str = "", quantity: int = 0, price: float = 0.0, confidence: float = 0.8, **extra) -> Dict[str, Any]:
    data = {
        "action": action,
        "symbol": symbol,
        "quantity": quantity,
        "orderType": "market",
        "estimatedExecutionPrice": price,
        "confidence": confidence,
        "rationale": f"{action} {symbol}".strip(),
    }
    data.update(extra)
    return data


def decision_json(*orders: Dict[str, Any], summary: str = "test decision", timestamp: str = "2024-01-15T15:30:00+05:30") -> str:
    return json.dumps({
        "timestamp": timestamp,
        "orders": list(orders),
        "portfolioUpdates": {},
        "diagnostics": {
            "summary": summary,
            "keySignals": [],
            "confidenceOverall": 0.7,
            "ruleViolations": [],
        },
    })


@pytest.fixture
def loose_risk():
    """Limits wide enough that only cash and quantity checks bite."""
    return RiskConfig(
        max_position_pct=1.0,
        max_total_exposure_pct=1.0,
        min_cash_reserve_pct=0.0,
        max_order_value=1_000_000,
        slippage_model=SlippageModel(type="fixed", value=0.0),
    )


@pytest.fixture
def config(tmp_path):
    return TradingConfig(initial_cash=100000.0, log_dir=str(tmp_path / "logs"))


@pytest.fixture
def loose_config(tmp_path, loose_risk):
    return TradingConfig(initial_cash=100000.0, risk=loose_risk, log_dir=str(tmp_path / "logs"))


@pytest.fixture
def ledger():
    return PortfolioLedger(100000.0)
