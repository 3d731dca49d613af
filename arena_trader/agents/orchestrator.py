"""
TradingAgent - Day orchestrator for one strategy.

Purpose: Build the day's input, ask the oracle, run each proposed order through
the risk gate in the order returned, apply accepted orders to the ledger and
return one finalized decision.

Handoffs (strict order):
  BUILDING_INPUT -> AWAITING_DECISION -> VALIDATING_ORDERS -> APPLYING -> DONE
Any input or oracle failure ends in FAILED with an empty, well-formed decision.
"""
import asyncio
import logging
from datetime import date as date_cls, datetime, time as time_cls
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from .schemas import (
    AgentInput,
    AgentState,
    FundamentalData,
    Instructions,
    NewsItem,
    Order,
    OrderAction,
    PerformanceMetrics,
    PortfolioUpdates,
    SymbolMarketData,
    TradeLog,
    TradingDecision,
)
from .decision import TRADING_AGENT_SYSTEM_PROMPT, create_empty_decision
from .portfolio import PortfolioLedger
from .risk_gate import RiskGateAgent
from .observability import ObservabilityAgent
from ..config import TradingConfig
from ..llm.base import OracleProvider
from ..resilience import best_effort_sync

logger = logging.getLogger("arena_trader.agents.orchestrator")

INPUT_ERROR = "input_error"
LLM_FAILED = "LLM generation failed"
MAX_DAILY_TRADES_EXCEEDED = "max_daily_trades_exceeded"
EXECUTION_FAILED = "execution_failed"


class InputError(ValueError):
    """Malformed or missing trading-day input."""
    pass


def market_close_timestamp(day: date_cls, close: str, timezone: str) -> str:
    """ISO-8601 timestamp of the market close on `day`, e.g. 2024-01-15T15:30:00+05:30."""
    close_time = time_cls.fromisoformat(close)
    return datetime.combine(day, close_time, tzinfo=ZoneInfo(timezone)).isoformat()


def round_to_tick(price: float, tick: float) -> float:
    if tick <= 0:
        return round(price, 2)
    return round(round(price / tick) * tick, 2)


def build_agent_input(
    config: TradingConfig,
    ledger: PortfolioLedger,
    timestamp: str,
    market_data: Dict[str, SymbolMarketData],
    news: List[NewsItem],
    current_prices: Dict[str, float],
    fundamentals: Optional[Dict[str, FundamentalData]] = None,
    historical_context: Optional[Dict[str, str]] = None,
) -> AgentInput:
    """Assemble the oracle's view of one trading day from the ledger and the day's data."""
    tickers = list(market_data)
    return AgentInput(
        mode=config.mode,
        timestamp=timestamp,
        tickers=tickers,
        market_data=market_data,
        news=news,
        fundamentals=fundamentals,
        account=ledger.get_account_state(current_prices),
        market_rules=config.market.market_rules(tickers),
        config=config.risk,
        instructions=Instructions(
            goal=config.goal,
            allowed_order_types=config.allowed_order_types,
            reporting_mode="json_only",
        ),
        historical_context=historical_context or None,
    )


class TradingAgent:
    """
    Runs one strategy's trading days against its own ledger.

    Not safe to share between strategies: the ledger and the daily trade
    counter belong to this instance alone.
    """

    def __init__(
        self,
        provider: OracleProvider,
        ledger: PortfolioLedger,
        config: TradingConfig,
        observability: Optional[ObservabilityAgent] = None,
        signature: str = "default",
    ):
        self.provider = provider
        self.ledger = ledger
        self.config = config
        self.observability = observability
        self.signature = signature
        self.risk_gate = RiskGateAgent(config.risk)

        self.state = AgentState.IDLE
        self.daily_trade_count = 0
        self.last_processed_date: Optional[str] = None

        logger.info(f"TradingAgent {signature} initialized - Provider: {provider.kind}:{provider.model}")

    # --- input boundary -----------------------------------------------------

    def _parse_inputs(
        self,
        day: date_cls,
        market_data: Mapping[str, Any],
        news: Optional[Sequence[Any]],
        fundamentals: Optional[Mapping[str, Any]],
    ) -> Tuple[Dict[str, SymbolMarketData], List[NewsItem], Optional[Dict[str, FundamentalData]]]:
        if not market_data:
            raise InputError("marketData: no symbols supplied")

        parsed_market: Dict[str, SymbolMarketData] = {}
        for symbol, data in market_data.items():
            try:
                parsed = SymbolMarketData.model_validate(data)
            except ValidationError as e:
                raise InputError(f"marketData.{symbol}: {e.errors()[0]['msg']}") from e
            if parsed.latest_candle.date[:10] > day.isoformat():
                raise InputError(f"marketData.{symbol}: latest candle {parsed.latest_candle.date} is after {day}")
            parsed_market[symbol.upper()] = parsed

        parsed_news: List[NewsItem] = []
        for i, item in enumerate(news or []):
            try:
                parsed_news.append(NewsItem.model_validate(item))
            except ValidationError as e:
                raise InputError(f"news[{i}]: {e.errors()[0]['msg']}") from e

        parsed_fundamentals = None
        if fundamentals:
            parsed_fundamentals = {}
            for symbol, record in fundamentals.items():
                try:
                    parsed_fundamentals[symbol.upper()] = FundamentalData.model_validate(record)
                except ValidationError as e:
                    raise InputError(f"fundamentals.{symbol}: {e.errors()[0]['msg']}") from e

        return parsed_market, parsed_news, parsed_fundamentals

    # --- order handling -----------------------------------------------------

    def _price_order(self, order: Order, current_prices: Dict[str, float]) -> Tuple[Optional[Order], Optional[str]]:
        """
        Fill in a missing estimated execution price.

        The latest close (or the limit price) is moved against the trade by
        the slippage model and rounded to the symbol's tick size.
        """
        if order.action == OrderAction.HOLD or order.estimated_execution_price > 0:
            return order, None

        base = current_prices.get(order.symbol) or order.limit_price
        if not base:
            return None, f"No price available for {order.symbol}"

        slippage = self.config.risk.slippage_model
        if slippage.type == "percent":
            offset = base * slippage.value / 100
        else:
            offset = slippage.value
        price = base + offset if order.action == OrderAction.BUY else base - offset

        tick = self.config.market.tick_size_for(order.symbol)
        price = max(round_to_tick(price, tick), tick)
        return order.model_copy(update={
            "estimated_execution_price": price,
            "notional": price * order.quantity,
        }), None

    def _apply_orders(
        self,
        date: str,
        orders: List[Order],
        current_prices: Dict[str, float],
        violations: List[str],
    ) -> List[Order]:
        """Sequential, path-dependent: each order sees the ledger as left by the previous ones."""
        max_trades = self.config.risk.max_daily_trades
        accepted: List[Order] = []

        for order in orders:
            self.state = AgentState.VALIDATING_ORDERS
            if self.daily_trade_count >= max_trades:
                logger.warning(f"Max daily trades reached ({max_trades}) for {self.signature}")
                violations.append(MAX_DAILY_TRADES_EXCEEDED)
                break

            priced, reason = self._price_order(order, current_prices)
            if priced is None:
                logger.warning(f"Order rejected: {reason}")
                violations.append(reason)
                continue

            result = self.risk_gate.validate(self.ledger, priced, current_prices)
            if not result.valid:
                violations.append(result.reason or "validation_failed")
                continue

            if priced.action == OrderAction.HOLD:
                continue

            self.state = AgentState.APPLYING
            if not self.ledger.execute_order(priced):
                violations.append(EXECUTION_FAILED)
                continue

            accepted.append(priced)
            self.daily_trade_count += 1
            self.ledger.log_trade(date, priced, current_prices)

        return accepted

    # --- day processing -----------------------------------------------------

    def _finalize(
        self,
        date: str,
        decision: TradingDecision,
        timestamp: Optional[str],
        orders: List[Order],
        violations: List[str],
        current_prices: Dict[str, float],
    ) -> TradingDecision:
        account = self.ledger.get_account_state(current_prices)
        final = decision.model_copy(update={
            "timestamp": timestamp,
            "orders": orders,
            "portfolio_updates": PortfolioUpdates.from_account(account),
            "diagnostics": decision.diagnostics.model_copy(update={"rule_violations": violations}),
        })
        if self.observability is not None:
            best_effort_sync(
                lambda: self.observability.log_decision(date, final),
                f"decision audit for {self.signature} on {date}",
            )
        return final

    def _fail(
        self,
        date: str,
        timestamp: Optional[str],
        summary: str,
        details: str,
        current_prices: Dict[str, float],
    ) -> TradingDecision:
        self.state = AgentState.FAILED
        empty = create_empty_decision(timestamp, summary, details)
        return self._finalize(date, empty, timestamp, [], [], current_prices)

    async def process_trading_day(
        self,
        date: str,
        market_data: Mapping[str, Any],
        news: Optional[Sequence[Any]] = None,
        fundamentals: Optional[Mapping[str, Any]] = None,
        historical_context: Optional[Dict[str, str]] = None,
    ) -> TradingDecision:
        """
        Process one trading day for this strategy.

        Always returns a well-formed TradingDecision. Calling it twice for
        the same date continues from the already-mutated ledger.
        """
        self.state = AgentState.BUILDING_INPUT

        try:
            day = date_cls.fromisoformat(date)
        except (TypeError, ValueError):
            return self._fail(str(date), None, INPUT_ERROR, f"date: invalid trading date {date!r}", {})

        if date != self.last_processed_date:
            self.daily_trade_count = 0
            self.last_processed_date = date

        hours = self.config.market.trading_hours
        timestamp = market_close_timestamp(day, hours.end, hours.timezone)

        try:
            parsed_market, parsed_news, parsed_fundamentals = self._parse_inputs(
                day, market_data, news, fundamentals
            )
        except InputError as e:
            logger.warning(f"Input error for {self.signature} on {date}: {e}")
            return self._fail(date, timestamp, INPUT_ERROR, str(e), {})

        current_prices = {s: d.latest_candle.close for s, d in parsed_market.items()}

        agent_input = build_agent_input(
            self.config,
            self.ledger,
            timestamp,
            parsed_market,
            parsed_news,
            current_prices,
            fundamentals=parsed_fundamentals,
            historical_context=historical_context,
        )

        self.state = AgentState.AWAITING_DECISION
        oracle_timeout = self.config.oracle_timeout_seconds
        try:
            decision = await asyncio.wait_for(
                self.provider.generate_decision(
                    TRADING_AGENT_SYSTEM_PROMPT, agent_input, timeout=oracle_timeout
                ),
                timeout=oracle_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Oracle timed out for {self.signature} on {date} after {oracle_timeout}s")
            return self._fail(date, timestamp, LLM_FAILED, f"timed out after {oracle_timeout}s", current_prices)
        except Exception as e:
            logger.error(f"Error generating trading decision for {self.signature}: {e}")
            return self._fail(date, timestamp, LLM_FAILED, str(e), current_prices)

        violations = list(decision.diagnostics.rule_violations)
        accepted = self._apply_orders(date, decision.orders, current_prices, violations)

        final = self._finalize(date, decision, timestamp, accepted, violations, current_prices)
        self.state = AgentState.DONE
        logger.info(
            f"{self.signature} {date}: {len(accepted)}/{len(decision.orders)} orders executed, "
            f"{len(violations)} violations, trades today {self.daily_trade_count}"
        )
        return final

    def get_performance_metrics(self, current_prices: Dict[str, float]) -> PerformanceMetrics:
        return self.ledger.get_performance_metrics(current_prices)

    def get_trade_history(self) -> List[TradeLog]:
        return self.ledger.get_trade_history()
