"""
Decision protocol - the request/response contract with the oracles.

Purpose: Render the fixed system prompt and input message, and turn an oracle's
raw text back into a TradingDecision.
Hard constraints:
- One top-level JSON object with timestamp, orders, portfolio_updates, diagnostics
- Every order carries a numeric confidence
- Unparseable output is a provider failure, never a crash
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .schemas import (
    AgentInput,
    Diagnostics,
    ExpectedPortfolioChange,
    Order,
    PortfolioUpdates,
    TradingDecision,
)
from ..llm.base import DecisionParseError

logger = logging.getLogger("arena_trader.agents.decision")

REQUIRED_KEYS = ("timestamp", "orders", "diagnostics")
PORTFOLIO_KEYS = ("portfolio_updates", "portfolioUpdates")

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_GREEDY_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

TRADING_AGENT_SYSTEM_PROMPT = """You are an autonomous paper-trading agent for Indian equities (NSE/BSE tickers), running in historical-replay or simulated live mode. You analyze market data, account status and news, and output structured, machine-parsable simulated trade decisions (or no trade). You NEVER place real trades.

ROLE:
- Receive market data, account status and news; produce zero or more simulated orders and a concise, auditable rationale.
- Always obey the risk limits and market rules passed in "config" and "marketRules" (lot sizes, trading hours, settlement).
- NO LOOK-AHEAD: use only data dated at or before the provided "timestamp". Treat all later data as inaccessible.

OUTPUT FORMAT (MANDATORY, the orchestrator rejects anything else):
Return ONLY one top-level JSON object, no prose, with exactly these keys:
{
  "timestamp": "<the timestamp you were given>",
  "orders": [],
  "portfolio_updates": {},
  "diagnostics": {}
}
"orders" may be empty. "portfolio_updates" is your expected post-order portfolio snapshot.

Each order must look like:
{
  "orderId": null,
  "simulated": true,
  "action": "buy" | "sell" | "hold",
  "symbol": "TCS",
  "quantity": 10,
  "orderType": "market" | "limit" | "stop_limit",
  "limitPrice": 3720.0,
  "stopPrice": null,
  "estimatedExecutionPrice": 3720.0,
  "notional": 37200.0,
  "riskToReward": 0.5,
  "maxLossAmount": 200.0,
  "confidence": 0.73,
  "rationale": "Short-term EMA cross with positive news flow and contained volatility.",
  "signals": [
    {"name": "ema_cross", "value": "bullish", "details": "5EMA > 20EMA on daily"},
    {"name": "news_sentiment", "value": "positive", "score": 0.7}
  ],
  "constraintsChecked": {
    "withinMaxPositionPct": true,
    "withinMaxTotalExposurePct": true,
    "withinMaxOrderValue": true,
    "insideTradingHours": true
  },
  "explainableActions": ["2-5 short audit bullets"]
}

DIAGNOSTICS (required):
{
  "summary": "1-2 sentences on the decision, or why there are no trades.",
  "keySignals": ["ema_cross", "news_sentiment"],
  "confidenceOverall": 0.59,
  "expectedPortfolioChange": {"cashDelta": -37200.0, "positionChanges": {"TCS": 10}},
  "ruleViolations": []
}

HARD RULES:
1. ALWAYS obey the config risk limits. If a trade would breach one, shrink it to comply or skip it.
2. NEVER use or assume data newer than "timestamp".
3. NEVER use margin or leverage unless allowMargin is true.
4. In replay mode historical data is the only input.
5. Compute estimatedExecutionPrice for every trade using the provided slippageModel.
6. Give a compact, auditable rationale for every order (2-5 bullets).
7. Give every order a numeric confidence between 0.0 and 1.0. Do not place orders with confidence below 0.25.
8. When reportingMode is "json_only", output JSON and nothing else.

INDIAN MARKET RULES:
- Trading hours 09:15-15:30 IST, Monday to Friday
- T+2 settlement
- Lot size is usually 1 share
- Circuit limits of 10% or 20% depending on the stock
- Currency INR (₹), tick size ₹0.05 for most stocks

FAIL RESPONSE:
If the input is malformed or missing required fields, return:
{"timestamp": "<input timestamp or null>", "orders": [], "portfolioUpdates": null,
 "diagnostics": {"summary": "input_error", "details": "<which fields are missing>"}}
"""


def create_agent_input_message(agent_input: AgentInput) -> str:
    """Serialize the agent input into the user message sent with the system prompt."""
    payload = json.dumps(agent_input.to_wire(), indent=2)
    return (
        "Here is the current market state and your task:\n\n"
        f"{payload}\n\n"
        "Provide your trading decision as a valid JSON object following the exact schema defined above."
    )


def create_empty_decision(
    timestamp: Optional[str],
    summary: str,
    details: Optional[str] = None,
) -> TradingDecision:
    """A well-formed decision with no orders, explaining why in the summary."""
    return TradingDecision(
        timestamp=timestamp,
        orders=[],
        portfolio_updates=None,
        diagnostics=Diagnostics(
            summary=summary,
            key_signals=[],
            confidence_overall=0.0,
            expected_portfolio_change=ExpectedPortfolioChange(),
            rule_violations=[],
            details=details,
        ),
    )


def _has_envelope(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    if not all(key in data for key in REQUIRED_KEYS):
        return False
    return any(key in data for key in PORTFOLIO_KEYS)


def _candidates(text: str) -> List[str]:
    """Candidate JSON snippets in the order they are tried."""
    candidates = [text.strip()]
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    greedy = _GREEDY_OBJECT.search(text)
    if greedy:
        candidates.append(greedy.group(0))
    return candidates


def parse_decision_text(text: str) -> TradingDecision:
    """
    Extract a TradingDecision from raw oracle text.

    Tries, in order: the whole text as JSON, the first fenced code block,
    then everything from the first "{" to the last "}". The first candidate
    that parses into an object with all four envelope keys wins.

    Raises:
        DecisionParseError: if no strategy yields a usable envelope
    """
    if not text or not text.strip():
        raise DecisionParseError("Empty response from oracle")

    for candidate in _candidates(text):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if _has_envelope(data):
            return parse_decision_payload(data)

    preview = text.strip()[:200]
    logger.error(f"Failed to parse oracle response. Content: {preview}")
    raise DecisionParseError("No valid TradingDecision JSON object found in response")


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or "order"
    return f"{loc}: {first.get('msg', 'invalid')}"


def parse_decision_payload(data: Dict[str, Any]) -> TradingDecision:
    """
    Validate a decoded decision envelope at the system boundary.

    Orders that fail validation are dropped one by one and recorded as
    invalid_order[i] in rule_violations. A malformed portfolio_updates is
    discarded. Malformed diagnostics keep whatever summary they carried.
    """
    violations: List[str] = []

    orders: List[Order] = []
    raw_orders = data.get("orders") or []
    if not isinstance(raw_orders, list):
        violations.append("invalid_orders: expected a list")
        raw_orders = []

    for i, raw in enumerate(raw_orders):
        try:
            orders.append(Order.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Dropping invalid order #{i}: {_describe(e)}")
            violations.append(f"invalid_order[{i}]: {_describe(e)}")

    portfolio_updates = None
    raw_updates = data.get("portfolio_updates", data.get("portfolioUpdates"))
    if isinstance(raw_updates, dict):
        try:
            portfolio_updates = PortfolioUpdates.model_validate(raw_updates)
        except ValidationError as e:
            logger.warning(f"Discarding invalid portfolio_updates: {_describe(e)}")

    raw_diagnostics = data.get("diagnostics")
    try:
        diagnostics = Diagnostics.model_validate(raw_diagnostics or {})
    except ValidationError as e:
        logger.warning(f"Invalid diagnostics, keeping summary only: {_describe(e)}")
        summary = raw_diagnostics.get("summary") if isinstance(raw_diagnostics, dict) else None
        diagnostics = Diagnostics(summary=str(summary) if summary is not None else "")

    if violations:
        diagnostics = diagnostics.model_copy(
            update={"rule_violations": list(diagnostics.rule_violations) + violations}
        )

    timestamp = data.get("timestamp")
    return TradingDecision(
        timestamp=str(timestamp) if timestamp is not None else None,
        orders=orders,
        portfolio_updates=portfolio_updates,
        diagnostics=diagnostics,
    )
