"""
Pydantic schemas for the paper-trading arena.

Wire names are camelCase (the contract the oracles see and answer in),
Python attributes are snake_case. Both spellings are accepted on input.
"""
from enum import Enum
from typing import Optional, List, Dict, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AgentMode(str, Enum):
    REPLAY = "replay"
    LIVE = "live"
    PAPER_SIM = "paper-sim"


class OrderAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP_LIMIT = "stop_limit"


class AgentState(str, Enum):
    """Per-strategy processing state for one trading day."""
    IDLE = "idle"
    BUILDING_INPUT = "building_input"
    AWAITING_DECISION = "awaiting_decision"
    VALIDATING_ORDERS = "validating_orders"
    APPLYING = "applying"
    DONE = "done"
    FAILED = "failed"


class ProviderKind(str, Enum):
    GEMINI = "gemini"
    OLLAMA = "ollama"
    LMSTUDIO = "lmstudio"
    OPENAI = "openai"


# --- Market data ------------------------------------------------------------


class OHLCVData(WireModel):
    """One daily candle."""
    symbol: str
    date: str
    open: float
    high: float
    low: float
    close: float = Field(gt=0)
    volume: float = Field(default=0, ge=0)


class SymbolMarketData(WireModel):
    """Latest candle plus optional trailing history for one symbol."""
    latest_candle: OHLCVData
    history: List[OHLCVData] = Field(default_factory=list)


class NewsItem(WireModel):
    id: str
    time: str
    source: str
    title: str
    summary: str = ""
    sentiment: Optional[Literal["positive", "neutral", "negative"]] = None


class FundamentalData(WireModel):
    """Fundamentals snapshot; unknown ratios are passed through untouched."""
    model_config = ConfigDict(extra="allow")

    symbol: str
    company_name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    market_cap: Optional[float] = None
    pe_ratio: Optional[float] = None
    pb_ratio: Optional[float] = None
    eps: Optional[float] = None
    dividend_yield: Optional[float] = None
    debt_to_equity: Optional[float] = None
    roe: Optional[float] = None
    beta: Optional[float] = None
    avg_volume: Optional[float] = None
    description: Optional[str] = None


# --- Account ----------------------------------------------------------------


class Position(WireModel):
    """Open position owned by one ledger."""
    symbol: str
    quantity: int
    avg_price: float
    current_price: float
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0


class AccountState(WireModel):
    """Derived account view; recomputed on demand, never persisted."""
    cash: float
    positions: Dict[str, int] = Field(default_factory=dict)
    portfolio_value: float
    buying_power: float
    total_pnl: float = 0.0


class PortfolioUpdates(WireModel):
    """Partial account snapshot as reported in a decision."""
    cash: Optional[float] = None
    positions: Optional[Dict[str, float]] = None
    portfolio_value: Optional[float] = None
    buying_power: Optional[float] = None
    total_pnl: Optional[float] = None

    @classmethod
    def from_account(cls, account: AccountState) -> "PortfolioUpdates":
        return cls(**account.model_dump())


class PerformanceMetrics(WireModel):
    initial_cash: float
    current_value: float
    total_return_pct: float
    total_pnl: float
    realized_pnl: float = 0.0
    cash: float
    num_positions: int
    num_trades: int


# --- Orders and decisions ---------------------------------------------------


class Signal(WireModel):
    name: str
    value: Union[str, float, bool, None] = None
    details: Optional[str] = None
    score: Optional[float] = None


class ConstraintsChecked(WireModel):
    within_max_position_pct: bool = False
    within_max_total_exposure_pct: bool = False
    within_max_order_value: bool = False
    inside_trading_hours: bool = False


class Order(WireModel):
    """Simulated order proposed by an oracle. Immutable once validated."""
    model_config = ConfigDict(frozen=True)

    order_id: Optional[str] = None
    simulated: bool = True
    action: OrderAction
    symbol: str = ""
    quantity: int = Field(default=0, ge=0)
    order_type: OrderType = OrderType.MARKET
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    estimated_execution_price: float = Field(default=0.0, ge=0)
    notional: float = 0.0
    risk_to_reward: Optional[float] = None
    max_loss_amount: Optional[float] = None
    confidence: float = Field(ge=0.0, le=1.0)
    rationale: str = ""
    signals: List[Signal] = Field(default_factory=list)
    constraints_checked: ConstraintsChecked = Field(default_factory=ConstraintsChecked)
    explainable_actions: List[str] = Field(default_factory=list)

    @field_validator("symbol")
    @classmethod
    def uppercase_symbol(cls, v: str) -> str:
        return v.upper().strip()

    @field_validator("action", "order_type", mode="before")
    @classmethod
    def lowercase_enum(cls, v: Any) -> Any:
        return v.lower().strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_tradeable(self) -> "Order":
        if self.action != OrderAction.HOLD:
            if not self.symbol:
                raise ValueError(f"{self.action.value} order requires a symbol")
            if self.quantity <= 0:
                raise ValueError(f"{self.action.value} order requires a positive integer quantity")
        return self

    @property
    def cost(self) -> float:
        return self.quantity * self.estimated_execution_price


class ExpectedPortfolioChange(WireModel):
    cash_delta: float = 0.0
    position_changes: Dict[str, float] = Field(default_factory=dict)


class Diagnostics(WireModel):
    model_config = ConfigDict(frozen=True)

    summary: str = ""
    key_signals: List[str] = Field(default_factory=list)
    confidence_overall: float = Field(default=0.0, ge=0.0, le=1.0)
    expected_portfolio_change: Optional[ExpectedPortfolioChange] = None
    rule_violations: List[str] = Field(default_factory=list)
    details: Optional[str] = None


class TradingDecision(WireModel):
    """One decision per (strategy, trading day). Immutable once returned."""
    model_config = ConfigDict(frozen=True)

    timestamp: Optional[str] = None
    orders: List[Order] = Field(default_factory=list)
    portfolio_updates: Optional[PortfolioUpdates] = None
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)

    def to_wire(self) -> Dict[str, Any]:
        # all four envelope keys, even when null
        return self.model_dump(mode="json", by_alias=True)


# --- Configuration passed to the oracle -------------------------------------


class SlippageModel(WireModel):
    """percent: value is a percentage of price; fixed: value is currency per share."""
    model_config = ConfigDict(frozen=True)

    type: Literal["percent", "fixed"] = "percent"
    value: float = Field(default=0.1, ge=0)


class RiskConfig(WireModel):
    """Hard risk limits, fixed for the lifetime of a simulation run."""
    model_config = ConfigDict(frozen=True)

    max_position_pct: float = Field(default=0.25, ge=0, le=1)
    max_total_exposure_pct: float = Field(default=0.8, ge=0, le=1)
    min_cash_reserve_pct: float = Field(default=0.1, ge=0, le=1)
    max_daily_trades: int = Field(default=5, ge=0)
    allow_margin: bool = False
    slippage_model: SlippageModel = Field(default_factory=SlippageModel)
    max_order_value: float = Field(default=50000.0, ge=0)


class TradingHours(WireModel):
    model_config = ConfigDict(frozen=True)

    start: str = "09:15"
    end: str = "15:30"
    timezone: str = "Asia/Kolkata"


class MarketRules(WireModel):
    lot_size: Dict[str, int] = Field(default_factory=dict)
    trading_hours: TradingHours = Field(default_factory=TradingHours)
    tick_size: Dict[str, float] = Field(default_factory=dict)
    circuit_limit_pct: Optional[float] = None


class Instructions(WireModel):
    goal: str
    allowed_order_types: List[OrderType] = Field(
        default_factory=lambda: [OrderType.MARKET, OrderType.LIMIT]
    )
    reporting_mode: Literal["json_only", "json+human"] = "json_only"


class AgentInput(WireModel):
    """Everything an oracle may look at for one decision."""
    mode: AgentMode = AgentMode.REPLAY
    timestamp: str
    tickers: List[str]
    market_data: Dict[str, SymbolMarketData]
    news: List[NewsItem] = Field(default_factory=list)
    fundamentals: Optional[Dict[str, FundamentalData]] = None
    account: AccountState
    market_rules: MarketRules
    config: RiskConfig
    instructions: Instructions
    historical_context: Optional[Dict[str, str]] = None


# --- Audit records ----------------------------------------------------------


class ValidationResult(BaseModel):
    """Outcome of the order validator."""
    valid: bool
    reason: Optional[str] = None


class TradeAction(WireModel):
    model_config = ConfigDict(frozen=True)

    action: OrderAction
    symbol: str
    amount: int
    price: float


class TradeLog(WireModel):
    """Append-only record written once per executed order."""
    model_config = ConfigDict(frozen=True)

    date: str
    id: int
    this_action: TradeAction
    positions: Dict[str, int]
    portfolio_value: float
    pnl: float
    reasoning: Optional[str] = None


# --- Oracle configuration ---------------------------------------------------


class ModelConfig(WireModel):
    """One strategy: an oracle backend and model, keyed by a unique signature."""
    name: str
    basemodel: str
    provider: ProviderKind
    signature: str
    enabled: bool = True


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
