"""
Configuration for a simulation run, with safety latches on the risk limits.
"""
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .agents.schemas import (
    AgentMode,
    MarketRules,
    ModelConfig,
    OrderType,
    RiskConfig,
    SlippageModel,
    TradingHours,
)


DEFAULT_GOAL = "Conservative alpha generation with capital preservation for Indian equities"


@dataclass
class MarketConfig:
    """Static market reference data (NSE defaults)."""
    trading_hours: TradingHours = field(default_factory=TradingHours)
    settlement: str = "T+2"
    default_lot_size: int = 1
    default_tick_size: float = 0.05
    tick_sizes: Dict[str, float] = field(default_factory=dict)
    circuit_limit_pct: Optional[float] = 10.0

    def market_rules(self, tickers: List[str]) -> MarketRules:
        """Build the per-day MarketRules for the given tickers."""
        return MarketRules(
            lot_size={t: self.default_lot_size for t in tickers},
            trading_hours=self.trading_hours,
            tick_size={t: self.tick_size_for(t) for t in tickers},
            circuit_limit_pct=self.circuit_limit_pct,
        )

    def tick_size_for(self, symbol: str) -> float:
        return self.tick_sizes.get(symbol.upper(), self.default_tick_size)


@dataclass
class ProviderSettings:
    """Credentials and endpoints for the oracle backends."""
    gemini_api_key: str = ""
    openai_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"
    lmstudio_base_url: str = "http://localhost:1234/v1"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"


@dataclass
class TradingConfig:
    initial_cash: float = 100000.0
    risk: RiskConfig = field(default_factory=RiskConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    models: List[ModelConfig] = field(default_factory=list)
    providers: ProviderSettings = field(default_factory=ProviderSettings)

    mode: AgentMode = AgentMode.REPLAY
    goal: str = DEFAULT_GOAL
    allowed_order_types: List[OrderType] = field(
        default_factory=lambda: [OrderType.MARKET, OrderType.LIMIT]
    )
    oracle_timeout_seconds: float = 120.0

    rag_enabled: bool = False
    rag_sample_rate: float = 0.2
    similarity_threshold: float = 0.7
    max_context_examples: int = 5
    retrieval_timeout_seconds: float = 30.0
    embedding_model: str = "nomic-embed-text"
    embedding_base_url: Optional[str] = None
    memory_db_path: str = "./data/arena_memory.db"

    log_dir: str = "./data/logs"

    def __post_init__(self):
        self._validate_safety()

    def _validate_safety(self):
        """Reject limits the simulator cannot honour."""
        if self.initial_cash <= 0:
            raise ValueError("SAFETY: initial_cash must be positive")
        if self.risk.allow_margin:
            raise ValueError(
                "SAFETY: allow_margin=true requested but margin/leverage accounting is not supported. "
                "Every buy must be fully funded by cash."
            )
        if not 0.0 <= self.rag_sample_rate <= 1.0:
            raise ValueError("rag_sample_rate must be within [0, 1]")
        if self.oracle_timeout_seconds <= 0:
            raise ValueError("oracle_timeout_seconds must be positive")
        signatures = [m.signature for m in self.models]
        duplicates = {s for s in signatures if signatures.count(s) > 1}
        if duplicates:
            raise ValueError(f"Duplicate strategy signatures: {sorted(duplicates)}")

    @property
    def enabled_models(self) -> List[ModelConfig]:
        return [m for m in self.models if m.enabled]


def load_models(path: str) -> List[ModelConfig]:
    """
    Load strategy definitions from a JSON file.

    Accepts either a bare list of model entries or an object with a
    "models" key, e.g. {"models": [{"name": ..., "basemodel": ...,
    "provider": "ollama", "signature": ..., "enabled": true}]}.
    """
    with open(Path(path), "r") as f:
        data = json.load(f)
    entries = data.get("models", []) if isinstance(data, dict) else data
    return [ModelConfig.model_validate(entry) for entry in entries]


def _env_bool(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).lower() == "true"


def load_config() -> TradingConfig:
    """Load configuration from environment variables."""
    slippage_type = os.getenv("SLIPPAGE_TYPE", "percent").lower()
    if slippage_type not in ("percent", "fixed"):
        slippage_type = "percent"

    risk = RiskConfig(
        max_position_pct=float(os.getenv("MAX_POSITION_PCT", "0.25")),
        max_total_exposure_pct=float(os.getenv("MAX_TOTAL_EXPOSURE_PCT", "0.8")),
        min_cash_reserve_pct=float(os.getenv("MIN_CASH_RESERVE_PCT", "0.1")),
        max_daily_trades=int(os.getenv("MAX_DAILY_TRADES", "5")),
        allow_margin=_env_bool("ALLOW_MARGIN"),
        slippage_model=SlippageModel(
            type=slippage_type,
            value=float(os.getenv("SLIPPAGE_VALUE", "0.1")),
        ),
        max_order_value=float(os.getenv("MAX_ORDER_VALUE", "50000")),
    )

    mode_str = os.getenv("AGENT_MODE", "replay").lower()
    try:
        mode = AgentMode(mode_str)
    except ValueError:
        mode = AgentMode.REPLAY

    models_file = os.getenv("MODELS_FILE", "")
    models = load_models(models_file) if models_file else []

    return TradingConfig(
        initial_cash=float(os.getenv("INITIAL_CASH", "100000")),
        risk=risk,
        models=models,
        providers=ProviderSettings(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            lmstudio_base_url=os.getenv("LMSTUDIO_BASE_URL", "http://localhost:1234/v1"),
        ),
        mode=mode,
        oracle_timeout_seconds=float(os.getenv("ORACLE_TIMEOUT_SECONDS", "120")),
        rag_enabled=_env_bool("RAG_ENABLED"),
        similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", "0.7")),
        max_context_examples=int(os.getenv("MAX_CONTEXT_EXAMPLES", "5")),
        embedding_model=os.getenv("EMBEDDING_MODEL", "nomic-embed-text"),
        embedding_base_url=os.getenv("EMBEDDING_BASE_URL") or None,
        memory_db_path=os.getenv("MEMORY_DB_PATH", "./data/arena_memory.db"),
        log_dir=os.getenv("LOG_DIR", "./data/logs"),
    )
