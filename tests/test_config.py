"""
Configuration and safety latch tests.
"""
import json
import os
from unittest.mock import patch

import pytest

from arena_trader.agents.schemas import AgentMode, ModelConfig, ProviderKind, RiskConfig
from arena_trader.config import TradingConfig, load_config, load_models


class TestSafetyLatches:
    """Limits the simulator cannot honour are rejected up front."""

    def test_margin_rejected(self):
        with pytest.raises(ValueError, match="SAFETY"):
            TradingConfig(risk=RiskConfig(allow_margin=True))

    def test_non_positive_cash_rejected(self):
        with pytest.raises(ValueError, match="SAFETY"):
            TradingConfig(initial_cash=0)

    def test_sample_rate_bounds(self):
        with pytest.raises(ValueError):
            TradingConfig(rag_sample_rate=1.5)

    def test_oracle_timeout_positive(self):
        with pytest.raises(ValueError):
            TradingConfig(oracle_timeout_seconds=0)

    def test_duplicate_signatures_rejected(self):
        models = [
            ModelConfig(name="a", basemodel="m", provider="ollama", signature="same"),
            ModelConfig(name="b", basemodel="m", provider="lmstudio", signature="same"),
        ]
        with pytest.raises(ValueError, match="Duplicate"):
            TradingConfig(models=models)

    def test_risk_limits_are_bounded(self):
        with pytest.raises(ValueError):
            RiskConfig(max_position_pct=1.5)


class TestDefaults:

    def test_default_config(self):
        with patch.dict(os.environ, {}, clear=True):
            cfg = load_config()
        assert cfg.initial_cash == 100000.0
        assert cfg.mode == AgentMode.REPLAY
        assert cfg.risk.max_position_pct == 0.25
        assert cfg.risk.max_total_exposure_pct == 0.8
        assert cfg.risk.min_cash_reserve_pct == 0.1
        assert cfg.risk.max_daily_trades == 5
        assert cfg.risk.max_order_value == 50000.0
        assert cfg.risk.allow_margin is False
        assert cfg.risk.slippage_model.type == "percent"
        assert cfg.market.trading_hours.timezone == "Asia/Kolkata"
        assert cfg.rag_enabled is False
        assert cfg.models == []

    def test_env_overrides(self):
        env = {
            "INITIAL_CASH": "250000",
            "MAX_DAILY_TRADES": "3",
            "SLIPPAGE_TYPE": "fixed",
            "SLIPPAGE_VALUE": "0.05",
            "AGENT_MODE": "paper-sim",
            "RAG_ENABLED": "true",
            "ORACLE_TIMEOUT_SECONDS": "30",
        }
        with patch.dict(os.environ, env, clear=True):
            cfg = load_config()
        assert cfg.initial_cash == 250000.0
        assert cfg.risk.max_daily_trades == 3
        assert cfg.risk.slippage_model.type == "fixed"
        assert cfg.mode == AgentMode.PAPER_SIM
        assert cfg.rag_enabled is True
        assert cfg.oracle_timeout_seconds == 30.0

    def test_margin_from_env_is_rejected(self):
        with patch.dict(os.environ, {"ALLOW_MARGIN": "true"}, clear=True):
            with pytest.raises(ValueError, match="SAFETY"):
                load_config()

    def test_market_rules_per_ticker(self):
        rules = TradingConfig().market.market_rules(["TCS", "INFY"])
        assert rules.lot_size == {"TCS": 1, "INFY": 1}
        assert rules.tick_size["INFY"] == 0.05
        assert rules.trading_hours.end == "15:30"


class TestModelsFile:

    def _write(self, tmp_path, data):
        path = tmp_path / "models.json"
        path.write_text(json.dumps(data))
        return str(path)

    def test_object_form(self, tmp_path):
        path = self._write(tmp_path, {"models": [
            {"name": "Llama", "basemodel": "llama3.1:8b", "provider": "ollama", "signature": "ollama-llama"},
            {"name": "Off", "basemodel": "x", "provider": "gemini", "signature": "off", "enabled": False},
        ]})
        models = load_models(path)
        assert [m.provider for m in models] == [ProviderKind.OLLAMA, ProviderKind.GEMINI]
        assert [m.signature for m in TradingConfig(models=models).enabled_models] == ["ollama-llama"]

    def test_list_form_via_env(self, tmp_path):
        path = self._write(tmp_path, [
            {"name": "GPT", "basemodel": "gpt-4o-mini", "provider": "openai", "signature": "openai-mini"},
        ])
        with patch.dict(os.environ, {"MODELS_FILE": path}, clear=True):
            cfg = load_config()
        assert cfg.models[0].basemodel == "gpt-4o-mini"
