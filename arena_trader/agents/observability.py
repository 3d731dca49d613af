"""
ObservabilityAgent - Durable audit trail for one strategy.

Purpose: Append every executed trade, every finalized decision and a daily
performance snapshot to JSONL files. Write failures are logged, never raised.
"""
import logging
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from .schemas import PerformanceMetrics, TradeLog, TradingDecision

logger = logging.getLogger("arena_trader.agents.observability")


class ObservabilityAgent:
    """JSONL audit sink rooted at log_dir (usually log_dir/<signature>)."""

    def __init__(self, log_dir: str, signature: Optional[str] = None):
        self.signature = signature
        self.log_dir = Path(log_dir) / signature if signature else Path(log_dir)
        self.trades_file = self.log_dir / "trades.jsonl"
        self.performance_file = self.log_dir / "performance.jsonl"
        self._ensure_log_dir()

    def _ensure_log_dir(self):
        """Ensure log directories exist."""
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            (self.log_dir / "decisions").mkdir(exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create log directory {self.log_dir}: {e}")

    def _append(self, path: Path, record: dict) -> bool:
        try:
            with open(path, "a") as f:
                f.write(json.dumps(record, default=str) + "\n")
            return True
        except Exception as e:
            logger.error(f"Failed to append to {path}: {e}")
            return False

    def log_trade(self, trade: TradeLog):
        """Append one TradeLog record to trades.jsonl."""
        if self._append(self.trades_file, trade.to_wire()):
            action = trade.this_action
            logger.info(
                f"Trade logged: #{trade.id} {action.action.value} {action.symbol} "
                f"x{action.amount} @ ₹{action.price:.2f}"
            )

    def log_decision(self, date: str, decision: TradingDecision):
        """Append a finalized decision to decisions/decisions_YYYYMMDD.jsonl."""
        date_str = date.replace("-", "")[:8]
        record = {
            "logged_at": datetime.utcnow().isoformat(),
            "date": date,
            "signature": self.signature,
            "decision": decision.to_wire(),
        }
        path = self.log_dir / "decisions" / f"decisions_{date_str}.jsonl"
        if self._append(path, record):
            diagnostics = decision.diagnostics
            logger.info(
                f"DECISION SUMMARY | "
                f"Strategy: {self.signature or '-'} | "
                f"Date: {date} | "
                f"Orders: {len(decision.orders)} | "
                f"Violations: {len(diagnostics.rule_violations)} | "
                f"Summary: {diagnostics.summary[:60]}"
            )

    def log_performance(self, date: str, metrics: PerformanceMetrics):
        """Append an end-of-day performance snapshot."""
        record = {"date": date, "signature": self.signature, **metrics.to_wire()}
        self._append(self.performance_file, record)

    def _read_jsonl(self, path: Path) -> list[dict]:
        records = []
        if not path.exists():
            return records
        try:
            with open(path, "r") as f:
                for line in f:
                    if line.strip():
                        records.append(json.loads(line))
        except Exception as e:
            logger.error(f"Failed to read {path}: {e}")
        return records

    def get_trades(self) -> list[dict]:
        return self._read_jsonl(self.trades_file)

    def get_decisions(self, date: str) -> list[dict]:
        date_str = date.replace("-", "")[:8]
        return self._read_jsonl(self.log_dir / "decisions" / f"decisions_{date_str}.jsonl")

    def get_performance_history(self) -> list[dict]:
        return self._read_jsonl(self.performance_file)
