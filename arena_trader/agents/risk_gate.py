"""
RiskGateAgent - Deterministic gatekeeper.

Purpose: Check one proposed order against the ledger and the run's RiskConfig
This is the "hard wall" between the oracle and the ledger.

Rules enforced (first failure wins):
- confidence floor (orders under 0.25 never execute)
- positive execution price
- buy: cash, max order value, max position %, max total exposure, min cash reserve
- sell: sufficient existing quantity
- hold: always valid

Validation is read-only: it never mutates the ledger.
"""
import logging
from typing import Dict, Any

from .schemas import Order, OrderAction, RiskConfig, ValidationResult
from .portfolio import PortfolioLedger

logger = logging.getLogger("arena_trader.agents.risk_gate")

MIN_ORDER_CONFIDENCE = 0.25


def validate_order(
    ledger: PortfolioLedger,
    order: Order,
    current_prices: Dict[str, float],
    risk_config: RiskConfig,
) -> ValidationResult:
    """
    Validate a single order against the ledger's current state.

    Returns:
        ValidationResult with valid flag and the first failing reason
    """
    if order.action == OrderAction.HOLD:
        return ValidationResult(valid=True)

    if order.confidence < MIN_ORDER_CONFIDENCE:
        return ValidationResult(
            valid=False,
            reason=f"Confidence below minimum ({order.confidence:.2f} < {MIN_ORDER_CONFIDENCE})",
        )

    price = order.estimated_execution_price
    if price <= 0:
        return ValidationResult(valid=False, reason="Invalid execution price")

    if order.action == OrderAction.SELL:
        position = ledger.get_position(order.symbol)
        if not position or position.quantity < order.quantity:
            return ValidationResult(valid=False, reason="Insufficient position to sell")
        return ValidationResult(valid=True)

    cost = order.quantity * price
    cash = ledger.cash

    if cost > cash:
        return ValidationResult(valid=False, reason="Insufficient cash")

    if cost > risk_config.max_order_value:
        return ValidationResult(valid=False, reason="Exceeds max order value")

    account = ledger.get_account_state(current_prices)
    portfolio_value = account.portfolio_value

    position_pct = cost / portfolio_value
    if position_pct > risk_config.max_position_pct:
        return ValidationResult(
            valid=False,
            reason=f"Exceeds max position % ({position_pct:.2f} > {risk_config.max_position_pct})",
        )

    total_exposure = (portfolio_value - cash + cost) / portfolio_value
    if total_exposure > risk_config.max_total_exposure_pct:
        return ValidationResult(valid=False, reason="Exceeds max total exposure")

    cash_reserve_pct = (cash - cost) / portfolio_value
    if cash_reserve_pct < risk_config.min_cash_reserve_pct:
        return ValidationResult(valid=False, reason="Violates minimum cash reserve")

    return ValidationResult(valid=True)


class RiskGateAgent:
    """Risk gate bound to the run's fixed RiskConfig."""

    def __init__(self, risk_config: RiskConfig):
        self.risk_config = risk_config

    def validate(
        self,
        ledger: PortfolioLedger,
        order: Order,
        current_prices: Dict[str, float],
    ) -> ValidationResult:
        result = validate_order(ledger, order, current_prices, self.risk_config)
        if not result.valid:
            logger.warning(
                f"Order rejected: {order.action.value} {order.symbol} x{order.quantity} - {result.reason}"
            )
        return result

    def get_risk_summary(self) -> Dict[str, Any]:
        """Get current risk configuration summary."""
        return {
            "max_position_pct": self.risk_config.max_position_pct,
            "max_total_exposure_pct": self.risk_config.max_total_exposure_pct,
            "min_cash_reserve_pct": self.risk_config.min_cash_reserve_pct,
            "max_daily_trades": self.risk_config.max_daily_trades,
            "max_order_value": self.risk_config.max_order_value,
            "allow_margin": self.risk_config.allow_margin,
            "slippage_model": self.risk_config.slippage_model.model_dump(),
            "min_order_confidence": MIN_ORDER_CONFIDENCE,
        }
