"""
PortfolioLedger - Simulated cash and position bookkeeping for one strategy.

Purpose: Own cash, open positions, realized/unrealized P&L and the trade history
Invariants: cash never goes negative; no zero-quantity positions; sells do not move avg_price
"""
import logging
from typing import Dict, List, Optional, Protocol

from .schemas import (
    AccountState,
    Order,
    OrderAction,
    PerformanceMetrics,
    Position,
    TradeAction,
    TradeLog,
)

logger = logging.getLogger("arena_trader.agents.portfolio")


class TradeLogSink(Protocol):
    """Durable append-only destination for TradeLog records."""

    def log_trade(self, trade: TradeLog) -> None:
        ...


class PortfolioLedger:
    """Paper ledger. Never shared between strategies."""

    def __init__(self, initial_cash: float, sink: Optional[TradeLogSink] = None):
        if initial_cash <= 0:
            raise ValueError("initial_cash must be positive")
        self.initial_cash = float(initial_cash)
        self.cash = float(initial_cash)
        self.realized_pnl = 0.0
        self.sink = sink
        self._positions: Dict[str, Position] = {}
        self._trade_history: List[TradeLog] = []

    @property
    def positions(self) -> Dict[str, Position]:
        """Copy of the open positions keyed by symbol."""
        return {s: p.model_copy() for s, p in self._positions.items()}

    def get_position(self, symbol: str) -> Optional[Position]:
        position = self._positions.get(symbol.upper())
        return position.model_copy() if position else None

    def get_account_state(self, current_prices: Dict[str, float]) -> AccountState:
        """
        Derive the account view from the ledger and a price map.

        Marks each open position to the supplied price, falling back to
        avg_price when a symbol is missing. Cash and quantities are untouched.
        """
        portfolio_value = self.cash
        quantities: Dict[str, int] = {}
        unrealized = 0.0

        for symbol, position in self._positions.items():
            price = current_prices.get(symbol) or position.avg_price
            position.current_price = price
            position.unrealized_pnl = (price - position.avg_price) * position.quantity
            quantities[symbol] = position.quantity
            portfolio_value += position.quantity * price
            unrealized += position.unrealized_pnl

        return AccountState(
            cash=self.cash,
            positions=quantities,
            portfolio_value=portfolio_value,
            buying_power=self.cash,  # no margin
            total_pnl=self.realized_pnl + unrealized,
        )

    def buy(self, symbol: str, quantity: int, price: float) -> bool:
        """Fully cash-funded buy. Returns False without mutating on rejection."""
        symbol = symbol.upper()
        if quantity <= 0 or price <= 0:
            logger.warning(f"Rejected buy with non-positive size/price: {symbol} x{quantity} @ {price}")
            return False

        cost = quantity * price
        if cost > self.cash:
            logger.warning(f"Insufficient cash for buy order: {symbol} x{quantity} @ ₹{price:.2f}")
            return False

        self.cash -= cost

        existing = self._positions.get(symbol)
        if existing:
            total_quantity = existing.quantity + quantity
            existing.avg_price = (existing.avg_price * existing.quantity + cost) / total_quantity
            existing.quantity = total_quantity
        else:
            self._positions[symbol] = Position(
                symbol=symbol,
                quantity=quantity,
                avg_price=price,
                current_price=price,
            )

        logger.info(f"BUY {symbol} x{quantity} @ ₹{price:.2f} | Cash: ₹{self.cash:.2f}")
        return True

    def sell(self, symbol: str, quantity: int, price: float) -> bool:
        """Sell from an existing position. Returns False without mutating on rejection."""
        symbol = symbol.upper()
        if quantity <= 0 or price <= 0:
            logger.warning(f"Rejected sell with non-positive size/price: {symbol} x{quantity} @ {price}")
            return False

        existing = self._positions.get(symbol)
        if not existing or existing.quantity < quantity:
            logger.warning(f"Insufficient position to sell: {symbol} x{quantity}")
            return False

        self.cash += quantity * price

        pnl = (price - existing.avg_price) * quantity
        existing.realized_pnl += pnl
        self.realized_pnl += pnl
        existing.quantity -= quantity

        if existing.quantity == 0:
            del self._positions[symbol]

        logger.info(
            f"SELL {symbol} x{quantity} @ ₹{price:.2f} | P&L: ₹{pnl:.2f} | Cash: ₹{self.cash:.2f}"
        )
        return True

    def execute_order(self, order: Order) -> bool:
        """Apply a validated order at its estimated execution price. Hold is a no-op."""
        if order.action == OrderAction.BUY:
            return self.buy(order.symbol, order.quantity, order.estimated_execution_price)
        if order.action == OrderAction.SELL:
            return self.sell(order.symbol, order.quantity, order.estimated_execution_price)
        return False

    def log_trade(self, date: str, order: Order, current_prices: Dict[str, float]) -> TradeLog:
        """Append one TradeLog with the post-trade account snapshot."""
        account = self.get_account_state(current_prices)

        record = TradeLog(
            date=date,
            id=len(self._trade_history) + 1,
            this_action=TradeAction(
                action=order.action,
                symbol=order.symbol,
                amount=order.quantity,
                price=order.estimated_execution_price,
            ),
            positions=account.positions,
            portfolio_value=account.portfolio_value,
            pnl=account.total_pnl,
            reasoning=order.rationale or None,
        )
        self._trade_history.append(record)

        if self.sink is not None:
            try:
                self.sink.log_trade(record)
            except Exception as e:
                logger.error(f"Error saving trade log #{record.id}: {e}")

        return record

    def get_performance_metrics(self, current_prices: Dict[str, float]) -> PerformanceMetrics:
        account = self.get_account_state(current_prices)
        total_return = (account.portfolio_value - self.initial_cash) / self.initial_cash * 100

        return PerformanceMetrics(
            initial_cash=self.initial_cash,
            current_value=account.portfolio_value,
            total_return_pct=total_return,
            total_pnl=account.total_pnl,
            realized_pnl=self.realized_pnl,
            cash=self.cash,
            num_positions=len(self._positions),
            num_trades=len(self._trade_history),
        )

    def get_trade_history(self) -> List[TradeLog]:
        return list(self._trade_history)

    def reset(self):
        """Restore the starting state. Only for a fresh simulation run."""
        self.cash = self.initial_cash
        self.realized_pnl = 0.0
        self._positions.clear()
        self._trade_history = []
        logger.info(f"Ledger reset to ₹{self.initial_cash:.2f}")
