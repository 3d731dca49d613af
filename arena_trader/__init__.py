"""
Arena Trader - paper-trading arena for LLM trading strategies.

Every enabled strategy (an oracle backend plus model) sees the same
trading days, proposes orders as a JSON decision, and trades against
its own simulated ledger behind a deterministic risk gate.
"""

__version__ = "0.1.0"
