"""
Command-line entry point.

    python -m arena_trader.main check --models models.json
    python -m arena_trader.main replay --bars bars.csv --news news.jsonl --models models.json
    python -m arena_trader.main decide --bars bars.csv --date 2024-01-15 --models models.json
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from datetime import date as date_cls
from typing import Dict, List, Optional

from .agents.decision import TRADING_AGENT_SYSTEM_PROMPT
from .agents.orchestrator import build_agent_input, market_close_timestamp
from .agents.portfolio import PortfolioLedger
from .agents.schemas import PerformanceMetrics, TradingDecision
from .config import TradingConfig, load_config, load_models
from .data import build_replay_days, load_bars_csv, load_news_jsonl, news_as_of, slice_market_data
from .llm.manager import MultiProviderManager
from .memory.embeddings import get_embedding_provider
from .memory.store import RetrievalStore
from .simulation import ArenaSimulation

logger = logging.getLogger("arena_trader")


def _setup_logging():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s [ARENA] %(levelname)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def _config_with_models(models_path: Optional[str]) -> TradingConfig:
    cfg = load_config()
    if models_path:
        cfg = replace(cfg, models=load_models(models_path))
    if not cfg.enabled_models:
        raise ValueError("No enabled strategies. Pass --models or set MODELS_FILE.")
    return cfg


def _manager(cfg: TradingConfig) -> MultiProviderManager:
    return MultiProviderManager(cfg.enabled_models, cfg.providers, timeout=cfg.oracle_timeout_seconds)


def print_decision(signature: str, decision: TradingDecision):
    diagnostics = decision.diagnostics
    print(f"\n[{signature}] {diagnostics.summary or '(no summary)'}")
    print(f"   Orders executed: {len(decision.orders)}")
    for order in decision.orders:
        print(
            f"   - {order.action.value.upper()} {order.symbol} x{order.quantity} "
            f"@ ₹{order.estimated_execution_price:,.2f} (confidence {order.confidence:.2f})"
        )
    if diagnostics.rule_violations:
        print(f"   Rule violations: {diagnostics.rule_violations}")
    if decision.portfolio_updates and decision.portfolio_updates.portfolio_value is not None:
        print(
            f"   Cash: ₹{decision.portfolio_updates.cash:,.2f} | "
            f"Portfolio: ₹{decision.portfolio_updates.portfolio_value:,.2f}"
        )


def print_results(results: Dict[str, PerformanceMetrics]):
    print(f"\n{'='*60}")
    print("FINAL RESULTS")
    print(f"{'='*60}")
    ranked = sorted(results.items(), key=lambda kv: kv[1].total_return_pct, reverse=True)
    for rank, (signature, m) in enumerate(ranked, start=1):
        print(
            f"{rank}. {signature}: ₹{m.current_value:,.2f} ({m.total_return_pct:+.2f}%) | "
            f"Cash: ₹{m.cash:,.2f} | Positions: {m.num_positions} | Trades: {m.num_trades} | "
            f"Realized P&L: ₹{m.realized_pnl:,.2f}"
        )


async def cmd_check(args) -> int:
    cfg = _config_with_models(args.models)
    manager = _manager(cfg)
    availability = await manager.check_availability()

    print(f"\n{'='*60}")
    print("Provider availability")
    print(f"{'='*60}")
    for model in cfg.enabled_models:
        status = availability.get(model.signature)
        label = "UP" if status else ("DOWN" if status is False else "NOT INITIALIZED")
        print(f"   {model.signature:<30} {model.provider.value:<10} {model.basemodel:<30} {label}")
    return 0 if availability and all(availability.values()) else 1


async def cmd_replay(args) -> int:
    cfg = _config_with_models(args.models)
    bars = load_bars_csv(args.bars)
    news = load_news_jsonl(args.news) if args.news else []
    days = build_replay_days(bars, news, start=args.start, end=args.end, history=args.history)
    if not days:
        print("No trading days in range.")
        return 1

    store = embedder = None
    if cfg.rag_enabled:
        store = RetrievalStore(cfg.memory_db_path)
        embedder = get_embedding_provider(
            cfg.embedding_model,
            base_url=cfg.embedding_base_url,
            api_key=cfg.providers.openai_api_key or None,
        )

    simulation = ArenaSimulation(cfg, _manager(cfg), store=store, embedder=embedder)
    if not simulation.agents:
        print("No strategy could be initialized.")
        return 1

    try:
        for day in days:
            print(f"\n{'='*60}")
            print(f"Trading day {day.date} | Symbols: {len(day.market_data)} | News: {len(day.news)}")
            print(f"{'='*60}")
            decisions = await simulation.run_day(day.date, day.market_data, day.news, day.fundamentals)
            for signature, decision in decisions.items():
                print_decision(signature, decision)
    finally:
        if store is not None:
            store.close()

    print_results(simulation.get_results())
    return 0


async def cmd_decide(args) -> int:
    """Fan one day's input out to every provider without touching any ledger."""
    cfg = _config_with_models(args.models)
    bars = load_bars_csv(args.bars)
    market_data = slice_market_data(bars, args.date, history=args.history)
    if not market_data:
        print(f"No bars on {args.date}.")
        return 1

    hours = cfg.market.trading_hours
    timestamp = market_close_timestamp(date_cls.fromisoformat(args.date), hours.end, hours.timezone)
    news = news_as_of(load_news_jsonl(args.news), timestamp, hours.timezone) if args.news else []
    prices = {s: d.latest_candle.close for s, d in market_data.items()}

    agent_input = build_agent_input(
        cfg, PortfolioLedger(cfg.initial_cash), timestamp, market_data, news, prices
    )
    decisions = await _manager(cfg).generate_all_decisions(TRADING_AGENT_SYSTEM_PROMPT, agent_input)

    output = {signature: decision.to_wire() for signature, decision in decisions.items()}
    print(json.dumps(output, indent=2))
    return 0 if decisions else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Paper-trading arena for LLM trading strategies")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Check provider availability")
    check.add_argument("--models", help="Strategies JSON file (defaults to MODELS_FILE)")

    replay = sub.add_parser("replay", help="Replay historical bars through every strategy")
    replay.add_argument("--bars", required=True, help="CSV with symbol,date,open,high,low,close,volume")
    replay.add_argument("--news", help="JSONL news items")
    replay.add_argument("--models", help="Strategies JSON file (defaults to MODELS_FILE)")
    replay.add_argument("--start", help="First date (YYYY-MM-DD)")
    replay.add_argument("--end", help="Last date (YYYY-MM-DD)")
    replay.add_argument("--history", type=int, default=20, help="Prior candles per symbol")

    decide = sub.add_parser("decide", help="Ask every strategy for one day's decision without executing")
    decide.add_argument("--bars", required=True, help="CSV with symbol,date,open,high,low,close,volume")
    decide.add_argument("--date", required=True, help="Trading date (YYYY-MM-DD)")
    decide.add_argument("--news", help="JSONL news items")
    decide.add_argument("--models", help="Strategies JSON file (defaults to MODELS_FILE)")
    decide.add_argument("--history", type=int, default=20, help="Prior candles per symbol")

    return parser


COMMANDS = {
    "check": cmd_check,
    "replay": cmd_replay,
    "decide": cmd_decide,
}


def main(argv: Optional[List[str]] = None) -> int:
    _setup_logging()
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(COMMANDS[args.command](args))
    except (ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
