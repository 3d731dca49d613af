"""
CSV bar and JSONL news loaders, and point-in-time replay slicing.

Bars CSV headers: symbol,date,open,high,low,close,volume
News JSONL: one NewsItem object per line (id, time, source, title, summary, sentiment).
"""
import csv
import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from .agents.schemas import FundamentalData, NewsItem, OHLCVData, SymbolMarketData

logger = logging.getLogger("arena_trader.data")

BARS_HEADERS = ["symbol", "date", "open", "high", "low", "close", "volume"]


@dataclass
class DayData:
    """Everything known at one trading day's close."""
    date: str
    market_data: Dict[str, SymbolMarketData]
    news: List[NewsItem] = field(default_factory=list)
    fundamentals: Optional[Dict[str, FundamentalData]] = None


def load_bars_csv(path: str) -> Dict[str, List[OHLCVData]]:
    """Load daily bars grouped by symbol, oldest first."""
    bars: Dict[str, List[OHLCVData]] = defaultdict(list)

    with open(Path(path), "r", newline="") as f:
        reader = csv.DictReader(f)
        missing = [h for h in BARS_HEADERS if h not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"{path}: missing columns {missing}")

        for line_no, row in enumerate(reader, start=2):
            try:
                bar = OHLCVData(
                    symbol=row["symbol"].strip().upper(),
                    date=row["date"].strip()[:10],
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=float(row["volume"] or 0),
                )
            except (ValueError, TypeError) as e:
                logger.warning(f"{path}:{line_no}: skipping malformed bar: {e}")
                continue
            bars[bar.symbol].append(bar)

    for symbol in bars:
        bars[symbol].sort(key=lambda b: b.date)
    logger.info(f"Loaded bars for {len(bars)} symbols from {path}")
    return dict(bars)


def load_news_jsonl(path: str) -> List[NewsItem]:
    items: List[NewsItem] = []
    with open(Path(path), "r") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                items.append(NewsItem.model_validate(json.loads(line)))
            except ValueError as e:
                logger.warning(f"{path}:{line_no}: skipping malformed news item: {e}")
    items.sort(key=lambda n: n.time)
    return items


def slice_market_data(
    bars: Dict[str, List[OHLCVData]],
    date: str,
    history: int = 20,
) -> Dict[str, SymbolMarketData]:
    """
    Market data as of `date`'s close.

    Symbols without a bar on `date` are left out. History holds up to
    `history` prior candles, oldest first, never anything after `date`.
    """
    sliced: Dict[str, SymbolMarketData] = {}
    for symbol, series in bars.items():
        past = [b for b in series if b.date <= date]
        if not past or past[-1].date != date:
            continue
        prior = past[:-1][-history:] if history > 0 else []
        sliced[symbol] = SymbolMarketData(latest_candle=past[-1], history=prior)
    return sliced


def _instant(value: str, tz: ZoneInfo) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def news_as_of(news: List[NewsItem], cutoff: str, timezone: str = "Asia/Kolkata") -> List[NewsItem]:
    """
    News stamped at or before cutoff (ISO date or timestamp).

    Naive times are read in `timezone`. Items whose time cannot be parsed
    are dropped, since they cannot be placed before the cutoff.
    """
    tz = ZoneInfo(timezone)
    limit = _instant(cutoff, tz)
    if limit is None:
        raise ValueError(f"Invalid cutoff timestamp: {cutoff!r}")

    kept = []
    for item in news:
        stamp = _instant(item.time, tz)
        if stamp is None:
            logger.warning(f"Dropping news item {item.id} with unparseable time {item.time!r}")
        elif stamp <= limit:
            kept.append(item)
    return kept


def build_replay_days(
    bars: Dict[str, List[OHLCVData]],
    news: Optional[List[NewsItem]] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    history: int = 20,
) -> List[DayData]:
    """Ordered DayData for every date with at least one bar in [start, end]."""
    dates = sorted({b.date for series in bars.values() for b in series})
    if start:
        dates = [d for d in dates if d >= start]
    if end:
        dates = [d for d in dates if d <= end]

    news = news or []
    days = []
    for date in dates:
        day_news = [n for n in news if n.time[:10] == date]
        days.append(DayData(
            date=date,
            market_data=slice_market_data(bars, date, history),
            news=day_news,
        ))
    return days
