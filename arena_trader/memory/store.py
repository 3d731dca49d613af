"""
SQLite retrieval store: price history, trade history and vector collections.
"""

import json
import sqlite3
import struct
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional
from pathlib import Path

logger = logging.getLogger("arena_trader.memory.store")

MARKET_SCENARIOS = "market_scenarios"
TRADING_OUTCOMES = "trading_outcomes"


def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
    """Compute cosine similarity between two vectors."""
    if not vec1 or not vec2 or len(vec1) != len(vec2):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return dot_product / (norm1 * norm2)


class RetrievalStore:
    """
    SQLite-backed store for the context-enrichment overlay.

    Uses:
    - stock_prices for daily candles, unique per (symbol, date)
    - trading_history for accepted orders
    - vectors for named embedding collections, searched with pure
      Python cosine similarity
    """

    def __init__(self, db_path: str = "./data/arena_memory.db"):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS stock_prices (
                symbol TEXT NOT NULL,
                date TEXT NOT NULL,
                open REAL,
                high REAL,
                low REAL,
                close REAL,
                volume REAL,
                prev_close REAL,
                change_pct REAL,
                created_at TEXT NOT NULL,
                UNIQUE(symbol, date)
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_prices_symbol_date ON stock_prices(symbol, date DESC)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS trading_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                model_signature TEXT,
                symbol TEXT,
                action TEXT,
                quantity INTEGER,
                price REAL,
                date TEXT,
                rationale TEXT,
                outcome_pnl REAL,
                market_context TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_trading_symbol ON trading_history(symbol, date DESC)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS vectors (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                symbol TEXT,
                embedding BLOB NOT NULL,
                payload TEXT,
                PRIMARY KEY (collection, id)
            )
        """)

        conn.commit()
        self._initialized = True
        logger.info(f"Retrieval store initialized at {self.db_path}")

    def _serialize_embedding(self, embedding: list[float]) -> bytes:
        return struct.pack(f'{len(embedding)}f', *embedding)

    def _deserialize_embedding(self, data: bytes) -> list[float]:
        count = len(data) // 4
        return list(struct.unpack(f'{count}f', data))

    def store_stock_price(
        self,
        symbol: str,
        date: str,
        open: float,
        high: float,
        low: float,
        close: float,
        volume: float,
        prev_close: Optional[float] = None,
        change_pct: Optional[float] = None,
    ) -> None:
        """Insert or overwrite the candle for (symbol, date)."""
        self.initialize()
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO stock_prices
                (symbol, date, open, high, low, close, volume, prev_close, change_pct, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(symbol, date) DO UPDATE SET
                open = excluded.open,
                high = excluded.high,
                low = excluded.low,
                close = excluded.close,
                volume = excluded.volume,
                prev_close = excluded.prev_close,
                change_pct = excluded.change_pct
            """,
            (symbol, date, open, high, low, close, volume, prev_close, change_pct,
             datetime.utcnow().isoformat()),
        )
        conn.commit()

    def get_historical_prices(
        self,
        symbol: str,
        limit: int = 30,
        as_of: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Most recent candles first, optionally only those dated on or before as_of."""
        self.initialize()
        conn = self._get_connection()
        if as_of:
            rows = conn.execute(
                "SELECT * FROM stock_prices WHERE symbol = ? AND date <= ? ORDER BY date DESC LIMIT ?",
                (symbol, as_of, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM stock_prices WHERE symbol = ? ORDER BY date DESC LIMIT ?",
                (symbol, limit),
            ).fetchall()
        return [dict(row) for row in rows]

    def store_trading_decision(
        self,
        model_signature: str,
        symbol: str,
        action: str,
        quantity: int,
        price: float,
        date: str,
        rationale: str,
        market_context: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Record an accepted order. Returns its trading_history id."""
        self.initialize()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO trading_history
                (model_signature, symbol, action, quantity, price, date, rationale, market_context, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (model_signature, symbol, action, quantity, price, date, rationale,
             json.dumps(market_context or {}), datetime.utcnow().isoformat()),
        )
        conn.commit()
        return cursor.lastrowid

    def get_similar_trades(
        self,
        symbol: str,
        action: str,
        limit: int = 5,
        as_of: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        self.initialize()
        conn = self._get_connection()
        query = "SELECT * FROM trading_history WHERE symbol = ? AND action = ?"
        params: list = [symbol, action]
        if as_of:
            query += " AND date <= ?"
            params.append(as_of)
        query += " ORDER BY date DESC, id DESC LIMIT ?"
        params.append(limit)

        trades = []
        for row in conn.execute(query, params).fetchall():
            trade = dict(row)
            trade["market_context"] = json.loads(trade["market_context"] or "{}")
            trades.append(trade)
        return trades

    def update_trade_outcome(self, trade_id: int, pnl: float) -> None:
        self.initialize()
        conn = self._get_connection()
        conn.execute("UPDATE trading_history SET outcome_pnl = ? WHERE id = ?", (pnl, trade_id))
        conn.commit()

    def upsert_vector(
        self,
        collection: str,
        point_id: str,
        vector: list[float],
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.initialize()
        payload = payload or {}
        conn = self._get_connection()
        conn.execute(
            """
            INSERT OR REPLACE INTO vectors (collection, id, symbol, embedding, payload)
            VALUES (?, ?, ?, ?, ?)
            """,
            (collection, point_id, payload.get("symbol"),
             self._serialize_embedding(vector), json.dumps(payload, default=str)),
        )
        conn.commit()

    def search_vectors(
        self,
        collection: str,
        vector: list[float],
        limit: int = 5,
        score_threshold: float = 0.0,
        symbol: Optional[str] = None,
        as_of: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Payloads ranked by cosine similarity, each with a 'similarity' key.

        With `as_of`, only payloads dated strictly before it are ranked.
        """
        self.initialize()
        conn = self._get_connection()
        if symbol:
            rows = conn.execute(
                "SELECT embedding, payload FROM vectors WHERE collection = ? AND symbol = ?",
                (collection, symbol),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT embedding, payload FROM vectors WHERE collection = ?",
                (collection,),
            ).fetchall()

        scored = []
        for row in rows:
            payload = json.loads(row["payload"] or "{}")
            if as_of and not str(payload.get("date", "")) < as_of:
                continue
            score = cosine_similarity(vector, self._deserialize_embedding(row["embedding"]))
            if score >= score_threshold:
                scored.append({**payload, "similarity": score})

        scored.sort(key=lambda r: r["similarity"], reverse=True)
        return scored[:limit]

    def count(self, table: str) -> int:
        if table not in ("stock_prices", "trading_history", "vectors"):
            raise ValueError(f"Unknown table: {table}")
        self.initialize()
        row = self._get_connection().execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return row[0]

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._initialized = False
