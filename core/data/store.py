"""SQLite storage layer -- subject tiers, daily quota counters and asset snapshots.

The core keeps nothing durable on its own; this store is the passthrough
for the state that has to outlive a request or a restart.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class Store:
    """SQLite-backed QuotaStore and SnapshotStore.

    All paths are relative to the home directory (~/.tickerlens/).
    """

    def __init__(self, home: Path, db_name: str = "db.sqlite") -> None:
        self._home = home
        self._db_path = home / db_name
        self._db: sqlite3.Connection | None = None
        self._init_sqlite()

    # ------------------------------------------------------------------
    # SQLite
    # ------------------------------------------------------------------

    def _init_sqlite(self) -> None:
        """Initialize SQLite database and create tables if needed."""
        self._home.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(self._db_path))
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")

        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS subjects (
                subject_id TEXT PRIMARY KEY,
                tier TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS api_quota (
                subject_id TEXT PRIMARY KEY,
                date_key TEXT NOT NULL,
                calls_made INTEGER NOT NULL DEFAULT 0 CHECK (calls_made >= 0)
            );

            CREATE TABLE IF NOT EXISTS asset_snapshots (
                symbol TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                fetched_at TEXT NOT NULL
            );
        """)
        self._db.commit()
        logger.info("SQLite initialized at %s", self._db_path)

    @property
    def db(self) -> sqlite3.Connection:
        if self._db is None:
            raise RuntimeError("Store not initialized")
        return self._db

    def close(self) -> None:
        """Close the SQLite connection."""
        if self._db:
            self._db.close()
            self._db = None

    # ------------------------------------------------------------------
    # Subjects
    # ------------------------------------------------------------------

    def set_subject_tier(self, subject_id: str, tier: str) -> None:
        self.db.execute(
            """INSERT INTO subjects (subject_id, tier) VALUES (?, ?)
               ON CONFLICT(subject_id) DO UPDATE SET tier = excluded.tier""",
            (subject_id, tier),
        )
        self.db.commit()

    def get_subject_tier(self, subject_id: str) -> str | None:
        row = self.db.execute(
            "SELECT tier FROM subjects WHERE subject_id = ?", (subject_id,)
        ).fetchone()
        return row["tier"] if row else None

    # ------------------------------------------------------------------
    # Quota counters
    # ------------------------------------------------------------------

    def get_quota(self, subject_id: str) -> tuple[str, int] | None:
        row = self.db.execute(
            "SELECT date_key, calls_made FROM api_quota WHERE subject_id = ?",
            (subject_id,),
        ).fetchone()
        if row is None:
            return None
        return row["date_key"], row["calls_made"]

    def increment_quota_if_below(self, subject_id: str, date_key: str, limit: int) -> tuple[bool, int]:
        """Atomically spend one call for `date_key` if the count is below `limit`.

        The conditional UPDATE does the day roll-over, the comparison and the
        increment in one statement and returns the new count, so concurrent
        requests (even from other processes) can never push the count past the
        limit or report someone else's increment. Needs SQLite 3.35+.
        """
        with self.db:
            self.db.execute(
                """INSERT INTO api_quota (subject_id, date_key, calls_made)
                   VALUES (?, ?, 0)
                   ON CONFLICT(subject_id) DO NOTHING""",
                (subject_id, date_key),
            )
            updated = self.db.execute(
                """UPDATE api_quota
                   SET calls_made = CASE WHEN date_key = :day THEN calls_made + 1 ELSE 1 END,
                       date_key = :day
                   WHERE subject_id = :subject
                     AND :max_calls > 0
                     AND (date_key != :day OR calls_made < :max_calls)
                   RETURNING calls_made""",
                {"day": date_key, "subject": subject_id, "max_calls": limit},
            ).fetchall()
            if updated:
                return True, updated[0]["calls_made"]

            # Denied: read the count inside the same transaction
            row = self.db.execute(
                "SELECT date_key, calls_made FROM api_quota WHERE subject_id = ?",
                (subject_id,),
            ).fetchone()
        calls = row["calls_made"] if row is not None and row["date_key"] == date_key else 0
        return False, calls

    # ------------------------------------------------------------------
    # Asset snapshots
    # ------------------------------------------------------------------

    def save_snapshot(self, symbol: str, data: dict) -> None:
        """Store the last good record of a symbol, replacing any previous one."""
        self.db.execute(
            """INSERT OR REPLACE INTO asset_snapshots (symbol, data, fetched_at)
               VALUES (?, ?, ?)""",
            (symbol, json.dumps(data), datetime.now(timezone.utc).isoformat()),
        )
        self.db.commit()

    def load_snapshot(self, symbol: str) -> dict | None:
        row = self.db.execute(
            "SELECT data FROM asset_snapshots WHERE symbol = ?", (symbol,)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["data"])
        except json.JSONDecodeError:
            logger.exception("Corrupt snapshot for %s", symbol)
            return None
