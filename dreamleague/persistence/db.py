"""
Database connection and initialization.
"""
from __future__ import annotations

import os
import sqlite3
from pathlib import Path

from .schema import all_schema_sql


def _run_phase_bet_combis(conn: sqlite3.Connection) -> None:
    """Add combi_id to bets. Legs of a combi point at bet_combis.id."""
    cur = conn.execute("PRAGMA table_info(bets)")
    cols = [row[1] for row in cur.fetchall()]
    if "combi_id" not in cols:
        conn.execute("ALTER TABLE bets ADD COLUMN combi_id TEXT REFERENCES bet_combis(id)")
    conn.execute("CREATE INDEX IF NOT EXISTS ix_bets_combi ON bets(combi_id)")


def _run_phase_player_stats_rating(conn: sqlite3.Connection) -> None:
    """Add rating to player_stats so the optional rating bonus can be recomputed."""
    cur = conn.execute("PRAGMA table_info(player_stats)")
    cols = [row[1] for row in cur.fetchall()]
    if "rating" not in cols:
        conn.execute("ALTER TABLE player_stats ADD COLUMN rating REAL")


def _run_phase_settled_applied(conn: sqlite3.Connection) -> None:
    """Add settled_applied to bets and bet_combis: 1 once the result is in the member budget."""
    for table in ("bets", "bet_combis"):
        cur = conn.execute(f"PRAGMA table_info({table})")
        cols = [row[1] for row in cur.fetchall()]
        if "settled_applied" not in cols:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN settled_applied INTEGER NOT NULL DEFAULT 0")


# Default DB path (DREAMLEAGUE_DB_PATH, else project root / data / dreamleague.db)
def _default_db_path() -> Path:
    env_path = os.environ.get("DREAMLEAGUE_DB_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parent.parent.parent / "data" / "dreamleague.db"


_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using default."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return _default_db_path()


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection.
    Use as context manager or ensure close() is called.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist, then apply column migrations."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(all_schema_sql())
        _run_phase_bet_combis(conn)
        _run_phase_player_stats_rating(conn)
        _run_phase_settled_applied(conn)
        conn.commit()
    finally:
        conn.close()
