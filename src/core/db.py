"""SQLite database layer for job documents, cache entries, and search runs."""

import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from src.core.schemas import CandidateRecord

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    job_id      TEXT PRIMARY KEY,
    doc         TEXT NOT NULL,
    posted_ts   REAL,
    expires_ts  REAL,
    updated_at  TEXT NOT NULL
);
"""

_JOBS_POSTED_INDEX = "CREATE INDEX IF NOT EXISTS idx_jobs_posted ON jobs (posted_ts DESC);"

_CACHE_TABLE = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key         TEXT PRIMARY KEY,
    payload     BLOB NOT NULL,
    expires_at  REAL NOT NULL
);
"""

_SEARCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS search_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    strategy        TEXT NOT NULL,
    user_id         TEXT,
    filters_json    TEXT NOT NULL,
    result_count    INTEGER NOT NULL,
    cached          INTEGER NOT NULL DEFAULT 0,
    started_at      TEXT NOT NULL,
    finished_at     TEXT NOT NULL
);
"""


def connect(path: str | Path) -> sqlite3.Connection:
    """Open a connection with row access by name.

    The connection may be closed from another thread; callers still use it
    from one thread at a time.
    """
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(path)
    conn.execute(_JOBS_TABLE)
    conn.execute(_JOBS_POSTED_INDEX)
    conn.execute(_CACHE_TABLE)
    conn.execute(_SEARCH_RUNS_TABLE)
    conn.commit()
    return conn


def _ts(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def upsert_job(conn: sqlite3.Connection, record: CandidateRecord) -> bool:
    """Insert or replace a job document.

    Returns True if a new row was inserted, False if an existing one was updated.
    """
    exists = conn.execute(
        "SELECT 1 FROM jobs WHERE job_id = ? LIMIT 1", (record.job_id,),
    ).fetchone() is not None
    conn.execute(
        """
        INSERT INTO jobs (job_id, doc, posted_ts, expires_ts, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(job_id)
        DO UPDATE SET
            doc = excluded.doc,
            posted_ts = excluded.posted_ts,
            expires_ts = excluded.expires_ts,
            updated_at = excluded.updated_at
        """,
        (
            record.job_id,
            record.model_dump_json(exclude={"text_score"}),
            _ts(record.posted_at),
            _ts(record.expires_at),
            datetime.now(timezone.utc).isoformat(),
        ),
    )
    conn.commit()
    return not exists


def get_job(conn: sqlite3.Connection, job_id: str) -> CandidateRecord | None:
    row = conn.execute("SELECT doc FROM jobs WHERE job_id = ?", (job_id,)).fetchone()
    if row is None:
        return None
    return CandidateRecord.model_validate_json(row["doc"])


def delete_job(conn: sqlite3.Connection, job_id: str) -> bool:
    cursor = conn.execute("DELETE FROM jobs WHERE job_id = ?", (job_id,))
    conn.commit()
    return cursor.rowcount > 0


def insert_search_run(
    conn: sqlite3.Connection,
    strategy: str,
    user_id: str | None,
    filters_json: str,
    result_count: int,
    cached: bool,
    started_at: datetime,
    finished_at: datetime,
) -> int:
    """Record a completed search. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO search_runs
            (strategy, user_id, filters_json, result_count, cached, started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            strategy,
            user_id,
            filters_json,
            result_count,
            int(cached),
            started_at.isoformat(),
            finished_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


class ThreadLocalConnections:
    """One connection per thread to a single database file.

    Hooks added with ``add_hook`` run on every connection, e.g. to register
    SQL functions. ``close`` closes every connection handed out so far.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        init_db(self.path).close()
        self._hooks: list[Callable[[sqlite3.Connection], None]] = []
        self._local = threading.local()
        self._lock = threading.Lock()
        self._opened: list[sqlite3.Connection] = []

    def add_hook(self, on_open: Callable[[sqlite3.Connection], None]) -> None:
        """Run ``on_open`` on future connections and on those already open."""
        with self._lock:
            self._hooks.append(on_open)
            opened = list(self._opened)
        for conn in opened:
            on_open(conn)

    def get(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = connect(self.path)
            with self._lock:
                hooks = list(self._hooks)
                self._opened.append(conn)
            for hook in hooks:
                hook(conn)
            self._local.conn = conn
        return conn

    def close(self) -> None:
        with self._lock:
            opened, self._opened = self._opened, []
            self._local = threading.local()
        for conn in opened:
            conn.close()
