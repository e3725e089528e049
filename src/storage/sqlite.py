"""SQLite-backed job store over the ``jobs`` table created by ``init_db``."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from src.core.db import ThreadLocalConnections, delete_job, upsert_job
from src.core.errors import StorageUnavailableError
from src.core.schemas import CandidateRecord
from src.query.predicate import Predicate
from src.query.sql import order_by, register_functions, to_sql
from src.query.text import TextScoring, relevance_score
from src.storage.base import JobStore

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = ("locked", "busy", "unable to open", "disk i/o")


def _is_transient(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class SqliteJobStore(JobStore):
    """Job documents stored as JSON, filtered by lowered predicates.

    Each thread reads through its own connection. The text scorer of the
    query in flight is kept per thread as well.
    """

    def __init__(self, connections: ThreadLocalConnections) -> None:
        self._connections = connections
        self._scoring = threading.local()
        connections.add_hook(self._register)

    @classmethod
    def open(cls, path: str | Path) -> "SqliteJobStore":
        return cls(ThreadLocalConnections(path))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connections.get()

    def upsert(self, record: CandidateRecord) -> bool:
        return upsert_job(self.connection, record)

    def delete(self, job_id: str) -> bool:
        return delete_job(self.connection, job_id)

    def find(self, predicate, sort_keys, skip, limit, text=None):  # type: ignore[no-untyped-def]
        records, _ = self.find_page(predicate, sort_keys, skip, limit, text)
        return records

    def count(self, predicate: Predicate) -> int:
        where, params = to_sql(predicate)
        with self._reading() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM jobs WHERE {where}", params).fetchone()
        return int(row[0])

    def find_page(self, predicate, sort_keys, skip, limit, text=None):  # type: ignore[no-untyped-def]
        where, params = to_sql(predicate)
        score_expr = self._score_expr(predicate, text)
        sql = (
            "SELECT doc, text_score, COUNT(*) OVER () AS total FROM ("
            f"SELECT job_id, doc, posted_ts, expires_ts, {score_expr} AS text_score "
            f"FROM jobs WHERE {where}"
            f") ORDER BY {order_by(sort_keys)} LIMIT ? OFFSET ?"
        )
        with self._reading() as conn:
            rows = conn.execute(sql, [*params, limit, skip]).fetchall()
            if rows:
                total = int(rows[0]["total"])
            else:
                # Page past the end: the window count has no row to ride on.
                total = int(conn.execute(
                    f"SELECT COUNT(*) FROM jobs WHERE {where}", params,
                ).fetchone()[0])
        return [self._load(row) for row in rows], total

    def find_enriched(self, predicate, text=None):  # type: ignore[no-untyped-def]
        where, params = to_sql(predicate)
        score_expr = self._score_expr(predicate, text)
        sql = f"SELECT doc, {score_expr} AS text_score FROM jobs WHERE {where} ORDER BY job_id"
        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
        records = [self._load(row) for row in rows]
        return records, len(records)

    def close(self) -> None:
        self._connections.close()

    def _register(self, conn: sqlite3.Connection) -> None:
        register_functions(conn)
        conn.create_function("text_score", 1, self._text_score)

    def _text_score(self, doc: str) -> float:
        text, predicate = self._scoring.current
        return relevance_score(CandidateRecord.model_validate_json(doc), text, predicate)

    def _score_expr(self, predicate: Predicate, text: TextScoring | None) -> str:
        if text is None:
            return "NULL"
        self._scoring.current = (text, predicate)
        return "text_score(doc)"

    @staticmethod
    def _load(row: sqlite3.Row) -> CandidateRecord:
        record = CandidateRecord.model_validate_json(row["doc"])
        if row["text_score"] is None:
            return record
        return record.model_copy(update={"text_score": row["text_score"]})

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements as one read transaction.

        Transient sqlite failures surface as StorageUnavailableError.
        """
        conn = self.connection
        own = not conn.in_transaction
        try:
            if own:
                conn.execute("BEGIN")
            yield conn
        except sqlite3.OperationalError as e:
            if _is_transient(e):
                logger.warning("Job store read failed: %s", e)
                raise StorageUnavailableError(str(e)) from e
            raise
        finally:
            if own and conn.in_transaction:
                conn.rollback()
