"""Database operations for the Tidings newsletter workflow.

This module provides SQLite-based storage for everything a run needs to
survive a restart: its lifecycle record, the checkpointed output of every
completed step, and the final newsletter artifact.

Database Schema:
    runs table:
        - id (TEXT, PK): Opaque run identifier
        - status (TEXT): running / complete / failed / terminated
        - params (TEXT): Submission payload as JSON
        - error (TEXT): Failure detail for operators (never sent to clients)
        - created_at / updated_at (REAL): Unix epoch seconds

    run_steps table (the step log):
        - run_id, step (PK together): Run and step name
        - output (TEXT): Step result serialized as JSON
        - completed_at (REAL): Checkpoint time
        A row's presence is the step's completion marker.

    results table (artifact store):
        - key (TEXT, PK): 'run:<id>'
        - value (TEXT): Serialized newsletter
        - expires_at (REAL): Unix epoch seconds after which the value is gone

Features:
    - WAL mode for concurrent read/write access
    - Terminal run states are absorbing (status updates only from 'running')
    - Expired results stay readable as "expired" until pruned
    - Context manager support for auto-cleanup
"""

import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def result_key(run_id: str) -> str:
    """Artifact store key for a run's newsletter."""
    return f"run:{run_id}"


@dataclass
class StoredResult:
    """A value read from the artifact store."""
    key: str
    value: str
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class Database:
    """SQLite storage for runs, step checkpoints and newsletter artifacts.

    One instance plays three roles for the workflow: run registry, step log
    and artifact store. Each run has a single writer (its workflow task), so
    no locking beyond SQLite's own is needed.

    Example:
        >>> with Database("tidings.db") as db:
        ...     db.create_run("abc", '{"interests": [], "sources": []}')
        ...     db.save_step("abc", "scrape-articles", "[]")
        ...     db.load_steps("abc")
        {'scrape-articles': '[]'}
    """

    # SQL schema for all tables and indexes
    SCHEMA = """
    -- One row per submitted run
    CREATE TABLE IF NOT EXISTS runs (
        id TEXT PRIMARY KEY,             -- Opaque run id
        status TEXT NOT NULL,            -- running/complete/failed/terminated
        params TEXT NOT NULL,            -- Submission payload (JSON)
        error TEXT,                      -- Operator-facing failure detail
        created_at REAL NOT NULL,        -- Submission time (Unix epoch)
        updated_at REAL NOT NULL         -- Last status change (Unix epoch)
    );

    -- Index for resuming and pruning by status
    CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status, updated_at);

    -- Step log: one row per completed step
    CREATE TABLE IF NOT EXISTS run_steps (
        run_id TEXT NOT NULL,            -- Run id (FK to runs)
        step TEXT NOT NULL,              -- Step name
        output TEXT NOT NULL,            -- Step result (JSON)
        completed_at REAL NOT NULL,      -- Checkpoint time (Unix epoch)
        PRIMARY KEY (run_id, step)
    );

    -- Artifact store: keyed values with expiry
    CREATE TABLE IF NOT EXISTS results (
        key TEXT PRIMARY KEY,            -- 'run:<id>'
        value TEXT NOT NULL,             -- Serialized newsletter
        expires_at REAL NOT NULL         -- Expiry time (Unix epoch)
    );

    CREATE INDEX IF NOT EXISTS idx_results_expires ON results(expires_at);
    """

    path: Path
    conn: sqlite3.Connection

    def __init__(self, path: Path | str):
        """Initialize database connection.

        Creates the database file if it doesn't exist and sets up
        the schema. Uses WAL mode for better concurrent access.

        Args:
            path: Path to SQLite database file (":memory:" for tests)
        """
        self.path = Path(path)
        self.conn = sqlite3.connect(str(path))
        self.conn.row_factory = sqlite3.Row  # Enable dict-like row access

        # WAL mode allows concurrent readers during writes
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(self.SCHEMA)
        self.conn.commit()
        logger.debug("Database initialized | path=%s", self.path)

    # === Run registry ===

    def create_run(self, run_id: str, params: str, status: str = "running") -> None:
        """Insert a new run record.

        Raises:
            sqlite3.IntegrityError: If the id already exists
        """
        now = time.time()
        self.conn.execute(
            "INSERT INTO runs (id, status, params, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (run_id, status, params, now, now),
        )
        self.conn.commit()
        logger.debug("Run created | id=%s", run_id)

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        """Get a run record by id, or None if unknown."""
        cursor = self.conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def set_run_status(self, run_id: str, status: str, error: str | None = None) -> bool:
        """Move a running run to a new status.

        Terminal states are absorbing: the update only applies while the run
        is still 'running'.

        Returns:
            True if the status changed
        """
        cursor = self.conn.execute(
            """
            UPDATE runs SET status = ?, error = ?, updated_at = ?
            WHERE id = ? AND status = 'running'
            """,
            (status, error, time.time(), run_id),
        )
        self.conn.commit()
        changed = cursor.rowcount > 0
        if changed:
            logger.debug("Run status changed | id=%s status=%s", run_id, status)
        else:
            logger.debug("Run status unchanged | id=%s requested=%s", run_id, status)
        return changed

    def runs_with_status(self, status: str) -> list[str]:
        """Ids of all runs in a given status, oldest first."""
        cursor = self.conn.execute(
            "SELECT id FROM runs WHERE status = ? ORDER BY created_at",
            (status,),
        )
        return [row["id"] for row in cursor.fetchall()]

    # === Step log ===

    def load_steps(self, run_id: str) -> dict[str, str]:
        """Checkpointed step outputs for a run, keyed by step name."""
        cursor = self.conn.execute(
            "SELECT step, output FROM run_steps WHERE run_id = ? ORDER BY completed_at",
            (run_id,),
        )
        return {row["step"]: row["output"] for row in cursor.fetchall()}

    def save_step(self, run_id: str, step: str, output: str) -> None:
        """Checkpoint a completed step. Commits before returning."""
        self.conn.execute(
            "INSERT OR REPLACE INTO run_steps (run_id, step, output, completed_at) VALUES (?, ?, ?, ?)",
            (run_id, step, output, time.time()),
        )
        self.conn.commit()
        logger.debug("Step checkpointed | run=%s step=%s bytes=%d", run_id, step, len(output))

    # === Artifact store ===

    def put_result(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds``."""
        self.conn.execute(
            "INSERT OR REPLACE INTO results (key, value, expires_at) VALUES (?, ?, ?)",
            (key, value, time.time() + ttl_seconds),
        )
        self.conn.commit()
        logger.debug("Result stored | key=%s ttl=%ds", key, ttl_seconds)

    def get_result(self, key: str) -> StoredResult | None:
        """Read a stored value, expired or not. None if never stored or pruned."""
        cursor = self.conn.execute(
            "SELECT key, value, expires_at FROM results WHERE key = ?",
            (key,),
        )
        row = cursor.fetchone()
        if not row:
            return None
        return StoredResult(key=row["key"], value=row["value"], expires_at=row["expires_at"])

    # === Maintenance ===

    def prune(self, max_age_seconds: int, now: float | None = None) -> int:
        """Delete expired results and finished runs older than ``max_age_seconds``.

        Running runs are never pruned.

        Returns:
            Number of rows deleted across all tables
        """
        now = now if now is not None else time.time()
        cutoff = now - max_age_seconds

        deleted = self.conn.execute(
            "DELETE FROM results WHERE expires_at <= ?", (now,)
        ).rowcount

        cursor = self.conn.execute(
            "SELECT id FROM runs WHERE status != 'running' AND updated_at < ?",
            (cutoff,),
        )
        stale = [row["id"] for row in cursor.fetchall()]
        if stale:
            placeholders = ",".join("?" * len(stale))
            deleted += self.conn.execute(
                f"DELETE FROM run_steps WHERE run_id IN ({placeholders})", stale
            ).rowcount
            deleted += self.conn.execute(
                f"DELETE FROM runs WHERE id IN ({placeholders})", stale
            ).rowcount

        self.conn.commit()
        if deleted > 0:
            logger.info("Database pruned | deleted=%d runs=%d", deleted, len(stale))
        return deleted

    def stats(self) -> dict[str, int]:
        """Count runs by status plus stored results."""
        cursor = self.conn.execute("SELECT status, COUNT(*) AS n FROM runs GROUP BY status")
        counts = {row["status"]: row["n"] for row in cursor.fetchall()}
        cursor = self.conn.execute("SELECT COUNT(*) AS n FROM results")
        counts["results"] = cursor.fetchone()["n"] or 0
        return counts

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> "Database":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
