"""SQLite storage handle and schema.

Tables:
    contexts  - named groupings, unique by name
    jots      - notes, owned by a context (ON DELETE CASCADE)
    tags      - (jot_id, tag) pairs, owned by a jot
    metadata  - (jot_id, key, value) triples, owned by a jot
    jots_fts  - FTS5 index over jots.message (external content)
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS contexts (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    name             TEXT NOT NULL UNIQUE,
    repository       TEXT,
    branch           TEXT,
    created_at       INTEGER NOT NULL,
    last_modified_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS jots (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    context_id INTEGER NOT NULL,
    message    TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    expires_at INTEGER,
    FOREIGN KEY (context_id) REFERENCES contexts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tags (
    id     INTEGER PRIMARY KEY AUTOINCREMENT,
    jot_id INTEGER NOT NULL,
    tag    TEXT NOT NULL,
    FOREIGN KEY (jot_id) REFERENCES jots(id) ON DELETE CASCADE,
    UNIQUE (jot_id, tag)
);

CREATE TABLE IF NOT EXISTS metadata (
    id     INTEGER PRIMARY KEY AUTOINCREMENT,
    jot_id INTEGER NOT NULL,
    key    TEXT NOT NULL,
    value  TEXT NOT NULL,
    FOREIGN KEY (jot_id) REFERENCES jots(id) ON DELETE CASCADE,
    UNIQUE (jot_id, key)
);

CREATE INDEX IF NOT EXISTS idx_contexts_last_modified_at ON contexts(last_modified_at);
CREATE INDEX IF NOT EXISTS idx_jots_context_id ON jots(context_id);
CREATE INDEX IF NOT EXISTS idx_jots_created_at ON jots(created_at);
CREATE INDEX IF NOT EXISTS idx_jots_expires_at ON jots(expires_at);
CREATE INDEX IF NOT EXISTS idx_tags_tag ON tags(tag);
CREATE INDEX IF NOT EXISTS idx_metadata_jot_id ON metadata(jot_id);
"""

# External-content FTS5 table keyed by jots.id, so fts.rowid joins j.id
# one-to-one. The triggers remove the old entry before re-adding on update.
_FTS_SQL = """
CREATE VIRTUAL TABLE IF NOT EXISTS jots_fts USING fts5(
    message,
    content='jots',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS jots_fts_ai AFTER INSERT ON jots BEGIN
    INSERT INTO jots_fts(rowid, message) VALUES (new.id, new.message);
END;

CREATE TRIGGER IF NOT EXISTS jots_fts_ad AFTER DELETE ON jots BEGIN
    INSERT INTO jots_fts(jots_fts, rowid, message) VALUES ('delete', old.id, old.message);
END;

CREATE TRIGGER IF NOT EXISTS jots_fts_au AFTER UPDATE ON jots BEGIN
    INSERT INTO jots_fts(jots_fts, rowid, message) VALUES ('delete', old.id, old.message);
    INSERT INTO jots_fts(rowid, message) VALUES (new.id, new.message);
END;
"""


class Database:
    """Explicitly owned SQLite connection with an idempotent schema."""

    def __init__(self, path: Path | str) -> None:
        self.path = path if path == ":memory:" else Path(path)
        if isinstance(self.path, Path):
            self.path.parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode; multi-statement writes go through transaction().
        self.conn = sqlite3.connect(str(self.path), isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._depth = 0
        self._ensure_schema()

    # ── Schema ────────────────────────────────────────────────

    def _ensure_schema(self) -> None:
        """Create tables, indexes, FTS index and triggers. Idempotent."""
        self.conn.executescript(_SCHEMA_SQL)
        self.conn.executescript(_FTS_SQL)
        version = self.conn.execute("PRAGMA user_version").fetchone()[0]
        if version < SCHEMA_VERSION:
            self.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            logger.info("Initialized jot schema v%d at %s", SCHEMA_VERSION, self.path)

    def rebuild_fts(self) -> None:
        """Rebuild the full-text index from the jots table."""
        self.conn.execute("INSERT INTO jots_fts(jots_fts) VALUES ('rebuild')")

    # ── Unit of work ──────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed writes atomically.

        Commits on clean exit, rolls back and re-raises on any exception.
        Nested blocks join the outermost transaction.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self.conn
            finally:
                self._depth -= 1
            return

        self.conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield self.conn
        except BaseException:
            # SQLite may already have rolled back on some I/O errors.
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")
        finally:
            self._depth = 0

    # ── Statement helpers ─────────────────────────────────────

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    # ── Lifecycle ─────────────────────────────────────────────

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
