"""Repository: the only place that turns domain operations into SQL."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable
from datetime import datetime

from jot.errors import InvalidQueryError
from jot.expiration import expiring_window
from jot.storage.database import Database
from jot.storage.query import JOT_COLUMNS, SearchQueryBuilder
from jot.types import (
    Context,
    Jot,
    JotUpdate,
    MetadataInput,
    SearchOptions,
    UNSET,
    from_millis,
    normalize_message,
    normalize_metadata,
    normalize_tags,
    to_millis,
    utcnow,
)

logger = logging.getLogger(__name__)

_CONTEXT_SELECT = """
SELECT c.id, c.name, c.repository, c.branch, c.created_at, c.last_modified_at,
       (SELECT COUNT(*) FROM jots j WHERE j.context_id = c.id) AS jot_count
FROM contexts c
"""

# Messages SQLite uses when rejecting an FTS5 MATCH expression.
_FTS_ERROR_MARKERS = ("fts5", "syntax error", "unterminated string", "no such column")


def _is_fts_syntax_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _FTS_ERROR_MARKERS)


class JotRepository:
    """CRUD and query operations over contexts and jots."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self._clock = clock

    # ── Contexts ──────────────────────────────────────────────

    def upsert_context(
        self,
        name: str,
        repository: str | None = None,
        branch: str | None = None,
    ) -> Context:
        """Return the context called ``name``, creating it if absent.

        An existing context is returned unchanged; ``repository`` and
        ``branch`` only apply on creation.
        """
        existing = self.get_context_by_name(name)
        if existing:
            return existing

        now = to_millis(self._clock())
        with self.db.transaction() as conn:
            # INSERT OR IGNORE covers a row created since the lookup above.
            conn.execute(
                "INSERT OR IGNORE INTO contexts "
                "(name, repository, branch, created_at, last_modified_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (name, repository or None, branch or None, now, now),
            )
        context = self.get_context_by_name(name)
        logger.info("Created context: %s (id=%d)", name, context.id)
        return context

    def get_context(self, id_or_name: int | str) -> Context | None:
        """Look up by id (``int``) or by name (``str``)."""
        if isinstance(id_or_name, int) and not isinstance(id_or_name, bool):
            row = self.db.fetchone(_CONTEXT_SELECT + "WHERE c.id = ?", (id_or_name,))
            return self._map_context(row) if row else None
        return self.get_context_by_name(id_or_name)

    def get_context_by_name(self, name: str) -> Context | None:
        row = self.db.fetchone(_CONTEXT_SELECT + "WHERE c.name = ?", (name,))
        return self._map_context(row) if row else None

    def list_contexts(self) -> list[Context]:
        """All contexts, most recently modified first."""
        rows = self.db.fetchall(_CONTEXT_SELECT + "ORDER BY c.last_modified_at DESC, c.id DESC")
        return [self._map_context(row) for row in rows]

    def delete_context(self, id_or_name: int | str) -> bool:
        """Delete a context and, by cascade, its jots, tags and metadata."""
        context = self.get_context(id_or_name)
        if not context:
            return False
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM contexts WHERE id = ?", (context.id,))
        if cursor.rowcount:
            logger.info("Deleted context: %s (%d jots)", context.name, context.jot_count)
        return cursor.rowcount > 0

    def _touch_context(self, conn: sqlite3.Connection, context_id: int, now: int) -> None:
        conn.execute(
            "UPDATE contexts SET last_modified_at = ? WHERE id = ?",
            (now, context_id),
        )

    # ── Jots ──────────────────────────────────────────────────

    def create_jot(
        self,
        context_id: int,
        message: str,
        expires_at: datetime | None,
        tags: Iterable[str] = (),
        metadata: MetadataInput | None = None,
    ) -> Jot:
        """Insert a jot with its tags and metadata, and touch its context.

        All writes happen in one transaction.
        """
        message = normalize_message(message)
        tag_list = normalize_tags(tags)
        meta = normalize_metadata(metadata)
        now = to_millis(self._clock())
        expires = to_millis(expires_at) if expires_at is not None else None

        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO jots (context_id, message, created_at, updated_at, expires_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (context_id, message, now, now, expires),
            )
            jot_id = cursor.lastrowid
            self._insert_tags(conn, jot_id, tag_list)
            self._insert_metadata(conn, jot_id, meta)
            self._touch_context(conn, context_id, now)

        logger.debug("Created jot %d in context %d", jot_id, context_id)
        return self.get_jot(jot_id)

    def get_jot(self, jot_id: int) -> Jot | None:
        row = self.db.fetchone(f"SELECT {JOT_COLUMNS} FROM jots j WHERE j.id = ?", (jot_id,))
        if not row:
            return None
        return self._hydrate([row])[0]

    def update_jot(self, jot_id: int, update: JotUpdate) -> Jot | None:
        """Apply a partial update. Returns ``None`` if the jot does not exist.

        Provided ``tags``/``metadata`` replace the previous collection.
        """
        row = self.db.fetchone("SELECT id, context_id FROM jots WHERE id = ?", (jot_id,))
        if not row:
            return None
        if update.is_empty():
            return self.get_jot(jot_id)

        assignments: list[str] = []
        params: list[object] = []
        if update.message is not UNSET:
            assignments.append("message = ?")
            params.append(normalize_message(update.message))
        if update.expires_at is not UNSET:
            assignments.append("expires_at = ?")
            params.append(
                to_millis(update.expires_at) if update.expires_at is not None else None
            )
        tag_list = normalize_tags(update.tags) if update.tags is not UNSET else None
        meta = normalize_metadata(update.metadata) if update.metadata is not UNSET else None

        now = to_millis(self._clock())
        assignments.append("updated_at = ?")
        params.append(now)

        with self.db.transaction() as conn:
            conn.execute(
                f"UPDATE jots SET {', '.join(assignments)} WHERE id = ?",
                (*params, jot_id),
            )
            if tag_list is not None:
                conn.execute("DELETE FROM tags WHERE jot_id = ?", (jot_id,))
                self._insert_tags(conn, jot_id, tag_list)
            if meta is not None:
                conn.execute("DELETE FROM metadata WHERE jot_id = ?", (jot_id,))
                self._insert_metadata(conn, jot_id, meta)
            self._touch_context(conn, row["context_id"], now)

        return self.get_jot(jot_id)

    def delete_jot(self, jot_id: int) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM jots WHERE id = ?", (jot_id,))
        return cursor.rowcount > 0

    def search_jots(self, options: SearchOptions | None = None) -> list[Jot]:
        """Filtered search, newest first, each jot at most once."""
        builder = SearchQueryBuilder.from_options(options or SearchOptions(), self._clock())
        sql, params = builder.build()
        try:
            rows = self.db.fetchall(sql, params)
        except sqlite3.OperationalError as e:
            # Malformed FTS5 syntax is a caller error, not a storage fault.
            if options and options.query and _is_fts_syntax_error(e):
                raise InvalidQueryError(options.query, str(e)) from e
            raise
        return self._hydrate(rows)

    # ── Expiration ────────────────────────────────────────────

    def delete_expired_jots(self) -> int:
        """Delete jots whose expiry has passed. Permanent jots are never touched."""
        now = to_millis(self._clock())
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM jots WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            )
        if cursor.rowcount:
            logger.info("Removed %d expired jots", cursor.rowcount)
        return cursor.rowcount

    def get_expiring_soon(self, days: float) -> list[Jot]:
        """Jots expiring after now and within ``days``, soonest first."""
        start, end = expiring_window(days, self._clock())
        rows = self.db.fetchall(
            f"SELECT {JOT_COLUMNS} FROM jots j "
            "WHERE j.expires_at IS NOT NULL AND j.expires_at > ? AND j.expires_at <= ? "
            "ORDER BY j.expires_at ASC, j.id ASC",
            (to_millis(start), to_millis(end)),
        )
        return self._hydrate(rows)

    # ── Side tables ───────────────────────────────────────────

    def _insert_tags(self, conn: sqlite3.Connection, jot_id: int, tags: list[str]) -> None:
        conn.executemany(
            "INSERT INTO tags (jot_id, tag) VALUES (?, ?)",
            [(jot_id, tag) for tag in tags],
        )

    def _insert_metadata(
        self, conn: sqlite3.Connection, jot_id: int, metadata: dict[str, str]
    ) -> None:
        conn.executemany(
            "INSERT INTO metadata (jot_id, key, value) VALUES (?, ?, ?)",
            [(jot_id, key, value) for key, value in metadata.items()],
        )

    # ── Row mapping ───────────────────────────────────────────

    def _map_context(self, row: sqlite3.Row) -> Context:
        return Context(
            id=row["id"],
            name=row["name"],
            repository=row["repository"],
            branch=row["branch"],
            created_at=from_millis(row["created_at"]),
            last_modified_at=from_millis(row["last_modified_at"]),
            jot_count=row["jot_count"] or 0,
        )

    def _hydrate(self, rows: list[sqlite3.Row]) -> list[Jot]:
        """Map jot rows, loading tags and metadata for all of them at once."""
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        tags: dict[int, list[str]] = {jot_id: [] for jot_id in ids}
        metadata: dict[int, dict[str, str]] = {jot_id: {} for jot_id in ids}

        # Chunked to stay under SQLite's bound-parameter limit.
        for start in range(0, len(ids), 500):
            chunk = ids[start : start + 500]
            placeholders = ", ".join("?" for _ in chunk)
            for r in self.db.fetchall(
                f"SELECT jot_id, tag FROM tags WHERE jot_id IN ({placeholders}) ORDER BY tag",
                chunk,
            ):
                tags[r["jot_id"]].append(r["tag"])
            for r in self.db.fetchall(
                f"SELECT jot_id, key, value FROM metadata WHERE jot_id IN ({placeholders}) "
                "ORDER BY key",
                chunk,
            ):
                metadata[r["jot_id"]][r["key"]] = r["value"]

        return [
            Jot(
                id=row["id"],
                context_id=row["context_id"],
                message=row["message"],
                created_at=from_millis(row["created_at"]),
                updated_at=from_millis(row["updated_at"]),
                expires_at=from_millis(row["expires_at"]),
                tags=tags[row["id"]],
                metadata=metadata[row["id"]],
            )
            for row in rows
        ]
