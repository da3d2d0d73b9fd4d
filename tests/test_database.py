"""Tests for the SQLite storage handle and schema."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from jot.storage.database import SCHEMA_VERSION, Database


@pytest.fixture
def db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "nested" / "dir" / "jots.sqlite")
    yield database
    database.close()


def _names(db: Database, kind: str) -> set[str]:
    rows = db.fetchall("SELECT name FROM sqlite_master WHERE type = ?", (kind,))
    return {row["name"] for row in rows}


def _insert_context(db: Database, name: str = "ctx") -> int:
    return db.execute(
        "INSERT INTO contexts (name, created_at, last_modified_at) VALUES (?, 0, 0)", (name,)
    ).lastrowid


def _insert_jot(db: Database, context_id: int, message: str) -> int:
    return db.execute(
        "INSERT INTO jots (context_id, message, created_at, updated_at) VALUES (?, ?, 0, 0)",
        (context_id, message),
    ).lastrowid


def _fts_ids(db: Database, query: str) -> list[int]:
    rows = db.fetchall("SELECT rowid FROM jots_fts WHERE jots_fts MATCH ?", (query,))
    return [row[0] for row in rows]


class TestSchema:
    def test_creates_parent_directories(self, db: Database):
        assert db.path.exists()
        assert db.path.parent.name == "dir"

    def test_tables_exist(self, db: Database):
        tables = _names(db, "table")
        assert {"contexts", "jots", "tags", "metadata", "jots_fts"} <= tables

    def test_indexes_exist(self, db: Database):
        indexes = _names(db, "index")
        assert "idx_jots_context_id" in indexes
        assert "idx_jots_created_at" in indexes
        assert "idx_jots_expires_at" in indexes
        assert "idx_tags_tag" in indexes

    def test_triggers_exist(self, db: Database):
        assert {"jots_fts_ai", "jots_fts_ad", "jots_fts_au"} <= _names(db, "trigger")

    def test_foreign_keys_enabled(self, db: Database):
        assert db.fetchone("PRAGMA foreign_keys")[0] == 1

    def test_schema_version(self, db: Database):
        assert db.fetchone("PRAGMA user_version")[0] == SCHEMA_VERSION

    def test_idempotent(self, tmp_path: Path):
        path = tmp_path / "jots.sqlite"
        first = Database(path)
        context_id = _insert_context(first)
        _insert_jot(first, context_id, "survives reinit")
        first.close()

        # Should not fail, duplicate schema objects, or lose data
        second = Database(path)
        third = Database(path)
        assert second.fetchone("SELECT COUNT(*) FROM jots")[0] == 1
        assert third.fetchone(
            "SELECT COUNT(*) FROM sqlite_master WHERE name = 'jots_fts_ai'"
        )[0] == 1
        assert _fts_ids(third, "survives") == [1]
        second.close()
        third.close()

    def test_in_memory(self):
        with Database(":memory:") as db:
            assert "jots" in _names(db, "table")


class TestFullTextSync:
    def test_insert_indexes_message(self, db: Database):
        jot_id = _insert_jot(db, _insert_context(db), "authentication refactor")
        assert _fts_ids(db, "authentication") == [jot_id]

    def test_update_replaces_index_entry(self, db: Database):
        jot_id = _insert_jot(db, _insert_context(db), "old wording")
        db.execute("UPDATE jots SET message = ? WHERE id = ?", ("new wording", jot_id))
        assert _fts_ids(db, "old") == []
        assert _fts_ids(db, "new") == [jot_id]

    def test_delete_removes_index_entry(self, db: Database):
        jot_id = _insert_jot(db, _insert_context(db), "ephemeral note")
        db.execute("DELETE FROM jots WHERE id = ?", (jot_id,))
        assert _fts_ids(db, "ephemeral") == []

    def test_rebuild(self, db: Database):
        jot_id = _insert_jot(db, _insert_context(db), "rebuild me")
        db.rebuild_fts()
        assert _fts_ids(db, "rebuild") == [jot_id]


class TestCascade:
    def test_context_delete_cascades(self, db: Database):
        context_id = _insert_context(db)
        jot_id = _insert_jot(db, context_id, "msg")
        db.execute("INSERT INTO tags (jot_id, tag) VALUES (?, 'bug')", (jot_id,))
        db.execute("INSERT INTO metadata (jot_id, key, value) VALUES (?, 'k', 'v')", (jot_id,))

        db.execute("DELETE FROM contexts WHERE id = ?", (context_id,))

        assert db.fetchone("SELECT COUNT(*) FROM jots")[0] == 0
        assert db.fetchone("SELECT COUNT(*) FROM tags")[0] == 0
        assert db.fetchone("SELECT COUNT(*) FROM metadata")[0] == 0

    def test_jot_requires_context(self, db: Database):
        with pytest.raises(sqlite3.IntegrityError):
            _insert_jot(db, 999, "orphan")


class TestTransaction:
    def test_commit(self, db: Database):
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO contexts (name, created_at, last_modified_at) VALUES ('a', 0, 0)"
            )
        assert db.fetchone("SELECT COUNT(*) FROM contexts")[0] == 1

    def test_rollback_on_error(self, db: Database):
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute(
                    "INSERT INTO contexts (name, created_at, last_modified_at) VALUES ('a', 0, 0)"
                )
                raise RuntimeError("boom")
        assert db.fetchone("SELECT COUNT(*) FROM contexts")[0] == 0
        assert not db.conn.in_transaction

    def test_nested_joins_outer(self, db: Database):
        with pytest.raises(RuntimeError):
            with db.transaction():
                with db.transaction() as conn:
                    conn.execute(
                        "INSERT INTO contexts (name, created_at, last_modified_at) "
                        "VALUES ('inner', 0, 0)"
                    )
                raise RuntimeError("outer failure")
        assert db.fetchone("SELECT COUNT(*) FROM contexts")[0] == 0
