"""Tests for the markdown context digest."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import frontmatter
import pytest

from jot.config import JotConfig
from jot.detect import ContextDetector
from jot.errors import ContextNotFoundError
from jot.export import export_context, render_context
from jot.service import JotService
from jot.storage import Database, JotRepository
from jot.types import Context, CreateJotOptions, Jot

WHEN = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class NoSourceControl:
    def remote_url(self):
        return None

    def current_branch(self):
        return None


@pytest.fixture
def service(tmp_path: Path) -> JotService:
    db = Database(tmp_path / "jots.sqlite")
    config = JotConfig(db_path=tmp_path / "jots.sqlite", auto_cleanup=False)
    yield JotService(JotRepository(db), ContextDetector(NoSourceControl(), cwd="/"), config)
    db.close()


class TestRenderContext:
    def test_frontmatter(self):
        context = Context(1, "widgets/dev", "widgets", "dev", WHEN, WHEN, 1)
        jot = Jot(1, 1, "wire up login", WHEN, WHEN, None, ["auth"], {"pr": "42"})
        post = frontmatter.loads(render_context(context, [jot], now=WHEN))
        assert post["name"] == "widgets/dev"
        assert post["repository"] == "widgets"
        assert post["branch"] == "dev"
        assert post["jot_count"] == 1
        assert post["exported"] == "2026-03-01T12:00:00+00:00"
        assert "wire up login" in post.content
        assert "[auth]" in post.content
        assert "(permanent)" in post.content
        assert "- pr: 42" in post.content

    def test_empty(self):
        context = Context(1, "empty", None, None, WHEN, WHEN, 0)
        post = frontmatter.loads(render_context(context, [], now=WHEN))
        assert "No jots in this context" in post.content


class TestExportContext:
    def test_export(self, service: JotService):
        service.create_jot(CreateJotOptions(message="first", context_name="proj", ttl_days=3))
        service.create_jot(CreateJotOptions(message="second", context_name="proj"))
        post = frontmatter.loads(export_context(service, "proj"))
        assert post["jot_count"] == 2
        assert post.content.index("second") < post.content.index("first")
        assert "expires:" in post.content

    def test_unknown(self, service: JotService):
        with pytest.raises(ContextNotFoundError):
            export_context(service, "nope")
