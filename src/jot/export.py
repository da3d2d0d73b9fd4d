"""Markdown digest of a context: YAML frontmatter header + one section per jot."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import frontmatter

from jot.types import Context, Jot, utcnow

if TYPE_CHECKING:
    from jot.service import JotService


def _render_jot(jot: Jot) -> str:
    ts = jot.created_at.isoformat(timespec="seconds")
    tags = f" [{', '.join(jot.tags)}]" if jot.tags else ""
    if jot.expires_at is None:
        expiry = " (permanent)"
    else:
        expiry = f" (expires: {jot.expires_at.date().isoformat()})"
    lines = [f"## [{ts}]{tags}{expiry}", "", jot.message]
    for key, value in jot.metadata.items():
        lines.append(f"- {key}: {value}")
    return "\n".join(lines)


def render_context(context: Context, jots: list[Jot], now: datetime | None = None) -> str:
    """Render ``jots`` (newest first) as a markdown document for ``context``."""
    body = "\n\n---\n\n".join(_render_jot(j) for j in jots) or "No jots in this context"
    post = frontmatter.Post(
        f"# {context.name}\n\n{body}\n",
        name=context.name,
        repository=context.repository,
        branch=context.branch,
        jot_count=len(jots),
        exported=(now or utcnow()).isoformat(timespec="seconds"),
    )
    return frontmatter.dumps(post)


def export_context(service: JotService, id_or_name: int | str) -> str:
    """Export the unexpired jots of a context. Raises ContextNotFoundError."""
    jots = service.get_context_jots(id_or_name)
    context = service.get_context(id_or_name)
    return render_context(context, jots)
