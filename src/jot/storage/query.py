"""Search query composition for jots.

Each active filter contributes one predicate and its bound parameters.
User-supplied values only ever travel as ``?`` parameters.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jot.errors import ValidationError
from jot.types import SearchOptions, normalize_tags, to_millis

JOT_COLUMNS = "j.id, j.context_id, j.message, j.created_at, j.updated_at, j.expires_at"


def parse_date_bound(value: datetime | str | None, label: str) -> datetime | None:
    """Accept a datetime or an ISO-8601 string; reject anything else."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{label} is not an ISO-8601 date: {value!r}") from None
    raise ValidationError(f"{label} must be a datetime or ISO-8601 string, got {value!r}")


@dataclass
class Predicate:
    """One WHERE clause fragment with its positional parameters."""

    sql: str
    params: tuple[Any, ...] = ()


@dataclass
class SearchQueryBuilder:
    """Accumulates joins, predicates and parameters for a jot search."""

    joins: list[str] = field(default_factory=list)
    predicates: list[Predicate] = field(default_factory=list)
    limit: int | None = None

    # ── Filters ───────────────────────────────────────────────

    def with_context(self, context_id: int) -> SearchQueryBuilder:
        self.predicates.append(Predicate("j.context_id = ?", (context_id,)))
        return self

    def with_text(self, query: str) -> SearchQueryBuilder:
        # rowid of the external-content index is jots.id, one row per jot.
        self.joins.append("JOIN jots_fts ON jots_fts.rowid = j.id")
        self.predicates.append(Predicate("jots_fts MATCH ?", (query,)))
        return self

    def with_any_tag(self, tags: Sequence[str]) -> SearchQueryBuilder:
        placeholders = ", ".join("?" for _ in tags)
        self.predicates.append(
            Predicate(
                "EXISTS (SELECT 1 FROM tags t WHERE t.jot_id = j.id "
                f"AND t.tag IN ({placeholders}))",
                tuple(tags),
            )
        )
        return self

    def created_from(self, when: datetime) -> SearchQueryBuilder:
        self.predicates.append(Predicate("j.created_at >= ?", (to_millis(when),)))
        return self

    def created_to(self, when: datetime) -> SearchQueryBuilder:
        self.predicates.append(Predicate("j.created_at <= ?", (to_millis(when),)))
        return self

    def exclude_expired(self, now: datetime) -> SearchQueryBuilder:
        self.predicates.append(
            Predicate("(j.expires_at IS NULL OR j.expires_at > ?)", (to_millis(now),))
        )
        return self

    def with_limit(self, limit: int) -> SearchQueryBuilder:
        self.limit = limit
        return self

    # ── Assembly ──────────────────────────────────────────────

    def build(self) -> tuple[str, list[Any]]:
        parts = [f"SELECT {JOT_COLUMNS} FROM jots j"]
        parts.extend(self.joins)
        params: list[Any] = []
        if self.predicates:
            parts.append("WHERE " + " AND ".join(p.sql for p in self.predicates))
            for p in self.predicates:
                params.extend(p.params)
        parts.append("ORDER BY j.created_at DESC, j.id DESC")
        if self.limit is not None:
            parts.append("LIMIT ?")
            params.append(self.limit)
        return "\n".join(parts), params

    @classmethod
    def from_options(cls, options: SearchOptions, now: datetime) -> SearchQueryBuilder:
        """Validate ``options`` and translate every active filter."""
        builder = cls()

        if options.limit is not None:
            if isinstance(options.limit, bool) or not isinstance(options.limit, int):
                raise ValidationError(f"limit must be an integer, got {options.limit!r}")
            if options.limit <= 0:
                raise ValidationError(f"limit must be positive, got {options.limit}")

        from_date = parse_date_bound(options.from_date, "from_date")
        to_date = parse_date_bound(options.to_date, "to_date")
        if from_date and to_date and to_millis(from_date) > to_millis(to_date):
            raise ValidationError("from_date must not be after to_date")

        if options.context_id is not None:
            builder.with_context(options.context_id)
        if options.query and options.query.strip():
            builder.with_text(options.query)
        if options.tags:
            builder.with_any_tag(normalize_tags(options.tags))
        if from_date is not None:
            builder.created_from(from_date)
        if to_date is not None:
            builder.created_to(to_date)
        if not options.include_expired:
            builder.exclude_expired(now)
        if options.limit is not None:
            builder.with_limit(options.limit)
        return builder
