"""Typed errors raised by the jot core."""

from __future__ import annotations


class JotError(Exception):
    """Base class for all jot errors."""


class ContextNotFoundError(JotError, LookupError):
    """An explicitly requested context does not exist."""

    def __init__(self, ref: int | str) -> None:
        self.ref = ref
        super().__init__(f"Context {ref!r} not found")


class ValidationError(JotError, ValueError):
    """Malformed caller input."""


class InvalidQueryError(ValidationError):
    """The full-text query was rejected by the FTS5 parser."""

    def __init__(self, query: str, reason: str) -> None:
        self.query = query
        super().__init__(f"Invalid search query {query!r}: {reason}")
