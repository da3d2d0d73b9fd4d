"""Core domain types: contexts, jots and the option objects that drive them."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

from jot.errors import ValidationError

# Accepted shapes for metadata input: a mapping, or (key, value) pairs where a
# repeated key keeps the last value.
MetadataInput = Union[Mapping[str, str], Iterable[tuple[str, str]]]


class Unset:
    """Sentinel for "field not provided" in partial updates."""

    _instance: Unset | None = None

    def __new__(cls) -> Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = Unset()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds (naive = UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * 1000))


def from_millis(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass
class Context:
    """A named grouping of jots, typically one per project/branch."""

    id: int
    name: str
    repository: str | None
    branch: str | None
    created_at: datetime
    last_modified_at: datetime
    jot_count: int = 0


@dataclass
class Jot:
    """A single timestamped, optionally-expiring, taggable note."""

    id: int
    context_id: int
    message: str
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def permanent(self) -> bool:
        return self.expires_at is None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


@dataclass
class SearchOptions:
    """Conjunctive jot filters. Every field is optional."""

    context_id: int | None = None
    query: str | None = None
    tags: list[str] | None = None
    from_date: datetime | str | None = None
    to_date: datetime | str | None = None
    include_expired: bool = False
    limit: int | None = None


@dataclass
class CreateJotOptions:
    """Input for creating a jot through the service layer."""

    message: str
    context_id: int | None = None
    context_name: str | None = None
    ttl_days: float | None = None  # None = default TTL, 0 = permanent
    tags: list[str] = field(default_factory=list)
    metadata: MetadataInput = field(default_factory=dict)


@dataclass
class JotUpdate:
    """Partial jot update. Fields left as UNSET are not touched.

    ``expires_at=None`` makes the jot permanent; ``tags`` and ``metadata``
    replace the whole collection when provided.
    """

    message: str | Unset = UNSET
    expires_at: datetime | None | Unset = UNSET
    tags: list[str] | Unset = UNSET
    metadata: MetadataInput | Unset = UNSET

    def is_empty(self) -> bool:
        return all(
            value is UNSET
            for value in (self.message, self.expires_at, self.tags, self.metadata)
        )


# ── Input normalization ───────────────────────────────────


def normalize_message(message: object) -> str:
    if not isinstance(message, str):
        raise ValidationError(f"message must be a string, got {type(message).__name__}")
    if not message.strip():
        raise ValidationError("message must not be empty")
    return message


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Collapse duplicate tags into a sorted list."""
    if tags is None:
        return []
    if isinstance(tags, str):
        raise ValidationError("tags must be a list of strings, not a single string")
    unique: set[str] = set()
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError(f"tag must be a string, got {type(tag).__name__}")
        unique.add(tag)
    return sorted(unique)


def normalize_metadata(metadata: MetadataInput | None) -> dict[str, str]:
    """Flatten metadata input to a dict; later duplicate keys win."""
    if metadata is None:
        return {}
    pairs = metadata.items() if isinstance(metadata, Mapping) else metadata
    result: dict[str, str] = {}
    for item in pairs:
        try:
            key, value = item
        except (TypeError, ValueError):
            raise ValidationError(
                f"metadata entry must be a (key, value) pair, got {item!r}"
            ) from None
        if not isinstance(key, str) or not isinstance(value, str):
            raise ValidationError(f"metadata key and value must be strings: {key!r}={value!r}")
        result[key] = value
    return result
