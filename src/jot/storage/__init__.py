"""SQLite persistence: schema, query composition and the entity repository."""

from jot.storage.database import Database
from jot.storage.query import SearchQueryBuilder
from jot.storage.repository import JotRepository

__all__ = ["Database", "JotRepository", "SearchQueryBuilder"]
