"""Service layer: context resolution, expiration and repository orchestration."""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterable

from jot.config import JotConfig
from jot.detect import ContextDetector
from jot.errors import ContextNotFoundError
from jot.expiration import DEFAULT_TTL_DAYS, calculate_expiration
from jot.storage.repository import JotRepository
from jot.types import (
    UNSET,
    Context,
    CreateJotOptions,
    Jot,
    JotUpdate,
    MetadataInput,
    SearchOptions,
    Unset,
)

logger = logging.getLogger(__name__)


class JotService:
    """Business operations consumed by the request layer."""

    def __init__(
        self,
        repository: JotRepository,
        detector: ContextDetector | None = None,
        config: JotConfig | None = None,
    ) -> None:
        self.repository = repository
        self.detector = detector or ContextDetector(
            default_name=config.default_context if config else "general"
        )
        self.default_ttl_days = config.default_ttl_days if config else DEFAULT_TTL_DAYS
        self.expiring_soon_days = config.expiring_soon_days if config else 3
        self.auto_cleanup = config.auto_cleanup if config else True
        self.sweep_interval = config.sweep_interval if config else 300
        self._last_sweep: float | None = None

    # ── Context resolution ────────────────────────────────────

    def detect_current_context(self) -> str:
        """Name the current context would have, without creating it."""
        return self.detector.detect_name()

    def resolve_context(
        self,
        context_id: int | None = None,
        context_name: str | None = None,
    ) -> Context:
        """Explicit id (must exist) > explicit name (upsert) > auto-detect."""
        if context_id is not None:
            context = self.repository.get_context(context_id)
            if not context:
                raise ContextNotFoundError(context_id)
            return context
        if context_name:
            return self.repository.upsert_context(context_name)
        detected = self.detector.detect()
        logger.debug("Auto-detected context %r", detected.name)
        return self.repository.upsert_context(
            detected.name, repository=detected.repository, branch=detected.branch
        )

    # ── Contexts ──────────────────────────────────────────────

    def list_contexts(self) -> list[Context]:
        contexts = self.repository.list_contexts()
        self._maybe_sweep()
        return contexts

    def get_context(self, id_or_name: int | str) -> Context | None:
        return self.repository.get_context(id_or_name)

    def delete_context(self, id_or_name: int | str) -> bool:
        return self.repository.delete_context(id_or_name)

    # ── Jots ──────────────────────────────────────────────────

    def create_jot(self, options: CreateJotOptions) -> Jot:
        """Resolve the context and insert the jot as one unit of work.

        A context upserted for a jot that then fails validation is rolled back.
        """
        expires_at = calculate_expiration(options.ttl_days, default_days=self.default_ttl_days)
        with self.repository.db.transaction():
            context = self.resolve_context(options.context_id, options.context_name)
            return self.repository.create_jot(
                context.id,
                options.message,
                expires_at,
                options.tags or [],
                options.metadata or {},
            )

    def get_jot(self, jot_id: int) -> Jot | None:
        return self.repository.get_jot(jot_id)

    def update_jot(
        self,
        jot_id: int,
        *,
        message: str | Unset = UNSET,
        ttl_days: float | None | Unset = UNSET,
        tags: Iterable[str] | Unset = UNSET,
        metadata: MetadataInput | Unset = UNSET,
    ) -> Jot | None:
        """Partially update a jot; ``ttl_days`` is recomputed from now."""
        update = JotUpdate(message=message, tags=tags, metadata=metadata)
        if ttl_days is not UNSET:
            update.expires_at = calculate_expiration(
                ttl_days, default_days=self.default_ttl_days
            )
        return self.repository.update_jot(jot_id, update)

    def delete_jot(self, jot_id: int) -> bool:
        return self.repository.delete_jot(jot_id)

    def search_jots(self, options: SearchOptions | None = None) -> list[Jot]:
        jots = self.repository.search_jots(options)
        self._maybe_sweep()
        return jots

    def get_context_jots(self, id_or_name: int | str, limit: int | None = None) -> list[Jot]:
        """Unexpired jots of one context, newest first."""
        context = self.repository.get_context(id_or_name)
        if not context:
            raise ContextNotFoundError(id_or_name)
        jots = self.repository.search_jots(
            SearchOptions(context_id=context.id, limit=limit, include_expired=False)
        )
        self._maybe_sweep()
        return jots

    # ── Expiration ────────────────────────────────────────────

    def cleanup_expired(self) -> int:
        self._last_sweep = time.monotonic()
        return self.repository.delete_expired_jots()

    def get_expiring_soon(self, days: float | None = None) -> list[Jot]:
        return self.repository.get_expiring_soon(
            self.expiring_soon_days if days is None else days
        )

    def _maybe_sweep(self) -> None:
        """Throttled expiry sweep run after a read has produced its result."""
        if not self.auto_cleanup:
            return
        now = time.monotonic()
        if self._last_sweep is not None and now - self._last_sweep < self.sweep_interval:
            return
        try:
            self.cleanup_expired()
        except sqlite3.OperationalError as e:
            logger.warning("Skipped expiry sweep: %s", e)
