"""Per-identity memoization of candidate search results.

Entries live for a fixed TTL. Concurrent requests for the same identity
share a single in-flight search. The cache is advisory only; claim
decisions always re-read the record store.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from claimlink.identity.candidate_search import CandidateSearch
from claimlink.identity.schemas import CandidateSearchResult, Identity

logger = structlog.get_logger()

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class _Entry:
    result: CandidateSearchResult
    stored_at: float


class MatchCache:
    """TTL-bound, single-flight cache in front of CandidateSearch.

    Features:
    - Results for one identity are reused verbatim until the TTL lapses
    - Concurrent misses for one identity await one shared search
    - invalidate() drops an entry immediately; a search already in flight
      at that moment does not repopulate it
    """

    def __init__(
        self,
        search: CandidateSearch,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            search: Underlying candidate search
            ttl_seconds: Entry lifetime
            clock: Monotonic clock, injectable for tests
        """
        self._search = search
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._inflight: dict[str, asyncio.Task[CandidateSearchResult]] = {}

    def _fresh(self, identity_id: str) -> CandidateSearchResult | None:
        entry = self._entries.get(identity_id)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[identity_id]
            return None
        return entry.result

    def _sweep(self) -> None:
        now = self._clock()
        expired = [
            identity_id
            for identity_id, entry in self._entries.items()
            if now - entry.stored_at >= self._ttl
        ]
        for identity_id in expired:
            del self._entries[identity_id]

    async def get(self, identity: Identity) -> CandidateSearchResult:
        """Return cached candidates or run (or join) a search.

        Args:
            identity: Identity to search for

        Returns:
            CandidateSearchResult, identical object for repeat hits
        """
        cached = self._fresh(identity.id)
        if cached is not None:
            logger.debug("match cache hit", identity_id=identity.id)
            return cached

        self._sweep()
        task = self._inflight.get(identity.id)
        if task is None:
            task = asyncio.create_task(self._fetch(identity))
            self._inflight[identity.id] = task
        else:
            logger.debug("joining in-flight search", identity_id=identity.id)
        # shield: one caller being cancelled must not cancel the shared search
        return await asyncio.shield(task)

    async def _fetch(self, identity: Identity) -> CandidateSearchResult:
        try:
            result = await self._search.search(identity)
            # invalidate() and clear() detach the task, so it no longer stores
            if self._inflight.get(identity.id) is asyncio.current_task():
                self._entries[identity.id] = _Entry(result, self._clock())
            return result
        finally:
            if self._inflight.get(identity.id) is asyncio.current_task():
                del self._inflight[identity.id]

    def invalidate(self, identity_id: str) -> None:
        """Drop the entry for an identity ("search again")."""
        self._entries.pop(identity_id, None)
        self._inflight.pop(identity_id, None)
        logger.debug("match cache invalidated", identity_id=identity_id)

    async def search_again(self, identity: Identity) -> CandidateSearchResult:
        """Invalidate and run a fresh search."""
        self.invalidate(identity.id)
        return await self.get(identity)

    async def warm(self, identity: Identity) -> None:
        """Best-effort prefetch. Failures only mean a later cache miss."""
        try:
            await self.get(identity)
        except Exception as e:
            logger.warning(
                "match cache warm-up failed",
                identity_id=identity.id,
                error=str(e),
            )

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()
        self._inflight.clear()

    def __len__(self) -> int:
        return len(self._entries)
