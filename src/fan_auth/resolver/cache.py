"""DocumentCache — verified DID documents keyed by DID.

Only documents that passed trust verification are ever stored. Each entry
remembers the signed envelope it came from, the ``Last-Modified`` value
the Agent reported, and which Agent vouched for it, so that

* a revalidation can send ``If-Modified-Since`` and keep the entry on 304;
* an Agent whose own trust document stops verifying can have every entry
  it vouched for dropped in one call.

Mutations are serialized per DID through :class:`~fan_auth.locks.KeyedLocks`;
there is no lock shared across unrelated DIDs.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fan_auth.did.document import DIDDocument
from fan_auth.locks import KeyedLocks

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """A verified document together with its revalidation bookkeeping.

    Parameters
    ----------
    key:
        The DID string the document was resolved from.
    document:
        The verified :class:`~fan_auth.did.document.DIDDocument`.
    wrapped_jws:
        The signed envelope exactly as fetched.
    last_modified:
        The subject document's ``Last-Modified`` as reported by the Agent,
        or ``None`` when the Agent sent none.
    fetched_at:
        When the entry was stored. Set by :meth:`DocumentCache.put`.
    agent_domain:
        Domain of the Agent that vouched for the document.
    agent_port:
        Port of that Agent, if non-default.
    """

    key: str
    document: DIDDocument
    wrapped_jws: str
    last_modified: Optional[datetime] = None
    fetched_at: Optional[datetime] = None
    agent_domain: Optional[str] = None
    agent_port: Optional[int] = None


class DocumentCache:
    """Per-DID store of verified documents with TTL and revalidation policy.

    Parameters
    ----------
    ttl:
        Maximum age of an entry before :meth:`is_stale` reports it stale.
        ``None`` disables age-based staleness.
    clock:
        Returns the current UTC time; injectable for tests.

    Example
    -------
    ::

        cache = DocumentCache(ttl=timedelta(minutes=5))
        cache.put(str(did), CacheEntry(key=str(did), document=doc, wrapped_jws=jws))
        entry = cache.get(str(did))
    """

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, did: str) -> CacheEntry | None:
        """Return the entry for *did*, or ``None``. Never does network I/O."""
        return self._entries.get(did)

    def put(self, did: str, entry: CacheEntry) -> CacheEntry:
        """Store *entry* under *did*, overwriting any previous entry.

        ``fetched_at`` is stamped with the current time and ``key`` is
        forced to *did*. Returns the entry actually stored.
        """
        stored = dataclasses.replace(entry, key=did, fetched_at=self._clock())
        with self._locks.hold(did):
            self._entries[did] = stored
        logger.debug("Cached %s (last_modified=%s)", did, stored.last_modified)
        return stored

    def invalidate(self, did: str) -> bool:
        """Drop the entry for *did*. Returns ``True`` if one was present."""
        with self._locks.hold(did):
            return self._entries.pop(did, None) is not None

    def invalidate_agent(self, domain: str, port: Optional[int] = None) -> int:
        """Drop every entry vouched for by the Agent at *domain*/*port*.

        Returns
        -------
        int
            Number of entries removed.
        """
        victims = [
            did
            for did, entry in list(self._entries.items())
            if entry.agent_domain == domain and entry.agent_port == port
        ]
        removed = 0
        for did in victims:
            with self._locks.hold(did):
                entry = self._entries.get(did)
                if entry is not None and entry.agent_domain == domain and entry.agent_port == port:
                    del self._entries[did]
                    removed += 1
        if removed:
            logger.warning("Invalidated %d cached document(s) vouched for by %s", removed, domain)
        return removed

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def is_stale(self, entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        """Return ``True`` when *entry* is older than the configured TTL."""
        if self._ttl is None or entry.fetched_at is None:
            return False
        reference = now or self._clock()
        return reference - entry.fetched_at > self._ttl

    def should_revalidate(
        self,
        entry: CacheEntry | None,
        agent_last_modified: Optional[datetime],
        always: bool = False,
    ) -> bool:
        """Decide whether a cached entry must be refreshed from its Agent.

        Returns ``True`` when *always* is set (per-attempt refresh policy),
        when there is no entry, when the entry is stale, or when the Agent
        reports a ``Last-Modified`` later than the entry's. An entry with no
        recorded ``Last-Modified`` is revalidated whenever the Agent
        reports one.
        """
        if always or entry is None:
            return True
        if self.is_stale(entry):
            return True
        if agent_last_modified is None:
            return False
        if entry.last_modified is None:
            return True
        return agent_last_modified > entry.last_modified

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def dids(self) -> list[str]:
        """Return a sorted list of cached DIDs."""
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, did: object) -> bool:
        return did in self._entries


__all__ = ["CacheEntry", "DocumentCache"]
