"""
Resolution cache for folio plugins.

Memoizes loader output by PluginIdentity. The cache is an explicit object
owned by a loader, never a module-level singleton, so tests and hosts can
hold isolated instances.

Concurrent callers asking for the same identity through ``get_or_load``
are serialized on a per-identity lock: the first caller runs the loader,
the others receive its result.

Entries are never invalidated automatically. A changed plugin file or a
changed sandbox configuration requires an explicit ``clear()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from folio.plugins.requests import PluginIdentity
from folio.plugins.sdk import ResolvedPlugin

logger = logging.getLogger(__name__)


class ResolutionCache:
    """Thread-safe map from PluginIdentity to ResolvedPlugin.

    Attributes:
        _entries: Cached resolutions.
        _lock: Guards ``_entries`` and ``_key_locks``.
        _key_locks: Per-identity locks serializing concurrent loads.
        _hits: Number of cache hits.
        _misses: Number of cache misses.

    Example:
        cache = ResolutionCache()
        resolved = cache.get_or_load(identity, lambda: load(request))
        assert cache.get(identity) is resolved
    """

    def __init__(self) -> None:
        self._entries: dict[PluginIdentity, ResolvedPlugin] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[PluginIdentity, threading.Lock] = {}
        self._hits = 0
        self._misses = 0

    def get(self, identity: PluginIdentity) -> ResolvedPlugin | None:
        with self._lock:
            resolved = self._entries.get(identity)
            if resolved is None:
                self._misses += 1
            else:
                self._hits += 1
            return resolved

    def put(self, identity: PluginIdentity, resolved: ResolvedPlugin) -> None:
        with self._lock:
            self._entries[identity] = resolved

    def get_or_load(
        self,
        identity: PluginIdentity,
        factory: Callable[[], ResolvedPlugin],
    ) -> ResolvedPlugin:
        """Return the cached resolution or build it with *factory*.

        Failures are not cached; the next caller retries the load.
        """
        cached = self.get(identity)
        if cached is not None:
            logger.debug(f"Using cached plugin: {identity}")
            return cached

        with self._lock:
            key_lock = self._key_locks.setdefault(identity, threading.Lock())

        with key_lock:
            with self._lock:
                cached = self._entries.get(identity)
            if cached is not None:
                logger.debug(f"Using cached plugin after concurrent load: {identity}")
                return cached

            resolved = factory()
            self.put(identity, resolved)
            return resolved

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._key_locks.clear()
        logger.debug(f"Cleared {count} cached plugin(s)")

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"<ResolutionCache entries={len(self)}>"
