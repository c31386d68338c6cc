"""Time-bounded cache of repository file trees.

The cache is an explicit object owned by a gateway instance. The clock is
injectable so expiry can be tested without sleeping.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from vibescan.models.repository import FileTreeEntry

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class _CachedTree:
    entries: list[FileTreeEntry]
    stored_at: float


class FileTreeCache:
    """Maps ``owner/name/branch`` to a file tree listing.

    An entry is served while ``clock() - stored_at < ttl``. A zero TTL
    disables caching.

    Attributes:
        ttl: Seconds an entry stays valid
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl < 0:
            raise ValueError(f"ttl must not be negative (got {ttl})")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, _CachedTree] = {}

    @staticmethod
    def key(full_name: str, branch: str | None) -> str:
        """Build the cache key for a repository and branch."""
        return f"{full_name}/{branch or 'default'}"

    def get(self, key: str) -> list[FileTreeEntry] | None:
        """Return a fresh cached tree, evicting it if expired."""
        cached = self._entries.get(key)
        if cached is None:
            return None
        if self._clock() - cached.stored_at >= self.ttl:
            del self._entries[key]
            return None
        return list(cached.entries)

    def put(self, key: str, entries: list[FileTreeEntry]) -> None:
        if self.ttl == 0:
            return
        self._entries[key] = _CachedTree(list(entries), self._clock())

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
