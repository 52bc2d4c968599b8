"""TTL cache of already analysed transaction signatures."""

import time
from typing import Callable, Dict


class SignatureCache:
    """
    Remembers signatures for ``ttl`` seconds so each poll cycle only fetches
    transactions it has not analysed yet.

    Single-threaded asyncio use only.
    """

    def __init__(
        self,
        ttl: float = 3600.0,
        max_size: int = 100000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._expires: Dict[str, float] = {}  # signature -> expires_at
        self._hits = 0
        self._misses = 0

    def __contains__(self, signature: str) -> bool:
        expires_at = self._expires.get(signature)
        if expires_at is None:
            self._misses += 1
            return False

        if expires_at < self._clock():
            del self._expires[signature]
            self._misses += 1
            return False

        self._hits += 1
        return True

    def add(self, signature: str):
        """Mark a signature as analysed."""
        if len(self._expires) >= self.max_size:
            self.prune()
        self._expires[signature] = self._clock() + self.ttl

    def discard(self, signature: str):
        self._expires.pop(signature, None)

    def prune(self) -> int:
        """Remove expired entries, then the oldest quarter if still full."""
        now = self._clock()
        expired = [s for s, exp in self._expires.items() if exp < now]
        for s in expired:
            del self._expires[s]

        removed = len(expired)
        if len(self._expires) >= self.max_size:
            oldest = sorted(self._expires, key=self._expires.get)[:len(self._expires) // 4]
            for s in oldest:
                del self._expires[s]
            removed += len(oldest)

        return removed

    def __len__(self) -> int:
        return len(self._expires)

    def stats(self) -> dict:
        """Get cache statistics."""
        lookups = self._hits + self._misses
        return {
            "size": len(self._expires),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups > 0 else 0,
            "ttl": self.ttl,
        }
