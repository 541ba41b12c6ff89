import copy
import time
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


def fingerprint(url: str, anchor_text: Optional[str] = None, sender_domain: Optional[str] = None) -> str:
    """Cache key for a scan request; missing fields count as empty strings."""
    return f"scan::{url}::{anchor_text or ''}::{sender_domain or ''}"


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class ScanCache:
    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        """
        In-process TTL store for scan results.

        Args:
            ttl_seconds: Lifetime of every entry
            clock: Monotonic seconds source, injectable for tests
        """
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve a copy of a cached value if not expired.

        Expired entries are evicted on the way out.
        """
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                return None
            value = entry.value
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        """Store a snapshot of `value`, replacing any previous entry wholesale."""
        entry = CacheEntry(value=copy.deepcopy(value), expires_at=self.clock() + self.ttl_seconds)
        with self._lock:
            self._entries[key] = entry

    def clear_expired(self) -> int:
        """Drop expired entries (maintenance task). Returns how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"✓ Cleared {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> Dict:
        """Cache statistics, grouped by the verdict of the cached scan."""
        now = self.clock()
        with self._lock:
            live = [entry.value for entry in self._entries.values() if entry.expires_at > now]
            total = len(self._entries)

        by_verdict: Dict[str, int] = {}
        for value in live:
            verdict = getattr(value, 'verdict', None)
            if verdict is None and isinstance(value, dict):
                verdict = value.get('verdict')
            if verdict:
                by_verdict[verdict] = by_verdict.get(verdict, 0) + 1

        return {
            'total_entries': total,
            'live_entries': len(live),
            'expired_entries': total - len(live),
            'malicious_entries': by_verdict.get('malicious', 0),
            'suspicious_entries': by_verdict.get('suspicious', 0),
            'safe_entries': by_verdict.get('safe', 0),
            'ttl_seconds': self.ttl_seconds,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
