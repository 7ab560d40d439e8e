"""In-memory KV namespace."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable

from authkv.expiry import MIN_TTL_SECONDS, epoch_millis
from authkv.protocols.kv_namespace import KeyListPage


@dataclass
class StoredEntry:
    """A stored value with optional metadata and native expiration."""

    value: str
    metadata: dict[str, Any] | None = None
    expires_at: int | None = None  # epoch millis

    def is_expired(self, now_ms: int) -> bool:
        """Check if the native TTL has elapsed."""
        if self.expires_at is None:
            return False
        return now_ms >= self.expires_at


class MemoryKVNamespace:
    """In-memory KV namespace with Workers KV semantics.

    Enforces the minimum TTL, keeps metadata next to each value, and pages
    listings in key order. Suitable for development and testing. Data is
    lost on restart.
    """

    def __init__(
        self,
        min_ttl_seconds: int = MIN_TTL_SECONDS,
        page_size: int = 1000,
        clock: Callable[[], int] = epoch_millis,
        **kwargs: Any,
    ) -> None:
        """Initialize memory KV namespace.

        Args:
            min_ttl_seconds: Smallest TTL accepted by put
            page_size: Maximum keys returned per list call
            clock: Returns the current time in epoch milliseconds
            **kwargs: Ignored (for compatibility with other backends)

        Raises:
            ValueError: If page_size is less than 1
        """
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")

        self.min_ttl_seconds = min_ttl_seconds
        self.page_size = page_size
        self.clock = clock
        self._data: dict[str, StoredEntry] = {}
        self._lock = asyncio.Lock()

    def _live_entry(self, key: str) -> StoredEntry | None:
        """Return the entry for key, evicting it if expired. Caller holds lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        """Get a decoded value by key."""
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            return json.loads(entry.value)

    async def get_with_metadata(
        self,
        key: str,
    ) -> tuple[Any | None, dict[str, Any] | None]:
        """Get a decoded value and its metadata."""
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None, None
            metadata = dict(entry.metadata) if entry.metadata is not None else None
            return json.loads(entry.value), metadata

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Store a serialized value with optional TTL in seconds and metadata.

        Raises:
            ValueError: If the TTL is below the namespace minimum
        """
        if ttl_seconds is not None and ttl_seconds < self.min_ttl_seconds:
            raise ValueError(
                f"Invalid expiration_ttl of {ttl_seconds}. "
                f"Expiration TTL must be at least {self.min_ttl_seconds}."
            )

        expires_at = self.clock() + ttl_seconds * 1000 if ttl_seconds is not None else None
        # Round-trip through JSON so stored metadata never aliases the caller's dict
        stored_metadata = json.loads(json.dumps(metadata)) if metadata is not None else None
        async with self._lock:
            self._data[key] = StoredEntry(
                value=value,
                metadata=stored_metadata,
                expires_at=expires_at,
            )

    async def delete(self, key: str) -> None:
        """Delete a key."""
        async with self._lock:
            self._data.pop(key, None)

    async def list(self, prefix: str, cursor: str | None = None) -> KeyListPage:
        """List one page of keys matching a prefix, in key order.

        The cursor is the last key of the previous page.
        """
        async with self._lock:
            now_ms = self.clock()
            expired = [k for k, v in self._data.items() if v.is_expired(now_ms)]
            for k in expired:
                del self._data[k]

            keys = sorted(
                k for k in self._data
                if k.startswith(prefix) and (cursor is None or k > cursor)
            )

        page = keys[:self.page_size]
        if len(keys) > len(page):
            return KeyListPage(keys=page, cursor=page[-1], list_complete=False)
        return KeyListPage(keys=page, cursor=None, list_complete=True)

    async def clear(self) -> None:
        """Clear all data. Useful for testing."""
        async with self._lock:
            self._data.clear()
