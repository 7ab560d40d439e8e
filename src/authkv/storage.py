"""Expiry-aware storage adapter over a KV namespace.

The adapter maps segment keys onto the namespace's flat keys and reconciles
requested expirations with the store's minimum TTL:

- Expirations at least ``min_ttl`` seconds away use the native TTL only.
- Sooner expirations are written with ``min_ttl`` and carry the exact
  expiry in metadata; reads treat them as missing once it has passed.

Expired records are never deleted here. The native TTL evicts them.
"""

import json
from collections.abc import AsyncIterator, Sequence
from datetime import datetime
from typing import Any, Callable

from authkv.expiry import (
    MIN_TTL_SECONDS,
    ExpiryMetadata,
    epoch_millis,
    is_expired,
    plan_expiry,
)
from authkv.keys import join_key, scan_prefix, split_key
from authkv.observability import Timer, emit_counter, emit_timer, get_logger
from authkv.protocols.kv_namespace import KVNamespace

logger = get_logger(__name__)


class KVStorage:
    """Storage adapter implementing get/set/remove/scan over a KVNamespace.

    Example:
        storage = KVStorage(MemoryKVNamespace())
        await storage.set(["session", "abc"], {"user": "123"}, expiry)
        async for key, value in storage.scan(["session"]):
            ...
    """

    def __init__(
        self,
        namespace: KVNamespace,
        min_ttl: int = MIN_TTL_SECONDS,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        """Initialize storage adapter.

        Args:
            namespace: Backing KV namespace
            min_ttl: Minimum native TTL the namespace accepts, in seconds
            clock: Returns the current time in epoch milliseconds
        """
        self.namespace = namespace
        self.min_ttl = min_ttl
        self.clock = clock

    async def get(self, key: Sequence[str]) -> Any | None:
        """Get a value.

        Returns None if the key is missing or its metadata expiry has passed.
        """
        flat_key = join_key(key)
        value, raw_metadata = await self.namespace.get_with_metadata(flat_key)
        if value is None:
            return None

        metadata = ExpiryMetadata.from_dict(raw_metadata)
        if is_expired(metadata, self.clock()):
            logger.debug("Record logically expired", context={"key": list(key)})
            emit_counter("authkv.storage.expired_reads")
            return None

        return value

    async def set(
        self,
        key: Sequence[str],
        value: Any,
        expiry: datetime | None = None,
    ) -> None:
        """Store a JSON-compatible value, overwriting any existing record.

        Args:
            key: Key segments
            value: JSON-serializable value
            expiry: Optional absolute expiration instant (timezone-aware)

        Raises:
            KeyEncodingError: If the key cannot be encoded
            ValueError: If expiry is a naive datetime
        """
        flat_key = join_key(key)
        plan = plan_expiry(expiry, self.clock(), self.min_ttl)

        if plan.metadata is not None:
            logger.debug(
                "TTL clamped to namespace minimum",
                context={"key": list(key), "ttl_seconds": plan.ttl_seconds, "expiry": plan.metadata.expiry},
            )

        await self.namespace.put(
            flat_key,
            json.dumps(value),
            ttl_seconds=plan.ttl_seconds,
            metadata=plan.metadata.to_dict() if plan.metadata else None,
        )

    async def remove(self, key: Sequence[str]) -> None:
        """Remove a key. No-op if key doesn't exist."""
        await self.namespace.delete(join_key(key))

    async def scan(self, prefix: Sequence[str]) -> AsyncIterator[tuple[list[str], Any]]:
        """Iterate (key, value) pairs for keys strictly under a prefix.

        Pages are fetched one at a time as the consumer advances; stopping
        early leaves later pages unfetched. Keys whose value disappears
        between listing and fetching are skipped.
        """
        boundary = scan_prefix(prefix)
        cursor: str | None = None

        while True:
            with Timer() as timer:
                page = await self.namespace.list(boundary, cursor=cursor)
            emit_timer("authkv.storage.scan_page", timer.duration_ms)
            logger.debug(
                "Fetched scan page",
                context={"prefix": list(prefix), "keys": len(page.keys)},
                duration_ms=timer.duration_ms,
            )

            for name in page.keys:
                value = await self.namespace.get(name)
                if value is not None:
                    yield split_key(name), value

            if page.list_complete:
                break
            cursor = page.cursor
