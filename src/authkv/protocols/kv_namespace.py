"""KVNamespace protocol for the backing key-value store."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class KeyListPage:
    """One page of a prefix listing."""

    keys: list[str] = field(default_factory=list)
    cursor: str | None = None
    list_complete: bool = True


@runtime_checkable
class KVNamespace(Protocol):
    """Protocol for KV namespaces with coarse native TTL (Workers KV and friends).

    Values are written as serialized JSON text and read back decoded.
    """

    async def get(self, key: str) -> Any | None:
        """Get a decoded value by key. Returns None if not found."""
        ...

    async def get_with_metadata(
        self,
        key: str,
    ) -> tuple[Any | None, dict[str, Any] | None]:
        """Get a decoded value and its metadata in one round trip.

        Returns (None, None) if the key is not found.
        """
        ...

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Store serialized value with optional TTL in seconds and metadata."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a key. No-op if key doesn't exist."""
        ...

    async def list(self, prefix: str, cursor: str | None = None) -> KeyListPage:
        """List one page of keys matching a prefix."""
        ...
