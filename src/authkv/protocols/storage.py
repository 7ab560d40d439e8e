"""StorageAdapter protocol consumed by auth and session code."""

from collections.abc import AsyncIterator, Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StorageAdapter(Protocol):
    """Expiry-aware, prefix-scannable storage over segment keys."""

    async def get(self, key: Sequence[str]) -> Any | None:
        """Get a value. Returns None if missing or expired."""
        ...

    async def set(
        self,
        key: Sequence[str],
        value: Any,
        expiry: datetime | None = None,
    ) -> None:
        """Store a JSON-compatible value, optionally expiring at ``expiry``."""
        ...

    async def remove(self, key: Sequence[str]) -> None:
        """Remove a key. No-op if key doesn't exist."""
        ...

    def scan(self, prefix: Sequence[str]) -> AsyncIterator[tuple[list[str], Any]]:
        """Iterate (key, value) pairs strictly under a prefix."""
        ...
