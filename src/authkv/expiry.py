"""Expiry policy for stores with a coarse minimum TTL.

Workers KV style stores refuse TTLs below a floor (60 seconds). A record
that must expire sooner is still written with the floor TTL so the store
eventually evicts it, and its precise expiry is kept in metadata so reads
can hide it as soon as it lapses.

Times are epoch milliseconds throughout.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

# Minimum TTL (seconds) the backing store accepts
MIN_TTL_SECONDS = 60

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def epoch_millis() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_epoch_millis(value: datetime) -> int:
    """Convert a timezone-aware datetime to epoch milliseconds.

    Raises:
        ValueError: If the datetime is naive
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(
            "Expiry must be a timezone-aware datetime, e.g. datetime.now(timezone.utc)"
        )
    return (value - _EPOCH) // timedelta(milliseconds=1)


@dataclass
class ExpiryMetadata:
    """Logical expiry stored alongside a record."""

    expiry: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to the metadata shape stored with the record."""
        return {"expiry": self.expiry}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ExpiryMetadata | None":
        """Create from stored metadata. Returns None if there is no expiry."""
        if not data or data.get("expiry") is None:
            return None
        return cls(expiry=int(data["expiry"]))


@dataclass
class ExpiryPlan:
    """Native TTL and metadata to write for a requested expiry."""

    ttl_seconds: int | None = None
    metadata: ExpiryMetadata | None = None


def plan_expiry(
    expiry: datetime | None,
    now_ms: int,
    min_ttl: int = MIN_TTL_SECONDS,
) -> ExpiryPlan:
    """Decide how a requested expiry is stored.

    Args:
        expiry: Absolute expiration instant, or None for no expiry
        now_ms: Current time in epoch milliseconds
        min_ttl: Smallest TTL the backing store accepts

    Returns:
        ExpiryPlan with the native TTL and, when the TTL had to be
        clamped, the metadata carrying the exact expiry
    """
    if expiry is None:
        return ExpiryPlan()

    expiry_ms = to_epoch_millis(expiry)
    ttl_seconds = (expiry_ms - now_ms) // 1000

    if ttl_seconds >= min_ttl:
        return ExpiryPlan(ttl_seconds=ttl_seconds)

    return ExpiryPlan(
        ttl_seconds=min_ttl,
        metadata=ExpiryMetadata(expiry=expiry_ms),
    )


def is_expired(metadata: ExpiryMetadata | None, now_ms: int) -> bool:
    """Check whether metadata marks a record as logically expired."""
    if metadata is None:
        return False
    return metadata.expiry < now_ms
