"""Pytest configuration and fixtures."""

import pytest

from authkv.backends.kv.memory import MemoryKVNamespace

# 2024-01-01T00:00:00Z
NOW_MS = 1704067200000


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, now_ms: int = NOW_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at 2024-01-01 UTC."""
    return FakeClock()


@pytest.fixture
def memory_namespace(clock) -> MemoryKVNamespace:
    """Memory KV namespace sharing the fake clock."""
    return MemoryKVNamespace(clock=clock)


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "storage": {
            "backend": "memory",
            "min_ttl_seconds": 60,
            "page_size": 100,
        },
        "logging": {"level": "DEBUG", "format": "text"},
    }
