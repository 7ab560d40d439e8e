"""Tests for the KV storage adapter."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from authkv.backends.kv.memory import MemoryKVNamespace
from authkv.exceptions import KeyEncodingError, KVNamespaceError
from authkv.keys import join_key
from authkv.observability import clear_metric_callbacks, register_metric_callback
from authkv.protocols import KeyListPage, StorageAdapter
from authkv.storage import KVStorage

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
NOW_MS = 1704067200000


@pytest.fixture
def namespace() -> MagicMock:
    """Mocked KV namespace."""
    mock = MagicMock()
    mock.get = AsyncMock()
    mock.get_with_metadata = AsyncMock()
    mock.put = AsyncMock()
    mock.delete = AsyncMock()
    mock.list = AsyncMock()
    return mock


@pytest.fixture
def storage(namespace, clock) -> KVStorage:
    """Storage adapter over the mocked namespace."""
    return KVStorage(namespace, clock=clock)


@pytest.fixture
def memory_storage(memory_namespace, clock) -> KVStorage:
    """Storage adapter over the memory namespace."""
    return KVStorage(memory_namespace, clock=clock)


async def collect(storage: KVStorage, prefix: list[str]) -> list[tuple[list[str], object]]:
    return [item async for item in storage.scan(prefix)]


class TestSet:
    """Tests for KVStorage.set."""

    @pytest.mark.asyncio
    async def test_less_than_minimum(self, storage, namespace) -> None:
        """Short expiry writes the minimum TTL and expiry metadata."""
        await storage.set(["users", "123"], {"name": "Test User"}, NOW + timedelta(seconds=16))

        namespace.put.assert_awaited_once_with(
            join_key(["users", "123"]),
            json.dumps({"name": "Test User"}),
            ttl_seconds=60,
            metadata={"expiry": NOW_MS + 16000},
        )

    @pytest.mark.asyncio
    async def test_more_than_minimum(self, storage, namespace) -> None:
        """Long expiry passes the TTL through without metadata."""
        await storage.set(["a", "b"], {"x": 1}, NOW + timedelta(seconds=61))

        namespace.put.assert_awaited_once_with(
            join_key(["a", "b"]),
            json.dumps({"x": 1}),
            ttl_seconds=61,
            metadata=None,
        )

    @pytest.mark.asyncio
    async def test_no_expiry(self, storage, namespace) -> None:
        """No expiry sends neither TTL nor metadata."""
        await storage.set(["users", "123"], {"name": "Test User"})

        namespace.put.assert_awaited_once_with(
            join_key(["users", "123"]),
            json.dumps({"name": "Test User"}),
            ttl_seconds=None,
            metadata=None,
        )

    @pytest.mark.asyncio
    async def test_expiry_in_past(self, storage, namespace) -> None:
        """An already elapsed expiry still clamps to the minimum TTL."""
        await storage.set(["users", "123"], "v", NOW - timedelta(seconds=5))

        kwargs = namespace.put.await_args.kwargs
        assert kwargs["ttl_seconds"] == 60
        assert kwargs["metadata"] == {"expiry": NOW_MS - 5000}

    @pytest.mark.asyncio
    async def test_custom_minimum_ttl(self, namespace, clock) -> None:
        """The adapter honours a configured minimum TTL."""
        storage = KVStorage(namespace, min_ttl=300, clock=clock)
        await storage.set(["k"], 1, NOW + timedelta(seconds=120))

        kwargs = namespace.put.await_args.kwargs
        assert kwargs["ttl_seconds"] == 300
        assert kwargs["metadata"] == {"expiry": NOW_MS + 120000}

    @pytest.mark.asyncio
    async def test_invalid_key_fails_before_write(self, storage, namespace) -> None:
        """Encoding errors are raised before touching the store."""
        with pytest.raises(KeyEncodingError):
            await storage.set(["users", "a\x1fb"], {})
        namespace.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_naive_expiry_fails_before_write(self, storage, namespace) -> None:
        """A naive expiry is rejected before touching the store."""
        with pytest.raises(ValueError, match="timezone-aware"):
            await storage.set(["users", "123"], {}, datetime(2024, 1, 1))
        namespace.put.assert_not_awaited()


class TestGet:
    """Tests for KVStorage.get."""

    @pytest.mark.asyncio
    async def test_metadata_not_expired(self, storage, namespace) -> None:
        """Value is returned while the metadata expiry is in the future."""
        namespace.get_with_metadata.return_value = (
            {"name": "Test User"},
            {"expiry": NOW_MS + 500},
        )
        assert await storage.get(["users", "123"]) == {"name": "Test User"}
        namespace.get_with_metadata.assert_awaited_once_with(join_key(["users", "123"]))

    @pytest.mark.asyncio
    async def test_metadata_expired(self, storage, namespace) -> None:
        """Value is hidden once the metadata expiry has passed."""
        namespace.get_with_metadata.return_value = (
            {"name": "Test User"},
            {"expiry": NOW_MS - 500},
        )
        assert await storage.get(["users", "123"]) is None

    @pytest.mark.asyncio
    async def test_expired_record_not_deleted(self, storage, namespace) -> None:
        """Expired reads leave eviction to the native TTL."""
        namespace.get_with_metadata.return_value = ({"name": "x"}, {"expiry": NOW_MS - 1})
        await storage.get(["users", "123"])
        namespace.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_metadata(self, storage, namespace) -> None:
        """Records without metadata rely on the native TTL only."""
        namespace.get_with_metadata.return_value = ({"name": "Test User"}, None)
        assert await storage.get(["users", "123"]) == {"name": "Test User"}

    @pytest.mark.asyncio
    async def test_not_found(self, storage, namespace) -> None:
        """Missing keys return None."""
        namespace.get_with_metadata.return_value = (None, None)
        assert await storage.get(["users", "123"]) is None

    @pytest.mark.asyncio
    async def test_falsy_values_returned(self, storage, namespace) -> None:
        """Falsy JSON values are still values."""
        namespace.get_with_metadata.return_value = (0, None)
        assert await storage.get(["counter"]) == 0

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, storage, namespace) -> None:
        """Backing store errors are not translated."""
        namespace.get_with_metadata.side_effect = KVNamespaceError("boom", status_code=500)
        with pytest.raises(KVNamespaceError, match="boom"):
            await storage.get(["users", "123"])

    @pytest.mark.asyncio
    async def test_expired_read_emits_counter(self, storage, namespace) -> None:
        """Expired reads are counted."""
        received = []
        register_metric_callback(lambda name, value, labels: received.append(name))
        try:
            namespace.get_with_metadata.return_value = ("v", {"expiry": NOW_MS - 1})
            await storage.get(["k"])
        finally:
            clear_metric_callbacks()
        assert "authkv.storage.expired_reads" in received


class TestRemove:
    """Tests for KVStorage.remove."""

    @pytest.mark.asyncio
    async def test_remove(self, storage, namespace) -> None:
        """Remove deletes the encoded key."""
        await storage.remove(["users", "123"])
        namespace.delete.assert_awaited_once_with(join_key(["users", "123"]))

    @pytest.mark.asyncio
    async def test_remove_nonexistent(self, memory_storage) -> None:
        """Removing a missing key is not an error."""
        await memory_storage.remove(["missing"])
        await memory_storage.remove(["missing"])


class TestScan:
    """Tests for KVStorage.scan."""

    @pytest.mark.asyncio
    async def test_follows_cursor_across_pages(self, storage, namespace) -> None:
        """All pages are yielded exactly once, in pagination order."""
        pages = {
            None: KeyListPage(keys=["users\x1f1", "users\x1f2"], cursor="c1", list_complete=False),
            "c1": KeyListPage(keys=["users\x1f3"], cursor="c2", list_complete=False),
            "c2": KeyListPage(keys=["users\x1f4"], cursor=None, list_complete=True),
        }
        namespace.list.side_effect = lambda prefix, cursor=None: pages[cursor]
        namespace.get.side_effect = lambda key: {"id": key.split("\x1f")[-1]}

        result = await collect(storage, ["users"])

        assert result == [
            (["users", "1"], {"id": "1"}),
            (["users", "2"], {"id": "2"}),
            (["users", "3"], {"id": "3"}),
            (["users", "4"], {"id": "4"}),
        ]
        assert namespace.list.await_count == 3
        for call in namespace.list.await_args_list:
            assert call.args[0] == "users\x1f"

    @pytest.mark.asyncio
    async def test_skips_missing_values(self, storage, namespace) -> None:
        """Keys deleted between listing and fetching are skipped."""
        namespace.list.return_value = KeyListPage(
            keys=["s\x1fa", "s\x1fb", "s\x1fc"], cursor=None, list_complete=True
        )
        namespace.get.side_effect = lambda key: None if key == "s\x1fb" else key

        result = await collect(storage, ["s"])

        assert [key for key, _ in result] == [["s", "a"], ["s", "c"]]

    @pytest.mark.asyncio
    async def test_empty_listing(self, storage, namespace) -> None:
        """An empty listing yields nothing."""
        namespace.list.return_value = KeyListPage(keys=[], cursor=None, list_complete=True)
        assert await collect(storage, ["nothing"]) == []

    @pytest.mark.asyncio
    async def test_early_stop_does_not_fetch_more_pages(self, storage, namespace) -> None:
        """Stopping iteration leaves later pages unfetched."""
        namespace.list.side_effect = [
            KeyListPage(keys=["p\x1f1", "p\x1f2"], cursor="next", list_complete=False),
            KeyListPage(keys=["p\x1f3"], cursor=None, list_complete=True),
        ]
        namespace.get.return_value = "v"

        iterator = storage.scan(["p"])
        first = await iterator.__anext__()
        await iterator.aclose()

        assert first == (["p", "1"], "v")
        assert namespace.list.await_count == 1
        assert namespace.get.await_count == 1

    @pytest.mark.asyncio
    async def test_nothing_fetched_before_iteration(self, storage, namespace) -> None:
        """Scan is lazy."""
        storage.scan(["p"])
        namespace.list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_failure_propagates(self, storage, namespace) -> None:
        """Listing errors surface to the consumer without retries."""
        namespace.list.side_effect = KVNamespaceError("unavailable", status_code=503)
        with pytest.raises(KVNamespaceError):
            await collect(storage, ["p"])
        assert namespace.list.await_count == 1

    @pytest.mark.asyncio
    async def test_string_prefix_rejected(self, memory_storage) -> None:
        """A bare string prefix raises instead of scanning a different boundary."""
        await memory_storage.set(["users", "1"], {"id": 1})

        with pytest.raises(KeyEncodingError):
            await collect(memory_storage, "users")

    @pytest.mark.asyncio
    async def test_string_prefix_lists_nothing(self, storage, namespace) -> None:
        """The prefix is validated before the first listing call."""
        with pytest.raises(KeyEncodingError):
            await collect(storage, "p")
        namespace.list.assert_not_awaited()


class TestMemoryBacked:
    """End-to-end tests against the memory namespace."""

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, memory_storage) -> None:
        """KVStorage implements StorageAdapter."""
        assert isinstance(memory_storage, StorageAdapter)

    @pytest.mark.asyncio
    async def test_short_expiry_lifecycle(self, memory_storage, memory_namespace, clock) -> None:
        """A 16 second record is readable until its expiry, hidden afterwards."""
        key = ["users", "123"]
        await memory_storage.set(key, {"name": "A"}, NOW + timedelta(seconds=16))

        clock.advance(16000)
        assert await memory_storage.get(key) == {"name": "A"}

        clock.advance(1)
        assert await memory_storage.get(key) is None

        # Still physically present until the native TTL evicts it
        value, metadata = await memory_namespace.get_with_metadata(join_key(key))
        assert value == {"name": "A"}
        assert metadata == {"expiry": NOW_MS + 16000}

        clock.advance(60000)
        assert await memory_namespace.get_with_metadata(join_key(key)) == (None, None)

    @pytest.mark.asyncio
    async def test_long_expiry_readable(self, memory_storage) -> None:
        """A 61 second record is readable immediately."""
        await memory_storage.set(["a", "b"], {"x": 1}, NOW + timedelta(seconds=61))
        assert await memory_storage.get(["a", "b"]) == {"x": 1}

    @pytest.mark.asyncio
    async def test_overwrite_clears_metadata(self, memory_storage, clock) -> None:
        """A later set replaces both value and expiry metadata."""
        await memory_storage.set(["k"], "short", NOW + timedelta(seconds=5))
        await memory_storage.set(["k"], "forever")
        clock.advance(10000)
        assert await memory_storage.get(["k"]) == "forever"

    @pytest.mark.asyncio
    async def test_remove(self, memory_storage) -> None:
        """Removed records are gone."""
        await memory_storage.set(["k"], "v")
        await memory_storage.remove(["k"])
        assert await memory_storage.get(["k"]) is None

    @pytest.mark.asyncio
    async def test_scan_excludes_prefix_key_and_siblings(self, clock) -> None:
        """Scan returns keys strictly under the prefix across pages."""
        storage = KVStorage(MemoryKVNamespace(page_size=2, clock=clock), clock=clock)
        await storage.set(["users"], "self")
        await storage.set(["usersx", "1"], "sibling")
        for i in range(5):
            await storage.set(["users", str(i)], i)
        await storage.set(["users", "2", "nested"], "deep")

        result = await collect(storage, ["users"])

        assert sorted(result, key=lambda item: item[0]) == [
            (["users", "0"], 0),
            (["users", "1"], 1),
            (["users", "2"], 2),
            (["users", "2", "nested"], "deep"),
            (["users", "3"], 3),
            (["users", "4"], 4),
        ]
