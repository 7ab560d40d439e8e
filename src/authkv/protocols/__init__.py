"""Protocol interfaces for pluggable backends."""

from authkv.protocols.kv_namespace import KeyListPage, KVNamespace
from authkv.protocols.storage import StorageAdapter

__all__ = [
    "KeyListPage",
    "KVNamespace",
    "StorageAdapter",
]
