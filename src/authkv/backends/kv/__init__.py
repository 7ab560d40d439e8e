"""KV namespace backends."""

from authkv.backends.kv.cloudflare_kv import CloudflareKVNamespace
from authkv.backends.kv.memory import MemoryKVNamespace

__all__ = ["CloudflareKVNamespace", "MemoryKVNamespace"]
