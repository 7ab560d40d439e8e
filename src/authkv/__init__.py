"""authkv - Expiry-aware key-value storage for auth and session data."""

from authkv.config import Config
from authkv.exceptions import AuthKVError, ConfigError, KeyEncodingError, KVNamespaceError
from authkv.expiry import MIN_TTL_SECONDS, ExpiryMetadata, ExpiryPlan, plan_expiry
from authkv.keys import SEPARATOR, join_key, scan_prefix, split_key
from authkv.observability import configure_logging, get_logger
from authkv.plugins import create_kv_namespace, create_storage
from authkv.protocols import KeyListPage, KVNamespace, StorageAdapter
from authkv.storage import KVStorage

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "KVStorage",
    "StorageAdapter",
    "create_storage",
    # Keys and expiry
    "ExpiryMetadata",
    "ExpiryPlan",
    "MIN_TTL_SECONDS",
    "SEPARATOR",
    "join_key",
    "plan_expiry",
    "scan_prefix",
    "split_key",
    # Backends
    "KeyListPage",
    "KVNamespace",
    "create_kv_namespace",
    # Errors
    "AuthKVError",
    "ConfigError",
    "KeyEncodingError",
    "KVNamespaceError",
    # Observability
    "configure_logging",
    "get_logger",
]
