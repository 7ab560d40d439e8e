"""Backend discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from authkv.config import Config
from authkv.protocols import KVNamespace
from authkv.storage import KVStorage

KV_BACKEND_GROUP = "authkv.backends.kv"


def discover_backends(group: str = KV_BACKEND_GROUP) -> dict[str, Any]:
    """Discover all registered backends for an entry point group.

    Args:
        group: Entry point group name

    Returns:
        Dictionary mapping backend names to their classes
    """
    eps = entry_points(group=group)
    return {ep.name: ep.load() for ep in eps}


def get_backend(name: str, group: str = KV_BACKEND_GROUP) -> Any:
    """Get a specific backend class by name.

    Args:
        name: The backend name (e.g., "memory", "cloudflare_kv")
        group: Entry point group name

    Returns:
        The backend class

    Raises:
        ValueError: If the backend is not found
    """
    backends = discover_backends(group)
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise ValueError(
            f"Backend '{name}' not found in group '{group}'. Available: {available}"
        )
    return backends[name]


def create_kv_namespace(backend: str, **kwargs: Any) -> KVNamespace:
    """Create a KVNamespace instance.

    Args:
        backend: The backend name (e.g., "memory", "cloudflare_kv")
        **kwargs: Backend-specific configuration

    Returns:
        A KVNamespace implementation
    """
    cls = get_backend(backend)
    return cls(**kwargs)


def create_storage(config: Config) -> KVStorage:
    """Create a storage adapter from configuration.

    Args:
        config: Application configuration

    Returns:
        KVStorage over the configured backend
    """
    settings = config.storage
    namespace = create_kv_namespace(
        settings.backend,
        **settings.model_dump(exclude={"backend"}),
    )
    return KVStorage(namespace, min_ttl=settings.min_ttl_seconds)
