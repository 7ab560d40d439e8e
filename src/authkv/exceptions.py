"""authkv exceptions."""


class AuthKVError(Exception):
    """Base exception for authkv."""

    pass


class ConfigError(AuthKVError):
    """Configuration error."""

    pass


class KeyEncodingError(AuthKVError, ValueError):
    """A key segment cannot be encoded without breaking the round trip."""

    pass


class KVNamespaceError(AuthKVError):
    """The backing key-value service rejected a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
