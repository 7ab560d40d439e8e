"""Key codec: segment paths <-> flat keys.

Keys are ordered sequences of string segments (``["users", "123"]``). The
backing store has a flat namespace, so segments are joined with the ASCII
unit separator, which never appears in well-formed identifiers.
"""

from collections.abc import Sequence

from authkv.exceptions import KeyEncodingError

SEPARATOR = "\x1f"


def join_key(segments: Sequence[str]) -> str:
    """Join key segments into a single flat key.

    An empty trailing segment is allowed and produces a key ending in the
    separator, which is how scan boundaries are built.

    Args:
        segments: Ordered key segments

    Returns:
        The flat key

    Raises:
        KeyEncodingError: If the key is empty, a segment is not a string,
            or a segment contains the separator
    """
    if isinstance(segments, str):
        raise KeyEncodingError("Key must be a sequence of segments, not a string")
    if not segments:
        raise KeyEncodingError("Key must have at least one segment")

    for index, segment in enumerate(segments):
        if not isinstance(segment, str):
            raise KeyEncodingError(
                f"Key segment {index} must be a string, got {type(segment).__name__}"
            )
        if SEPARATOR in segment:
            raise KeyEncodingError(
                f"Key segment {index} contains the reserved separator character"
            )

    return SEPARATOR.join(segments)


def split_key(key: str) -> list[str]:
    """Split a flat key produced by join_key back into its segments."""
    return key.split(SEPARATOR)


def scan_prefix(prefix: Sequence[str]) -> str:
    """Build the listing boundary for keys strictly under ``prefix``.

    The prefix itself, as an exact key, is not matched. An empty prefix
    matches the whole namespace.

    Raises:
        KeyEncodingError: If the prefix is a bare string or has an invalid segment
    """
    if isinstance(prefix, str):
        raise KeyEncodingError("Prefix must be a sequence of segments, not a string")
    return join_key([*prefix, ""])


def sanitize_segment(segment: str) -> str:
    """Strip separator characters from untrusted input used as a segment."""
    return segment.replace(SEPARATOR, "")
