"""Hierarchical key codec.

External keys are dotted strings ("users.42.profile") or pre-split
sequences (["users", "42", "profile"]). Internally a key is a tuple of
segments; in storage the segments are joined with the ASCII unit
separator, which sorts below every character a segment may hold. Plain
text ordering of stored keys therefore matches segment-wise ordering,
and every prefix/range scan is a simple bounded text comparison.
"""

from typing import Optional, Sequence, Tuple, Union

from timed_storage.core.exceptions import InvalidKeyError

Key = Tuple[str, ...]
KeyLike = Union[str, Sequence[str]]

SEPARATOR = "\x1f"
DELIMITER = "."


def split_key(key: KeyLike) -> Key:
    """Convert an external key into its segment tuple.

    The empty string and the empty sequence map to the root key ``()``,
    which is only meaningful as a namespace prefix or range bound.
    """
    if isinstance(key, str):
        segments = tuple(key.split(DELIMITER)) if key else ()
    elif isinstance(key, (list, tuple)):
        segments = tuple(key)
    else:
        raise InvalidKeyError(f"Unsupported key type: {type(key).__name__}")

    for segment in segments:
        if not isinstance(segment, str) or not segment:
            raise InvalidKeyError(f"Key segments must be non-empty strings: {key!r}")
        if any(ord(ch) < 0x20 for ch in segment):
            raise InvalidKeyError(f"Key segments must not contain control characters: {key!r}")
    return segments


def join_key(segments: Key) -> str:
    """Dotted external form of a segment tuple."""
    return DELIMITER.join(segments)


def encode_key(segments: Key) -> str:
    return SEPARATOR.join(segments)


def decode_key(stored: str) -> Key:
    return tuple(stored.split(SEPARATOR)) if stored else ()


def increment_string(s: str) -> str:
    """Bump the code point of the last character by one.

    This is not a full lexicographic successor: a string ending in
    U+10FFFF has no representable increment and raises ValueError.
    """
    if not s:
        raise ValueError("Cannot increment an empty string")
    return s[:-1] + chr(ord(s[-1]) + 1)


def prefix_bounds(prefix: Key) -> Tuple[Optional[str], Optional[str]]:
    """Stored-key bounds covering ``prefix`` and everything below it.

    Returns ``(lower_inclusive, upper_exclusive)``; the root prefix is
    unbounded on both sides.
    """
    if not prefix:
        return None, None
    lower = encode_key(prefix)
    return lower, increment_string(lower + SEPARATOR)
