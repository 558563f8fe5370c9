"""Tagged value encoding for the text-only backing store.

Strings are stored verbatim; everything else is stored as compact JSON.
The representation is chosen at write time and recorded next to the value,
so reads never have to guess.
"""

import json
from enum import Enum
from typing import Any, Optional, Tuple


class ValueKind(str, Enum):
    """Stored value representations."""
    TEXT = "text"    # Raw string, returned unchanged
    JSON = "json"    # Canonical JSON text of a structured value


def encode_value(value: Any) -> Tuple[str, ValueKind]:
    """Encode a value for storage.

    Raises TypeError for values JSON cannot represent.
    """
    if isinstance(value, str):
        return value, ValueKind.TEXT
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False), ValueKind.JSON


def decode_value(text: str, kind: Optional[str]) -> Any:
    """Decode a stored value.

    Rows tagged ``json`` (or rows with no recognised tag, as written by
    older tools) get a single parse attempt; text that does not parse is
    returned as-is.
    """
    if kind == ValueKind.TEXT.value:
        return text
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text
