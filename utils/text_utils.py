"""
Text utilities for building distributor lookup keys.

The same functions build search keys when master mappings are written
and when sell-out rows are matched, so both sides always agree.
"""

import re
from collections import Counter
from typing import Any, Iterable, Iterator, Optional, Sequence, TypeVar

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


def clean_string(value: Optional[Any]) -> str:
    """
    Clean a single distributor field for key building.

    - None becomes ""
    - Numbers and other scalars are stringified
    - Leading/trailing whitespace is stripped
    - Internal whitespace runs collapse to one space

    Case is preserved:
    - "  Blue   Widget " → "Blue Widget"
    - 1001 → "1001"
    - None → ""
    """
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_key(*parts: Optional[Any]) -> str:
    """
    Build a composite lookup key from distributor fields.

    Parts are cleaned individually and concatenated in the given
    order, so normalize_key("A", "B") != normalize_key("B", "A").

    Args:
        *parts: Field values in key order (None behaves as "")

    Returns:
        Concatenated key, "" when every part is empty
    """
    return "".join(clean_string(part) for part in parts)


def product_search_key(
    distributor: Optional[Any],
    product_code: Optional[Any],
    description: Optional[Any],
) -> str:
    """Search key for product mappings: distributor + code + description."""
    return normalize_key(distributor, product_code, description)


def store_search_key(
    distributor: Optional[Any],
    store_code: Optional[Any],
) -> str:
    """Search key for store mappings: distributor + store code."""
    return normalize_key(distributor, store_code)


# ===================
# BATCH HELPERS
# ===================

def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def group_messages(messages: Iterable[str]) -> list[str]:
    """
    Collapse repeated messages.

    ["a", "b", "a"] → ["a (x2)", "b"]; first-seen order is kept.
    """
    counts = Counter(messages)
    return [
        f"{message} (x{count})" if count > 1 else message
        for message, count in counts.items()
    ]
