"""Deep merge of attribute mappings.

Used to reconcile a partial update with the row state already stored:
nested mappings are merged key by key, sequences are combined according
to an ArrayStrategy, and anything else is taken from the incoming side.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any


class ArrayStrategy(str, Enum):
    """How two sequences found under the same key are combined.

    REPLACE: keep only the incoming sequence
    CONCAT: base followed by incoming, duplicates kept
    UNION: base followed by incoming, duplicates dropped (first occurrence wins;
        booleans never equal numbers)
    """

    REPLACE = "replace"
    CONCAT = "concat"
    UNION = "union"


def is_plain_mapping(value: Any) -> bool:
    """True for keyed attribute containers (dicts and other Mappings).

    Dates, decimals, bytes, dataclass instances, sequences and None are
    not plain mappings and are never merged into.
    """
    return isinstance(value, Mapping)


def is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _same_value(a: Any, b: Any) -> bool:
    # bool is an int subclass; True and 1 must stay distinct values
    return isinstance(a, bool) is isinstance(b, bool) and a == b


def _unique(items: list[Any]) -> list[Any]:
    # Linear scan instead of a set: items may be unhashable (dicts, lists)
    out: list[Any] = []
    for item in items:
        if not any(_same_value(seen, item) for seen in out):
            out.append(item)
    return out


def combine_sequences(
    base: list[Any] | tuple[Any, ...],
    incoming: list[Any] | tuple[Any, ...],
    array_strategy: ArrayStrategy | str = ArrayStrategy.UNION,
) -> list[Any]:
    """Combine two sequences per the given strategy. Always returns a new list."""
    strategy = ArrayStrategy(array_strategy)

    if strategy is ArrayStrategy.CONCAT:
        return [*base, *incoming]
    if strategy is ArrayStrategy.UNION:
        return _unique([*base, *incoming])
    return list(incoming)


def _detach(value: Any) -> Any:
    if is_plain_mapping(value):
        return dict(value)
    if isinstance(value, list):
        return list(value)
    return value


def deep_merge(
    base: Any,
    incoming: Any,
    array_strategy: ArrayStrategy | str = ArrayStrategy.UNION,
) -> Any:
    """Merge ``incoming`` over ``base``.

    If either side is not a plain mapping, ``incoming`` is returned as-is.
    Otherwise the result holds every key of both sides:
    - both values are mappings: merged recursively
    - both values are sequences: combined per ``array_strategy``
    - anything else: the incoming value wins

    Neither argument is modified. ``merge(merge(a, b), b) == merge(a, b)``
    holds for REPLACE and UNION; CONCAT appends again on every call.

    Example:
        >>> deep_merge({"tags": [1, 2], "a": 1}, {"tags": [2, 3]})
        {'tags': [1, 2, 3], 'a': 1}
    """
    if not is_plain_mapping(base):
        return incoming

    if not is_plain_mapping(incoming):
        return incoming

    out: dict[Any, Any] = dict(base)

    for key, incoming_value in incoming.items():
        base_value = base.get(key)

        if key in base and is_plain_mapping(base_value) and is_plain_mapping(incoming_value):
            out[key] = deep_merge(base_value, incoming_value, array_strategy)
            continue

        if key in base and is_sequence(base_value) and is_sequence(incoming_value):
            out[key] = combine_sequences(base_value, incoming_value, array_strategy)
            continue

        out[key] = _detach(incoming_value)

    return out
