"""Merging of table-like values (mappings and sequences)."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from numbers import Real
from typing import Any, Dict, Iterable, Tuple


def _is_numeric_key(key: Any) -> bool:
    return isinstance(key, Real) and not isinstance(key, bool)


def _entries(table: Any) -> Iterable[Tuple[Any, Any]]:
    """Yield a table's entries: numeric keys in ascending order, then the rest."""
    if isinstance(table, Mapping):
        numeric = sorted(
            ((key, value) for key, value in table.items() if _is_numeric_key(key)),
            key=lambda item: item[0],
        )
        others = [
            (key, value) for key, value in table.items() if not _is_numeric_key(key)
        ]
        return [*numeric, *others]
    return [(index, value) for index, value in enumerate(table, start=1)]


def _is_table(value: Any) -> bool:
    if isinstance(value, Mapping):
        return True
    return isinstance(value, Sequence) and not isinstance(
        value, (str, bytes, bytearray)
    )


def merge_tables(*args: Any) -> Dict[Any, Any]:
    """Merge two or more tables into a new dict.

    Values under numeric keys are appended under consecutive keys starting
    at 1; values under any other key are copied, later tables winning.
    Sequences count as tables whose keys are 1, 2, 3, ...
    """
    if len(args) < 2:
        raise TypeError("Expected at least two tables as arguments")
    if not all(_is_table(arg) for arg in args):
        raise TypeError("Expected all arguments to be tables")

    result: Dict[Any, Any] = {}
    next_index = 1
    for table in args:
        for key, value in _entries(table):
            if _is_numeric_key(key):
                result[next_index] = value
                next_index += 1
            else:
                result[key] = value
    return result