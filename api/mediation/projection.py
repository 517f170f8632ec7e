"""
Allow-list projections shared by every write path.

Both helpers return new dicts; caller payloads are never mutated.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from entities import MANAGED_FIELDS

CREATE_RESULT_FIELDS = MANAGED_FIELDS
UPDATE_RESULT_FIELDS = ("id", "updated_at")


def pick(item: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    return {name: item[name] for name in fields if name in item}


def omit(item: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    dropped = set(fields)
    return {name: value for name, value in item.items() if name not in dropped}


def writable(item: Mapping[str, Any], *extra: Iterable[str]) -> dict[str, Any]:
    """
    Strip managed fields (and any extra key sets) from a write payload.
    """
    dropped = set(MANAGED_FIELDS)
    for keys in extra:
        dropped.update(keys)
    return omit(item, dropped)
