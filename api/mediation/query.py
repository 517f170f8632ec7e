"""
Query-string parsing for collection reads and deletes.

Turns a raw key -> value mapping into `QueryOptions` plus a list of
validation errors. Reserved keys (case-insensitive):

- fields: comma separated; `-name` excludes, anything else includes
- sort:   comma separated; `-name` descending, `name` or `+name` ascending
- limit:  integer >= 1
- offset: integer >= 0

Every other key is an equality filter on an existing field. Errors are
collected, never raised; `where` is only filled when there are none.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping

from core import errors
from entities import EntitySchema

FIELDS = "fields"
SORT = "sort"
LIMIT = "limit"
OFFSET = "offset"

RESERVED_KEYS = (FIELDS, SORT, LIMIT, OFFSET)


class SortDirection(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass
class QueryOptions:
    """
    `attributes` and `exclude` are mutually exclusive; at most one is set.
    """

    attributes: list[str] | None = None
    exclude: list[str] | None = None
    order: list[tuple[str, SortDirection]] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    where: dict[str, Any] | None = None


def _split(raw: Any) -> list[str]:
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def _parse_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    text = str(raw).strip()
    try:
        return int(text)
    except ValueError:
        pass
    # "5.0" and "1e1" are integers too
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None


def _parse_fields(raw: Any, schema: EntitySchema, options: QueryOptions) -> list[errors.ApplicationError]:
    include: list[str] = []
    exclude: list[str] = []
    for name in _split(raw):
        if name.startswith("-"):
            exclude.append(name[1:])
        else:
            include.append(name)

    found = schema.missing_fields(include) + schema.missing_fields(exclude)
    if include:
        options.attributes = include
    elif exclude:
        options.exclude = exclude

    if include and exclude:
        found.append(errors.field_include_exclude_error())
    return found


def _parse_sort(raw: Any, schema: EntitySchema, options: QueryOptions) -> list[errors.ApplicationError]:
    found: list[errors.ApplicationError] = []
    for item in _split(raw):
        direction = SortDirection.ASC
        name = item
        if item[0] in "+-":
            name = item[1:]
            if item[0] == "-":
                direction = SortDirection.DESC

        if schema.has_field(name):
            options.order.append((name, direction))
        else:
            found.append(errors.missing_field_error(schema.name, name))
    return found


def parse_query(
    raw_query: Mapping[str, Any] | None,
    schema: EntitySchema,
) -> tuple[QueryOptions, list[errors.ApplicationError]]:
    options = QueryOptions()
    found: list[errors.ApplicationError] = []
    if not raw_query:
        options.where = {}
        return options, found

    where: dict[str, Any] = {}
    for key, value in raw_query.items():
        reserved = key.lower()
        if reserved == FIELDS:
            found.extend(_parse_fields(value, schema, options))
        elif reserved == SORT:
            found.extend(_parse_sort(value, schema, options))
        elif reserved == LIMIT:
            limit = _parse_int(value)
            if limit is not None and limit > 0:
                options.limit = limit
            else:
                found.append(errors.limit_error())
        elif reserved == OFFSET:
            offset = _parse_int(value)
            if offset is not None and offset >= 0:
                options.offset = offset
            else:
                found.append(errors.offset_error())
        else:
            if not schema.has_field(key):
                found.append(errors.missing_field_error(schema.name, key))
            where[key] = value

    if not found:
        options.where = where
    return options, found
