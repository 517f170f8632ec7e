"""
Entity schema descriptions and the registry that serves them.

Schemas are plain data: field names, kinds, and nullability. Lookups never
raise; a missing entity or field comes back as None.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from core import errors

MANAGED_FIELDS = ("id", "created_at", "updated_at")


class FieldKind(str, enum.Enum):
    INT = "int"
    STRING = "string"
    BOOL = "bool"
    DATE = "date"


class FieldDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FieldKind
    nullable: bool = False
    primary_key: bool = False
    max_length: int | None = Field(default=None, ge=1)


class EntitySchema(BaseModel):
    """
    One entity: its name, backing table, and field descriptors.

    `id`, `created_at` and `updated_at` are added automatically when a
    description leaves them out.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)
    fields: dict[str, FieldDescriptor]

    @classmethod
    def describe(cls, name: str, fields: Mapping[str, Any], *, table: str | None = None) -> EntitySchema:
        merged: dict[str, Any] = {
            "id": {"kind": FieldKind.INT, "primary_key": True},
        }
        merged.update(fields)
        merged.setdefault("created_at", {"kind": FieldKind.DATE})
        merged.setdefault("updated_at", {"kind": FieldKind.DATE})
        return cls(name=name, table=table or f"{name}s", fields=merged)

    def field(self, name: str) -> FieldDescriptor | None:
        return self.fields.get(name)

    def has_field(self, name: str) -> bool:
        return name in self.fields

    @property
    def field_names(self) -> list[str]:
        return list(self.fields)

    def missing_fields(self, names: Iterable[str]) -> list[errors.ApplicationError]:
        """
        One MissingFieldError per name the schema does not know, in input order.
        """
        return [errors.missing_field_error(self.name, n) for n in names if not self.has_field(n)]


class SchemaRegistry:
    def __init__(self, schemas: Iterable[EntitySchema] = ()) -> None:
        self._schemas: dict[str, EntitySchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: EntitySchema) -> None:
        if schema.name in self._schemas:
            raise ValueError(f"Entity '{schema.name}' is already registered.")
        self._schemas[schema.name] = schema

    def schema(self, name: str | None) -> EntitySchema | None:
        if not name:
            return None
        return self._schemas.get(name)

    def names(self) -> list[str]:
        return list(self._schemas)


def _parse_datetime(raw: str) -> datetime:
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def coerce(field_name: str, descriptor: FieldDescriptor, raw: Any) -> Any:
    """
    Convert loosely typed input (query text, JSON values) to the column's Python type.
    """
    if raw is None:
        return None

    kind = descriptor.kind
    try:
        if kind is FieldKind.INT:
            if isinstance(raw, bool):
                raise ValueError("boolean is not an integer")
            if isinstance(raw, int):
                return raw
            if isinstance(raw, str):
                return int(raw.strip())
        elif kind is FieldKind.STRING:
            if isinstance(raw, str):
                return raw
        elif kind is FieldKind.BOOL:
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, str):
                lowered = raw.strip().lower()
                if lowered in ("true", "1"):
                    return True
                if lowered in ("false", "0"):
                    return False
        elif kind is FieldKind.DATE:
            if isinstance(raw, datetime):
                return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
            if isinstance(raw, str):
                return _parse_datetime(raw)
    except ValueError:
        pass

    raise errors.bad_input_error(f"Field '{field_name}' expects a value of kind '{kind.value}'.")
