"""
Declarative entity descriptions served by the default registry.
"""

from __future__ import annotations

from .schema import EntitySchema, FieldKind, SchemaRegistry

TASK = EntitySchema.describe(
    "task",
    {
        "description": {"kind": FieldKind.STRING, "max_length": 255},
        "completed": {"kind": FieldKind.BOOL},
    },
)

USER = EntitySchema.describe(
    "user",
    {
        "first_name": {"kind": FieldKind.STRING, "max_length": 75},
        "last_name": {"kind": FieldKind.STRING, "max_length": 75},
        "email": {"kind": FieldKind.STRING, "max_length": 255},
        "password": {"kind": FieldKind.STRING, "max_length": 255},
    },
)

# Entity name -> (route path, concurrency protection)
ROUTES = {
    "task": ("tasks", True),
    "user": ("users", True),
}

registry = SchemaRegistry([TASK, USER])
