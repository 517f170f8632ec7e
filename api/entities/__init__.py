"""
Entity schemas consumed by the mediation layer.
"""

from .definitions import registry
from .schema import MANAGED_FIELDS, EntitySchema, FieldDescriptor, FieldKind, SchemaRegistry, coerce

__all__ = [
    "MANAGED_FIELDS",
    "EntitySchema",
    "FieldDescriptor",
    "FieldKind",
    "SchemaRegistry",
    "coerce",
    "registry",
]
