"""Entity definitions - loading, validation and accessors."""

from crudlex.definitions.entity_definition import (
    ChildRelation,
    EntityDefinition,
    FieldDefinition,
    ManyConfig,
    ReferenceConfig,
)
from crudlex.definitions.loader import DefinitionLoader, link_children

__all__ = [
    "ChildRelation",
    "DefinitionLoader",
    "EntityDefinition",
    "FieldDefinition",
    "ManyConfig",
    "ReferenceConfig",
    "link_children",
]
