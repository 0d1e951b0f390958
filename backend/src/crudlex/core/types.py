"""Field type registry with storage and filter defaults."""

from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.types import TypeEngine


@dataclass
class FieldType:
    name: str
    # Builds the column type; reference columns depend on the id strategy.
    storage_type: Callable[[bool], TypeEngine[Any]] | None
    filter_operator: str = "contains"
    sortable: bool = True


def _id_type(use_uuids: bool) -> TypeEngine[Any]:
    return String(36) if use_uuids else Integer()


# Built-in field types
FIELD_TYPES: dict[str, FieldType] = {
    "text": FieldType(
        name="text",
        storage_type=lambda use_uuids: String(255),
    ),
    "multiline": FieldType(
        name="multiline",
        storage_type=lambda use_uuids: Text(),
    ),
    "url": FieldType(
        name="url",
        storage_type=lambda use_uuids: String(255),
    ),
    "integer": FieldType(
        name="integer",
        storage_type=lambda use_uuids: Integer(),
        filter_operator="equals",
    ),
    "float": FieldType(
        name="float",
        storage_type=lambda use_uuids: Float(),
        filter_operator="equals",
    ),
    "boolean": FieldType(
        name="boolean",
        storage_type=lambda use_uuids: Boolean(),
        filter_operator="equals",
    ),
    "date": FieldType(
        name="date",
        storage_type=lambda use_uuids: Date(),
    ),
    "datetime": FieldType(
        name="datetime",
        storage_type=lambda use_uuids: DateTime(),
    ),
    "set": FieldType(
        name="set",
        storage_type=lambda use_uuids: String(255),
        filter_operator="equals",
    ),
    "reference": FieldType(
        name="reference",
        storage_type=_id_type,
        filter_operator="equals",
    ),
    "many": FieldType(
        name="many",
        storage_type=None,  # Lives in its own join table
        filter_operator="in_set",
        sortable=False,
    ),
    "file": FieldType(
        name="file",
        storage_type=lambda use_uuids: String(255),
    ),
    "fixed": FieldType(
        name="fixed",
        storage_type=lambda use_uuids: String(255),
        filter_operator="equals",
    ),
}

# "string" is accepted as a synonym for single-line text
FIELD_TYPES["string"] = FIELD_TYPES["text"]

# Columns every entity table carries besides its declared fields
META_FIELDS = ("id", "created_at", "updated_at", "version", "deleted_at")


def is_known_type(type_name: str) -> bool:
    return type_name in FIELD_TYPES


def get_field_type(type_name: str) -> FieldType:
    """Get field type definition, defaulting to text if unknown."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["text"])


def get_storage_type(type_name: str, use_uuids: bool = False) -> TypeEngine[Any] | None:
    """Get the SQLAlchemy column type for a field type (None for join-table types)."""
    factory = get_field_type(type_name).storage_type
    if factory is None:
        return None
    return factory(use_uuids)
