"""In-memory entity record."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from crudlex.definitions.entity_definition import EntityDefinition


class Entity:
    """One record of a defined entity type.

    Values are kept as stored; ``get`` converts them according to the field
    type. Every ``set`` marks the field dirty until ``mark_clean`` is called.
    """

    def __init__(self, definition: EntityDefinition):
        self.definition = definition
        self._values: dict[str, Any] = {}
        self._dirty: set[str] = set()

    def __repr__(self) -> str:
        return f"Entity({self.definition.name!r}, id={self.id!r}, version={self.version!r})"

    # ------------------------------------------------------------------
    # Value access
    # ------------------------------------------------------------------

    def _check_field(self, field: str) -> None:
        if not self.definition.has_field(field):
            # Raises UnknownFieldError
            self.definition.field_definition(field)

    def set(self, field: str, value: Any) -> None:
        self._check_field(field)
        self._values[field] = value
        self._dirty.add(field)

    def get_raw(self, field: str) -> Any:
        self._check_field(field)
        return self._values.get(field)

    def get(self, field: str) -> Any:
        """Return the value of *field* converted to its field type."""
        value = self.get_raw(field)
        field_type = self.definition.get_type(field)

        if field_type == "many":
            return [self._as_reference(item) for item in value or []]

        if value is None or value == "":
            if field_type == "boolean":
                return False
            return None if field_type in ("integer", "float", "reference") else value

        if field_type == "integer":
            return int(value)
        if field_type == "float":
            return float(value)
        if field_type == "boolean":
            if isinstance(value, str):
                return value.lower() in ("1", "true", "on", "yes")
            return bool(value)
        if field_type == "reference":
            return self._as_reference(value)
        if field_type in ("date", "datetime") and isinstance(value, (date, datetime)):
            if field_type == "date" and isinstance(value, datetime):
                value = value.date()
            return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
        return value

    def _as_reference(self, value: Any) -> dict[str, Any]:
        if isinstance(value, Mapping):
            return dict(value)
        return {"id": value}

    def get_reference_id(self, field: str) -> Any:
        """Return the bare id held by a reference field."""
        value = self.get(field)
        return value["id"] if value else None

    def get_many_ids(self, field: str) -> list[Any]:
        """Return the target ids held by a many field, in order."""
        return [item["id"] for item in self.get(field)]

    def values(self) -> dict[str, Any]:
        return dict(self._values)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @property
    def id(self) -> Any:
        return self._values.get("id")

    @property
    def version(self) -> int | None:
        version = self._values.get("version")
        return int(version) if version is not None else None

    @property
    def dirty_fields(self) -> set[str]:
        return set(self._dirty)

    def is_dirty(self, field: str | None = None) -> bool:
        if field is None:
            return bool(self._dirty)
        return field in self._dirty

    def mark_clean(self) -> None:
        self._dirty.clear()

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def populate(
        self,
        values: Mapping[str, Any],
        files: Mapping[str, Any] | None = None,
    ) -> None:
        """Fill the editable fields from submitted form values.

        Args:
            values: Raw submitted values keyed by field name
            files: Uploaded files (objects with a ``filename``) keyed by field name
        """
        files = files or {}
        for f in self.definition.fields:
            if f.type == "fixed":
                self.set(f.name, f.value)
            elif f.type == "file":
                upload = files.get(f.name)
                if upload is not None and getattr(upload, "filename", None):
                    self.set(f.name, upload.filename)
            elif f.name not in values:
                continue
            elif f.type == "reference":
                value = values[f.name]
                self.set(f.name, {"id": value} if value not in (None, "") else None)
            elif f.type == "many":
                value = values[f.name] or []
                if not isinstance(value, (list, tuple)):
                    value = [value]
                self.set(f.name, [self._as_reference(v) for v in value if v not in (None, "")])
            else:
                self.set(f.name, values[f.name])
