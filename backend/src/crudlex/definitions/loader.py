"""Load and resolve entity definitions from the CRUD YAML file."""

import logging
from pathlib import Path
from typing import Any

import yaml

from crudlex.core.exceptions import DefinitionError
from crudlex.core.types import META_FIELDS, is_known_type
from crudlex.definitions.entity_definition import (
    EntityDefinition,
    FieldDefinition,
    ManyConfig,
    ReferenceConfig,
)

logger = logging.getLogger(__name__)


class DefinitionLoader:
    """Loads entity definitions from a YAML file.

    The file maps entity names to entity blocks:

        book:
          label: Book
          table: book
          fields:
            title: {type: text, required: true}
            library: {type: reference, reference: {entity: library, nameField: name}}
    """

    def __init__(self, definitions_path: Path | str):
        self.definitions_path = Path(definitions_path)
        self.definitions: dict[str, EntityDefinition] = {}

    def load_all(self) -> dict[str, EntityDefinition]:
        """Load, resolve and cross-check all entity definitions."""
        if not self.definitions_path.exists():
            raise DefinitionError(f"Definition file not found: {self.definitions_path}")

        with open(self.definitions_path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise DefinitionError(f"YAML parse error: {exc}") from exc

        self.definitions = self.load_dict(data or {})
        logger.debug(
            "Loaded %d entity definitions from %s",
            len(self.definitions),
            self.definitions_path,
        )
        return self.definitions

    def load_dict(self, data: dict[str, Any]) -> dict[str, EntityDefinition]:
        """Resolve definitions from already parsed YAML data."""
        if not isinstance(data, dict):
            raise DefinitionError("The definition file must map entity names to definitions")

        definitions = {
            name: self._resolve_entity(name, entity_data or {})
            for name, entity_data in data.items()
        }
        self._check_relations(definitions)
        link_children(definitions)
        self.definitions = definitions
        return definitions

    def _resolve_entity(self, name: str, data: dict) -> EntityDefinition:
        """Resolve one entity block."""
        fields_data = data.get("fields") or {}
        if not isinstance(fields_data, dict):
            raise DefinitionError(f"Entity '{name}': fields must be a mapping")

        fields = []
        for field_name, field_data in fields_data.items():
            if field_name in META_FIELDS:
                raise DefinitionError(
                    f"Entity '{name}': field '{field_name}' is reserved"
                )
            fields.append(self._resolve_field(name, field_name, field_data or {}))

        definition = EntityDefinition(
            name=name,
            table=data.get("table", name),
            label=data.get("label", self._to_label(name)),
            fields=fields,
            page_size=int(data.get("pageSize", 25)),
            filter=list(data.get("filter", [])),
            list_fields=list(data.get("listFields", [])),
            children_label_fields=dict(data.get("childrenLabelFields", {})),
            delete_cascade=bool(data.get("deleteCascade", False)),
            optimistic_locking=bool(data.get("optimisticLocking", True)),
            hard_deletion=bool(data.get("hardDeletion", False)),
            initial_sort_field=data.get("initialSortField", "created_at"),
            initial_sort_ascending=bool(data.get("initialSortAscending", True)),
        )

        if definition.page_size < 1:
            raise DefinitionError(f"Entity '{name}': pageSize must be positive")

        for filter_field in definition.filter:
            if not definition.has_field(filter_field):
                raise DefinitionError(
                    f"Entity '{name}': unknown filter field '{filter_field}'"
                )

        return definition

    def _resolve_field(self, entity_name: str, name: str, data: dict) -> FieldDefinition:
        """Convert a field dict to a FieldDefinition."""
        field_type = data.get("type", "text")
        if not is_known_type(field_type):
            raise DefinitionError(
                f"Entity '{entity_name}': field '{name}' has unknown type '{field_type}'"
            )

        reference = None
        reference_data = data.get("reference")
        if field_type == "reference":
            if not reference_data or "entity" not in reference_data:
                raise DefinitionError(
                    f"Entity '{entity_name}': reference field '{name}' needs reference.entity"
                )
            reference = ReferenceConfig(
                entity=reference_data["entity"],
                name_field=reference_data.get("nameField"),
            )

        many = None
        many_data = data.get("many")
        if field_type == "many":
            if not many_data or "entity" not in many_data:
                raise DefinitionError(
                    f"Entity '{entity_name}': many field '{name}' needs many.entity"
                )
            many = ManyConfig(
                entity=many_data["entity"],
                name_field=many_data.get("nameField"),
                table=many_data.get("table"),
                this_field=many_data.get("thisField", "owner_id"),
                that_field=many_data.get("thatField", "target_id"),
            )

        if field_type == "set" and not data.get("items"):
            raise DefinitionError(
                f"Entity '{entity_name}': set field '{name}' needs items"
            )

        return FieldDefinition(
            name=name,
            type=field_type,
            label=data.get("label", self._to_label(name)),
            required=bool(data.get("required", False)),
            unique=bool(data.get("unique", False)),
            default=data.get("default"),
            description=data.get("description", ""),
            items=data.get("items"),
            value=data.get("value"),
            min=data.get("min"),
            max=data.get("max"),
            path=data.get("path"),
            reference=reference,
            many=many,
        )

    def _check_relations(self, definitions: dict[str, EntityDefinition]) -> None:
        """Ensure reference and many targets exist."""
        for definition in definitions.values():
            for f in definition.fields:
                target = None
                if f.reference:
                    target = f.reference.entity
                elif f.many:
                    target = f.many.entity
                if target is not None and target not in definitions:
                    raise DefinitionError(
                        f"Entity '{definition.name}': field '{f.name}' points to "
                        f"unknown entity '{target}'"
                    )

    def _to_label(self, name: str) -> str:
        """Convert camelCase or snake_case to Title Case."""
        result = []
        for i, char in enumerate(name):
            if char == "_":
                result.append(" ")
                continue
            if char.isupper() and i > 0:
                result.append(" ")
            result.append(char)
        return "".join(result).title()

    def get_definition(self, name: str) -> EntityDefinition | None:
        return self.definitions.get(name)

    def list_entities(self) -> list[str]:
        return list(self.definitions.keys())


def link_children(definitions: dict[str, EntityDefinition]) -> None:
    """Attach to every definition the reference fields pointing at it."""
    for definition in definitions.values():
        definition.children.clear()

    for definition in definitions.values():
        for field_name in definition.get_reference_fields():
            target = definitions.get(definition.get_reference_entity(field_name))
            if target is not None:
                target.add_child(definition.table, field_name, definition.name)
