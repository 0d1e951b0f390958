"""Entity and field definitions resolved from the CRUD YAML file."""

from dataclasses import dataclass, field
from typing import Any

from crudlex.core.exceptions import UnknownFieldError
from crudlex.core.types import META_FIELDS


@dataclass
class ReferenceConfig:
    """Configuration for a reference (many-to-one) field."""

    entity: str  # The referenced entity name
    name_field: str | None = None  # Field shown instead of the raw id


@dataclass
class ManyConfig:
    """Configuration for a many-to-many field and its join table."""

    entity: str  # The target entity name
    name_field: str | None = None
    table: str | None = None  # Defaults to "<table>_<field>"
    this_field: str = "owner_id"
    that_field: str = "target_id"


@dataclass
class FieldDefinition:
    name: str
    type: str
    label: str
    required: bool = False
    unique: bool = False
    default: Any = None
    description: str = ""
    items: list[str] | None = None  # Allowed values of a "set" field
    value: Any = None  # Constant of a "fixed" field
    min: float | None = None
    max: float | None = None
    path: str | None = None  # Sub directory of "file" fields
    reference: ReferenceConfig | None = None
    many: ManyConfig | None = None


@dataclass
class ChildRelation:
    """Another entity referencing this one through one of its fields."""

    table: str
    field: str
    entity: str


@dataclass
class EntityDefinition:
    """Static description of an entity.

    The field set is fixed once constructed; only the children relations are
    attached afterwards, when all definitions are known.
    """

    name: str
    table: str
    label: str
    fields: list[FieldDefinition]
    page_size: int = 25
    filter: list[str] = field(default_factory=list)
    list_fields: list[str] = field(default_factory=list)
    children_label_fields: dict[str, str] = field(default_factory=dict)
    delete_cascade: bool = False
    optimistic_locking: bool = True
    hard_deletion: bool = False
    initial_sort_field: str = "created_at"
    initial_sort_ascending: bool = True
    children: list[ChildRelation] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._fields_by_name = {f.name: f for f in self.fields}

    # ------------------------------------------------------------------
    # Field lookup
    # ------------------------------------------------------------------

    def has_field(self, name: str) -> bool:
        return name in self._fields_by_name or name in META_FIELDS

    def field_definition(self, name: str) -> FieldDefinition:
        """Return the definition of a declared field.

        Raises:
            UnknownFieldError: If the field is not declared.
        """
        try:
            return self._fields_by_name[name]
        except KeyError:
            raise UnknownFieldError(self.name, name) from None

    def get_field_names(self, include_meta: bool = False) -> list[str]:
        names = [f.name for f in self.fields]
        if include_meta:
            return list(META_FIELDS) + names
        return names

    def get_read_only_fields(self) -> list[str]:
        return list(META_FIELDS)

    def get_editable_field_names(self) -> list[str]:
        return [f.name for f in self.fields if f.type != "fixed"]

    def get_type(self, name: str) -> str | None:
        # Ids are integers or UUID strings depending on the data layer
        if name == "version":
            return "integer"
        if name in ("created_at", "updated_at", "deleted_at"):
            return "datetime"
        definition = self._fields_by_name.get(name)
        return definition.type if definition else None

    def get_field(self, name: str, key: str, default: Any = None) -> Any:
        """Read one attribute of a field, returning *default* when unset."""
        definition = self._fields_by_name.get(name)
        if definition is None:
            return default
        value = getattr(definition, key, None)
        return default if value is None else value

    def _fields_of_type(self, type_name: str) -> list[str]:
        return [f.name for f in self.fields if f.type == type_name]

    def get_reference_fields(self) -> list[str]:
        return self._fields_of_type("reference")

    def get_many_fields(self) -> list[str]:
        return self._fields_of_type("many")

    def get_file_fields(self) -> list[str]:
        return self._fields_of_type("file")

    def is_required(self, name: str) -> bool:
        return bool(self.get_field(name, "required", False))

    def is_unique(self, name: str) -> bool:
        return bool(self.get_field(name, "unique", False))

    def get_items(self, name: str) -> list[str]:
        return list(self.get_field(name, "items", []))

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def get_reference_entity(self, name: str) -> str | None:
        reference = self.get_field(name, "reference")
        return reference.entity if reference else None

    def get_reference_name_field(self, name: str) -> str | None:
        reference = self.get_field(name, "reference")
        return reference.name_field if reference else None

    def get_many_entity(self, name: str) -> str | None:
        many = self.get_field(name, "many")
        return many.entity if many else None

    def get_many_name_field(self, name: str) -> str | None:
        many = self.get_field(name, "many")
        return many.name_field if many else None

    def get_many_table(self, name: str) -> str:
        many = self.field_definition(name).many
        if many and many.table:
            return many.table
        return f"{self.table}_{name}"

    def get_many_columns(self, name: str) -> tuple[str, str]:
        """Return the (owner, target) column names of a join table."""
        many = self.field_definition(name).many or ManyConfig(entity="")
        return many.this_field, many.that_field

    def get_children(self) -> list[ChildRelation]:
        return list(self.children)

    def add_child(self, table: str, field_name: str, entity: str) -> None:
        self.children.append(ChildRelation(table=table, field=field_name, entity=entity))

    def get_children_label_fields(self) -> dict[str, str]:
        return dict(self.children_label_fields)

    # ------------------------------------------------------------------
    # Listing and behaviour flags
    # ------------------------------------------------------------------

    def get_filter(self) -> list[str]:
        return list(self.filter)

    def get_list_fields(self) -> list[str]:
        if self.list_fields:
            return list(self.list_fields)
        return ["id", "created_at", "updated_at"] + self.get_field_names()

    def get_page_size(self) -> int:
        return self.page_size

    def get_initial_sort_field(self) -> str:
        return self.initial_sort_field

    def is_initial_sort_ascending(self) -> bool:
        return self.initial_sort_ascending

    def is_delete_cascade(self) -> bool:
        return self.delete_cascade

    def has_optimistic_locking(self) -> bool:
        return self.optimistic_locking

    def is_hard_deletion(self) -> bool:
        return self.hard_deletion

    def get_label(self) -> str:
        return self.label

    def get_table(self) -> str:
        return self.table
