"""Entity validation.

Builds the rules of every field from its definition and runs them through the
registered validators:

- required fields get ``required``
- integer, float, boolean, date, datetime and url fields get their type rule
- set fields get ``inSet`` with the allowed items
- integer and float fields with bounds get ``min`` / ``max``
- reference and many fields get ``reference`` / ``many``
- unique fields get ``unique``

Existing entities of definitions with optimistic locking are also checked
against the stored version.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from crudlex.core.entity import Entity
from crudlex.persistence.filters import FilterCondition
from crudlex.validation.registry import ValidatorRegistry
from crudlex.validation.types import ValidationResult
from crudlex.validation.validators import register_builtin_validators

if TYPE_CHECKING:
    from crudlex.persistence.data import AbstractData

logger = logging.getLogger(__name__)

_TYPE_RULES = ("integer", "float", "boolean", "date", "datetime", "url")


@dataclass
class FieldRule:
    """One validator applied to one field."""

    name: str
    parameters: list[Any]


class EntityValidator:
    """Validates an entity against its definition and the stored data."""

    def __init__(self, entity: Entity):
        self.entity = entity
        register_builtin_validators()

    def build_rules(self, data: "AbstractData") -> dict[str, list[FieldRule]]:
        """Rules per field, in the order they are checked."""
        definition = self.entity.definition
        rules: dict[str, list[FieldRule]] = {}

        for f in definition.fields:
            field_rules: list[FieldRule] = []
            if f.required:
                field_rules.append(FieldRule("required", []))
            if f.type in _TYPE_RULES:
                field_rules.append(FieldRule(f.type, []))
            if f.type == "set":
                field_rules.append(FieldRule("inSet", list(f.items)))
            if f.type in ("integer", "float"):
                if f.min is not None:
                    field_rules.append(FieldRule("min", [f.min]))
                if f.max is not None:
                    field_rules.append(FieldRule("max", [f.max]))
            if f.type == "reference":
                field_rules.append(FieldRule("reference", [data, f.name]))
            if f.type == "many":
                field_rules.append(FieldRule("many", [data, f.name]))
            if f.unique:
                field_rules.append(FieldRule("unique", [data, self.entity, f.name]))
            if field_rules:
                rules[f.name] = field_rules

        return rules

    def _value(self, field: str) -> Any:
        if self.entity.definition.get_type(field) == "many":
            return self.entity.get(field)
        return self.entity.get_raw(field)

    def validate(self, data: "AbstractData", expected_version: int | None = None) -> ValidationResult:
        """Validate the entity.

        Args:
            data: Data instance of the entity's type, used by the lookups
            expected_version: Version the caller edited; defaults to the
                entity's own version

        Returns:
            ValidationResult with the failed rule names per field. A stale
            version is reported as ``errors["version"] == ["version"]``.
        """
        errors: dict[str, list[str]] = {}

        if not self._is_version_current(data, expected_version):
            errors["version"] = ["version"]

        for field, rules in self.build_rules(data).items():
            value = self._value(field)
            for rule in rules:
                validator = ValidatorRegistry.create(rule.name)
                if not validator.is_valid(value, rule.parameters):
                    errors.setdefault(field, []).append(validator.get_invalid_details())

        if errors:
            logger.debug(
                "Validation of %s %s failed: %s",
                self.entity.definition.name,
                self.entity.id,
                errors,
            )
        return ValidationResult(valid=not errors, errors=errors)

    def _is_version_current(self, data: "AbstractData", expected_version: int | None) -> bool:
        definition = data.get_definition()
        if self.entity.id is None or not definition.has_optimistic_locking():
            return True

        version = expected_version if expected_version is not None else self.entity.version
        conditions = [
            FilterCondition.equals("id", self.entity.id),
            FilterCondition.equals("version", version),
        ]
        return data.count_by(definition.get_table(), conditions, True) > 0
