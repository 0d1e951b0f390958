"""Core types for the CRUDlex validation system."""

from dataclasses import dataclass, field
from typing import Any, Protocol


class FieldValidator(Protocol):
    """Protocol that all field validators must implement.

    Validators are stateless; everything they need beyond the value is
    passed in *parameters* (allowed items, the data instance, ...).
    """

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        """Check one field value.

        Empty values are valid for every validator except ``required``.
        """
        ...

    def get_invalid_details(self) -> str:
        """Machine-readable reason reported when the value is invalid."""
        ...


@dataclass
class ValidationResult:
    """Result of validating an entity.

    Attributes:
        valid: True if no field failed
        errors: Failed rule names keyed by field name
    """

    valid: bool
    errors: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": {name: list(reasons) for name, reasons in self.errors.items()},
        }
