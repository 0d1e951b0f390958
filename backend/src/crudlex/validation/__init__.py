"""CRUDlex validation system.

Usage:
    from crudlex.validation import EntityValidator

    result = EntityValidator(entity).validate(data, expected_version=3)
    if not result.valid:
        ...  # result.errors maps field names to failed rule names

Custom rules are registered with ``ValidatorRegistry.register``.
"""

from crudlex.validation.entity_validator import EntityValidator, FieldRule
from crudlex.validation.registry import ValidatorRegistry
from crudlex.validation.types import FieldValidator, ValidationResult
from crudlex.validation.validators import (
    BooleanValidator,
    DateTimeValidator,
    DateValidator,
    FloatValidator,
    InSetValidator,
    IntegerValidator,
    ManyValidator,
    MaxValidator,
    MinValidator,
    ReferenceValidator,
    RequiredValidator,
    UniqueValidator,
    UrlValidator,
    register_builtin_validators,
)

__all__ = [
    # Types
    "FieldValidator",
    "ValidationResult",
    # Registry
    "ValidatorRegistry",
    # Validators
    "BooleanValidator",
    "DateTimeValidator",
    "DateValidator",
    "FloatValidator",
    "InSetValidator",
    "IntegerValidator",
    "ManyValidator",
    "MaxValidator",
    "MinValidator",
    "ReferenceValidator",
    "RequiredValidator",
    "UniqueValidator",
    "UrlValidator",
    # Entity validation
    "EntityValidator",
    "FieldRule",
    # Setup
    "register_builtin_validators",
]
