"""Validator registry for CRUDlex.

Maps rule names used by the EntityValidator to validator classes. The
built-in rules are registered by ``register_builtin_validators``;
applications may register additional rules the same way.
"""

from crudlex.validation.types import FieldValidator


class ValidatorRegistry:
    """Registry for field validator types.

    Example:
        ValidatorRegistry.register("isbn", IsbnValidator)
        validator = ValidatorRegistry.create("isbn")
    """

    _validators: dict[str, type[FieldValidator]] = {}

    @classmethod
    def register(cls, name: str, validator_class: type[FieldValidator]) -> None:
        """Register a validator class by name.

        Idempotent - re-registering the same name is a no-op.
        """
        if name in cls._validators:
            return
        cls._validators[name] = validator_class

    @classmethod
    def create(cls, name: str) -> FieldValidator:
        """Instantiate the validator registered under *name*.

        Raises:
            ValueError: If validator is not registered
        """
        if name not in cls._validators:
            raise ValueError(
                f"Validator '{name}' is not registered. "
                "Available types: " + ", ".join(cls.list_registered())
            )
        return cls._validators[name]()

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._validators

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._validators.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._validators.clear()
