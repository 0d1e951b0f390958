"""Exception types raised by CRUDlex.

Validation failures and hook vetoes are returned as values; these exceptions
cover programming and configuration errors only.
"""


class CrudlexError(Exception):
    """Base class for all CRUDlex errors."""


class DefinitionError(CrudlexError):
    """An entity definition file is malformed or inconsistent."""


class UnknownEntityError(CrudlexError):
    """An entity name is not part of the loaded definitions."""

    def __init__(self, entity_name: str):
        super().__init__(f"Unknown entity '{entity_name}'")
        self.entity_name = entity_name


class UnknownFieldError(CrudlexError, KeyError):
    """A field is accessed that its entity definition does not declare."""

    def __init__(self, entity_name: str, field_name: str):
        super().__init__(f"Entity '{entity_name}' has no field '{field_name}'")
        self.entity_name = entity_name
        self.field_name = field_name

    def __str__(self) -> str:
        return self.args[0]
