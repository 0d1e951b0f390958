"""CRUDlex - definition driven CRUD data layer.

Usage:
    from crudlex import CrudService, SQLDataFactory, create_engine, DatabaseConfig

    engine = create_engine(DatabaseConfig(url="sqlite:///crudlex.db"))
    service = CrudService.from_yaml("crud.yaml", SQLDataFactory(engine))
    service.initialize_schema()

    books = service.get_data("book")
    book = books.create_empty()
    book.populate({"title": "Dune", "library": 1})
    books.create(book)
"""

from crudlex.core.entity import Entity
from crudlex.core.exceptions import (
    CrudlexError,
    DefinitionError,
    UnknownEntityError,
    UnknownFieldError,
)
from crudlex.definitions import DefinitionLoader, EntityDefinition
from crudlex.events import Action, Moment
from crudlex.files import FilesystemFileProcessor, UploadedFile
from crudlex.persistence import (
    AbstractData,
    CrudConfig,
    DatabaseConfig,
    DeletionResult,
    FilterCondition,
    FilterOperator,
    SQLData,
    SQLDataFactory,
    create_engine,
)
from crudlex.service import CrudService, list_page
from crudlex.validation import EntityValidator, ValidationResult

__all__ = [
    "AbstractData",
    "Action",
    "CrudConfig",
    "CrudService",
    "CrudlexError",
    "DatabaseConfig",
    "DefinitionError",
    "DefinitionLoader",
    "DeletionResult",
    "Entity",
    "EntityDefinition",
    "EntityValidator",
    "FilesystemFileProcessor",
    "FilterCondition",
    "FilterOperator",
    "Moment",
    "SQLData",
    "SQLDataFactory",
    "UnknownEntityError",
    "UnknownFieldError",
    "UploadedFile",
    "ValidationResult",
    "create_engine",
    "list_page",
]
