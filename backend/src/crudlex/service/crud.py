"""CrudService - wires entity definitions to their data instances."""

import logging
from pathlib import Path
from typing import Protocol

from crudlex.core.exceptions import UnknownEntityError
from crudlex.definitions.entity_definition import EntityDefinition
from crudlex.definitions.loader import DefinitionLoader, link_children
from crudlex.files.processor import FileProcessor
from crudlex.persistence.data import AbstractData

logger = logging.getLogger(__name__)


class DataFactory(Protocol):
    """Creates the data instance of one entity type."""

    def create_data(
        self,
        definition: EntityDefinition,
        file_processor: FileProcessor | None = None,
        service: "CrudService | None" = None,
    ) -> AbstractData: ...


class CrudService:
    """Holds one data instance per defined entity.

    Data instances reach each other through the service for reference
    names, children counts and cascading deletes.
    """

    def __init__(
        self,
        definitions: dict[str, EntityDefinition],
        data_factory: DataFactory,
        file_processor: FileProcessor | None = None,
    ):
        self.definitions = definitions
        self.file_processor = file_processor
        link_children(definitions)

        self._datas: dict[str, AbstractData] = {
            name: data_factory.create_data(definition, file_processor, self)
            for name, definition in definitions.items()
        }
        self._by_table = {definition.table: name for name, definition in definitions.items()}

    @classmethod
    def from_yaml(
        cls,
        path: Path | str,
        data_factory: DataFactory,
        file_processor: FileProcessor | None = None,
    ) -> "CrudService":
        """Load the definitions from a YAML file and build the service."""
        definitions = DefinitionLoader(path).load_all()
        return cls(definitions, data_factory, file_processor)

    def get_data(self, name: str) -> AbstractData | None:
        """Data instance of an entity, None if it is not defined."""
        return self._datas.get(name)

    def require_data(self, name: str) -> AbstractData:
        """Data instance of an entity.

        Raises:
            UnknownEntityError: If the entity is not defined
        """
        data = self._datas.get(name)
        if data is None:
            raise UnknownEntityError(name)
        return data

    def get_data_by_table(self, table: str) -> AbstractData | None:
        name = self._by_table.get(table)
        return self._datas.get(name) if name else None

    def get_entities(self) -> list[str]:
        return list(self.definitions.keys())

    def get_definition(self, name: str) -> EntityDefinition | None:
        return self.definitions.get(name)

    def initialize_schema(self) -> None:
        """Create the tables of all entities."""
        for data in self._datas.values():
            data.initialize_schema()
        logger.info("Initialized schema for %d entities", len(self._datas))
