"""Storage-independent data access for one entity type.

AbstractData owns the write lifecycle shared by all storage backends:

1. Run the before listeners (any False vetoes the write)
2. Persist through the backend (``_do_create``, ``_do_update``, ``_do_delete``)
3. Run the after listeners (the write is kept; create and update report
   a failing listener by returning False)

Listener side effects are not covered by a storage transaction: a listener
that already wrote elsewhere is not undone when a later listener vetoes, and
an after listener failing leaves the committed write in place.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from crudlex.core.entity import Entity
from crudlex.definitions.entity_definition import EntityDefinition
from crudlex.events import Action, EventListener, Events, Moment
from crudlex.files.processor import FileProcessor, FileReference, UploadedFile
from crudlex.persistence.filters import FilterCondition

if TYPE_CHECKING:
    from crudlex.service.crud import CrudService

logger = logging.getLogger(__name__)


class DeletionResult(Enum):
    """Outcome of a delete."""

    SUCCESS = "success"
    FAILED_STILL_REFERENCED = "failed_still_referenced"
    FAILED_EVENT = "failed_event"


class AbstractData(ABC):
    """CRUD operations, relation handling and events for one entity type."""

    def __init__(
        self,
        definition: EntityDefinition,
        file_processor: FileProcessor | None = None,
        service: "CrudService | None" = None,
    ):
        self.definition = definition
        self.file_processor = file_processor
        self.service = service
        self.events = Events()

    # ------------------------------------------------------------------
    # Backend operations
    # ------------------------------------------------------------------

    @abstractmethod
    def get(self, id: Any) -> Entity | None:
        """Fetch one entity by id, None if it does not exist."""

    @abstractmethod
    def list_entries(
        self,
        conditions: list[FilterCondition] | None = None,
        skip: int = 0,
        amount: int | None = None,
        sort_field: str | None = None,
        sort_ascending: bool | None = None,
        include_deleted: bool = False,
    ) -> list[Entity]:
        """Fetch a filtered, sorted and paginated list of entities."""

    @abstractmethod
    def count_by(
        self,
        table: str,
        conditions: list[FilterCondition] | None = None,
        exclude_deleted: bool = True,
    ) -> int:
        """Count the rows of *table* matching the conditions."""

    @abstractmethod
    def has_many_set(self, field: str, target_ids: list[Any], exclude_id: Any = None) -> bool:
        """Whether another entity holds exactly *target_ids* in a many field."""

    @abstractmethod
    def get_id_to_name_map(self, entity_name: str, name_field: str | None = None) -> dict[Any, Any]:
        """Map the ids of an entity, ordered by id, to their name field value."""

    def initialize_schema(self) -> None:
        """Create the storage of this entity type; a no-op for schemaless backends."""

    @abstractmethod
    def _do_create(self, entity: Entity) -> None:
        """Persist a new entity, setting its id and version."""

    @abstractmethod
    def _do_update(self, entity: Entity) -> bool:
        """Persist changes; False on a version conflict."""

    @abstractmethod
    def _do_delete(self, entity: Entity, cascade: bool) -> DeletionResult:
        """Delete the entity, honouring children references."""

    # ------------------------------------------------------------------
    # Write lifecycle
    # ------------------------------------------------------------------

    def create(self, entity: Entity) -> bool:
        """Create an entity.

        Returns:
            False if a before listener vetoed (nothing written) or an after
            listener failed (entity written).
        """
        if not self.events.should_execute(entity, Moment.BEFORE, Action.CREATE):
            return False
        self._do_create(entity)
        entity.mark_clean()
        return self.events.should_execute(entity, Moment.AFTER, Action.CREATE)

    def update(self, entity: Entity) -> bool:
        """Update an entity.

        The version held by the entity must match the stored one when
        optimistic locking is enabled, otherwise nothing is written.
        """
        if not self.events.should_execute(entity, Moment.BEFORE, Action.UPDATE):
            return False
        if not self._do_update(entity):
            logger.info(
                "Version conflict updating %s %s (version %s)",
                self.definition.name,
                entity.id,
                entity.version,
            )
            return False
        entity.mark_clean()
        return self.events.should_execute(entity, Moment.AFTER, Action.UPDATE)

    def delete(self, entity: Entity, cascade: bool | None = None) -> DeletionResult:
        """Delete an entity.

        Args:
            entity: The entity to delete
            cascade: Delete referencing children first; defaults to the
                definition's ``deleteCascade`` setting
        """
        if not self.events.should_execute(entity, Moment.BEFORE, Action.DELETE):
            return DeletionResult.FAILED_EVENT

        if cascade is None:
            cascade = self.definition.is_delete_cascade()

        result = self._do_delete(entity, cascade)
        if result != DeletionResult.SUCCESS:
            logger.info(
                "Refused to delete %s %s: %s",
                self.definition.name,
                entity.id,
                result.value,
            )
            return result

        # The row is gone either way; after listeners cannot change the outcome
        if not self.events.should_execute(entity, Moment.AFTER, Action.DELETE):
            logger.warning(
                "After delete listener failed for %s %s",
                self.definition.name,
                entity.id,
            )
        return DeletionResult.SUCCESS

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def push_event(self, moment: Moment, action: Action, listener: EventListener) -> None:
        self.events.push(moment, action, listener)

    def pop_event(self, moment: Moment, action: Action) -> EventListener | None:
        return self.events.pop(moment, action)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def get_definition(self) -> EntityDefinition:
        return self.definition

    def create_empty(self) -> Entity:
        """Create an unsaved entity holding the field defaults."""
        entity = Entity(self.definition)
        entity.set("id", None)
        for f in self.definition.fields:
            if f.type == "fixed":
                entity.set(f.name, f.value)
            elif f.type == "many":
                entity.set(f.name, list(f.default or []))
            else:
                entity.set(f.name, f.default)
        entity.mark_clean()
        return entity

    def _hydrate(self, row: Mapping[str, Any]) -> Entity:
        entity = Entity(self.definition)
        for key, value in row.items():
            if self.definition.has_field(key):
                entity.set(key, value)
        for field in self.definition.get_many_fields():
            if field not in row:
                entity.set(field, [])
        entity.mark_clean()
        return entity

    def get_related_data(self, entity_name: str) -> "AbstractData":
        """Return the data instance of another entity of the same service."""
        if self.service is None:
            raise RuntimeError(
                f"Data of '{self.definition.name}' is not attached to a CrudService"
            )
        return self.service.require_data(entity_name)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _require_file_processor(self) -> FileProcessor:
        if self.file_processor is None:
            raise RuntimeError(f"No file processor configured for '{self.definition.name}'")
        return self.file_processor

    def _file_reference(self, entity: Entity, field: str, filename: str | None = None) -> FileReference:
        return FileReference(
            entity=self.definition.name,
            id=entity.id,
            field=field,
            filename=filename if filename is not None else entity.get(field),
            path=self.definition.get_field(field, "path"),
        )

    def create_files(self, entity: Entity, files: Mapping[str, UploadedFile]) -> bool:
        """Store the uploads of a freshly created entity."""
        processor = self._require_file_processor()
        for field in self.definition.get_file_fields():
            upload = files.get(field)
            if upload is None or not upload.filename:
                continue
            processor.store(self._file_reference(entity, field, upload.filename), upload.content)
        return True

    def update_files(self, entity: Entity, files: Mapping[str, UploadedFile]) -> bool:
        """Store new uploads of an updated entity.

        Previously stored files of the replaced uploads are kept.
        """
        return self.create_files(entity, files)

    def delete_file(self, entity: Entity, field: str) -> bool:
        """Delete the file held by one field."""
        if not entity.get(field):
            return False
        return self._require_file_processor().delete(self._file_reference(entity, field))

    def delete_files(self, entity: Entity) -> bool:
        """Delete the files held by all file fields of an entity."""
        processor = self._require_file_processor()
        for field in self.definition.get_file_fields():
            if entity.get(field):
                processor.delete(self._file_reference(entity, field))
        return True

    def retrieve_file(self, entity: Entity, field: str) -> bytes:
        return self._require_file_processor().retrieve(self._file_reference(entity, field))
