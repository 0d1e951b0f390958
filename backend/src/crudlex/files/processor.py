"""File processors storing the uploads of file fields."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileReference:
    """Identifies the file held by one field of one entity instance."""

    entity: str
    id: Any
    field: str
    filename: str
    path: str | None = None  # Optional sub directory from the field definition


@dataclass
class UploadedFile:
    """A submitted file: its original name and content."""

    filename: str
    content: bytes


@runtime_checkable
class FileProcessor(Protocol):
    """Interface all file processors must implement."""

    def store(self, reference: FileReference, content: bytes) -> None: ...

    def retrieve(self, reference: FileReference) -> bytes: ...

    def delete(self, reference: FileReference) -> bool: ...


class FilesystemFileProcessor:
    """Stores files below a base directory.

    Layout: ``<base>/<path>/<entity>/<id>/<field>/<filename>``, where
    ``<path>`` is the optional sub directory of the field.
    """

    def __init__(self, base_path: Path | str):
        self.base_path = Path(base_path)

    def _file_path(self, reference: FileReference) -> Path:
        # Strip directory parts so a filename cannot escape the base path
        filename = Path(reference.filename).name
        if not filename or filename in (".", ".."):
            raise ValueError(f"Invalid filename '{reference.filename}'")

        directory = self.base_path
        if reference.path:
            directory = directory / reference.path
        return directory / reference.entity / str(reference.id) / reference.field / filename

    def store(self, reference: FileReference, content: bytes) -> None:
        target = self._file_path(reference)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.debug("Stored %d bytes at %s", len(content), target)

    def retrieve(self, reference: FileReference) -> bytes:
        """Read a stored file.

        Raises:
            FileNotFoundError: If nothing is stored for the reference.
        """
        return self._file_path(reference).read_bytes()

    def delete(self, reference: FileReference) -> bool:
        """Delete a stored file, returning False if it did not exist."""
        target = self._file_path(reference)
        if not target.is_file():
            return False
        target.unlink()
        logger.debug("Deleted %s", target)
        return True
