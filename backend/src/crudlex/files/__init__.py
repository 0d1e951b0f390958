"""File handling for file fields."""

from crudlex.files.processor import (
    FileProcessor,
    FileReference,
    FilesystemFileProcessor,
    UploadedFile,
)

__all__ = ["FileProcessor", "FileReference", "FilesystemFileProcessor", "UploadedFile"]
