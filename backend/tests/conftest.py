"""Shared fixtures: a library/book definition file and SQLite backed services."""

from pathlib import Path

import pytest

from crudlex.files import FilesystemFileProcessor
from crudlex.persistence import DatabaseConfig, SQLDataFactory, create_engine
from crudlex.service import CrudService

CRUD_YAML = """\
library:
  label: Library
  table: library
  filter: [name, type, isOpen, libraryBook]
  childrenLabelFields:
    book: title
  fields:
    name:
      type: text
      required: true
      unique: true
    type:
      type: set
      items: [small, medium, large]
    opening:
      type: datetime
    isOpen:
      type: boolean
    planet:
      type: fixed
      value: Earth
    libraryBook:
      type: many
      many:
        entity: book
        nameField: title
book:
  label: Book
  table: book
  pageSize: 10
  filter: [title, library]
  fields:
    title:
      type: text
      required: true
    author:
      type: text
    pages:
      type: integer
      min: 1
    price:
      type: float
    releaseDate:
      type: date
    website:
      type: url
    cover:
      type: file
      path: covers
    library:
      type: reference
      reference:
        entity: library
        nameField: name
"""


@pytest.fixture
def definitions_file(tmp_path) -> Path:
    path = tmp_path / "crud.yaml"
    path.write_text(CRUD_YAML)
    return path


@pytest.fixture
def make_service(tmp_path, definitions_file):
    """Build a CrudService on a fresh SQLite file with its schema created."""
    engines = []

    def _make(use_uuids: bool = False, transactional: bool = True, name: str = "crudlex.db"):
        engine = create_engine(DatabaseConfig(url=f"sqlite:///{tmp_path / name}"))
        engines.append(engine)
        factory = SQLDataFactory(engine, use_uuids=use_uuids, transactional=transactional)
        service = CrudService.from_yaml(
            definitions_file,
            factory,
            FilesystemFileProcessor(tmp_path / "uploads"),
        )
        service.initialize_schema()
        return service

    yield _make

    for engine in engines:
        engine.dispose()


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def libraries(service):
    return service.get_data("library")


@pytest.fixture
def books(service):
    return service.get_data("book")


@pytest.fixture
def create_library(libraries):
    def _create(name: str, **values):
        entity = libraries.create_empty()
        entity.populate({"name": name, **values})
        assert libraries.create(entity)
        return entity

    return _create


@pytest.fixture
def create_book(books):
    def _create(title: str, **values):
        entity = books.create_empty()
        entity.populate({"title": title, **values})
        assert books.create(entity)
        return entity

    return _create
