"""Tests for SQLData on SQLite: CRUD, many-to-many, locking, deletes and events."""

import logging

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from crudlex.core.exceptions import UnknownEntityError, UnknownFieldError
from crudlex.events import Action, Moment
from crudlex.persistence import (
    DatabaseConfig,
    DeletionResult,
    FilterCondition,
    SQLData,
    SQLDataFactory,
    create_engine,
)
from crudlex.service import CrudService


# =============================================================================
# Create and read
# =============================================================================


class TestCreateAndGet:
    def test_create_assigns_id_version_and_timestamps(self, create_library):
        library = create_library("Central")
        assert isinstance(library.id, int)
        assert library.version == 1
        assert library.get("created_at") == library.get("updated_at")
        assert not library.is_dirty()

    def test_get_returns_typed_values(self, books, create_book):
        created = create_book("Dune", pages="412", price="9.5", releaseDate="1965-08-01")
        book = books.get(created.id)
        assert book.get("title") == "Dune"
        assert book.get("pages") == 412
        assert book.get("price") == 9.5
        assert book.get("releaseDate") == "1965-08-01"
        assert book.version == 1

    def test_get_unknown_id_returns_none(self, books):
        assert books.get(12345) is None
        assert books.get(None) is None

    def test_reference_enriched_with_name(self, books, create_library, create_book):
        library = create_library("Central")
        created = create_book("Dune", library=library.id)
        book = books.get(created.id)
        assert book.get("library") == {"id": library.id, "name": "Central"}

    def test_empty_reference_stays_none(self, books, create_book):
        created = create_book("Dune")
        assert books.get(created.id).get("library") is None

    def test_boolean_and_fixed_fields(self, libraries, create_library):
        created = create_library("Central", isOpen="true", planet="Mars")
        library = libraries.get(created.id)
        assert library.get("isOpen") is True
        assert library.get("planet") == "Earth"

    def test_create_empty_uses_defaults(self, libraries):
        entity = libraries.create_empty()
        assert entity.id is None
        assert entity.get("planet") == "Earth"
        assert entity.get("libraryBook") == []
        assert not entity.is_dirty()

    def test_data_lookup_through_service(self, service, libraries):
        assert service.get_data("library") is libraries
        assert service.get_data("shelf") is None
        assert service.get_data_by_table("library") is libraries
        assert sorted(service.get_entities()) == ["book", "library"]
        with pytest.raises(UnknownEntityError):
            service.require_data("shelf")

    def test_related_data_lookup(self, libraries, books, tmp_path):
        assert libraries.get_related_data("book") is books
        with pytest.raises(UnknownEntityError):
            libraries.get_related_data("shelf")

        engine = create_engine(DatabaseConfig(url=f"sqlite:///{tmp_path / 'detached.db'}"))
        detached = SQLData(libraries.definition, engine)
        with pytest.raises(RuntimeError):
            detached.get_related_data("book")
        engine.dispose()

    def test_data_instances_are_sql_data(self, libraries, books):
        assert isinstance(libraries, SQLData)
        assert isinstance(books, SQLData)


# =============================================================================
# Many-to-many
# =============================================================================


class TestManyToMany:
    def test_round_trip_keeps_order(self, libraries, create_library, create_book):
        t1, t2, t3 = create_book("A"), create_book("B"), create_book("C")
        created = create_library("Central", libraryBook=[t1.id, t2.id, t3.id])
        library = libraries.get(created.id)
        assert library.get_many_ids("libraryBook") == [t1.id, t2.id, t3.id]
        assert [item["name"] for item in library.get("libraryBook")] == ["A", "B", "C"]

    def test_round_trip_keeps_order_not_sorted_by_id(self, libraries, create_library, create_book):
        t1, t2, t3 = create_book("A"), create_book("B"), create_book("C")
        created = create_library("Central", libraryBook=[t3.id, t1.id, t2.id])
        library = libraries.get(created.id)
        assert library.get_many_ids("libraryBook") == [t3.id, t1.id, t2.id]
        assert [item["name"] for item in library.get("libraryBook")] == ["C", "A", "B"]

    def test_update_keeps_new_order(self, libraries, create_library, create_book):
        t1, t2, t3 = create_book("A"), create_book("B"), create_book("C")
        created = create_library("Central", libraryBook=[t1.id, t2.id, t3.id])

        library = libraries.get(created.id)
        library.populate({"libraryBook": [t2.id, t3.id, t1.id]})
        assert libraries.update(library)
        assert libraries.get(created.id).get_many_ids("libraryBook") == [t2.id, t3.id, t1.id]
        entries = libraries.list_entries()
        assert entries[0].get_many_ids("libraryBook") == [t2.id, t3.id, t1.id]

    def test_empty_many_field(self, libraries, create_library):
        created = create_library("Central")
        assert libraries.get(created.id).get("libraryBook") == []

    def test_update_rewrites_associations(self, libraries, create_library, create_book):
        t1, t2, t3 = create_book("A"), create_book("B"), create_book("C")
        created = create_library("Central", libraryBook=[t1.id, t2.id])

        library = libraries.get(created.id)
        library.populate({"libraryBook": [t2.id, t3.id]})
        assert libraries.update(library)
        assert libraries.get(created.id).get_many_ids("libraryBook") == [t2.id, t3.id]

        library = libraries.get(created.id)
        library.populate({"libraryBook": []})
        assert libraries.update(library)
        assert libraries.get(created.id).get_many_ids("libraryBook") == []

    def test_list_enriches_each_entity(self, libraries, create_library, create_book):
        t1, t2 = create_book("A"), create_book("B")
        create_library("North", libraryBook=[t1.id])
        create_library("South", libraryBook=[t1.id, t2.id])
        entries = libraries.list_entries(sort_field="name")
        assert [e.get_many_ids("libraryBook") for e in entries] == [[t1.id], [t1.id, t2.id]]

    def test_in_set_filter_requires_all_targets(self, libraries, create_library, create_book):
        t1, t2 = create_book("A"), create_book("B")
        north = create_library("North", libraryBook=[t1.id])
        south = create_library("South", libraryBook=[t1.id, t2.id])

        both = libraries.list_entries([FilterCondition.in_set("libraryBook", [{"id": t1.id}, {"id": t2.id}])])
        assert [e.id for e in both] == [south.id]

        first = libraries.list_entries([FilterCondition.in_set("libraryBook", [t1.id])], sort_field="name")
        assert [e.id for e in first] == [north.id, south.id]

    def test_in_set_without_targets_does_not_restrict(self, libraries, create_library):
        create_library("North")
        create_library("South")
        assert libraries.count_by("library", [FilterCondition.in_set("libraryBook", [])]) == 2

    def test_in_set_unknown_target_matches_nothing(self, libraries, create_library):
        create_library("North")
        assert libraries.count_by("library", [FilterCondition.in_set("libraryBook", [999])]) == 0

    def test_in_set_on_scalar_field_raises(self, libraries):
        with pytest.raises(ValueError):
            libraries.list_entries([FilterCondition.in_set("name", ["x"])])

    def test_has_many_set(self, libraries, create_library, create_book):
        t1, t2 = create_book("A"), create_book("B")
        north = create_library("North", libraryBook=[t1.id, t2.id])
        assert libraries.has_many_set("libraryBook", [t2.id, t1.id])
        assert not libraries.has_many_set("libraryBook", [t1.id])
        assert not libraries.has_many_set("libraryBook", [t1.id, t2.id], exclude_id=north.id)

    def test_has_many_set_needs_exact_set(self, libraries, create_library, create_book):
        t1, t2, t3 = create_book("A"), create_book("B"), create_book("C")
        create_library("North", libraryBook=[t1.id, t2.id, t3.id])
        create_library("South", libraryBook=[t3.id])
        assert not libraries.has_many_set("libraryBook", [t1.id, t2.id])
        assert not libraries.has_many_set("libraryBook", [t1.id, t2.id, 999])
        assert not libraries.has_many_set("libraryBook", [])
        assert libraries.has_many_set("libraryBook", [str(t3.id)])
        assert libraries.has_many_set("libraryBook", [t3.id, t2.id, t1.id])

    def test_has_many_set_ignores_deleted_owners(self, libraries, create_library, create_book):
        t1 = create_book("A")
        north = create_library("North", libraryBook=[t1.id])
        assert libraries.delete(north) == DeletionResult.SUCCESS
        assert not libraries.has_many_set("libraryBook", [t1.id])


# =============================================================================
# Listing and counting
# =============================================================================


class TestListAndCount:
    @pytest.fixture
    def catalogue(self, create_library, create_book):
        central = create_library("Central")
        create_book("Dune", author="Herbert", pages=412, library=central.id)
        create_book("Emma", author="Austen", pages=320, library=central.id)
        create_book("Dracula", author="Stoker", pages=418)
        create_book("Beloved", author="Morrison", pages=324)
        create_book("Carrie", author="King", pages=199)
        return central

    def test_count_matches_unpaginated_list(self, books, catalogue):
        filter_sets = [
            [],
            [FilterCondition.contains("title", "D")],
            [FilterCondition.equals("library", catalogue.id)],
            [FilterCondition.equals("library", None)],
            [FilterCondition.contains("title", "e"), FilterCondition.equals("library", catalogue.id)],
            [FilterCondition.equals("title", "missing")],
        ]
        for conditions in filter_sets:
            assert books.count_by("book", conditions) == len(books.list_entries(conditions))

    def test_contains_filter(self, books, catalogue):
        titles = [b.get("title") for b in books.list_entries([FilterCondition.contains("title", "r")], sort_field="title")]
        assert titles == ["Carrie", "Dracula"]

    def test_sorting(self, books, catalogue):
        ascending = [b.get("title") for b in books.list_entries(sort_field="title")]
        assert ascending == ["Beloved", "Carrie", "Dracula", "Dune", "Emma"]
        descending = [b.get("pages") for b in books.list_entries(sort_field="pages", sort_ascending=False)]
        assert descending == [418, 412, 324, 320, 199]

    def test_unknown_sort_field_falls_back(self, books, catalogue):
        titles = [b.get("title") for b in books.list_entries(sort_field="isbn")]
        assert titles == ["Dune", "Emma", "Dracula", "Beloved", "Carrie"]

    def test_skip_and_amount(self, books, catalogue):
        page = books.list_entries(skip=1, amount=2, sort_field="title")
        assert [b.get("title") for b in page] == ["Carrie", "Dracula"]
        rest = books.list_entries(skip=3, sort_field="title")
        assert [b.get("title") for b in rest] == ["Dune", "Emma"]

    def test_unknown_filter_field_raises(self, books):
        with pytest.raises(UnknownFieldError):
            books.list_entries([FilterCondition.equals("isbn", "1")])

    def test_deleted_entries_hidden(self, books, catalogue):
        dune = books.list_entries([FilterCondition.equals("title", "Dune")])[0]
        assert books.delete(dune) == DeletionResult.SUCCESS
        assert books.count_by("book") == 4
        assert books.count_by("book", exclude_deleted=False) == 5
        assert len(books.list_entries(include_deleted=True)) == 5

    def test_count_other_table_through_service(self, libraries, catalogue):
        assert libraries.count_by("book", [FilterCondition.equals("library", catalogue.id)]) == 2
        with pytest.raises(ValueError):
            libraries.count_by("shelf")

    def test_id_to_name_map(self, libraries, books, catalogue):
        names = libraries.get_id_to_name_map("book", "title")
        assert list(names.values()) == ["Dune", "Emma", "Dracula", "Beloved", "Carrie"]
        assert list(names.keys()) == sorted(names.keys())
        assert books.get_id_to_name_map("library", "name") == {catalogue.id: "Central"}

    def test_id_to_name_map_without_name_field(self, books, catalogue):
        assert books.get_id_to_name_map("library") == {catalogue.id: catalogue.id}


# =============================================================================
# Update and optimistic locking
# =============================================================================


class TestUpdate:
    def test_update_increments_version(self, books, create_book):
        created = create_book("Dune")
        book = books.get(created.id)
        book.set("title", "Dune Messiah")
        assert books.update(book)
        assert book.version == 2
        stored = books.get(created.id)
        assert stored.get("title") == "Dune Messiah"
        assert stored.version == 2

    def test_stale_version_fails_and_changes_nothing(self, books, create_book, caplog):
        created = create_book("Dune")
        first = books.get(created.id)
        second = books.get(created.id)

        first.set("title", "First")
        assert books.update(first)

        second.set("title", "Second")
        with caplog.at_level(logging.INFO, logger="crudlex.persistence.data"):
            assert not books.update(second)
        assert "Version conflict" in caplog.text

        stored = books.get(created.id)
        assert stored.get("title") == "First"
        assert stored.version == 2

    def test_stale_version_keeps_associations(self, libraries, create_library, create_book):
        t1, t2 = create_book("A"), create_book("B")
        created = create_library("Central", libraryBook=[t1.id])
        stale = libraries.get(created.id)

        fresh = libraries.get(created.id)
        fresh.set("name", "Main")
        assert libraries.update(fresh)

        stale.populate({"libraryBook": [t2.id]})
        assert not libraries.update(stale)
        assert libraries.get(created.id).get_many_ids("libraryBook") == [t1.id]

    def test_update_of_deleted_entity_fails(self, books, create_book):
        created = create_book("Dune")
        book = books.get(created.id)
        assert books.delete(created) == DeletionResult.SUCCESS
        book.set("title", "Gone")
        assert not books.update(book)


# =============================================================================
# Delete
# =============================================================================


class TestDelete:
    def test_soft_delete_bumps_version(self, books, create_book):
        created = create_book("Dune")
        assert books.delete(created) == DeletionResult.SUCCESS
        assert books.get(created.id) is None
        deleted = books.list_entries([FilterCondition.equals("id", created.id)], include_deleted=True)[0]
        assert deleted.version == 2
        assert deleted.get("deleted_at") is not None

    def test_referenced_entity_not_deleted_without_cascade(self, libraries, books, create_library, create_book):
        library = create_library("Central")
        book = create_book("Dune", library=library.id)

        assert libraries.delete(library, cascade=False) == DeletionResult.FAILED_STILL_REFERENCED
        assert libraries.get(library.id) is not None
        assert books.get(book.id) is not None

    def test_cascade_removes_descendants(self, libraries, books, create_library, create_book):
        library = create_library("Central")
        dune = create_book("Dune", library=library.id)
        emma = create_book("Emma", library=library.id)
        other = create_book("Other")

        assert libraries.delete(library, cascade=True) == DeletionResult.SUCCESS
        assert libraries.get(library.id) is None
        assert books.get(dune.id) is None
        assert books.get(emma.id) is None
        assert books.get(other.id) is not None

    def test_cascade_defaults_to_definition(self, libraries, create_library, create_book):
        library = create_library("Central")
        create_book("Dune", library=library.id)
        # deleteCascade is not set for library
        assert libraries.delete(library) == DeletionResult.FAILED_STILL_REFERENCED

    def test_deleted_children_do_not_block(self, libraries, books, create_library, create_book):
        library = create_library("Central")
        book = create_book("Dune", library=library.id)
        assert books.delete(book) == DeletionResult.SUCCESS
        assert libraries.delete(library) == DeletionResult.SUCCESS

    def test_hard_deletion_removes_rows(self, libraries, create_library, create_book):
        t1 = create_book("A")
        library = create_library("Central", libraryBook=[t1.id])
        libraries.definition.hard_deletion = True

        assert libraries.delete(library) == DeletionResult.SUCCESS
        assert libraries.count_by("library", exclude_deleted=False) == 0
        with libraries.engine.connect() as conn:
            rows = conn.execute(text('SELECT COUNT(*) FROM "library_libraryBook"')).scalar_one()
        assert rows == 0


class TestNestedCascade:
    SHELF_YAML = """\
shelf:
  label: Shelf
  fields:
    name:
      type: text
tray:
  label: Tray
  fields:
    name:
      type: text
    shelf:
      type: reference
      reference:
        entity: shelf
slot:
  label: Slot
  fields:
    name:
      type: text
    tray:
      type: reference
      reference:
        entity: tray
"""

    @pytest.fixture
    def shelf_service(self, tmp_path):
        path = tmp_path / "shelves.yaml"
        path.write_text(self.SHELF_YAML)
        engine = create_engine(DatabaseConfig(url=f"sqlite:///{tmp_path / 'shelves.db'}"))
        service = CrudService.from_yaml(path, SQLDataFactory(engine))
        service.initialize_schema()
        yield service
        engine.dispose()

    def _create(self, data, **values):
        entity = data.create_empty()
        entity.populate(values)
        assert data.create(entity)
        return entity

    @pytest.fixture
    def tree(self, shelf_service):
        shelves, trays, slots = (shelf_service.get_data(n) for n in ("shelf", "tray", "slot"))
        shelf = self._create(shelves, name="S1")
        tray = self._create(trays, name="T1", shelf=shelf.id)
        slot = self._create(slots, name="X1", tray=tray.id)
        other_shelf = self._create(shelves, name="S2")
        other_tray = self._create(trays, name="T2", shelf=other_shelf.id)
        other_slot = self._create(slots, name="X2", tray=other_tray.id)
        return shelf_service, shelf, tray, slot, other_slot

    def test_middle_level_blocks_without_cascade(self, tree):
        service, shelf, tray, slot, _ = tree
        shelves, trays = service.get_data("shelf"), service.get_data("tray")

        assert shelves.delete(shelf, cascade=False) == DeletionResult.FAILED_STILL_REFERENCED
        assert trays.delete(tray, cascade=False) == DeletionResult.FAILED_STILL_REFERENCED
        assert shelves.get(shelf.id) is not None
        assert trays.get(tray.id) is not None
        assert service.get_data("slot").get(slot.id) is not None

    def test_cascade_removes_grandchildren(self, tree):
        service, shelf, tray, slot, other_slot = tree
        shelves, trays, slots = (service.get_data(n) for n in ("shelf", "tray", "slot"))

        assert shelves.delete(shelf, cascade=True) == DeletionResult.SUCCESS
        assert shelves.get(shelf.id) is None
        assert trays.get(tray.id) is None
        assert slots.get(slot.id) is None
        assert slots.get(other_slot.id) is not None
        assert trays.count_by("tray") == 1


# =============================================================================
# Events
# =============================================================================


class TestDataEvents:
    def test_before_create_veto_writes_nothing(self, libraries):
        libraries.push_event(Moment.BEFORE, Action.CREATE, lambda e: False)
        entity = libraries.create_empty()
        entity.populate({"name": "Central"})

        assert not libraries.create(entity)
        assert entity.id is None
        assert libraries.count_by("library", exclude_deleted=False) == 0

    def test_after_create_failure_keeps_row(self, libraries):
        libraries.push_event(Moment.AFTER, Action.CREATE, lambda e: False)
        entity = libraries.create_empty()
        entity.populate({"name": "Central"})

        assert not libraries.create(entity)
        assert entity.id is not None
        assert libraries.get(entity.id) is not None

    def test_after_listener_sees_id(self, libraries):
        seen = []
        libraries.push_event(Moment.AFTER, Action.CREATE, lambda e: seen.append(e.id) or True)
        entity = libraries.create_empty()
        entity.populate({"name": "Central"})
        assert libraries.create(entity)
        assert seen == [entity.id]

    def test_pop_event_restores_behaviour(self, libraries, create_library):
        libraries.push_event(Moment.BEFORE, Action.CREATE, lambda e: False)
        assert libraries.pop_event(Moment.BEFORE, Action.CREATE) is not None
        assert create_library("Central").id is not None

    def test_before_update_veto(self, books, create_book):
        created = create_book("Dune")
        books.push_event(Moment.BEFORE, Action.UPDATE, lambda e: False)
        book = books.get(created.id)
        book.set("title", "Changed")
        assert not books.update(book)
        assert books.get(created.id).get("title") == "Dune"

    def test_before_delete_veto(self, books, create_book):
        created = create_book("Dune")
        books.push_event(Moment.BEFORE, Action.DELETE, lambda e: False)
        assert books.delete(created) == DeletionResult.FAILED_EVENT
        assert books.get(created.id) is not None

    def test_after_delete_failure_still_succeeds(self, books, create_book, caplog):
        created = create_book("Dune")
        books.push_event(Moment.AFTER, Action.DELETE, lambda e: False)
        with caplog.at_level(logging.WARNING, logger="crudlex.persistence.data"):
            assert books.delete(created) == DeletionResult.SUCCESS
        assert "After delete listener failed" in caplog.text
        assert books.get(created.id) is None


# =============================================================================
# UUIDs and transactions
# =============================================================================


class TestUuids:
    def test_uuid_ids(self, make_service):
        service = make_service(use_uuids=True)
        libraries, books = service.get_data("library"), service.get_data("book")

        book = books.create_empty()
        book.populate({"title": "Dune"})
        assert books.create(book)
        assert isinstance(book.id, str) and len(book.id) == 36

        library = libraries.create_empty()
        library.populate({"name": "Central", "libraryBook": [book.id]})
        assert libraries.create(library)

        stored = libraries.get(library.id)
        assert stored.get_many_ids("libraryBook") == [book.id]
        assert stored.get("libraryBook")[0]["name"] == "Dune"

    def test_uuid_reference(self, make_service):
        service = make_service(use_uuids=True)
        libraries, books = service.get_data("library"), service.get_data("book")

        library = libraries.create_empty()
        library.populate({"name": "Central"})
        libraries.create(library)
        book = books.create_empty()
        book.populate({"title": "Dune", "library": library.id})
        books.create(book)

        assert books.get(book.id).get("library") == {"id": library.id, "name": "Central"}
        assert libraries.delete(library) == DeletionResult.FAILED_STILL_REFERENCED


class TestTransactions:
    def _drop_join_table(self, libraries):
        with libraries.engine.begin() as conn:
            conn.execute(text('DROP TABLE "library_libraryBook"'))

    def _create_with_books(self, service):
        books, libraries = service.get_data("book"), service.get_data("library")
        book = books.create_empty()
        book.populate({"title": "Dune"})
        books.create(book)

        self._drop_join_table(libraries)
        library = libraries.create_empty()
        library.populate({"name": "Central", "libraryBook": [book.id]})
        with pytest.raises(OperationalError):
            libraries.create(library)
        return libraries

    def test_transactional_write_rolls_back(self, make_service):
        libraries = self._create_with_books(make_service(transactional=True))
        assert libraries.count_by("library", exclude_deleted=False) == 0

    def test_non_transactional_write_leaves_partial_state(self, make_service):
        libraries = self._create_with_books(make_service(transactional=False))
        assert libraries.count_by("library", exclude_deleted=False) == 1
