"""SQL persistence on SQLAlchemy Core.

Queries are assembled as SQL text with bound parameters; identifiers are
quoted by the engine's dialect so the same code runs on SQLite, MySQL and
PostgreSQL.

Table layout
------------
``<table>``                 id, created_at, updated_at, version, deleted_at
                            and one column per scalar or reference field
``<table>_<field>``         one join table per many field with the columns
                            (this_field, that_field, position); the first two form
                            the primary key, position keeps the list order

Transactions
------------
With ``transactional=True`` every write that spans several statements
(insert plus join rows, update plus join rewrite, cascading delete) runs in a
single transaction. With ``transactional=False`` each statement commits on
its own and a failure part way leaves the earlier statements applied.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import MetaData, bindparam, text
from sqlalchemy.engine import Connection, Engine

from crudlex.core.entity import Entity
from crudlex.core.exceptions import UnknownFieldError
from crudlex.core.types import get_field_type
from crudlex.definitions.entity_definition import EntityDefinition
from crudlex.files.processor import FileProcessor
from crudlex.persistence.data import AbstractData, DeletionResult
from crudlex.persistence.filters import FilterCondition, FilterOperator, build_condition
from crudlex.persistence.schema import MANY_POSITION_COLUMN, build_entity_table, build_many_tables

if TYPE_CHECKING:
    from crudlex.service.crud import CrudService

logger = logging.getLogger(__name__)

_META_COLUMNS = ("id", "created_at", "updated_at", "version", "deleted_at")


class SQLData(AbstractData):
    """Data access for one entity type backed by an SQL database."""

    def __init__(
        self,
        definition: EntityDefinition,
        engine: Engine,
        file_processor: FileProcessor | None = None,
        service: CrudService | None = None,
        use_uuids: bool = False,
        transactional: bool = True,
    ):
        super().__init__(definition, file_processor, service)
        self.engine = engine
        self.use_uuids = use_uuids
        self.transactional = transactional

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _q(self, name: str) -> str:
        """Quote an identifier for the engine's dialect."""
        return self.engine.dialect.identifier_preparer.quote(name)

    @property
    def _table(self) -> str:
        return self._q(self.definition.table)

    def _storage_fields(self) -> list[str]:
        return [f.name for f in self.definition.fields if f.type != "many"]

    def _select_columns(self) -> str:
        return ", ".join(self._q(c) for c in list(_META_COLUMNS) + self._storage_fields())

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _text(sql: str, expanding: list[str] | None = None):
        statement = text(sql)
        if expanding:
            statement = statement.bindparams(*[bindparam(name, expanding=True) for name in expanding])
        return statement

    @contextmanager
    def _write_connection(self) -> Iterator[Connection]:
        """Connection for a write: one transaction, or autocommit per statement."""
        if self.transactional:
            with self.engine.begin() as conn:
                yield conn
        else:
            with self.engine.connect() as conn:
                yield conn.execution_options(isolation_level="AUTOCOMMIT")

    def _row_values(self, entity: Entity) -> dict[str, Any]:
        """Column values of the entity's scalar and reference fields."""
        values: dict[str, Any] = {}
        for f in self.definition.fields:
            if f.type == "many":
                continue
            if f.type == "reference":
                value = entity.get_reference_id(f.name)
            elif f.type in ("integer", "float", "boolean"):
                value = entity.get(f.name)
            else:
                value = entity.get_raw(f.name)
                if value == "" and f.type in ("date", "datetime"):
                    value = None
            values[f.name] = value
        return values

    def initialize_schema(self) -> None:
        """Create the entity table and its join tables if they don't exist."""
        metadata = MetaData()
        build_entity_table(self.definition, metadata, self.use_uuids)
        build_many_tables(self.definition, metadata, self.use_uuids)
        metadata.create_all(self.engine)
        logger.info("Initialized tables of %s", self.definition.name)

    # ------------------------------------------------------------------
    # WHERE clause
    # ------------------------------------------------------------------

    def _build_where(
        self,
        conn: Connection,
        conditions: list[FilterCondition] | None,
        exclude_deleted: bool,
    ) -> tuple[str, dict[str, Any], list[str]]:
        """Build the WHERE clause shared by list and count queries.

        Returns:
            The clause (empty when unrestricted), its bind parameters and the
            names of expanding (IN list) parameters.
        """
        parts: list[str] = []
        params: dict[str, Any] = {}
        expanding: list[str] = []

        if exclude_deleted:
            parts.append(f"{self._q('deleted_at')} IS NULL")

        for i, condition in enumerate(conditions or []):
            if not self.definition.has_field(condition.field):
                raise UnknownFieldError(self.definition.name, condition.field)

            param = f"f{i}"
            is_many = self.definition.get_type(condition.field) == "many"

            if condition.operator == FilterOperator.IN_SET or is_many:
                if not is_many:
                    raise ValueError(
                        f"Field '{condition.field}' is not a many field, cannot filter by set"
                    )
                owner_ids = self._owners_holding(conn, condition.field, condition.target_ids())
                if owner_ids is None:
                    continue
                if not owner_ids:
                    parts.append("1 = 0")
                    continue
                parts.append(f"{self._q('id')} IN :{param}")
                params[param] = sorted(owner_ids, key=str)
                expanding.append(param)
                continue

            sql, values = build_condition(self._q(condition.field), condition, param)
            parts.append(sql)
            params.update(values)

        where = f" WHERE {' AND '.join(parts)}" if parts else ""
        return where, params, expanding

    def _owners_holding(self, conn: Connection, field: str, target_ids: list[Any]) -> set[Any] | None:
        """Ids of the entities whose many field contains all *target_ids*.

        Intersects the owner ids of each target id. Returns None when no target
        id is given, meaning no restriction.
        """
        if not target_ids:
            return None

        join_table = self._q(self.definition.get_many_table(field))
        this_field, that_field = (self._q(c) for c in self.definition.get_many_columns(field))
        sql = f"SELECT {this_field} FROM {join_table} WHERE {that_field} = :target"

        candidates: set[Any] | None = None
        for target_id in target_ids:
            owners = {row[0] for row in conn.execute(text(sql), {"target": target_id})}
            candidates = owners if candidates is None else candidates & owners
            if not candidates:
                break
        return candidates

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _resolve_sort_field(self, sort_field: str | None) -> str:
        for candidate in (sort_field, self.definition.get_initial_sort_field(), "id"):
            if not candidate or not self.definition.has_field(candidate):
                continue
            if get_field_type(self.definition.get_type(candidate) or "").sortable:
                return candidate
        return "id"

    def _select_entries(
        self,
        conn: Connection,
        conditions: list[FilterCondition] | None = None,
        skip: int = 0,
        amount: int | None = None,
        sort_field: str | None = None,
        sort_ascending: bool | None = None,
        include_deleted: bool = False,
        enrich: bool = True,
    ) -> list[Entity]:
        where, params, expanding = self._build_where(conn, conditions, not include_deleted)

        sort_column = self._q(self._resolve_sort_field(sort_field))
        if sort_ascending is None:
            sort_ascending = self.definition.is_initial_sort_ascending()
        direction = "ASC" if sort_ascending else "DESC"
        order_clause = f" ORDER BY {sort_column} {direction}, {self._q('id')} {direction}"

        skip = max(int(skip or 0), 0)
        limit_clause = ""
        if amount is not None:
            limit_clause = f" LIMIT {int(amount)} OFFSET {skip}"

        sql = f"SELECT {self._select_columns()} FROM {self._table}{where}{order_clause}{limit_clause}"
        rows = conn.execute(self._text(sql, expanding), params).mappings().all()
        if amount is None and skip:
            rows = rows[skip:]

        entities = [self._hydrate(row) for row in rows]
        if enrich and entities:
            self._enrich_with_references(conn, entities)
            self._enrich_with_many(conn, entities)
        return entities

    def get(self, id: Any) -> Entity | None:
        if id is None:
            return None
        with self.engine.connect() as conn:
            entities = self._select_entries(conn, [FilterCondition.equals("id", id)])
        return entities[0] if entities else None

    def list_entries(
        self,
        conditions: list[FilterCondition] | None = None,
        skip: int = 0,
        amount: int | None = None,
        sort_field: str | None = None,
        sort_ascending: bool | None = None,
        include_deleted: bool = False,
    ) -> list[Entity]:
        with self.engine.connect() as conn:
            return self._select_entries(
                conn, conditions, skip, amount, sort_field, sort_ascending, include_deleted
            )

    def _count_in(
        self,
        conn: Connection,
        conditions: list[FilterCondition] | None,
        exclude_deleted: bool,
    ) -> int:
        where, params, expanding = self._build_where(conn, conditions, exclude_deleted)
        sql = f"SELECT COUNT(*) FROM {self._table}{where}"
        return int(conn.execute(self._text(sql, expanding), params).scalar_one())

    def count_by(
        self,
        table: str,
        conditions: list[FilterCondition] | None = None,
        exclude_deleted: bool = True,
    ) -> int:
        if table != self.definition.table:
            owner = self.service.get_data_by_table(table) if self.service else None
            if owner is None:
                raise ValueError(f"No entity is stored in table '{table}'")
            return owner.count_by(table, conditions, exclude_deleted)

        with self.engine.connect() as conn:
            return self._count_in(conn, conditions, exclude_deleted)

    def _enrich_with_references(self, conn: Connection, entities: list[Entity]) -> None:
        """Replace reference ids by ``{"id", "name"}``, one query per field."""
        for field in self.definition.get_reference_fields():
            name_field = self.definition.get_reference_name_field(field)
            ids = list({e.get_reference_id(field) for e in entities} - {None})
            if not ids:
                continue

            names: dict[Any, Any] = {}
            if name_field and self.service is not None:
                target = self.get_related_data(self.definition.get_reference_entity(field)).definition
                sql = (
                    f"SELECT {self._q('id')}, {self._q(name_field)} "
                    f"FROM {self._q(target.table)} WHERE {self._q('id')} IN :ids"
                )
                rows = conn.execute(self._text(sql, ["ids"]), {"ids": ids})
                names = {row[0]: row[1] for row in rows}

            for entity in entities:
                ref_id = entity.get_reference_id(field)
                if ref_id is None:
                    entity.set(field, None)
                elif ref_id in names:
                    entity.set(field, {"id": ref_id, "name": names[ref_id]})
                else:
                    entity.set(field, {"id": ref_id})
                entity.mark_clean()

    def _enrich_with_many(self, conn: Connection, entities: list[Entity]) -> None:
        """Attach the targets of every many field, one query per field for the batch."""
        owner_ids = [e.id for e in entities]
        for field in self.definition.get_many_fields():
            join_table = self._q(self.definition.get_many_table(field))
            this_field, that_field = (self._q(c) for c in self.definition.get_many_columns(field))
            name_field = self.definition.get_many_name_field(field)
            position = self._q(MANY_POSITION_COLUMN)

            if name_field and self.service is not None:
                target = self.get_related_data(self.definition.get_many_entity(field)).definition
                sql = (
                    f"SELECT j.{this_field}, t.{self._q('id')}, t.{self._q(name_field)} "
                    f"FROM {join_table} j JOIN {self._q(target.table)} t "
                    f"ON t.{self._q('id')} = j.{that_field} "
                    f"WHERE j.{this_field} IN :ids ORDER BY j.{position}"
                )
            else:
                sql = (
                    f"SELECT {this_field}, {that_field} FROM {join_table} "
                    f"WHERE {this_field} IN :ids ORDER BY {position}"
                )

            grouped: dict[Any, list[dict[str, Any]]] = {}
            for row in conn.execute(self._text(sql, ["ids"]), {"ids": owner_ids}):
                item = {"id": row[1]}
                if len(row) > 2:
                    item["name"] = row[2]
                grouped.setdefault(row[0], []).append(item)

            for entity in entities:
                entity.set(field, grouped.get(entity.id, []))
                entity.mark_clean()

    def has_many_set(self, field: str, target_ids: list[Any], exclude_id: Any = None) -> bool:
        wanted = {str(t) for t in target_ids}
        if not wanted:
            return False

        join_table = self._q(self.definition.get_many_table(field))
        this_field, that_field = (self._q(c) for c in self.definition.get_many_columns(field))
        # Only owners holding at least one wanted target can hold the exact set
        sql = (
            f"SELECT j.{this_field}, j.{that_field} FROM {join_table} j "
            f"JOIN {self._table} t ON t.{self._q('id')} = j.{this_field} "
            f"WHERE t.{self._q('deleted_at')} IS NULL AND j.{this_field} IN "
            f"(SELECT {this_field} FROM {join_table} WHERE {that_field} IN :ids)"
        )

        sets: dict[str, set[str]] = {}
        with self.engine.connect() as conn:
            for owner, target in conn.execute(self._text(sql, ["ids"]), {"ids": list(target_ids)}):
                sets.setdefault(str(owner), set()).add(str(target))

        excluded = str(exclude_id) if exclude_id is not None else None
        return any(
            targets == wanted for owner, targets in sets.items() if owner != excluded
        )

    def get_id_to_name_map(self, entity_name: str, name_field: str | None = None) -> dict[Any, Any]:
        if entity_name == self.definition.name:
            definition = self.definition
        else:
            definition = self.get_related_data(entity_name).definition

        name_column = self._q(name_field or "id")
        sql = (
            f"SELECT {self._q('id')}, {name_column} FROM {self._q(definition.table)} "
            f"WHERE {self._q('deleted_at')} IS NULL ORDER BY {self._q('id')}"
        )
        with self.engine.connect() as conn:
            return {row[0]: row[1] for row in conn.execute(text(sql))}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _save_many(self, conn: Connection, entity: Entity, replace: bool) -> None:
        """Write the join rows of all many fields: delete everything, insert the current list."""
        for field in self.definition.get_many_fields():
            join_table = self._q(self.definition.get_many_table(field))
            this_field, that_field = (self._q(c) for c in self.definition.get_many_columns(field))
            position = self._q(MANY_POSITION_COLUMN)

            if replace:
                conn.execute(
                    text(f"DELETE FROM {join_table} WHERE {this_field} = :owner"),
                    {"owner": entity.id},
                )

            target_ids = list(dict.fromkeys(entity.get_many_ids(field)))
            if target_ids:
                conn.execute(
                    text(
                        f"INSERT INTO {join_table} ({this_field}, {that_field}, {position}) "
                        f"VALUES (:owner, :target, :position)"
                    ),
                    [
                        {"owner": entity.id, "target": t, "position": i}
                        for i, t in enumerate(target_ids)
                    ],
                )

    def _do_create(self, entity: Entity) -> None:
        now = self._now()
        values = self._row_values(entity)
        values.update({"created_at": now, "updated_at": now, "version": 1})
        if self.use_uuids:
            values["id"] = str(uuid.uuid4())

        columns = list(values)
        params = {f"v{i}": values[c] for i, c in enumerate(columns)}
        sql = (
            f"INSERT INTO {self._table} ({', '.join(self._q(c) for c in columns)}) "
            f"VALUES ({', '.join(f':v{i}' for i in range(len(columns)))})"
        )

        with self._write_connection() as conn:
            if self.use_uuids:
                conn.execute(text(sql), params)
                new_id = values["id"]
            elif conn.dialect.insert_returning:
                new_id = conn.execute(text(f"{sql} RETURNING {self._q('id')}"), params).scalar_one()
            else:
                new_id = conn.execute(text(sql), params).lastrowid

            entity.set("id", new_id)
            entity.set("created_at", now)
            entity.set("updated_at", now)
            entity.set("version", 1)
            self._save_many(conn, entity, replace=False)

    def _do_update(self, entity: Entity) -> bool:
        now = self._now()
        values = self._row_values(entity)
        columns = list(values)

        params: dict[str, Any] = {f"v{i}": values[c] for i, c in enumerate(columns)}
        params.update({"id": entity.id, "updated_at": now})
        assignments = [f"{self._q(c)} = :v{i}" for i, c in enumerate(columns)]
        assignments.append(f"{self._q('updated_at')} = :updated_at")
        assignments.append(f"{self._q('version')} = {self._q('version')} + 1")

        where = f"{self._q('id')} = :id AND {self._q('deleted_at')} IS NULL"
        if self.definition.has_optimistic_locking():
            where += f" AND {self._q('version')} = :version"
            params["version"] = entity.version

        sql = f"UPDATE {self._table} SET {', '.join(assignments)} WHERE {where}"

        with self._write_connection() as conn:
            if conn.execute(text(sql), params).rowcount == 0:
                return False
            self._save_many(conn, entity, replace=True)
            version = conn.execute(
                text(f"SELECT {self._q('version')} FROM {self._table} WHERE {self._q('id')} = :id"),
                {"id": entity.id},
            ).scalar_one()

        entity.set("version", int(version))
        entity.set("updated_at", now)
        return True

    def _is_referenced(self, conn: Connection, id: Any) -> bool:
        for child in self.definition.get_children():
            child_data = self.get_related_data(child.entity)
            if child_data._count_in(conn, [FilterCondition.equals(child.field, id)], True) > 0:
                return True
        return False

    def _delete_in(self, conn: Connection, entity: Entity, cascade: bool) -> DeletionResult:
        if cascade:
            for child in self.definition.get_children():
                child_data = self.get_related_data(child.entity)
                children = child_data._select_entries(
                    conn, [FilterCondition.equals(child.field, entity.id)], enrich=False
                )
                for child_entity in children:
                    child_data._delete_in(conn, child_entity, cascade=True)
        elif self._is_referenced(conn, entity.id):
            return DeletionResult.FAILED_STILL_REFERENCED

        params = {"id": entity.id}
        if self.definition.is_hard_deletion():
            for field in self.definition.get_many_fields():
                this_field, _ = self.definition.get_many_columns(field)
                conn.execute(
                    text(
                        f"DELETE FROM {self._q(self.definition.get_many_table(field))} "
                        f"WHERE {self._q(this_field)} = :id"
                    ),
                    params,
                )
            conn.execute(text(f"DELETE FROM {self._table} WHERE {self._q('id')} = :id"), params)
        else:
            params["deleted_at"] = self._now()
            conn.execute(
                text(
                    f"UPDATE {self._table} SET {self._q('deleted_at')} = :deleted_at, "
                    f"{self._q('version')} = {self._q('version')} + 1 "
                    f"WHERE {self._q('id')} = :id"
                ),
                params,
            )
        return DeletionResult.SUCCESS

    def _do_delete(self, entity: Entity, cascade: bool) -> DeletionResult:
        with self._write_connection() as conn:
            return self._delete_in(conn, entity, cascade)


class SQLDataFactory:
    """Creates SQLData instances sharing one engine and id strategy."""

    def __init__(self, engine: Engine, use_uuids: bool = False, transactional: bool = True):
        self.engine = engine
        self.use_uuids = use_uuids
        self.transactional = transactional

    def create_data(
        self,
        definition: EntityDefinition,
        file_processor: FileProcessor | None = None,
        service: CrudService | None = None,
    ) -> SQLData:
        return SQLData(
            definition,
            self.engine,
            file_processor=file_processor,
            service=service,
            use_uuids=self.use_uuids,
            transactional=self.transactional,
        )
