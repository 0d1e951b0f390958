"""Table layout of entity definitions.

Each entity gets one table holding its scalar and reference fields plus the
meta columns, and one join table per many field. Join rows carry the
position of the target in the list so it reads back in the order written.
"""

from sqlalchemy import Column, DateTime, Integer, MetaData, PrimaryKeyConstraint, String, Table

from crudlex.core.types import get_storage_type
from crudlex.definitions.entity_definition import EntityDefinition

MANY_POSITION_COLUMN = "position"


def id_column(name: str, use_uuids: bool, primary_key: bool = False) -> Column:
    """An id column: UUID strings or autoincremented integers."""
    if use_uuids:
        return Column(name, String(36), primary_key=primary_key, nullable=False)
    return Column(
        name,
        Integer,
        primary_key=primary_key,
        autoincrement=primary_key,
        nullable=False,
    )


def build_entity_table(
    definition: EntityDefinition,
    metadata: MetaData,
    use_uuids: bool = False,
) -> Table:
    """Build the table of an entity."""
    columns = [
        id_column("id", use_uuids, primary_key=True),
        Column("created_at", DateTime, nullable=False),
        Column("updated_at", DateTime, nullable=False),
        Column("version", Integer, nullable=False, default=1),
        Column("deleted_at", DateTime, nullable=True),
    ]
    for f in definition.fields:
        storage_type = get_storage_type(f.type, use_uuids)
        if storage_type is None:
            continue
        columns.append(Column(f.name, storage_type, nullable=True))

    return Table(definition.table, metadata, *columns)


def build_many_tables(
    definition: EntityDefinition,
    metadata: MetaData,
    use_uuids: bool = False,
) -> list[Table]:
    """Build the join tables of an entity's many fields."""
    tables = []
    for field in definition.get_many_fields():
        this_field, that_field = definition.get_many_columns(field)
        tables.append(
            Table(
                definition.get_many_table(field),
                metadata,
                id_column(this_field, use_uuids),
                id_column(that_field, use_uuids),
                Column(MANY_POSITION_COLUMN, Integer, nullable=False, default=0),
                PrimaryKeyConstraint(this_field, that_field),
            )
        )
    return tables
