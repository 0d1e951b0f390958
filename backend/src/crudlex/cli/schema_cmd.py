"""Schema CLI commands."""

from pathlib import Path

import click

from crudlex.core.exceptions import DefinitionError
from crudlex.persistence.config import CrudConfig, DatabaseConfig, create_engine
from crudlex.persistence.sql import SQLDataFactory
from crudlex.service.crud import CrudService


@click.group()
def schema():
    """Database schema commands."""
    pass


@schema.command()
@click.option(
    "--definitions",
    "definitions_path",
    default=None,
    type=click.Path(path_type=Path),
    help="Definition YAML file (default: CRUDLEX_DEFINITIONS or ./crud.yaml).",
)
@click.option(
    "--database-url",
    default=None,
    help="Database URL (default: DATABASE_URL or CRUDLEX_DB_PATH).",
)
def create(definitions_path: Path | None, database_url: str | None):
    """Create the tables of all defined entities.

    Existing tables are left untouched.
    """
    config = CrudConfig.from_env()
    if definitions_path is not None:
        config.definitions_path = definitions_path
    if database_url is not None:
        config.database = DatabaseConfig(url=database_url)

    engine = create_engine(config.database)
    factory = SQLDataFactory(engine, use_uuids=config.use_uuids, transactional=config.transactional)
    try:
        service = CrudService.from_yaml(config.definitions_path, factory)
        service.initialize_schema()
    except DefinitionError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    finally:
        engine.dispose()

    click.echo(f"Created tables for {len(service.get_entities())} entities:")
    for name in sorted(service.get_entities()):
        click.echo(f"  ✓ {name} ({service.get_definition(name).table})")
