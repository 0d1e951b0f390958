"""Definition CLI commands."""

from pathlib import Path

import click

from crudlex.core.exceptions import DefinitionError
from crudlex.definitions.loader import DefinitionLoader
from crudlex.definitions.validator import validate_definitions_file
from crudlex.persistence.config import CrudConfig


@click.group()
def definitions():
    """Entity definition commands."""
    pass


@definitions.command()
@click.argument(
    "path",
    required=False,
    type=click.Path(path_type=Path),
)
def validate(path: Path | None):
    """Validate a CRUD definition YAML file.

    PATH defaults to CRUDLEX_DEFINITIONS or ./crud.yaml.
    """
    if path is None:
        path = CrudConfig.from_env().definitions_path

    # ── Schema (JSON Schema) validation ─────────────────────────────────────
    issues = validate_definitions_file(path)
    for issue in issues:
        click.echo(click.style(str(issue), fg="red"))

    if issues:
        click.echo(click.style(f"\n{len(issues)} schema error(s) found", fg="red", bold=True))
        raise SystemExit(1)

    # ── Semantic (loader) validation ─────────────────────────────────────────
    loader = DefinitionLoader(path)
    try:
        loader.load_all()
    except DefinitionError as e:
        click.echo(click.style(f"\nSemantic validation failed: {e}", fg="red"), err=True)
        raise SystemExit(1)

    entities = loader.list_entities()
    click.echo(f"Loaded {len(entities)} entities:")
    for name in sorted(entities):
        definition = loader.get_definition(name)
        click.echo(f"  ✓ {name} ({len(definition.fields)} fields, table: {definition.table})")

    click.echo(click.style("\nAll definitions are valid.", fg="green", bold=True))
