"""CRUDlex CLI entry point."""

import logging

import click


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool):
    """CRUDlex - definition driven CRUD data layer CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# Register subcommand groups
from crudlex.cli.definitions_cmd import definitions  # noqa: E402
from crudlex.cli.schema_cmd import schema  # noqa: E402

cli.add_command(definitions)
cli.add_command(schema)
