"""
tablecodec Command-Line Interface

Inspects and rewrites Azure Table Storage JSON payloads.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from tablecodec import __version__
from tablecodec.core.config_manager import ConfigManager
from tablecodec.core.logging_config import get_logger, setup_logging
from tablecodec.table.codec import JsonODataReaderWriter
from tablecodec.table.exceptions import TableCodecError
from tablecodec.table.models import Entity, Property
from tablecodec.table.types import EdmTypeCodec

logger = get_logger("tablecodec.cli")


def _render_value(prop: Property) -> str:
    if prop.value is None:
        return "null"
    if prop.edm_type is None:
        return str(prop.value)
    return str(EdmTypeCodec().serialize(prop.edm_type, prop.value))


def _echo_entity(entity: Entity) -> None:
    click.echo(f"ETag: {entity.etag}")
    for name, prop in entity:
        type_name = prop.edm_type.value if prop.edm_type else "-"
        click.echo(f"  {name:<24} {type_name:<14} {_render_value(prop)}")


def _fail(error: TableCodecError) -> None:
    click.echo(f"[ERROR] {error.error_code}: {error}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="tablecodec")
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Configuration file (YAML or JSON)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx, config: Optional[Path], log_level: Optional[str]):
    """
    tablecodec - Azure Table Storage payload codec

    Decode and encode table and entity bodies of the table service.
    """
    overrides = {"logging": {"level": log_level.upper()}} if log_level else None
    try:
        settings = ConfigManager().load(
            config_file=str(config) if config else None,
            cli_overrides=overrides,
        )
    except (ValidationError, ValueError) as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(1)
    setup_logging(
        level=settings.logging.level,
        format_type=settings.logging.format,
        log_file=settings.logging.file,
        rotation_size=settings.logging.rotation_size,
        rotation_count=settings.logging.rotation_count,
        module_levels=settings.logging.module_levels,
    )

    ctx.ensure_object(dict)
    ctx.obj["codec"] = JsonODataReaderWriter(
        collection_field=settings.codec.collection_field
    )


@cli.command("decode-entity")
@click.argument("payload", type=click.File("rb"))
@click.pass_obj
def decode_entity(obj, payload):
    """
    Show the typed properties of a single-entity response.

    Examples:
        tablecodec decode-entity entity.json
        curl ... | tablecodec decode-entity -
    """
    try:
        entity = obj["codec"].decode_entity(payload.read())
    except TableCodecError as e:
        _fail(e)
    _echo_entity(entity)


@cli.command("decode-entities")
@click.argument("payload", type=click.File("rb"))
@click.pass_obj
def decode_entities(obj, payload):
    """Show every entity of a query-entities response."""
    try:
        entities = obj["codec"].decode_entity_list(payload.read())
    except TableCodecError as e:
        _fail(e)
    for index, entity in enumerate(entities):
        if index:
            click.echo()
        _echo_entity(entity)
    logger.info(f"Decoded {len(entities)} entities")


@cli.command("decode-tables")
@click.argument("payload", type=click.File("rb"))
@click.pass_obj
def decode_tables(obj, payload):
    """Print the table names of a query-tables response, one per line."""
    try:
        names = obj["codec"].decode_table_list(payload.read())
    except TableCodecError as e:
        _fail(e)
    for name in names:
        click.echo(name)


@cli.command("encode-table")
@click.argument("name")
@click.pass_obj
def encode_table(obj, name: str):
    """Print the create-table body for NAME."""
    click.echo(obj["codec"].encode_table(name).decode("utf-8"))


@cli.command()
@click.argument("payload", type=click.File("rb"))
@click.pass_obj
def normalize(obj, payload):
    """
    Decode an entity and write it back in request form.

    Service metadata (odata.*, Timestamp) is dropped and every type
    annotation is rewritten from the decoded property types.
    """
    codec = obj["codec"]
    try:
        entity = codec.decode_entity(payload.read())
        entity.remove_property("Timestamp")
        body = codec.encode_entity(entity)
    except TableCodecError as e:
        _fail(e)
    click.echo(body.decode("utf-8"))


def main():
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
