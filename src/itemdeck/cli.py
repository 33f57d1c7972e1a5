"""CLI for the itemdeck engine: load collections, discover entities, evaluate field paths."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import httpx

from itemdeck.config import ConfigError, EngineConfig, load_config
from itemdeck.core.logging import configure_logging
from itemdeck.core.telemetry import init_telemetry
from itemdeck.expressions.field_path import get_field_value
from itemdeck.loaders.collection import (
    CollectionLoader,
    DefinitionError,
    NoPrimaryTypeError,
)
from itemdeck.loaders.discovery import RateLimitState, discover_entities_via_github
from itemdeck.loaders.relationships import (
    create_resolver_context,
    resolve_all_relationships,
    resolve_entity_relationships,
)
from itemdeck.models import LoadedCollection

logger = logging.getLogger(__name__)

# Exit code for a collection that cannot be loaded at all.
EXIT_LOAD_FAILED = 2


def _build_client(config: EngineConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=config.http.timeout(), follow_redirects=True)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _fail_load(exc: DefinitionError | NoPrimaryTypeError) -> NoReturn:
    click.echo(f"Error: {str(exc).splitlines()[0]}", err=True)
    sys.exit(EXIT_LOAD_FAILED)


async def _load(config: EngineConfig, base: str) -> LoadedCollection:
    async with _build_client(config) as client:
        loader = CollectionLoader(client, config=config)
        return await loader.load_collection(base)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to itemdeck.toml (or a directory containing it)",
)
@click.option("--log-level", default=None, help="Override the configured log level")
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Override the configured log format",
)
@click.pass_context
def cli(
    ctx: click.Context, config_path: Path | None, log_level: str | None, log_format: str | None
) -> None:
    """itemdeck: load card collections and resolve their relationships."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(1)

    log_root = Path(config.logging.log_root) if config.logging.log_root else None
    configure_logging(
        level=log_level or config.logging.level,
        fmt=log_format or config.logging.format,
        log_root=log_root,
    )
    init_telemetry("itemdeck.cli")
    ctx.obj = config


@cli.command()
@click.argument("base")
@click.option("--type", "entity_type", default=None, help="Also print the entities of this type")
@click.option(
    "--resolve/--no-resolve",
    default=True,
    help="Attach related entities under _resolved (with --type)",
)
@click.pass_obj
def load(config: EngineConfig, base: str, entity_type: str | None, resolve: bool) -> None:
    """Load the collection at BASE and print a JSON summary."""
    try:
        loaded = asyncio.run(_load(config, base))
    except (DefinitionError, NoPrimaryTypeError) as exc:
        _fail_load(exc)

    summary: dict[str, Any] = {
        "id": loaded.definition.id,
        "name": loaded.definition.name,
        "schemaVersion": str(loaded.schema_version),
        "primaryType": loaded.primary_type,
        "counts": loaded.counts,
        "hasSettings": loaded.settings is not None,
    }

    if entity_type is not None:
        if entity_type not in loaded.entities:
            click.echo(f"Unknown entity type: {entity_type}", err=True)
            sys.exit(1)
        if resolve:
            context = create_resolver_context(loaded.definition, loaded.entities)
            summary["entities"] = resolve_all_relationships(entity_type, context)
        else:
            summary["entities"] = loaded.entities[entity_type]

    _echo_json(summary)


@cli.command()
@click.argument("mirror_url")
@click.pass_obj
def discover(config: EngineConfig, mirror_url: str) -> None:
    """List entity ids in the directory MIRROR_URL points at."""

    async def _discover() -> list[str] | None:
        async with _build_client(config) as client:
            return await discover_entities_via_github(
                mirror_url,
                client=client,
                rate_limit=RateLimitState(),
                user_agent=config.discovery.user_agent,
                api_base_url=config.discovery.api_base_url,
                mirror_host=config.discovery.mirror_host,
                token=config.discovery.github_token,
            )

    ids = asyncio.run(_discover())
    if not ids:
        click.echo(f"No entities discovered at {mirror_url}", err=True)
        sys.exit(1)

    for entity_id in ids:
        click.echo(entity_id)


@cli.command()
@click.argument("base")
@click.argument("entity_type", metavar="TYPE")
@click.argument("entity_id", metavar="ID")
@click.argument("path")
@click.pass_obj
def field(config: EngineConfig, base: str, entity_type: str, entity_id: str, path: str) -> None:
    """Print the value of field PATH on entity ID of TYPE."""
    try:
        loaded = asyncio.run(_load(config, base))
    except (DefinitionError, NoPrimaryTypeError) as exc:
        _fail_load(exc)

    entity = next(
        (item for item in loaded.entities.get(entity_type, []) if item.get("id") == entity_id),
        None,
    )
    if entity is None:
        click.echo(f"Entity not found: {entity_type}/{entity_id}", err=True)
        sys.exit(1)

    context = create_resolver_context(loaded.definition, loaded.entities)
    value = get_field_value(resolve_entity_relationships(entity, entity_type, context), path)
    if value is None:
        sys.exit(1)

    if isinstance(value, str):
        click.echo(value)
    else:
        _echo_json(value)


if __name__ == "__main__":
    cli()
