"""CLI commands for invokehttp."""

import json
import logging
import sys
import uuid
from pathlib import Path

import click
import structlog

from invokehttp.config.loader import ConfigLoader, ConfigValidationError
from invokehttp.config.schemas import InvokeHttpConfig
from invokehttp.errors import ConfigurationError
from invokehttp.metrics import InvokeHttpMetrics
from invokehttp.models import Relationship, WorkItem
from invokehttp.observability.logging import (
    bind_run_context,
    clear_run_context,
    configure_logging,
)
from invokehttp.processor import InvokeHttpProcessor
from invokehttp.session import InMemoryContext, InMemorySession


logger = structlog.get_logger()


def _parse_attributes(pairs: tuple[str, ...]) -> dict[str, str]:
    """Parse KEY=VALUE pairs.

    Args:
        pairs: Raw option values.

    Returns:
        Attribute mapping.

    Raises:
        click.BadParameter: If a pair has no '='.
    """
    attributes: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(
                f"Expected KEY=VALUE, got '{pair}'", param_hint="--attribute"
            )
        attributes[key.strip()] = value
    return attributes


def _load_config_or_exit(loader: ConfigLoader, config_path: Path) -> InvokeHttpConfig:
    try:
        return loader.load(config_path)
    except ConfigValidationError as e:
        click.echo("Configuration validation failed:", err=True)
        for error in e.errors:
            location = error["loc"] or "<root>"
            click.echo(f"  - {location}: {error['msg']}", err=True)
        sys.exit(1)


def _summarize(
    session: InMemorySession, context: InMemoryContext
) -> dict[str, object]:
    """Build the JSON summary printed after a trigger."""
    transfers = []
    for relationship, item in session.transfers:
        transfers.append(
            {
                "relationship": relationship.value,
                "item_id": item.item_id,
                "penalized": item.penalized,
                "size": item.size,
                "attributes": dict(item.attributes),
            }
        )
    return {
        "transfers": transfers,
        "yield_requested": context.yield_requested,
        "provenance": [
            {
                "event_type": event.event_type.value,
                "item_id": event.item_id,
                "url": event.url,
                "elapsed_ms": event.elapsed_ms,
            }
            for event in session.events
        ],
        "metrics": InvokeHttpMetrics.get_instance().to_dict(),
    }


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Invoke HTTP endpoints for work items."""


@cli.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to the YAML configuration file.",
)
@click.option(
    "--attribute",
    "-a",
    "attribute_pairs",
    multiple=True,
    help="Work item attribute as KEY=VALUE (repeatable).",
)
@click.option(
    "--content",
    "content_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File whose bytes become the work item payload.",
)
@click.option(
    "--json-logs/--console-logs",
    default=True,
    help="Use JSON format for logs (default: true).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable debug logging, including request and response headers.",
)
def invoke(
    config_path: Path,
    attribute_pairs: tuple[str, ...],
    content_path: Path | None,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Run one exchange and print where the work items went.

    Without attributes or content the exchange runs source-style, with no
    incoming work item. Exits with status 1 when the item reached Failure.
    """
    run_id = str(uuid.uuid4())
    configure_logging(
        level=logging.DEBUG if verbose else logging.INFO, json_format=json_logs
    )
    bind_run_context(run_id)
    log = logger.bind(component="cli", command="invoke")

    config = _load_config_or_exit(ConfigLoader(), config_path)
    attributes = _parse_attributes(attribute_pairs)

    incoming: list[WorkItem] = []
    if attributes or content_path is not None:
        content = content_path.read_bytes() if content_path is not None else b""
        incoming.append(WorkItem.create(attributes, content))

    session = InMemorySession.with_items(incoming)
    context = InMemoryContext()
    processor = InvokeHttpProcessor()

    try:
        processor.on_scheduled(config)
    except ConfigurationError as e:
        log.error("transport_configuration_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        outcome = processor.on_trigger(session, context)
    finally:
        processor.on_stopped()
        clear_run_context()

    log.info("invoke_complete", outcome=outcome.value if outcome else None)
    click.echo(json.dumps(_summarize(session, context), indent=2, default=str))

    if session.transferred(Relationship.FAILURE):
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to the YAML configuration file.",
)
def validate(config_path: Path) -> None:
    """Validate a configuration file without sending any request."""
    configure_logging(json_format=False)
    loader = ConfigLoader()
    config = _load_config_or_exit(loader, config_path)

    click.echo("Configuration is valid!")
    click.echo(f"  Method: {config.request.method}")
    click.echo(f"  URL: {config.request.url}")
    click.echo(f"  Checksum: {loader.checksum}")


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
