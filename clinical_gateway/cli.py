"""Command Line Interface for the Clinical Gateway.

This module provides a CLI using Typer for serving the API, running one-off
platform queries and normalizing exported records.

Security Impact:
    - Platform credentials are read from configuration, never from arguments
    - Queries run through the same gateway, cache and breaker as the API
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from clinical_gateway import __version__
from clinical_gateway.domain.catalog import OBJECT_TYPES, get_object_type
from clinical_gateway.domain.normalizer import RESULT_CONTAINER_KEYS, normalize_record, normalize_response
from clinical_gateway.domain.ports import GatewayError
from clinical_gateway.infrastructure.settings import settings

# Initialize Typer app and Rich console
app = typer.Typer(
    name="clinical-gateway",
    help="Clinical Gateway: identity-resolving access to platform clinical records",
    add_completion=False
)
console = Console()

# Columns shown by `query`, after the record id
_PREVIEW_COLUMNS = 4


def _object_type_or_exit(object_type: str):
    try:
        return get_object_type(object_type)
    except KeyError:
        console.print(f"[red]✗[/red] Unknown object type: {object_type}")
        console.print(f"[dim]Known types:[/dim] {', '.join(sorted(OBJECT_TYPES))}")
        raise typer.Exit(code=1)


def normalize_payload(object_type: str, payload: Any) -> List[dict]:
    """Normalize a raw record, a list of records or a platform page.

    Parameters:
        object_type: Object type key
        payload: Decoded JSON

    Returns:
        List of normalized records
    """
    definition = get_object_type(object_type)
    if isinstance(payload, list):
        return [normalize_record(definition, item) for item in payload]
    if isinstance(payload, dict) and not any(key in payload for key in RESULT_CONTAINER_KEYS):
        return [normalize_record(definition, payload)]
    records, _ = normalize_response(definition, payload)
    return records


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the gateway API with uvicorn."""
    import uvicorn

    console.print(f"[bold blue]{settings.app_name}[/bold blue] v{__version__} on {host}:{port}")
    uvicorn.run(
        "clinical_gateway.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower()
    )


@app.command()
def query(
    object_type: str = typer.Argument(..., help="Object type, e.g. conditions or observations"),
    patient_id: str = typer.Argument(..., help="Resolved patient identifier"),
    page_size: Optional[int] = typer.Option(None, "--page-size", "-n", help="Records per page (1-100)"),
    page_token: Optional[str] = typer.Option(None, "--page-token", help="Continuation token"),
    category: Optional[str] = typer.Option(None, "--category", help="Observation category"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Fetch one page of records for a patient from the configured platform.

    Examples:
        clinical-gateway query conditions "auth0|abc123"
        clinical-gateway query observations "auth0|abc123" --category vital-signs
    """
    from clinical_gateway.api.dependencies import close_platform_clients, get_query_gateway

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        console.print("[dim]Verbose logging enabled[/dim]")

    definition = _object_type_or_exit(object_type)

    async def run():
        try:
            return await get_query_gateway().fetch(
                definition.key, patient_id, page_size=page_size, page_token=page_token, category=category
            )
        finally:
            await close_platform_clients()

    try:
        with console.status(f"[bold green]Querying {definition.key}..."):
            result = asyncio.run(run())
    except GatewayError as e:
        console.print(f"[red]✗[/red] {e.code}: {e.message}")
        raise typer.Exit(code=1)

    table = Table(show_header=True, header_style="bold", title=f"{definition.key} ({len(result.records)})")
    columns = [definition.primary_key] + [f for f in definition.aliases if f != definition.primary_key][:_PREVIEW_COLUMNS]
    for column in columns:
        table.add_column(column, style="cyan" if column == definition.primary_key else None)
    for record in result.records:
        table.add_row(*["" if record.get(c) is None else str(record.get(c)) for c in columns])
    console.print(table)

    if result.next_page_token:
        console.print(f"[dim]Next page token:[/dim] {result.next_page_token}")


@app.command()
def normalize(
    object_type: str = typer.Argument(..., help="Object type of the records"),
    input_file: Path = typer.Argument(..., help="JSON file: a record, a list or a platform page", exists=True),
) -> None:
    """Normalize exported platform records and print them as JSON."""
    _object_type_or_exit(object_type)

    try:
        payload = json.loads(input_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]✗[/red] Invalid JSON in {input_file}: {str(e)}")
        raise typer.Exit(code=1)

    console.print_json(data=normalize_payload(object_type, payload))


@app.command()
def info() -> None:
    """Display configuration (secrets are shown only as set/unset)."""
    console.print("[bold blue]Configuration[/bold blue]\n")

    platform = settings.platform
    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Environment:", settings.environment)
    info_table.add_row("Platform Host:", platform.host or "[red]unset[/red]")
    info_table.add_row("Ontology:", platform.api_ontology_id or "[red]unset[/red]")
    info_table.add_row("Client Credentials:", "set" if platform.has_client_credentials else "unset")
    info_table.add_row("Static Token:", "set" if platform.static_token else "unset")
    info_table.add_row("Cache TTL:", f"{settings.gateway.cache_ttl_seconds:g}s")
    info_table.add_row("Patient Override:", "Allowed" if settings.gateway.allow_query_override else "Disabled")
    console.print(info_table)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", is_eager=True, help="Show version information")
) -> None:
    """Clinical Gateway: identity-resolving access to platform clinical records."""
    if version:
        console.print(f"Clinical Gateway v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
