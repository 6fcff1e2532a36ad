"""
jules-mcp CLI - Entry point for the Jules MCP server.

Commands:
    serve   Run the MCP server over stdio
    doctor  Check the API key and connectivity
    config  Store the API key in ~/.jules/config.json
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console

from jules_mcp.client import JulesClient
from jules_mcp.config import ClientConfig, Settings
from jules_mcp.credentials import ConfigFileStore
from jules_mcp.exceptions import JulesError
from jules_mcp.logging_config import setup_logging
from jules_mcp.retry import NonRetryableError, RetryableError
from jules_mcp.server import create_server

app = typer.Typer(
    name="jules-mcp",
    help="jules-mcp - MCP server for the Jules coding agent",
    no_args_is_help=True,
)

console = Console()
# stdout belongs to the MCP transport while serving
err_console = Console(stderr=True)


async def _serve(config: ClientConfig) -> None:
    async with JulesClient(config) as client:
        server = create_server(client)
        await server.run_stdio_async()


@app.command()
def serve() -> None:
    """
    Start the MCP server on stdio.

    Reads JULES_API_KEY (or ~/.jules/config.json) and the JULES_* settings.
    """
    settings = Settings()
    setup_logging(context="server", settings=settings)
    config = ClientConfig.from_settings(settings)

    if not config.api_key:
        err_console.print(
            "[yellow]Warning:[/yellow] no API key configured; "
            "tools will fail until JULES_API_KEY is set"
        )
    err_console.print(f"[bold green]Starting jules-mcp[/bold green] ({config.base_url})")

    asyncio.run(_serve(config))


async def _check_connectivity(config: ClientConfig) -> Optional[str]:
    async with JulesClient(config) as client:
        try:
            await client.list_sessions(page_size=1)
        except (RetryableError, NonRetryableError, JulesError) as e:
            return str(e)
    return None


@app.command()
def doctor() -> None:
    """Check that the API key is set and the Jules API is reachable."""
    settings = Settings()
    setup_logging(context="cli", settings=settings)
    config = ClientConfig.from_settings(settings)

    console.print("[bold]jules-mcp doctor[/bold]")
    console.print(f"  API base URL: {config.base_url}")

    if not config.api_key:
        console.print("[red]✗ API key:[/red] not found")
        console.print("  Set JULES_API_KEY or run `jules-mcp config --key <KEY>`")
        raise typer.Exit(1)
    console.print("[green]✓ API key:[/green] found")

    error = asyncio.run(_check_connectivity(config))
    if error is not None:
        console.print(f"[red]✗ API check failed:[/red] {error}")
        raise typer.Exit(1)
    console.print("[green]✓ Connected and authenticated[/green]")


@app.command("config")
def config_command(
    key: str = typer.Option(..., "--key", help="Jules API key to store"),
) -> None:
    """Store the API key in ~/.jules/config.json (mode 600)."""
    store = ConfigFileStore()
    store.set_api_key(key)
    console.print(f"[green]✓ Saved API key to {store.config_file}[/green]")


if __name__ == "__main__":
    app()
