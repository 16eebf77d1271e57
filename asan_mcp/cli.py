"""CLI for running and exercising the ASAN MCP tool servers."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Optional

from rich.console import Console
from rich.table import Table
import typer

app = typer.Typer(
    name="asan-mcp",
    help="ASAN MCP tool servers",
    add_completion=False,
)
console = Console()

_SERVER_HELP = "Server profile: postgres, security or all"


def _call(tool: str, arguments: dict[str, Any], config_path: str | None) -> Any:
    """Run one tool call through a local session; exits 1 on failure."""
    from asan_mcp import __version__
    from asan_mcp.config import load_config
    from asan_mcp.observability import ObservabilityContext
    from asan_mcp.server import build_registry
    from asan_mcp.session import ToolSession

    config = load_config(config_path)
    session = ToolSession(
        build_registry("all", config),
        "asan-mcp-cli",
        __version__,
        obs=ObservabilityContext(config.observability),
    )
    session.initialize()
    outcome = asyncio.run(session.call_tool(tool, arguments))
    if outcome.is_error:
        console.print(f"[red]✗[/] {outcome.text}")
        raise typer.Exit(1)
    return json.loads(outcome.text)


@app.command()
def serve(
    server: str = typer.Option("all", "--server", "-s", help=_SERVER_HELP),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to asan-mcp.toml"),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Override log level"),
) -> None:
    """Run a tool server on stdio."""
    from asan_mcp.server import main as server_main

    argv = ["--server", server]
    if config:
        argv += ["--config", config]
    if log_level:
        argv += ["--log-level", log_level]
    server_main(argv)


@app.command()
def tools(
    server: str = typer.Option("all", "--server", "-s", help=_SERVER_HELP),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to asan-mcp.toml"),
) -> None:
    """List the tools a server profile registers."""
    from asan_mcp.config import load_config
    from asan_mcp.server import build_registry

    try:
        registry = build_registry(server, load_config(config))
    except ValueError as e:
        console.print(f"[red]✗[/] {e}")
        raise typer.Exit(1) from None

    table = Table(title=f"{server} tools")
    table.add_column("Name", style="bold")
    table.add_column("Description")
    table.add_column("Parameters")
    for tool in registry.tools:
        props = tool.inputSchema.get("properties", {})
        required = set(tool.inputSchema.get("required", []))
        params = ", ".join(f"{p}{'*' if p in required else ''}" for p in props)
        table.add_row(tool.name, tool.description or "", params or "-")
    console.print(table)


@app.command()
def scan(
    path: Optional[str] = typer.Argument(None, help="Path to scan (default: current directory)"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON result"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to asan-mcp.toml"),
) -> None:
    """Run the security scanner over a source tree."""
    result = _call("security_scan", {"path": path or os.getcwd()}, config)

    if as_json:
        console.print_json(data=result)
        return

    if not result["issues"]:
        console.print(f"[green]✓[/] No issues found ({result['scanned']} files scanned)")
        return

    table = Table(title=f"{result['count']} issues in {result['scanned']} files")
    table.add_column("File")
    table.add_column("Line", justify="right")
    table.add_column("Issue", style="yellow")
    table.add_column("Code", overflow="fold")
    for issue in result["issues"]:
        table.add_row(issue["file"], str(issue["line"]), issue["issue"], issue["code"])
    console.print(table)
    if result.get("skipped"):
        console.print(f"[dim]{result['skipped']} unreadable files skipped[/dim]")


@app.command()
def query(
    sql: str = typer.Argument(..., help="Read-only SQL statement"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON result"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to asan-mcp.toml"),
) -> None:
    """Run a read-only query against DATABASE_URL."""
    result = _call("query", {"sql": sql}, config)

    if as_json:
        console.print_json(data=result)
        return

    rows = result["rows"]
    if not rows:
        console.print("[yellow]![/] 0 rows")
        return

    table = Table(title=f"{result['rowCount']} rows")
    for column in rows[0]:
        table.add_column(column)
    for row in rows:
        table.add_row(*("NULL" if v is None else v for v in row.values()))
    console.print(table)


def main() -> None:
    """Entry point for asan-mcp CLI."""
    app()


if __name__ == "__main__":
    main()
