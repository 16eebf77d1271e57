#!/usr/bin/env python3
"""
ASAN MCP Servers - Model Context Protocol tool servers over stdio.

Run with: python -m asan_mcp.server --server postgres|security|all

Servers:
- asan-postgres-mcp: query (read-only SQL via psql --csv)
- asan-security-mcp: security_scan (signature scan of JS/TS sources)
"""  # noqa: I001

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import sys
from typing import Any

from asan_mcp import __version__
from asan_mcp.config import McpConfig, load_config
from asan_mcp.observability import ObservabilityContext, setup_logging
from asan_mcp.registry import RegisteredTool, ToolRegistry
from asan_mcp.session import ToolSession
from asan_mcp.tools.query import make_query_tool
from asan_mcp.tools.scan import make_security_scan_tool
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

# Configure logging to stderr (stdout carries the protocol)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("asan-mcp")

EXIT_TRANSPORT_FAILURE = 1
EXIT_CONFIG_INVALID = 2

ToolFactory = Callable[[McpConfig], RegisteredTool]

# profile -> (server identity, tool factories in registration order)
SERVER_PROFILES: dict[str, tuple[str, tuple[ToolFactory, ...]]] = {
    "postgres": ("asan-postgres-mcp", (lambda cfg: make_query_tool(cfg.query),)),
    "security": ("asan-security-mcp", (lambda cfg: make_security_scan_tool(cfg.scan),)),
    "all": (
        "asan-mcp",
        (
            lambda cfg: make_query_tool(cfg.query),
            lambda cfg: make_security_scan_tool(cfg.scan),
        ),
    ),
}


class ToolCallFailed(Exception):
    """Signals a failed call to the MCP SDK, which reports it with isError set."""


def build_registry(profile: str, config: McpConfig) -> ToolRegistry:
    """Build the immutable registry for a server profile."""
    if profile not in SERVER_PROFILES:
        raise ValueError(f"Unknown server profile: {profile}")
    _, factories = SERVER_PROFILES[profile]
    return ToolRegistry(factory(config) for factory in factories)


class AsanMcpServer:
    """MCP stdio server exposing one profile's tools."""

    def __init__(self, config: McpConfig, profile: str = "all"):
        self.config = config
        self.profile = profile
        self.registry = build_registry(profile, config)
        self.name = SERVER_PROFILES[profile][0]
        self.obs = ObservabilityContext(config.observability)
        self.session = ToolSession(self.registry, self.name, __version__, obs=self.obs)
        self.server = Server(self.name, version=__version__)

        self._register_handlers()
        logger.info(
            f"{self.name} initialized ({config.config_version}, tools={list(self.registry.names)})"
        )

    def _register_handlers(self):
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            logger.debug("list_tools called")
            return self.session.list_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
            outcome = await self.session.call_tool(name, arguments)
            if outcome.is_error:
                # Reported with isError set and an "Error: " prefix
                raise ToolCallFailed(f"Error: {outcome.text}")
            return [TextContent(type="text", text=outcome.text)]

    async def run(self):
        """Run the server with stdio transport."""
        logger.info(f"Starting {self.name} (stdio transport)")
        # The SDK answers the wire-level initialize request itself
        self.session.initialize()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            if self.obs.enabled:
                logger.info(f"{self.name} session closed, metrics: {self.obs.get_stats()}")


def main(argv: list[str] | None = None, default_server: str = "all") -> None:
    """Entry point for the ASAN MCP servers."""
    import argparse

    global logger  # noqa: PLW0603

    parser = argparse.ArgumentParser(description="ASAN MCP Server")
    parser.add_argument(
        "--server",
        "-s",
        choices=sorted(SERVER_PROFILES),
        default=default_server,
        help="Which tool server to run",
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to asan-mcp.toml config file",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        "-l",
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Override log level",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (ValueError, TypeError, OSError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(EXIT_CONFIG_INVALID)

    if args.log_level:
        config.server.log_level = args.log_level
        config.observability.log_level = args.log_level

    if config.observability.enabled:
        logger = setup_logging(config.observability, "asan-mcp")
    else:
        log_level = getattr(logging, config.server.log_level.upper(), logging.INFO)
        logging.getLogger().setLevel(log_level)
        logger.setLevel(log_level)

    logger.info(f"Config loaded: enabled={config.enabled}, version={config.config_version}")
    logger.info(f"Query: client={config.query.client}, timeout={config.query.timeout}s")
    logger.info(f"Scan: extensions={config.scan.extensions}, exclude={config.scan.exclude_dirs}")

    if not config.enabled:
        logger.warning("MCP server disabled in config, exiting")
        sys.exit(0)

    server = AsanMcpServer(config, args.server)
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception:
        logger.exception(f"{server.name} transport failed")
        sys.exit(EXIT_TRANSPORT_FAILURE)


def postgres_main() -> None:
    """Entry point for asan-postgres-mcp."""
    main(default_server="postgres")


def security_main() -> None:
    """Entry point for asan-security-mcp."""
    main(default_server="security")


if __name__ == "__main__":
    main()
