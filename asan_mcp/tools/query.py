"""
Read-only SQL gateway for the Postgres tool server.

Security features:
- Lexical read-only gate (statement prefix allowlist + banned keyword check)
- Connection string resolved from the environment at call time
- Bounded client execution (timeout + output cap, child always reaped)
- Connection string redacted from reported client errors

The gate is a keyword heuristic, not a SQL parser. It does not reason about
comments or statement boundaries.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import os
import re
from typing import Any

from mcp.types import Tool

from asan_mcp.config import McpQueryConfig
from asan_mcp.errors import ConfigurationError, ExecutionError, ValidationError
from asan_mcp.registry import RegisteredTool
from asan_mcp.tools.csv_parse import Row, parse_csv
from asan_mcp.tools.process import run_bounded

logger = logging.getLogger("asan-mcp.query")

DATABASE_URL_ENVS: tuple[str, ...] = ("DATABASE_URL", "POSTGRES_URL", "POSTGRES_CONNECTION_STRING")

READ_ONLY_PREFIXES: tuple[str, ...] = ("select", "with", "show", "explain", "describe")

BANNED_KEYWORDS: tuple[str, ...] = (
    "insert",
    "update",
    "delete",
    "alter",
    "drop",
    "create",
    "truncate",
    "grant",
    "revoke",
    "vacuum",
)

# ASCII word boundaries: "updated_at" is a column, "update" is a statement
_BANNED_RE = re.compile(
    r"\b(?:" + "|".join(BANNED_KEYWORDS) + r")\b",
    re.IGNORECASE | re.ASCII,
)

QUERY_TOOL = Tool(
    name="query",
    description="Run a read-only SQL query against DATABASE_URL and return rows.",
    inputSchema={
        "type": "object",
        "properties": {
            "sql": {
                "type": "string",
                "description": "SQL query (read-only: SELECT, WITH, SHOW, EXPLAIN, DESCRIBE)",
            },
        },
        "required": ["sql"],
    },
)


def resolve_database_url(
    env_names: Sequence[str] = DATABASE_URL_ENVS,
    environ: Mapping[str, str] | None = None,
) -> str:
    """
    Return the first non-empty connection string from env_names.

    Raises:
        ConfigurationError: none of the variables is set
    """
    env = os.environ if environ is None else environ
    for name in env_names:
        value = env.get(name)
        if value:
            return value
    raise ConfigurationError(f"{env_names[0] if env_names else 'DATABASE_URL'} is not set")


def is_read_only_sql(sql: Any) -> bool:
    """True if sql passes the lexical read-only gate."""
    normalized = str(sql or "").strip().lower()
    if not normalized:
        return False

    if not normalized.startswith(READ_ONLY_PREFIXES):
        return False

    return _BANNED_RE.search(normalized) is None


def _redact(text: str, secret: str) -> str:
    return text.replace(secret, "<redacted>") if secret else text


def run_query(
    sql: str,
    database_url: str,
    *,
    client: str = "psql",
    timeout: float = 15,
    max_output_bytes: int = 10 * 1024 * 1024,
) -> list[Row]:
    """
    Execute sql through the database client and parse its CSV output.

    The caller is responsible for gating sql first.

    Raises:
        ExecutionError: client missing, failed, timed out or produced too much output
    """
    argv = [client, database_url, "--csv", "-c", sql]
    try:
        out = run_bounded(argv, timeout=timeout, max_output_bytes=max_output_bytes)
    except ExecutionError as e:
        raise ExecutionError(f"Query failed: {_redact(e.message, database_url)}") from None

    if out.exit_code != 0:
        detail = _redact(out.stderr.strip(), database_url)
        first_line = detail.splitlines()[0] if detail else f"exit code {out.exit_code}"
        raise ExecutionError(f"Query failed: {first_line}")

    return parse_csv(out.stdout)


def make_query_tool(config: McpQueryConfig | None = None) -> RegisteredTool:
    """Build the `query` tool bound to the given settings."""
    cfg = config or McpQueryConfig()

    def handle_query(args: dict[str, Any]) -> dict[str, Any]:
        sql = args.get("sql")
        if not is_read_only_sql(sql):
            raise ValidationError("Only read-only SQL is allowed")

        database_url = resolve_database_url(cfg.database_url_envs)

        rows = run_query(
            str(sql),
            database_url,
            client=cfg.client,
            timeout=cfg.timeout,
            max_output_bytes=cfg.max_output_bytes,
        )
        logger.debug(f"query returned {len(rows)} rows")
        return {"rows": rows, "rowCount": len(rows)}

    return RegisteredTool(tool=QUERY_TOOL, handler=handle_query)
