"""MCP configuration loader - reads from asan-mcp.toml with ENV overrides."""  # noqa: I001

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import tomllib
from typing import cast

LOG_LEVELS = ("debug", "info", "warning", "error")


def _require_number(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")


def _require_str_list(name: str, value: object) -> None:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{name} must be a list of strings, got {value!r}")


@dataclass
class McpServerConfig:
    """Server transport settings."""

    transport: str = "stdio"
    log_level: str = "info"

    def validate(self) -> None:
        if not isinstance(self.log_level, str):
            raise ValueError(f"Invalid log level: {self.log_level!r}")
        if self.transport != "stdio":
            raise ValueError(f"Invalid transport: {self.transport}")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")


@dataclass
class McpQueryConfig:
    """Read-only query gateway settings."""

    database_url_envs: list[str] = field(
        default_factory=lambda: ["DATABASE_URL", "POSTGRES_URL", "POSTGRES_CONNECTION_STRING"]
    )
    client: str = "psql"
    timeout: float = 15
    max_output_bytes: int = 10 * 1024 * 1024

    def validate(self) -> None:
        _require_str_list("database_url_envs", self.database_url_envs)
        _require_number("timeout", self.timeout)
        _require_number("max_output_bytes", self.max_output_bytes)
        if not self.database_url_envs:
            raise ValueError("database_url_envs must not be empty")
        if not isinstance(self.client, str) or not self.client:
            raise ValueError("client must be set")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be positive")


@dataclass
class McpScanConfig:
    """Security scanner settings."""

    extensions: list[str] = field(default_factory=lambda: [".ts", ".tsx", ".js", ".jsx"])
    exclude_dirs: list[str] = field(default_factory=lambda: ["node_modules", ".next", "dist"])
    snippet_max_chars: int = 100

    def validate(self) -> None:
        _require_str_list("extensions", self.extensions)
        _require_str_list("exclude_dirs", self.exclude_dirs)
        snippet = self.snippet_max_chars
        if isinstance(snippet, bool) or not isinstance(snippet, int):
            raise ValueError(f"snippet_max_chars must be an integer, got {snippet!r}")
        if not self.extensions:
            raise ValueError("extensions must not be empty")
        for ext in self.extensions:
            if not ext.startswith("."):
                raise ValueError(f"Invalid extension (must start with '.'): {ext}")
        if self.snippet_max_chars <= 0:
            raise ValueError("snippet_max_chars must be positive")


@dataclass
class McpObservabilityConfig:
    """Logging and metrics settings."""

    enabled: bool = False
    log_format: str = "json"  # "json" | "text"
    log_level: str = "info"
    include_correlation_id: bool = True

    def validate(self) -> None:
        if not isinstance(self.log_level, str):
            raise ValueError(f"Invalid log level: {self.log_level!r}")
        if self.log_format not in ("json", "text"):
            raise ValueError(f"Invalid log format: {self.log_format}")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")


@dataclass
class McpConfig:
    """Root MCP configuration."""

    enabled: bool = True
    config_version: str = "v1"
    server: McpServerConfig = field(default_factory=McpServerConfig)
    query: McpQueryConfig = field(default_factory=McpQueryConfig)
    scan: McpScanConfig = field(default_factory=McpScanConfig)
    observability: McpObservabilityConfig = field(default_factory=McpObservabilityConfig)

    def validate(self) -> None:
        if not isinstance(self.enabled, bool):
            raise ValueError(f"enabled must be true or false, got {self.enabled!r}")
        self.server.validate()
        self.query.validate()
        self.scan.validate()
        self.observability.validate()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def _apply_env_overrides(cfg: McpConfig) -> McpConfig:
    """Apply environment variable overrides. ENV beats TOML."""
    if os.getenv("ASAN_MCP_ENABLED"):
        cfg.enabled = _env_flag("ASAN_MCP_ENABLED")

    if os.getenv("ASAN_MCP_LOG_LEVEL"):
        cfg.server.log_level = os.getenv("ASAN_MCP_LOG_LEVEL", cfg.server.log_level)

    # Database client binary (e.g. a pinned psql path)
    if os.getenv("ASAN_MCP_PSQL"):
        cfg.query.client = os.getenv("ASAN_MCP_PSQL", cfg.query.client)

    if os.getenv("ASAN_MCP_QUERY_TIMEOUT"):
        raw = os.getenv("ASAN_MCP_QUERY_TIMEOUT", "")
        try:
            cfg.query.timeout = float(raw)
        except ValueError:
            raise ValueError(f"ASAN_MCP_QUERY_TIMEOUT must be a number, got {raw!r}") from None

    if os.getenv("ASAN_MCP_OBS_ENABLED"):
        cfg.observability.enabled = _env_flag("ASAN_MCP_OBS_ENABLED")
    if os.getenv("ASAN_MCP_OBS_LOG_FORMAT"):
        cfg.observability.log_format = os.getenv(
            "ASAN_MCP_OBS_LOG_FORMAT", cfg.observability.log_format
        )

    return cfg


def load_config(config_path: str | Path | None = None) -> McpConfig:
    """
    Load MCP config from asan-mcp.toml with ENV overrides.

    Precedence: ENV → TOML → defaults

    Args:
        config_path: Path to asan-mcp.toml. If None, searches:
            1. ASAN_MCP_CONFIG env var
            2. ASAN_ROOT/asan-mcp.toml
            3. ./asan-mcp.toml

    Returns:
        McpConfig dataclass with merged settings.
    """
    if config_path is None:
        if os.getenv("ASAN_MCP_CONFIG"):
            config_path = Path(cast(str, os.getenv("ASAN_MCP_CONFIG")))
        elif os.getenv("ASAN_ROOT"):
            config_path = Path(cast(str, os.getenv("ASAN_ROOT"))) / "asan-mcp.toml"
        else:
            config_path = Path("asan-mcp.toml")
    else:
        config_path = Path(config_path)

    cfg = McpConfig()

    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        mcp_data = data.get("mcp", {})

        cfg.enabled = mcp_data.get("enabled", cfg.enabled)
        cfg.config_version = mcp_data.get("config_version", cfg.config_version)

        srv = mcp_data.get("server", {})
        cfg.server.transport = srv.get("transport", cfg.server.transport)
        cfg.server.log_level = srv.get("log_level", cfg.server.log_level)

        query = mcp_data.get("query", {})
        cfg.query.database_url_envs = query.get("database_url_envs", cfg.query.database_url_envs)
        cfg.query.client = query.get("client", cfg.query.client)
        cfg.query.timeout = query.get("timeout", cfg.query.timeout)
        cfg.query.max_output_bytes = query.get("max_output_bytes", cfg.query.max_output_bytes)

        scan = mcp_data.get("scan", {})
        cfg.scan.extensions = scan.get("extensions", cfg.scan.extensions)
        cfg.scan.exclude_dirs = scan.get("exclude_dirs", cfg.scan.exclude_dirs)
        cfg.scan.snippet_max_chars = scan.get("snippet_max_chars", cfg.scan.snippet_max_chars)

        obs = mcp_data.get("observability", {})
        cfg.observability.enabled = obs.get("enabled", cfg.observability.enabled)
        cfg.observability.log_format = obs.get("log_format", cfg.observability.log_format)
        cfg.observability.log_level = obs.get("log_level", cfg.observability.log_level)
        cfg.observability.include_correlation_id = obs.get(
            "include_correlation_id", cfg.observability.include_correlation_id
        )

    # Apply ENV overrides (highest precedence)
    cfg = _apply_env_overrides(cfg)

    cfg.validate()

    return cfg
