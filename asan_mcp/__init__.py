"""ASAN MCP - stdio tool servers for the ASAN enterprise template."""

__version__ = "1.0.0"
