"""
Tool error types.

Every failure a tool handler can report maps to one of these. The session
catches them at the dispatch boundary and turns them into error results.
"""

from __future__ import annotations


class ToolError(Exception):
    """Base error for tool calls."""

    code: str = "TOOL_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ConfigurationError(ToolError):
    """Required connection or runtime configuration is missing."""

    code = "CONFIG_ERROR"


class ValidationError(ToolError):
    """Input rejected by a tool schema or policy gate."""

    code = "VALIDATION_ERROR"


class ExecutionError(ToolError):
    """External process failed, timed out, or exceeded its output bound."""

    code = "EXECUTION_ERROR"


class UnknownToolError(ToolError):
    """Requested tool is not registered."""

    code = "UNKNOWN_TOOL"

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.tool_name = name


class FileAccessError(ToolError):
    """A single file could not be read."""

    code = "FILE_ACCESS"
