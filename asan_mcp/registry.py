"""
Tool registry.

A registry is built once at process start from RegisteredTool entries and is
read-only afterwards: registration order is preserved for list_tools and
names are unique.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match
from mcp.types import Tool

from asan_mcp.errors import UnknownToolError, ValidationError

# Handlers take validated arguments and return a JSON-serializable payload.
ToolHandler = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class RegisteredTool:
    """A tool descriptor bound to its handler."""

    tool: Tool
    handler: ToolHandler
    validator: Draft7Validator = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        Draft7Validator.check_schema(self.tool.inputSchema)
        object.__setattr__(self, "validator", Draft7Validator(self.tool.inputSchema))

    @property
    def name(self) -> str:
        return self.tool.name

    def validate_arguments(self, arguments: Mapping[str, Any] | None) -> dict[str, Any]:
        """Check arguments against the input schema; returns a plain dict copy."""
        args = dict(arguments or {})
        error = best_match(self.validator.iter_errors(args))
        if error is not None:
            where = ".".join(str(p) for p in error.absolute_path)
            detail = f"{where}: {error.message}" if where else error.message
            raise ValidationError(f"Invalid arguments for {self.name}: {detail}")
        return args


class ToolRegistry:
    """Immutable, ordered collection of registered tools."""

    __slots__ = ("_entries", "_by_name")

    def __init__(self, entries: Iterable[RegisteredTool]):
        ordered = tuple(entries)
        by_name: dict[str, RegisteredTool] = {}
        for entry in ordered:
            if entry.name in by_name:
                raise ValueError(f"Duplicate tool name: {entry.name}")
            by_name[entry.name] = entry
        self._entries = ordered
        self._by_name = MappingProxyType(by_name)

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_by_name"):
            raise AttributeError("ToolRegistry is read-only")
        object.__setattr__(self, name, value)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RegisteredTool]:
        return iter(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(entry.name for entry in self._entries)

    @property
    def tools(self) -> list[Tool]:
        """Tool descriptors in registration order."""
        return [entry.tool for entry in self._entries]

    def get(self, name: str) -> RegisteredTool:
        """Look up a tool by name; raises UnknownToolError if absent."""
        entry = self._by_name.get(name)
        if entry is None:
            raise UnknownToolError(name)
        return entry
