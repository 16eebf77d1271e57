"""
Tool session: handshake, tool listing and call dispatch.

The session is transport-agnostic. It owns the per-process state machine
(UNINITIALIZED -> READY -> PROCESSING -> READY) and guarantees that calls are
handled strictly one at a time, in arrival order. Every call yields exactly
one CallOutcome; nothing raised by a handler escapes call_tool. A cancelled
call still holds the session until its handler has returned.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
import json
import logging
import time
from typing import Any

from mcp.types import LATEST_PROTOCOL_VERSION, Tool

from asan_mcp.errors import ToolError
from asan_mcp.observability import ObservabilityContext
from asan_mcp.registry import ToolRegistry

logger = logging.getLogger("asan-mcp.session")


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    PROCESSING = "processing"


@dataclass(frozen=True)
class CallOutcome:
    """Result of one tool call: success content or a failure message."""

    text: str
    is_error: bool = False
    code: str | None = None

    @classmethod
    def success(cls, payload: Any) -> CallOutcome:
        return cls(text=json.dumps(payload, indent=2, default=str))

    @classmethod
    def failure(cls, message: str, code: str = "TOOL_ERROR") -> CallOutcome:
        return cls(text=message, is_error=True, code=code)


class ToolSession:
    """One protocol session over a fixed tool registry."""

    def __init__(
        self,
        registry: ToolRegistry,
        server_name: str,
        server_version: str,
        obs: ObservabilityContext | None = None,
    ):
        self.registry = registry
        self.server_name = server_name
        self.server_version = server_version
        self.obs = obs
        self.state = SessionState.UNINITIALIZED
        self._lock = asyncio.Lock()

    def initialize(self) -> dict[str, Any]:
        """Handshake payload. Safe to repeat; moves the session to READY."""
        if self.state is SessionState.UNINITIALIZED:
            self.state = SessionState.READY
            logger.info(f"{self.server_name} session ready ({len(self.registry)} tools)")
        return {
            "protocolVersion": LATEST_PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
        }

    def list_tools(self) -> list[Tool]:
        return self.registry.tools

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None) -> CallOutcome:
        """Dispatch one call. Never raises; failures come back as outcomes."""
        async with self._lock:
            if self.state is SessionState.UNINITIALIZED:
                return CallOutcome.failure("Session not initialized", code="NOT_INITIALIZED")

            self.state = SessionState.PROCESSING
            cid = self.obs.correlation_id() if self.obs else "-"
            start_time = time.time()
            logger.info(f"call_tool: {name}", extra={"correlation_id": cid, "tool": name})
            try:
                outcome = await self._dispatch(name, arguments, cid)
            finally:
                self.state = SessionState.READY

            latency_ms = (time.time() - start_time) * 1000
            if self.obs:
                self.obs.record(cid, name, latency_ms=latency_ms, success=not outcome.is_error)
            logger.info(
                f"call_tool done: {name}",
                extra={
                    "correlation_id": cid,
                    "tool": name,
                    "latency_ms": round(latency_ms, 2),
                    "status": "error" if outcome.is_error else "ok",
                    "error": outcome.text if outcome.is_error else None,
                },
            )
            return outcome

    async def _dispatch(self, name: str, arguments: Mapping[str, Any] | None, cid: str) -> CallOutcome:
        try:
            entry = self.registry.get(name)
            args = entry.validate_arguments(arguments)
            # Handlers block on files and subprocesses; keep the loop free for the transport
            worker = asyncio.ensure_future(asyncio.to_thread(entry.handler, args))
            try:
                payload = await asyncio.shield(worker)
            except asyncio.CancelledError:
                # The thread cannot be interrupted; the session stays busy until it returns
                logger.warning(
                    f"Call to {name} cancelled, waiting for handler to finish",
                    extra={"correlation_id": cid, "tool": name},
                )
                await asyncio.wait({worker})
                if not worker.cancelled() and worker.exception() is not None:
                    logger.debug(f"Cancelled call to {name} failed: {worker.exception()}")
                raise
            return CallOutcome.success(payload)
        except ToolError as e:
            return CallOutcome.failure(e.message, code=e.code)
        except Exception as e:
            logger.exception(f"Tool {name} failed: {e}", extra={"correlation_id": cid, "tool": name})
            return CallOutcome.failure(str(e) or e.__class__.__name__)
