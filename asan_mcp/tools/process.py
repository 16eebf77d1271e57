"""
Bounded subprocess execution.

Runs an external program with a wall-clock deadline and a cap on captured
output. The child process is owned by a context manager: whichever way the
call ends, the child is terminated (then killed) if still running and always
reaped.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import selectors
import signal
import subprocess
import time

from asan_mcp.errors import ExecutionError

logger = logging.getLogger("asan-mcp.process")

DEFAULT_TIMEOUT_SEC = 15.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024

# Grace period between SIGTERM and SIGKILL
TERMINATE_GRACE_SEC = 2.0

_CHUNK_SIZE = 65536


@dataclass
class ProcessOutput:
    """Captured result of a finished process."""

    stdout: str
    stderr: str
    exit_code: int


class BoundedProcess:
    """Scoped owner of a child process.

    Usage:
        with BoundedProcess(argv) as proc:
            out = proc.communicate(timeout=15, max_output_bytes=1024)
    """

    def __init__(self, argv: list[str], env: dict[str, str] | None = None):
        if not argv:
            raise ValueError("Empty command")
        self.argv = argv
        self.env = env
        self.p: subprocess.Popen | None = None

    def __enter__(self) -> BoundedProcess:
        try:
            self.p = subprocess.Popen(
                self.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self.env,
                shell=False,
                # Own process group so helpers forked by the client die with it
                start_new_session=True,
            )
        except FileNotFoundError:
            raise ExecutionError(f"Executable not found: {self.argv[0]}") from None
        except OSError as e:
            raise ExecutionError(f"Failed to start {self.argv[0]}: {e.strerror or e}") from None
        logger.debug(f"Started {self.argv[0]} (pid={self.p.pid})")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Terminate the child if still running and reap it."""
        p = self.p
        if p is None:
            return
        if p.poll() is None:
            self._signal_group(signal.SIGTERM)
            try:
                p.wait(timeout=TERMINATE_GRACE_SEC)
            except subprocess.TimeoutExpired:
                logger.warning(f"{self.argv[0]} (pid={p.pid}) ignored SIGTERM, killing")
                self._signal_group(signal.SIGKILL)
                p.wait()
            logger.debug(f"Terminated {self.argv[0]} (pid={p.pid})")
        else:
            # Leader exited; sweep anything it left behind in its group
            self._signal_group(signal.SIGKILL)
        for stream in (p.stdout, p.stderr):
            if stream is not None:
                stream.close()

    def _signal_group(self, sig: signal.Signals) -> None:
        p = self.p
        if p is None:
            return
        try:
            os.killpg(p.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            # Group id reused by something we don't own; fall back to the leader
            if p.poll() is None:
                p.send_signal(sig)

    def communicate(self, timeout: float, max_output_bytes: int) -> ProcessOutput:
        """
        Collect stdout/stderr until the child exits.

        Raises:
            ExecutionError: deadline passed or a stream exceeded max_output_bytes
        """
        p = self.p
        if p is None:
            raise RuntimeError("Process not started")

        name = os.path.basename(self.argv[0])
        deadline = time.monotonic() + timeout
        buffers: dict[int, list[bytes]] = {}
        sizes: dict[int, int] = {}

        sel = selectors.DefaultSelector()
        try:
            for stream in (p.stdout, p.stderr):
                if stream is not None:
                    fd = stream.fileno()
                    sel.register(fd, selectors.EVENT_READ)
                    buffers[fd] = []
                    sizes[fd] = 0

            while sel.get_map():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ExecutionError(f"{name} timed out after {timeout:g}s")

                for key, _ in sel.select(timeout=remaining):
                    chunk = os.read(key.fd, _CHUNK_SIZE)
                    if not chunk:
                        sel.unregister(key.fd)
                        continue
                    sizes[key.fd] += len(chunk)
                    if sizes[key.fd] > max_output_bytes:
                        raise ExecutionError(f"{name} output exceeded {max_output_bytes} bytes")
                    buffers[key.fd].append(chunk)
        finally:
            sel.close()

        # Both pipes hit EOF; the child may still be finishing up
        remaining = max(0.0, deadline - time.monotonic())
        try:
            exit_code = p.wait(timeout=remaining)
        except subprocess.TimeoutExpired:
            raise ExecutionError(f"{name} timed out after {timeout:g}s") from None

        def _decode(stream) -> str:
            if stream is None:
                return ""
            return b"".join(buffers[stream.fileno()]).decode("utf-8", errors="replace")

        return ProcessOutput(stdout=_decode(p.stdout), stderr=_decode(p.stderr), exit_code=exit_code)


def run_bounded(
    argv: list[str],
    timeout: float = DEFAULT_TIMEOUT_SEC,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    env: dict[str, str] | None = None,
) -> ProcessOutput:
    """
    Run a command to completion under a timeout and output cap.

    Args:
        argv: Command and arguments (no shell)
        timeout: Max wall-clock seconds
        max_output_bytes: Max bytes captured per stream
        env: Optional full environment for the child

    Returns:
        ProcessOutput with decoded stdout/stderr and exit code

    Raises:
        ExecutionError: start failure, timeout, or output overflow. The child
            is terminated and reaped before the error propagates.
    """
    with BoundedProcess(argv, env=env) as proc:
        return proc.communicate(timeout=timeout, max_output_bytes=max_output_bytes)
