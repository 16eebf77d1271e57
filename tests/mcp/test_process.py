"""Tests for bounded subprocess execution."""

import sys
import time

import pytest

from asan_mcp.errors import ExecutionError
from asan_mcp.tools.process import BoundedProcess, run_bounded

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")

PY = sys.executable


def test_captures_stdout_stderr_and_exit_code():
    out = run_bounded(
        [PY, "-c", "import sys; print('hello'); print('oops', file=sys.stderr); sys.exit(3)"],
        timeout=10,
    )
    assert out.stdout == "hello\n"
    assert out.stderr == "oops\n"
    assert out.exit_code == 3


def test_timeout_raises_and_does_not_hang():
    start = time.monotonic()
    with pytest.raises(ExecutionError) as exc:
        run_bounded([PY, "-c", "import time; time.sleep(30)"], timeout=0.5)
    assert "timed out after 0.5s" in str(exc.value)
    assert time.monotonic() - start < 10


def test_timeout_terminates_child():
    proc = BoundedProcess([PY, "-c", "import time; time.sleep(30)"])
    with pytest.raises(ExecutionError):
        with proc:
            proc.communicate(timeout=0.3, max_output_bytes=1024)
    assert proc.p is not None
    assert proc.p.poll() is not None


def test_child_ignoring_sigterm_is_killed():
    code = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )
    proc = BoundedProcess([PY, "-c", code])
    with pytest.raises(ExecutionError):
        with proc:
            proc.communicate(timeout=1.0, max_output_bytes=1024)
    assert proc.p.poll() is not None


def test_output_cap():
    with pytest.raises(ExecutionError) as exc:
        run_bounded(
            [PY, "-c", "import sys; sys.stdout.write('x' * 200000); sys.stdout.flush()"],
            timeout=10,
            max_output_bytes=1000,
        )
    assert "output exceeded 1000 bytes" in str(exc.value)


def test_output_cap_applies_to_stderr():
    with pytest.raises(ExecutionError):
        run_bounded(
            [PY, "-c", "import sys; sys.stderr.write('e' * 50000)"],
            timeout=10,
            max_output_bytes=100,
        )


def test_output_within_cap_is_complete():
    out = run_bounded(
        [PY, "-c", "import sys; sys.stdout.write('y' * 100000)"],
        timeout=10,
        max_output_bytes=100000,
    )
    assert len(out.stdout) == 100000


def test_missing_executable():
    with pytest.raises(ExecutionError) as exc:
        run_bounded(["/nonexistent/definitely-not-psql", "x"], timeout=5)
    assert "Executable not found" in str(exc.value)


def test_error_inside_scope_still_reaps_child():
    proc = BoundedProcess([PY, "-c", "import time; time.sleep(30)"])
    with pytest.raises(RuntimeError):
        with proc:
            raise RuntimeError("boom")
    assert proc.p.poll() is not None


def test_empty_argv_rejected():
    with pytest.raises(ValueError):
        BoundedProcess([])
