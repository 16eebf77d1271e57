from pathlib import Path
import stat
import sys
import textwrap

import pytest

# Ensure repo root is importable without an installed package.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_ENV_VARS = (
    "DATABASE_URL",
    "POSTGRES_URL",
    "POSTGRES_CONNECTION_STRING",
    "ASAN_MCP_CONFIG",
    "ASAN_ROOT",
    "ASAN_MCP_ENABLED",
    "ASAN_MCP_LOG_LEVEL",
    "ASAN_MCP_PSQL",
    "ASAN_MCP_QUERY_TIMEOUT",
    "ASAN_MCP_OBS_ENABLED",
    "ASAN_MCP_OBS_LOG_FORMAT",
    "ASAN_MCP_SESSION_ID",
)


@pytest.fixture(autouse=True)
def hermetic_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Autouse: each test runs in its own tmp cwd with no database or
    asan-mcp settings leaking in from the developer's shell.
    """
    monkeypatch.chdir(tmp_path)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def fake_client(tmp_path: Path):
    """
    Factory for stand-in database clients.

    Writes an executable Python script that receives the same argv as psql
    (url, --csv, -c, sql) and runs the given body.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(body: str, name: str = "fake-psql") -> Path:
        script = bin_dir / name
        script.write_text(
            f"#!{sys.executable}\nimport sys, time\n" + textwrap.dedent(body),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make
