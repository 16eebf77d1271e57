"""
Pattern-based security scanner.

Walks a source tree, reads each matching file, and reports every match of a
fixed catalogue of signatures with its file and line. Pattern matching only;
no parsing of the scanned languages.

Unreadable files never abort a scan: each file produces an explicit FileScan
that is either scanned (with its findings) or skipped (with a reason).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import re
from typing import Any

from mcp.types import Tool

from asan_mcp.config import McpScanConfig
from asan_mcp.errors import FileAccessError, ValidationError
from asan_mcp.registry import RegisteredTool

logger = logging.getLogger("asan-mcp.scan")

SNIPPET_MAX_CHARS = 100


@dataclass(frozen=True)
class SecurityPattern:
    name: str
    pattern: re.Pattern[str]


def _sig(regex: str, name: str) -> SecurityPattern:
    return SecurityPattern(name=name, pattern=re.compile(regex, re.IGNORECASE))


# Order matters: findings for a file are reported pattern by pattern.
SECURITY_PATTERNS: tuple[SecurityPattern, ...] = (
    _sig(r"""password\s*=\s*["'][^"']+["']""", "Hardcoded password"),
    _sig(r"""api[_-]?key\s*=\s*["'][^"']+["']""", "Hardcoded API key"),
    _sig(r"""secret\s*=\s*["'][^"']+["']""", "Hardcoded secret"),
    _sig(r"eval\s*\(", "Eval usage"),
    _sig(r"dangerouslySetInnerHTML", "Dangerous HTML"),
    _sig(r"innerHTML\s*=", "innerHTML usage"),
    _sig(r"""sql\s*\+\s*["']""", "SQL injection risk"),
    _sig(r"\.exec\s*\(", "Command execution"),
)

SECURITY_SCAN_TOOL = Tool(
    name="security_scan",
    description="Scan code for security vulnerabilities (hardcoded secrets, eval, raw HTML, SQL concatenation, command execution).",
    inputSchema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to scan (defaults to the server's working directory)",
            },
        },
    },
)


@dataclass(frozen=True)
class Finding:
    """One signature match."""

    file: str
    line: int
    issue: str
    code: str

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "line": self.line, "issue": self.issue, "code": self.code}


@dataclass(frozen=True)
class FileScan:
    """Outcome for a single file: scanned with findings, or skipped."""

    path: str
    findings: tuple[Finding, ...] = ()
    skipped_reason: str | None = None

    @classmethod
    def scanned(cls, path: str, findings: Iterable[Finding]) -> FileScan:
        return cls(path=path, findings=tuple(findings))

    @classmethod
    def skipped(cls, path: str, reason: str) -> FileScan:
        return cls(path=path, skipped_reason=reason)

    @property
    def is_skipped(self) -> bool:
        return self.skipped_reason is not None


@dataclass
class ScanReport:
    """Aggregate over every attempted file."""

    files: list[FileScan] = field(default_factory=list)

    @property
    def issues(self) -> list[Finding]:
        return [finding for fs in self.files for finding in fs.findings]

    @property
    def skipped(self) -> list[FileScan]:
        return [fs for fs in self.files if fs.is_skipped]

    def to_dict(self) -> dict[str, Any]:
        issues = [finding.to_dict() for finding in self.issues]
        return {
            "success": True,
            "issues": issues,
            "count": len(issues),
            "scanned": len(self.files),
            "skipped": len(self.skipped),
        }


def discover_files(
    root: str | Path,
    extensions: Sequence[str] = (".ts", ".tsx", ".js", ".jsx"),
    exclude_dirs: Iterable[str] = ("node_modules", ".next", "dist"),
) -> list[Path]:
    """
    List regular source files under root, leaving out dependency and build
    directories.

    A path is excluded when any of its directory segments is in exclude_dirs,
    the root's own segments included. A root that is itself a file is
    returned when its name matches. Symlinks are never followed or listed.

    Raises:
        ValidationError: root does not exist
    """
    root_path = Path(root)
    suffixes = tuple(extensions)
    skip = set(exclude_dirs)
    if root_path.is_file():
        if root_path.is_symlink() or skip.intersection(root_path.parent.parts):
            return []
        return [root_path] if root_path.name.endswith(suffixes) else []
    if not root_path.is_dir():
        raise ValidationError(f"Scan root does not exist: {root}")
    if skip.intersection(root_path.parts):
        logger.debug(f"Scan root {root} is inside an excluded directory")
        return []

    found: list[Path] = []

    def _walk_error(err: OSError) -> None:
        logger.debug(f"Cannot list {err.filename}: {err.strerror}")

    for dirpath, dirnames, filenames in os.walk(root_path, onerror=_walk_error):
        dirnames[:] = sorted(d for d in dirnames if d not in skip)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if name.endswith(suffixes) and not path.is_symlink():
                found.append(path)
    return found


def scan_text(
    text: str,
    file: str,
    patterns: Sequence[SecurityPattern] = SECURITY_PATTERNS,
    snippet_max_chars: int = SNIPPET_MAX_CHARS,
) -> list[Finding]:
    """Report every non-overlapping match of every pattern, in catalogue order."""
    findings: list[Finding] = []
    for sig in patterns:
        for match in sig.pattern.finditer(text):
            findings.append(
                Finding(
                    file=file,
                    line=text.count("\n", 0, match.start()) + 1,
                    issue=sig.name,
                    code=match.group(0)[:snippet_max_chars],
                )
            )
    return findings


def read_source(path: str | Path) -> str:
    """Read a source file as UTF-8, replacing undecodable bytes."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise FileAccessError(e.strerror or e.__class__.__name__) from e


def scan_file(
    path: str | Path,
    patterns: Sequence[SecurityPattern] = SECURITY_PATTERNS,
    snippet_max_chars: int = SNIPPET_MAX_CHARS,
) -> FileScan:
    """Scan one file; read failures produce a skipped FileScan."""
    file = str(path)
    try:
        text = read_source(path)
    except FileAccessError as e:
        logger.debug(f"Skipping unreadable file {file}: {e.message}")
        return FileScan.skipped(file, e.message)
    return FileScan.scanned(file, scan_text(text, file, patterns, snippet_max_chars))


def scan_tree(
    root: str | Path,
    config: McpScanConfig | None = None,
    patterns: Sequence[SecurityPattern] = SECURITY_PATTERNS,
) -> ScanReport:
    """Scan every discovered file under root."""
    cfg = config or McpScanConfig()
    report = ScanReport()
    for path in discover_files(root, cfg.extensions, cfg.exclude_dirs):
        report.files.append(scan_file(path, patterns, cfg.snippet_max_chars))
    return report


def make_security_scan_tool(config: McpScanConfig | None = None) -> RegisteredTool:
    """Build the `security_scan` tool bound to the given settings."""
    cfg = config or McpScanConfig()

    def handle_security_scan(args: dict[str, Any]) -> dict[str, Any]:
        root = args.get("path") or os.getcwd()
        report = scan_tree(root, cfg)
        logger.info(
            f"security_scan {root}: {len(report.files)} files, "
            f"{len(report.issues)} issues, {len(report.skipped)} skipped"
        )
        return report.to_dict()

    return RegisteredTool(tool=SECURITY_SCAN_TOOL, handler=handle_security_scan)
