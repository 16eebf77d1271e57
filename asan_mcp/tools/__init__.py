"""ASAN MCP tools - read-only SQL gateway and security scanner."""

from asan_mcp.tools.csv_parse import Row, parse_csv, parse_line  # noqa: F401
from asan_mcp.tools.process import BoundedProcess, ProcessOutput, run_bounded  # noqa: F401
from asan_mcp.tools.query import (  # noqa: F401
    QUERY_TOOL,
    is_read_only_sql,
    make_query_tool,
    resolve_database_url,
    run_query,
)
from asan_mcp.tools.scan import (  # noqa: F401
    SECURITY_PATTERNS,
    SECURITY_SCAN_TOOL,
    FileScan,
    Finding,
    ScanReport,
    discover_files,
    make_security_scan_tool,
    read_source,
    scan_file,
    scan_text,
    scan_tree,
)
