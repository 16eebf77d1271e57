"""
Parser for ``psql --csv`` output.

Fields are comma separated, optionally double-quoted, with quotes escaped by
doubling. Quoted fields never contain newlines in this format, so input is
scanned one line at a time.
"""

from __future__ import annotations

Row = dict[str, str | None]


def parse_line(line: str) -> list[str]:
    """Split one CSV line into its field values."""
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)

    while i < n:
        ch = line[i]
        if in_quotes:
            if ch == '"' and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            if ch == '"':
                in_quotes = False
            else:
                current.append(ch)
        elif ch == ",":
            fields.append("".join(current))
            current = []
        elif ch == '"':
            in_quotes = True
        else:
            current.append(ch)
        i += 1

    fields.append("".join(current))
    return fields


def parse_csv(text: str | None) -> list[Row]:
    """
    Parse CSV text into rows keyed by the header line.

    Every row carries one entry per header column; missing trailing values
    are None and surplus values are dropped. Blank input yields no rows.
    """
    lines = [line for line in (text or "").strip().split("\n") if line]
    if not lines:
        return []

    headers = parse_line(lines[0])
    rows: list[Row] = []
    for line in lines[1:]:
        cols = parse_line(line)
        row: Row = {}
        for i, header in enumerate(headers):
            row[header] = cols[i] if i < len(cols) else None
        rows.append(row)
    return rows
