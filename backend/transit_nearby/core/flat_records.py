"""Comma-separated GTFS rows -> field lists and header-keyed records."""

from collections.abc import Iterable, Iterator


def parse_line(line: str) -> list[str]:
    """Split one CSV line into fields.

    Every unescaped ``"`` toggles quoting, wherever it appears in a field.
    Commas inside quotes are kept, and ``""`` inside quotes is a literal
    quote. An unterminated quote runs to the end of the line.
    """
    if '"' not in line:
        return line.split(",")

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and line[i + 1:i + 2] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current))
    return fields


def iter_records(lines: Iterable[str]) -> Iterator[dict[str, str]]:
    """Yield one {column: value} dict per data row, keyed by the header row."""
    header: list[str] | None = None
    for line in lines:
        if not line.strip():
            continue
        fields = parse_line(line.rstrip("\r\n"))
        if header is None:
            header = [name.strip() for name in fields]
            continue
        yield dict(zip(header, fields))
