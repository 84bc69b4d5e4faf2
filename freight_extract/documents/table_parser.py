"""Fixed-width / delimited table parsing for document extraction.

The parser walks the document lines once through three states:

``SEEK_HEADER``
    Skip lines until one matches a header pattern of the table.
``MAP_COLUMNS``
    Work out each column's character span from where its header pattern
    matches in the header line. A column ends where the next detected column
    starts, the last one at end of line. Columns whose header is missing get
    no span.
``READ_ROWS``
    Stream the following lines into rows: stop at a totals line, skip lines
    shorter than ``MIN_ROW_LENGTH``, slice each column by its span and coerce
    the cell by the column type. Pipe-delimited rows are split on ``|``. A row
    whose slices are all empty is re-split on runs of two or more spaces and
    assigned to columns positionally.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from freight_extract.documents.models import CellValue, FieldType, TableRow
from freight_extract.documents.schemas import ColumnSpec, TableSpec

MIN_ROW_LENGTH = 10

_TOTAL_LINE = re.compile(r"^\s*(TOTAL|SUBTOTAL|SUB-TOTAL|GRAND\s*TOTAL|NET\s*AMOUNT)", re.IGNORECASE)
_WIDE_GAP = re.compile(r"\s{2,}")
_FIRST_NUMBER = re.compile(r"([\d,]+\.?\d*)")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_EMPTY_CELLS = {"", "-", "N/A", "NA"}

Span = Tuple[int, int]


class ParserState(str, Enum):
    SEEK_HEADER = "seek_header"
    MAP_COLUMNS = "map_columns"
    READ_ROWS = "read_rows"
    DONE = "done"


def _to_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


def coerce_cell(value: str, column_type: FieldType) -> CellValue:
    """Convert a raw cell to the column's declared type.

    Placeholders (``-``, ``N/A``) and unparseable numbers become ``None``.
    """
    value = value.strip().strip("|").strip()
    if value.upper() in _EMPTY_CELLS:
        return None

    if column_type == FieldType.NUMBER:
        return _to_float(value.replace(",", ""))
    if column_type == FieldType.AMOUNT:
        return _to_float(_NON_NUMERIC.sub("", value))
    if column_type == FieldType.WEIGHT:
        match = _FIRST_NUMBER.search(value)
        return _to_float(match.group(1).replace(",", "")) if match else None
    return value


def is_total_line(line: str) -> bool:
    return bool(_TOTAL_LINE.match(line))


def find_header(lines: Sequence[str], table: TableSpec) -> Optional[int]:
    """Index of the first line matching any header pattern of ``table``."""
    for index, line in enumerate(lines):
        if any(p.search(line) for p in table.headers):
            return index
    return None


def map_columns(header_line: str, columns: Sequence[ColumnSpec]) -> Dict[str, Span]:
    """Character span of each column whose header appears in the header line."""
    starts: Dict[str, int] = {}
    for column in columns:
        for pattern in column.headers:
            match = pattern.search(header_line)
            if match:
                starts[column.name] = match.start()
                break

    ordered = sorted(set(starts.values()))
    spans: Dict[str, Span] = {}
    for name, start in starts.items():
        later = [s for s in ordered if s > start]
        spans[name] = (start, later[0] if later else len(header_line))
    return spans


def parse_row(line: str, columns: Sequence[ColumnSpec], spans: Dict[str, Span], delimited: bool = False) -> TableRow:
    """One data line to a row keyed by column name."""
    if delimited and "|" in line:
        parts = [p.strip() for p in line.strip().strip("|").split("|")]
        return _positional(parts, columns)

    row: TableRow = {}
    for column in columns:
        span = spans.get(column.name)
        row[column.name] = coerce_cell(line[span[0]:span[1]], column.type) if span else None

    if all(v is None or v == "" for v in row.values()):
        parts = [p.strip() for p in _WIDE_GAP.split(line) if p.strip()]
        row = _positional(parts, columns)
    return row


def _positional(parts: Sequence[str], columns: Sequence[ColumnSpec]) -> TableRow:
    row: TableRow = {column.name: None for column in columns}
    for part, column in zip(parts, columns):
        row[column.name] = coerce_cell(part, column.type)
    return row


class TableParser:
    """Runs the header/columns/rows state machine for one table spec."""

    def __init__(self, table: TableSpec) -> None:
        self.table = table
        self.state = ParserState.SEEK_HEADER
        self.spans: Dict[str, Span] = {}
        self.header_index: Optional[int] = None

    def parse(self, lines: Sequence[str]) -> List[TableRow]:
        rows: List[TableRow] = []
        self.state = ParserState.SEEK_HEADER
        index = 0
        delimited = False

        while self.state != ParserState.DONE:
            if self.state == ParserState.SEEK_HEADER:
                self.header_index = find_header(lines, self.table)
                if self.header_index is None:
                    self.state = ParserState.DONE
                else:
                    self.state = ParserState.MAP_COLUMNS

            elif self.state == ParserState.MAP_COLUMNS:
                header_line = lines[self.header_index]
                self.spans = map_columns(header_line, self.table.columns)
                delimited = "|" in header_line
                index = self.header_index + 1
                self.state = ParserState.READ_ROWS

            elif self.state == ParserState.READ_ROWS:
                if index >= len(lines) or is_total_line(lines[index]):
                    self.state = ParserState.DONE
                    continue
                line = lines[index]
                index += 1
                if len(line) < MIN_ROW_LENGTH:
                    continue
                row = parse_row(line, self.table.columns, self.spans, delimited)
                if any(v is not None for v in row.values()):
                    rows.append(row)

        return rows


def extract_table(table: TableSpec, lines: Sequence[str]) -> List[TableRow]:
    """Rows of ``table`` found in ``lines``; empty when the header is absent."""
    return TableParser(table).parse(lines)
