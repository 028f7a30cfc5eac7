"""
Auxiliary Spreadsheet Lookups

Reads auxiliary Excel templates into plain cell matrices and indexes their rows
by a join key (contract number or provider tax ID).

Header matching is tolerant of case and surrounding/inner whitespace only:
- "  Numero   Contrato " matches candidate "NUMERO CONTRATO"
- "Número Contrato" does NOT match "NUMERO CONTRATO" (list accented variants)

A missing key column yields an empty index; enrichment for that source then
becomes a no-op for every provider.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

import openpyxl

import dictionary

logger = logging.getLogger(__name__)

_WHITESPACE_PATTERN = re.compile(r'\s+')
_NUMBER_CHARS_PATTERN = re.compile(r'[^0-9.,\-]')
_THOUSANDS_PATTERN = re.compile(r'^[1-9]\d{0,2}([.,]\d{3})+$')


def normalize_header(value: Any) -> str:
    """Trim, collapse inner whitespace and case-fold a header cell."""
    if value is None:
        return ''
    return _WHITESPACE_PATTERN.sub(' ', str(value)).strip().casefold()


def cell_to_text(value: Any) -> str:
    """
    Stringify a cell for use as a join key.

    Integral floats lose their '.0' so 44847.0 and '44847' join.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def normalize_code(code: Any) -> Optional[str]:
    """
    Normalize a service code: uppercase, strip whitespace, remove non-alphanumeric.
    Returns None if input is empty or invalid.
    """
    s = cell_to_text(code).upper()
    if not s or s.lower() in ('undefined', 'null', 'none', 'n/a', 'nan'):
        return None
    s = re.sub(r'[^A-Z0-9]', '', s)
    return s or None


def normalize_number(value: Any) -> Optional[Decimal]:
    """
    Parse a numeric cell that may arrive as a number or as a formatted string.

    Handles currency symbols and both separator conventions:
    - "$ 1.234.567"   -> 1234567
    - "1,234,567.50"  -> 1234567.50
    - "1.234,5"       -> 1234.5
    - "12.5"          -> 12.5
    - "0.125"         -> 0.125 (a leading zero is never a thousands group)

    Returns:
        Decimal, or None when nothing numeric can be recovered
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return None
        return number if number.is_finite() else None

    s = str(value).strip()
    if not s or s.lower() in ('undefined', 'null', 'none', 'n/a', 'error'):
        return None
    cleaned = _NUMBER_CHARS_PATTERN.sub('', s)
    if not cleaned:
        return None

    negative = cleaned.startswith('-')
    cleaned = cleaned.replace('-', '')
    last_dot = cleaned.rfind('.')
    last_comma = cleaned.rfind(',')

    if last_dot >= 0 and last_comma >= 0:
        # Whichever separator comes last is the decimal mark
        decimal_mark = '.' if last_dot > last_comma else ','
        thousands = ',' if decimal_mark == '.' else '.'
        cleaned = cleaned.replace(thousands, '').replace(decimal_mark, '.')
    elif last_dot >= 0 or last_comma >= 0:
        mark = '.' if last_dot >= 0 else ','
        if cleaned.count(mark) > 1 or _THOUSANDS_PATTERN.match(cleaned):
            cleaned = cleaned.replace(mark, '')
        else:
            cleaned = cleaned.replace(mark, '.')

    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return -number if negative else number


def find_column(header: Sequence[Any], candidates: Sequence[str]) -> int:
    """
    Locate a column by header name.

    Candidates are tried in order; the first candidate present in the header
    wins, regardless of where it sits in the row.

    Returns:
        Column index, or -1 when no candidate matches
    """
    normalized = [normalize_header(cell) for cell in header]
    for candidate in candidates:
        wanted = normalize_header(candidate)
        if wanted in normalized:
            return normalized.index(wanted)
    return -1


def build_index(rows: Sequence[Sequence[Any]], key_candidates: Sequence[str]) -> Dict[str, list]:
    """
    Index data rows by the value of a key column.

    Row 0 is the header. Empty keys are skipped; duplicate keys keep the last row.

    Returns:
        Dict mapping key text to the raw row, or {} if the key column is missing
    """
    if not rows:
        return {}
    key_col = find_column(rows[0], key_candidates)
    if key_col < 0:
        logger.debug("Key column not found (tried %s)", ', '.join(key_candidates))
        return {}

    index = {}
    for row in rows[1:]:
        if key_col >= len(row):
            continue
        key = cell_to_text(row[key_col])
        if key:
            index[key] = list(row)
    return index


def get_cell(row: Sequence[Any], col: int) -> Any:
    """Cell value at col, or None for a missing column / short row."""
    if col < 0 or col >= len(row):
        return None
    return row[col]


@dataclass
class AuxiliarySource:
    """
    One auxiliary spreadsheet, indexed by contract number and by tax ID.

    Column positions are resolved once from the header and reused per row.
    """
    name: str
    header: List[Any] = field(default_factory=list)
    by_contract: Dict[str, list] = field(default_factory=dict)
    by_tax_id: Dict[str, list] = field(default_factory=dict)
    _columns: Dict[tuple, int] = field(default_factory=dict, repr=False)

    @classmethod
    def from_rows(cls, name: str, rows: Sequence[Sequence[Any]]) -> 'AuxiliarySource':
        header = list(rows[0]) if rows else []
        source = cls(
            name=name,
            header=header,
            by_contract=build_index(rows, dictionary.CONTRACT_HEADERS),
            by_tax_id=build_index(rows, dictionary.TAX_ID_HEADERS),
        )
        logger.info("Indexed %s: %d by contract, %d by NIT",
                    name, len(source.by_contract), len(source.by_tax_id))
        return source

    def column(self, candidates: Sequence[str]) -> int:
        """Cached find_column over this source's header."""
        key = tuple(candidates)
        if key not in self._columns:
            self._columns[key] = find_column(self.header, candidates)
        return self._columns[key]

    def value(self, row: Sequence[Any], candidates: Sequence[str]) -> Any:
        return get_cell(row, self.column(candidates))


def read_workbook_rows(filepath: str, sheet_name: Optional[str] = None) -> List[list]:
    """
    Load one worksheet as a matrix of cell values.

    Args:
        filepath: Path to an .xlsx workbook
        sheet_name: Worksheet to read (default: the first sheet)

    Returns:
        List of rows (lists of raw cell values); fully empty rows are dropped
    """
    wb = openpyxl.load_workbook(filepath, read_only=True, data_only=True)
    try:
        ws = wb[sheet_name] if sheet_name else wb.worksheets[0]
        rows = []
        for values in ws.iter_rows(values_only=True):
            if any(v is not None and str(v).strip() != '' for v in values):
                rows.append(list(values))
    finally:
        wb.close()

    logger.debug("Read %d rows from %s", len(rows), filepath)
    return rows


def rows_to_records(rows: Sequence[Sequence[Any]], fields: Dict[str, Sequence[str]]) -> List[Dict[str, Any]]:
    """
    Convert a matrix with a header row to dicts keyed by logical field name.

    Args:
        rows: Header row followed by data rows
        fields: Logical field name -> header candidates

    Returns:
        One dict per data row; unresolved fields are None
    """
    if not rows:
        return []
    columns = {name: find_column(rows[0], candidates) for name, candidates in fields.items()}
    missing = [name for name, col in columns.items() if col < 0]
    if missing:
        logger.debug("Columns not found: %s", ', '.join(missing))
    return [
        {name: get_cell(row, col) for name, col in columns.items()}
        for row in rows[1:]
    ]
