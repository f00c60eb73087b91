from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from ..models.cell import EMPTY, CellValue, Text, cell_text, is_blank
from ..models.row_data import RawRow
from .reader import ParseError

"""Row projector.

Turns a sheet's raw rows into RawRow objects keyed by canonical field names:

1. locate the header row (preferred index first, then a short scan)
2. map header text to canonical names through the alias table
3. emit one RawRow per non-blank data row, tagged with its 1-based sheet row

No type coercion happens here. Null sentinel strings (e.g. "NULL") are
projected as EMPTY.
"""

__all__ = [
    "SheetHeaderError",
    "HEADER_SCAN_LIMIT",
    "normalize_header",
    "locate_header_row",
    "project_rows",
]

HEADER_SCAN_LIMIT = 10
MIN_KNOWN_COLUMNS = 2


class SheetHeaderError(ParseError):
    """Raised when no row of a sheet looks like a header."""


def normalize_header(cell: CellValue) -> str:
    """Lower-case, whitespace-collapsed header text ("" for empty cells)."""
    return " ".join(cell_text(cell).split()).lower()


def _known_count(row: Sequence[CellValue], aliases: Mapping[str, str]) -> int:
    return len({aliases[h] for h in (normalize_header(c) for c in row) if h in aliases})


def locate_header_row(
    rows: Sequence[Sequence[CellValue]], aliases: Mapping[str, str], preferred: int = 0
) -> int:
    """Return the 0-based index of the header row.

    The preferred index is used when it holds at least two known column
    names; otherwise the first HEADER_SCAN_LIMIT rows are scanned and the row
    with the most known names wins (first one on ties).
    """
    if 0 <= preferred < len(rows) and _known_count(rows[preferred], aliases) >= MIN_KNOWN_COLUMNS:
        return preferred

    best_idx, best_count = -1, 0
    for idx, row in enumerate(rows[:HEADER_SCAN_LIMIT]):
        count = _known_count(row, aliases)
        if count > best_count:
            best_idx, best_count = idx, count
    if best_count < MIN_KNOWN_COLUMNS:
        raise SheetHeaderError(
            f"no header row found in the first {HEADER_SCAN_LIMIT} rows (need at least {MIN_KNOWN_COLUMNS} known columns)"
        )
    return best_idx


def _header_fields(header: Sequence[CellValue], aliases: Mapping[str, str]) -> list[str | None]:
    fields: list[str | None] = []
    seen: set[str] = set()
    for cell in header:
        norm = normalize_header(cell)
        if not norm:
            fields.append(None)
            continue
        name = aliases.get(norm, cell_text(cell).strip())
        if name in seen:
            # 重複列は先勝ち
            fields.append(None)
            continue
        seen.add(name)
        fields.append(name)
    return fields


def _sanitize(cell: CellValue, null_sentinels: Iterable[str]) -> CellValue:
    if isinstance(cell, Text) and cell.value.upper() in null_sentinels:
        return EMPTY
    return cell


def project_rows(
    rows: Sequence[Sequence[CellValue]],
    header_row: int,
    aliases: Mapping[str, str],
    null_sentinels: Iterable[str] | None = None,
    sheet: str = "",
) -> list[RawRow]:
    """Project the rows below ``header_row`` onto canonical field names.

    Entirely blank rows are skipped; row numbers stay those of the sheet
    (index + 1) so messages match what the user sees.
    """
    if header_row < 0 or header_row >= len(rows):
        raise SheetHeaderError(f"header row {header_row + 1} is outside the sheet")
    sentinels = frozenset(s.upper() for s in (null_sentinels or ()))
    fields = _header_fields(rows[header_row], aliases)

    projected: list[RawRow] = []
    for idx in range(header_row + 1, len(rows)):
        values: dict[str, CellValue] = {}
        for name, cell in zip(fields, rows[idx]):
            if name is None:
                continue
            values[name] = _sanitize(cell, sentinels)
        if all(is_blank(v) for v in values.values()):
            continue
        projected.append(RawRow(row_number=idx + 1, values=values, sheet=sheet))
    return projected
