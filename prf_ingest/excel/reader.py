from __future__ import annotations

import io
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd
import pandas._libs.parsers as parsers

from ..models.cell import CellValue, to_cell

"""Workbook reader.

Opens uploaded bytes (xlsx / xls / csv) and exposes sheet names plus, per
sheet, the raw rows as lists of CellValue (blank cells are EMPTY). No header
handling and no business semantics here.
"""

__all__ = [
    "ParseError",
    "UnreadableWorkbookError",
    "SheetNotFoundError",
    "Workbook",
    "read_workbook",
    "is_supported_file",
    "SUPPORTED_EXTENSIONS",
]

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".csv")
DEFAULT_CSV_SHEET = "Sheet1"


class ParseError(Exception):
    """Base class for failures that reject the whole batch at parse time."""


class UnreadableWorkbookError(ParseError):
    """Raised when the byte stream is not a parseable workbook or CSV."""


class SheetNotFoundError(ParseError):
    """Raised when a requested sheet does not exist in the workbook."""


@dataclass
class Workbook:
    sheet_names: list[str]
    frames: dict[str, pd.DataFrame] = field(repr=False)

    def rows(self, sheet_name: str) -> list[list[CellValue]]:
        """Return the sheet as rows of CellValue, in sheet order."""
        if sheet_name not in self.frames:
            raise SheetNotFoundError(f"sheet '{sheet_name}' not found (available: {self.sheet_names})")
        df = self.frames[sheet_name]
        return [[to_cell(v) for v in raw] for raw in df.itertuples(index=False, name=None)]


def is_supported_file(filename: str) -> bool:
    return Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS


def _na_options(keep_na_strings: Iterable[str] | None) -> tuple[list[str] | None, bool]:
    # Pandas default NA values から keep_na_strings を除外
    if keep_na_strings:
        custom_na = set(parsers.STR_NA_VALUES) - set(keep_na_strings)
        return list(custom_na), False
    return None, True


def _read_excel(data: bytes, keep_na_strings: Iterable[str] | None) -> Workbook:
    na_values, keep_default_na = _na_options(keep_na_strings)
    xls = pd.ExcelFile(io.BytesIO(data))
    frames: dict[str, pd.DataFrame] = {}
    for name in xls.sheet_names:
        # ヘッダなしで生読み (ヘッダ行の位置は projector 側で決める)
        frames[str(name)] = xls.parse(name, header=None, keep_default_na=keep_default_na, na_values=na_values)
    return Workbook(sheet_names=list(frames), frames=frames)


def _read_csv(data: bytes, sheet_name: str, keep_na_strings: Iterable[str] | None) -> Workbook:
    na_values, keep_default_na = _na_options(keep_na_strings)
    text = data.decode("utf-8-sig")
    df = pd.read_csv(
        io.StringIO(text),
        header=None,
        dtype=str,
        keep_default_na=keep_default_na,
        na_values=na_values,
        skip_blank_lines=False,  # keep original row numbering
    )
    return Workbook(sheet_names=[sheet_name], frames={sheet_name: df})


def read_workbook(
    data: bytes, filename: str | None = None, keep_na_strings: Iterable[str] | None = None
) -> Workbook:
    """Parse uploaded bytes into a Workbook.

    Parameters
    ----------
    data: raw file bytes
    filename: original upload name (used to pick CSV parsing and the CSV sheet name)
    keep_na_strings: strings to exclude from pandas' default NaN conversion (e.g. ['NA'])

    Raises
    ------
    UnreadableWorkbookError: empty input, or bytes that are neither a workbook nor UTF-8 CSV
    """
    if not data:
        raise UnreadableWorkbookError("uploaded file is empty")

    is_csv = filename is not None and Path(filename).suffix.lower() == ".csv"
    csv_sheet = Path(filename).stem if filename else DEFAULT_CSV_SHEET

    if not is_csv:
        try:
            return _read_excel(data, keep_na_strings)
        except Exception as excel_error:
            # 拡張子なし/不明の場合のみ CSV として再試行
            if filename is not None and Path(filename).suffix.lower() in (".xlsx", ".xls"):
                raise UnreadableWorkbookError(f"cannot read workbook: {excel_error}") from excel_error
            try:
                return _read_csv(data, csv_sheet or DEFAULT_CSV_SHEET, keep_na_strings)
            except (UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError):
                raise UnreadableWorkbookError(f"cannot read workbook: {excel_error}") from excel_error

    try:
        return _read_csv(data, csv_sheet or DEFAULT_CSV_SHEET, keep_na_strings)
    except (UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise UnreadableWorkbookError(f"cannot read csv: {e}") from e
