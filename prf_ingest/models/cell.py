from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Union

import pandas as pd

"""Cell value sum type.

Every spreadsheet cell that leaves the reader is one of four variants:

- Text: a (stripped) string. ``Text("")`` means the cell held only whitespace.
- Number: any numeric scalar, stored as float.
- DateValue: a date/datetime cell (date part only).
- Empty: the cell was blank. ``EMPTY`` is the shared instance.

Downstream code dispatches on these types with isinstance and never relies on
truthiness of the underlying value.
"""

__all__ = [
    "Text",
    "Number",
    "DateValue",
    "Empty",
    "EMPTY",
    "CellValue",
    "to_cell",
    "cell_text",
    "is_blank",
]


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class DateValue:
    value: date


@dataclass(frozen=True)
class Empty:
    def __repr__(self) -> str:  # pragma: no cover (trivial)
        return "EMPTY"


EMPTY = Empty()

CellValue = Union[Text, Number, DateValue, Empty]


def to_cell(raw: Any) -> CellValue:
    """Convert a raw pandas/openpyxl scalar into a CellValue.

    None / NaN / NaT become EMPTY. bool is kept as text ("TRUE"/"FALSE") since
    no field of either sheet is boolean.
    """
    if isinstance(raw, (Text, Number, DateValue, Empty)):
        return raw
    if raw is None:
        return EMPTY
    if isinstance(raw, str):
        return Text(raw.strip())
    if isinstance(raw, bool):
        return Text(str(raw).upper())
    if isinstance(raw, datetime):
        # pd.Timestamp は datetime のサブクラス (NaT は下の isna で拾う)
        if pd.isna(raw):
            return EMPTY
        return DateValue(raw.date())
    if isinstance(raw, date):
        return DateValue(raw)
    try:
        if pd.isna(raw):
            return EMPTY
    except (TypeError, ValueError):
        pass
    if pd.api.types.is_number(raw):
        value = float(raw)
        if math.isnan(value):
            return EMPTY
        return Number(value)
    return Text(str(raw).strip())


def cell_text(cell: CellValue) -> str:
    """Render a cell as plain text for keys and messages ("" for EMPTY)."""
    if isinstance(cell, Text):
        return cell.value
    if isinstance(cell, Number):
        if math.isfinite(cell.value) and cell.value == int(cell.value):
            return str(int(cell.value))
        return repr(cell.value)
    if isinstance(cell, DateValue):
        return cell.value.isoformat()
    return ""


def is_blank(cell: CellValue) -> bool:
    """True for EMPTY and for whitespace-only text."""
    if isinstance(cell, Empty):
        return True
    return isinstance(cell, Text) and cell.value == ""
