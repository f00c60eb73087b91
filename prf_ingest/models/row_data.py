from __future__ import annotations

from dataclasses import dataclass

from .cell import EMPTY, CellValue

"""RawRow model.

RawRow represents one non-blank data row of a sheet after header projection,
before any business validation.
"""

__all__ = [
    "RawRow",
]


@dataclass(frozen=True)
class RawRow:
    """Logical representation of a single sheet row after header projection.

    The row_number refers to the original sheet row (1-based), so that
    validation messages point at the row the user sees in Excel.
    """
    row_number: int  # 1-based original row number
    values: dict[str, CellValue]  # canonical field name -> cell
    sheet: str = ""

    def get(self, field: str) -> CellValue:
        return self.values.get(field, EMPTY)
