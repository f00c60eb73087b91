from __future__ import annotations

import json
from dataclasses import dataclass, field

from .cell import EMPTY, CellValue

"""Purchase request aggregate models.

A RequestAggregate is one logical PRF: the header taken from the first row of
a contiguous run of rows sharing a request number, plus one RequestItemLine per
row of the run that carries item columns. Cells stay unvalidated here; typed
values are derived by services.coerce.
"""

__all__ = [
    "RequestItemLine",
    "RequestAggregate",
]


@dataclass(frozen=True)
class RequestItemLine:
    """One item line of a purchase request."""
    row_number: int
    item_name: CellValue = EMPTY
    description: CellValue = EMPTY
    quantity: CellValue = EMPTY
    unit_price: CellValue = EMPTY
    total_price: CellValue = EMPTY
    sheet: str = ""

    @property
    def specifications(self) -> str:
        # 取込元の行番号を残す (トレーサビリティ用)
        return json.dumps({"source_row": self.row_number, "sheet": self.sheet}, ensure_ascii=False)


@dataclass(frozen=True)
class RequestAggregate:
    """Logical purchase request (one header + N item lines)."""
    request_number: str
    rows: tuple[int, ...]  # contributing sheet rows, in order
    submit_date: CellValue = EMPTY
    submitter: CellValue = EMPTY
    department: CellValue = EMPTY
    required_for: CellValue = EMPTY
    description: CellValue = EMPTY
    summary: CellValue = EMPTY
    cost_code: CellValue = EMPTY
    amount: CellValue = EMPTY
    budget_year: CellValue = EMPTY
    items: tuple[RequestItemLine, ...] = field(default_factory=tuple)
    sheet: str = ""

    @property
    def header_row(self) -> int:
        return self.rows[0] if self.rows else -1
