from __future__ import annotations

from dataclasses import dataclass

from .cell import EMPTY, CellValue

__all__ = [
    "BudgetAllocationRow",
]


@dataclass(frozen=True)
class BudgetAllocationRow:
    """One row of the budget sheet: an allocation for a cost account and fiscal year.

    Independent of any request; linked to requests only through the shared
    cost-code / COA namespace.
    """
    row_number: int
    cost_code: CellValue = EMPTY
    category: CellValue = EMPTY
    fiscal_year: CellValue = EMPTY
    allocated_amount: CellValue = EMPTY
    remaining_amount: CellValue = EMPTY
    sheet: str = ""
