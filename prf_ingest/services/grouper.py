from __future__ import annotations

from collections.abc import Sequence

from ..models.budget import BudgetAllocationRow
from ..models.cell import cell_text, is_blank
from ..models.request import RequestAggregate, RequestItemLine
from ..models.row_data import RawRow

"""Request grouper.

Rows of the request sheet are grouped into aggregates by *contiguous run*:
a row whose request number is blank, or equal to the number of the run in
progress, continues that run; any other row starts a new one. The first row
of a run supplies the header fields. Every row of the run (first included)
contributes an item line when it carries item columns.

A request number that reappears after a different one starts a second run
(and thus a second aggregate); the duplicate is caught at import time.
"""

__all__ = [
    "ITEM_FIELDS",
    "split_runs",
    "group_requests",
    "build_budget_rows",
]

ITEM_FIELDS = ("item_name", "quantity", "unit_price")


def split_runs(rows: Sequence[RawRow]) -> list[list[RawRow]]:
    """Split projected rows into contiguous runs sharing a request number."""
    runs: list[list[RawRow]] = []
    current_key: str | None = None
    for row in rows:
        cell = row.get("request_number")
        key = cell_text(cell) if not is_blank(cell) else None
        if runs and (key is None or key == current_key):
            runs[-1].append(row)
            continue
        runs.append([row])
        current_key = key
    return runs


def _has_item(row: RawRow) -> bool:
    return any(not is_blank(row.get(f)) for f in ITEM_FIELDS)


def _item_line(row: RawRow, sheet: str) -> RequestItemLine:
    return RequestItemLine(
        row_number=row.row_number,
        item_name=row.get("item_name"),
        description=row.get("item_description"),
        quantity=row.get("quantity"),
        unit_price=row.get("unit_price"),
        total_price=row.get("total_price"),
        sheet=sheet,
    )


def _aggregate(run: list[RawRow], sheet: str) -> RequestAggregate:
    head = run[0]
    number = head.get("request_number")
    return RequestAggregate(
        request_number=cell_text(number) if not is_blank(number) else "",
        rows=tuple(r.row_number for r in run),
        submit_date=head.get("submit_date"),
        submitter=head.get("submitter"),
        department=head.get("department"),
        required_for=head.get("required_for"),
        description=head.get("description"),
        summary=head.get("summary"),
        cost_code=head.get("cost_code"),
        amount=head.get("amount"),
        budget_year=head.get("budget_year"),
        items=tuple(_item_line(r, sheet) for r in run if _has_item(r)),
        sheet=sheet,
    )


def group_requests(rows: Sequence[RawRow], sheet: str = "") -> list[RequestAggregate]:
    """Group projected request rows into aggregates, in first-seen order."""
    return [_aggregate(run, sheet or run[0].sheet) for run in split_runs(rows)]


def build_budget_rows(rows: Sequence[RawRow], sheet: str = "") -> list[BudgetAllocationRow]:
    """Map projected budget-sheet rows onto BudgetAllocationRow (one per row)."""
    return [
        BudgetAllocationRow(
            row_number=r.row_number,
            cost_code=r.get("cost_code"),
            category=r.get("category"),
            fiscal_year=r.get("fiscal_year"),
            allocated_amount=r.get("allocated_amount"),
            remaining_amount=r.get("remaining_amount"),
            sheet=sheet or r.sheet,
        )
        for r in rows
    ]
