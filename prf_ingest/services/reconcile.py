from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace

from ..models.budget import BudgetAllocationRow
from ..models.cell import Number, cell_text
from ..models.error_record import ValidationIssue
from ..models.request import RequestAggregate, RequestItemLine
from .coerce import parse_number, parse_year

"""Budget / item reconciliation.

Pure functions that clean up data before import:

- dedupe_allocations: duplicate (code, fiscal year) rows collapse to the row
  with the highest allocation
- apply_fiscal_year_assignments: a code's rows are aligned with the fiscal
  years it is assigned to (missing years cloned, others dropped)
- dedupe_items: repeated item lines of one request are dropped
"""

__all__ = [
    "dedupe_allocations",
    "apply_fiscal_year_assignments",
    "dedupe_items",
]


def _budget_key(row: BudgetAllocationRow) -> tuple[str, int | None]:
    return cell_text(row.cost_code), parse_year(row.fiscal_year)


def dedupe_allocations(
    rows: Sequence[BudgetAllocationRow],
) -> tuple[list[BudgetAllocationRow], list[ValidationIssue]]:
    """Keep one row per (code, fiscal year): the one with the highest allocation (first on ties)."""
    best: dict[tuple[str, int | None], BudgetAllocationRow] = {}
    for row in rows:
        key = _budget_key(row)
        current = best.get(key)
        if current is None or (parse_number(row.allocated_amount) or 0.0) > (parse_number(current.allocated_amount) or 0.0):
            best[key] = row

    kept_ids = {id(r) for r in best.values()}
    kept: list[BudgetAllocationRow] = []
    warnings: list[ValidationIssue] = []
    for row in rows:
        if id(row) in kept_ids:
            kept.append(row)
            continue
        code, year = _budget_key(row)
        winner = best[(code, year)]
        warnings.append(
            ValidationIssue.warning(
                row.row_number,
                "COA",
                f"Duplicate allocation for {code} FY{year} dropped (row {winner.row_number} has the higher amount)",
            )
        )
    return kept, warnings


def apply_fiscal_year_assignments(
    rows: Sequence[BudgetAllocationRow],
    assignments: Mapping[str, Sequence[int]],
) -> tuple[list[BudgetAllocationRow], list[ValidationIssue]]:
    """Align each assigned code with its allowed fiscal years.

    Codes absent from ``assignments`` pass through untouched. For an assigned
    code, rows in other years are dropped (warning) and every assigned year
    without a row gets a clone of the code's first row.
    """
    out: list[BudgetAllocationRow] = []
    warnings: list[ValidationIssue] = []
    kept: dict[str, list[BudgetAllocationRow]] = {}
    dropped: dict[str, list[BudgetAllocationRow]] = {}

    for row in rows:
        code, year = _budget_key(row)
        if code not in assignments:
            out.append(row)
            continue
        allowed = set(assignments[code])
        if year in allowed:
            out.append(row)
            kept.setdefault(code, []).append(row)
        else:
            dropped.setdefault(code, []).append(row)
            warnings.append(
                ValidationIssue.warning(
                    row.row_number,
                    "Fiscal Year",
                    f"{code} is not assigned to FY{year}; row dropped (assigned: {sorted(allowed)})",
                )
            )

    for code, years in assignments.items():
        present = {parse_year(r.fiscal_year) for r in kept.get(code, [])}
        # 割当年度の行が無ければ落とした行を雛形にする
        template_rows = kept.get(code) or dropped.get(code) or []
        if not template_rows:
            continue
        template = template_rows[0]
        for year in sorted(set(years)):
            if year in present:
                continue
            out.append(replace(template, fiscal_year=Number(float(year))))
            warnings.append(
                ValidationIssue.warning(
                    template.row_number, "Fiscal Year", f"{code} FY{year} allocation added from row {template.row_number}"
                )
            )
    return out, warnings


def _item_key(item: RequestItemLine) -> tuple[str, str, float | None]:
    name = " ".join(cell_text(item.item_name).split()).lower()
    desc = " ".join(cell_text(item.description).split()).lower()
    return name, desc, parse_number(item.unit_price)


def dedupe_items(aggregate: RequestAggregate) -> RequestAggregate:
    """Drop repeated item lines (same name, description and unit price), keeping the first."""
    seen: set[tuple[str, str, float | None]] = set()
    items: list[RequestItemLine] = []
    for item in aggregate.items:
        key = _item_key(item)
        if key in seen:
            continue
        seen.add(key)
        items.append(item)
    if len(items) == len(aggregate.items):
        return aggregate
    return replace(aggregate, items=tuple(items))
