from __future__ import annotations

import math
from collections.abc import Collection, Sequence

from ..models.budget import BudgetAllocationRow
from ..models.cell import CellValue, Empty, cell_text, is_blank
from ..models.error_record import ValidationIssue
from ..models.request import RequestAggregate
from . import coerce

"""Business-rule validation for request aggregates and budget rows.

All functions are pure: they take the grouped values and return a list of
ValidationIssue (errors and warnings). An aggregate with at least one error is
excluded from import; warnings are reported only.

Field names in issues are the header names users see in the sheet.
"""

__all__ = [
    "REQUEST_FIELD_LABELS",
    "BUDGET_FIELD_LABELS",
    "validate_request",
    "validate_budget_row",
    "has_errors",
    "partition_valid",
]

REQUEST_FIELD_LABELS = {
    "request_number": "PRF No",
    "submit_date": "Date Submit",
    "submitter": "Submit By",
    "description": "Description",
    "summary": "Sum Description Requested",
    "amount": "Amount",
    "budget_year": "Budget",
    "cost_code": "Purchase Cost Code",
    "item_name": "Item Name",
    "quantity": "Quantity",
    "unit_price": "Unit Price",
    "total_price": "Total Price",
}

BUDGET_FIELD_LABELS = {
    "cost_code": "COA",
    "fiscal_year": "Fiscal Year",
    "allocated_amount": "Initial Budget",
    "remaining_amount": "Remaining Budget",
}

DEFAULT_YEAR_RANGE = (2020, 2030)
DEFAULT_TOLERANCE = 0.01
_REL_TOLERANCE = 1e-4


def _amounts_match(a: float, b: float, tolerance: float) -> bool:
    return math.isclose(a, b, rel_tol=_REL_TOLERANCE, abs_tol=tolerance)


def _required(cell: CellValue, label: str, row: int, request_number: str | None) -> ValidationIssue | None:
    # EMPTY (セル自体なし) と空白文字列を区別してメッセージを出す
    if isinstance(cell, Empty):
        return ValidationIssue.error(row, label, f"{label} is required", request_number)
    if is_blank(cell):
        return ValidationIssue.error(row, label, f"{label} is blank", request_number)
    return None


def _check_year(
    cell: CellValue, label: str, row: int, year_range: tuple[int, int], request_number: str | None = None
) -> ValidationIssue | None:
    """At most one issue for a present year cell."""
    year = coerce.parse_year(cell)
    if year is None:
        return ValidationIssue.error(row, label, f"{label} must be a whole year, got '{cell_text(cell)}'", request_number)
    lo, hi = year_range
    if not lo <= year <= hi:
        return ValidationIssue.error(row, label, f"{label} {year} is outside {lo}-{hi}", request_number)
    return None


def validate_request(
    aggregate: RequestAggregate,
    coa_codes: Collection[str] | None = None,
    *,
    year_range: tuple[int, int] = DEFAULT_YEAR_RANGE,
    auto_create_coa: bool = True,
    tolerance: float = DEFAULT_TOLERANCE,
) -> list[ValidationIssue]:
    """Validate one aggregate: header rules on its first row, item rules per item row.

    ``coa_codes`` is the known chart-of-accounts directory; when None the
    cost-code cross-reference is skipped (it is resolved at import time).
    """
    issues: list[ValidationIssue] = []
    row = aggregate.header_row
    number = aggregate.request_number or None
    L = REQUEST_FIELD_LABELS

    # request number
    if not number:
        issues.append(ValidationIssue.error(row, L["request_number"], "Request number is required"))
    elif not any(ch.isdigit() for ch in number):
        issues.append(
            ValidationIssue.error(row, L["request_number"], f"Request number '{number}' must contain a number", number)
        )

    # submit date
    if is_blank(aggregate.submit_date):
        issues.append(ValidationIssue.warning(row, L["submit_date"], "Submit date is missing", number))
    else:
        _, ok = coerce.parse_date(aggregate.submit_date)
        if not ok:
            issues.append(
                ValidationIssue.error(
                    row, L["submit_date"], f"Invalid submit date '{cell_text(aggregate.submit_date)}'", number
                )
            )

    for field in ("submitter", "description"):
        issue = _required(getattr(aggregate, field), L[field], row, number)
        if issue is not None:
            issues.append(issue)

    # requested amount (supplied, or derived from items)
    if not is_blank(aggregate.amount) and coerce.parse_number(aggregate.amount) is None:
        issues.append(
            ValidationIssue.error(row, L["amount"], f"Amount must be a number, got '{cell_text(aggregate.amount)}'", number)
        )
    else:
        amount = coerce.requested_amount(aggregate)
        if amount is None:
            issues.append(ValidationIssue.error(row, L["amount"], "Requested amount is required", number))
        elif amount <= 0:
            issues.append(ValidationIssue.error(row, L["amount"], "Requested amount must be greater than 0", number))

    if not is_blank(aggregate.budget_year):
        issue = _check_year(aggregate.budget_year, L["budget_year"], row, year_range, number)
        if issue is not None:
            issues.append(issue)

    # cost code cross-reference (warnings only)
    if is_blank(aggregate.cost_code):
        issues.append(ValidationIssue.warning(row, L["cost_code"], "Purchase cost code is missing", number))
    elif coa_codes is not None:
        code = cell_text(aggregate.cost_code)
        if code not in coa_codes:
            suffix = " - will be created" if auto_create_coa else ""
            issues.append(
                ValidationIssue.warning(row, L["cost_code"], f"Cost code '{code}' not found in chart of accounts{suffix}", number)
            )

    supplied = coerce.parse_number(aggregate.amount)
    derived = coerce.item_total(aggregate)
    if supplied is not None and derived is not None and not _amounts_match(supplied, derived, tolerance):
        issues.append(
            ValidationIssue.warning(
                row, L["amount"], f"Amount {supplied:.2f} does not match item total {derived:.2f}", number
            )
        )

    if is_blank(aggregate.summary):
        issues.append(ValidationIssue.warning(row, L["summary"], "Sum Description Requested is missing", number))

    for item in aggregate.items:
        r = item.row_number
        issue = _required(item.item_name, L["item_name"], r, number)
        if issue is not None:
            issues.append(issue)

        qty = coerce.parse_number(item.quantity)
        if qty is None or qty <= 0:
            issues.append(ValidationIssue.error(r, L["quantity"], "Quantity must be greater than 0", number))

        price = coerce.parse_number(item.unit_price)
        if price is None or price < 0:
            issues.append(ValidationIssue.error(r, L["unit_price"], "Unit price must be 0 or greater", number))

        total = coerce.parse_number(item.total_price)
        if total is not None and qty is not None and price is not None and not _amounts_match(total, qty * price, tolerance):
            issues.append(
                ValidationIssue.warning(
                    r, L["total_price"], f"Total price {total:.2f} differs from quantity x unit price {qty * price:.2f}", number
                )
            )

    return issues


def validate_budget_row(
    row: BudgetAllocationRow,
    *,
    year_range: tuple[int, int] = DEFAULT_YEAR_RANGE,
    default_fiscal_year: int | None = None,
) -> list[ValidationIssue]:
    """Validate one budget-sheet row."""
    issues: list[ValidationIssue] = []
    r = row.row_number
    L = BUDGET_FIELD_LABELS

    issue = _required(row.cost_code, L["cost_code"], r, None)
    if issue is not None:
        issues.append(issue)

    if is_blank(row.fiscal_year):
        if default_fiscal_year is None:
            issues.append(ValidationIssue.error(r, L["fiscal_year"], "Fiscal Year is required"))
    else:
        issue = _check_year(row.fiscal_year, L["fiscal_year"], r, year_range)
        if issue is not None:
            issues.append(issue)

    allocated = coerce.parse_number(row.allocated_amount)
    if allocated is None or allocated <= 0:
        issues.append(ValidationIssue.error(r, L["allocated_amount"], "Initial Budget must be greater than 0"))

    if not is_blank(row.remaining_amount):
        remaining = coerce.parse_number(row.remaining_amount)
        if remaining is None or remaining < 0:
            issues.append(ValidationIssue.error(r, L["remaining_amount"], "Remaining Budget must be 0 or greater"))
        elif allocated is not None and allocated > 0 and remaining > allocated:
            issues.append(
                ValidationIssue.warning(r, L["remaining_amount"], "Remaining Budget exceeds Initial Budget")
            )

    return issues


def has_errors(issues: Sequence[ValidationIssue]) -> bool:
    return any(i.is_error for i in issues)


def partition_valid(
    checked: Sequence[tuple[RequestAggregate, Sequence[ValidationIssue]]],
) -> tuple[list[RequestAggregate], list[RequestAggregate]]:
    """Split (aggregate, issues) pairs into (valid, invalid) aggregates, keeping order."""
    valid: list[RequestAggregate] = []
    invalid: list[RequestAggregate] = []
    for aggregate, issues in checked:
        (invalid if has_errors(issues) else valid).append(aggregate)
    return valid, invalid
