from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta

from ..models.budget import BudgetAllocationRow
from ..models.cell import CellValue, DateValue, Number, Text, cell_text, is_blank
from ..models.records import AllocationRecord, ItemRecord, RequestRecord
from ..models.request import RequestAggregate, RequestItemLine

"""Cell coercion helpers.

Typed values are derived from CellValues here, in one place, so that the
validator and the importer agree on what a cell means. Every parser returns
None (or a failure flag) instead of raising.
"""

__all__ = [
    "SERIAL_EPOCH",
    "parse_number",
    "parse_date",
    "parse_year",
    "text_or_none",
    "line_total",
    "item_total",
    "requested_amount",
    "to_request_record",
    "to_item_records",
    "to_allocation_record",
]

# スプレッドシートのシリアル日付基準日
SERIAL_EPOCH = date(1899, 12, 30)
_MAX_SERIAL = 2958465  # 9999-12-31
_FY_PREFIX = re.compile(r"^fy\s*", re.IGNORECASE)


def parse_number(cell: CellValue) -> float | None:
    """Number cells as-is; numeric text ("1,500.00") parsed; anything else None."""
    if isinstance(cell, Number):
        return cell.value if math.isfinite(cell.value) else None
    if isinstance(cell, Text):
        raw = cell.value.replace(",", "").replace(" ", "")
        if not raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            return None
        return value if math.isfinite(value) else None
    return None


def _from_serial(serial: float) -> date | None:
    if not (0 < serial <= _MAX_SERIAL):
        return None
    return SERIAL_EPOCH + timedelta(days=int(serial))


def parse_date(cell: CellValue) -> tuple[date | None, bool]:
    """Return (date, ok).

    Blank cells give (None, True); an unparseable value gives (None, False).
    Numbers and numeric text are read as spreadsheet serials.
    """
    if is_blank(cell):
        return None, True
    if isinstance(cell, DateValue):
        return cell.value, True
    if isinstance(cell, Number):
        d = _from_serial(cell.value)
        return d, d is not None
    if isinstance(cell, Text):
        serial = parse_number(cell)
        if serial is not None:
            d = _from_serial(serial)
            return d, d is not None
        try:
            return date.fromisoformat(cell.value), True
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(cell.value).date(), True
        except ValueError:
            return None, False
    return None, False


def parse_year(cell: CellValue) -> int | None:
    """Integral year from a number or text ("2024", "FY2024"); None otherwise."""
    if isinstance(cell, Text):
        cell = Text(_FY_PREFIX.sub("", cell.value))
    value = parse_number(cell)
    if value is None or value != int(value):
        return None
    return int(value)


def text_or_none(cell: CellValue) -> str | None:
    if is_blank(cell):
        return None
    return cell_text(cell)


def line_total(item: RequestItemLine) -> float | None:
    """Supplied total price, else quantity x unit price, else None."""
    supplied = parse_number(item.total_price)
    if supplied is not None:
        return supplied
    qty = parse_number(item.quantity)
    price = parse_number(item.unit_price)
    if qty is None or price is None:
        return None
    return qty * price


def item_total(aggregate: RequestAggregate) -> float | None:
    """Sum of derivable line totals (None when the aggregate has no items)."""
    if not aggregate.items:
        return None
    return sum(t for t in (line_total(i) for i in aggregate.items) if t is not None)


def requested_amount(aggregate: RequestAggregate) -> float | None:
    """Supplied amount when numeric; derived from items only when the amount is blank."""
    if not is_blank(aggregate.amount):
        return parse_number(aggregate.amount)
    return item_total(aggregate)


def to_request_record(aggregate: RequestAggregate, coa_id: int | None) -> RequestRecord:
    """Build the typed header record of a validated aggregate."""
    submit_date, _ = parse_date(aggregate.submit_date)
    return RequestRecord(
        request_number=aggregate.request_number,
        submit_date=submit_date,
        submitter=cell_text(aggregate.submitter),
        description=cell_text(aggregate.description),
        requested_amount=requested_amount(aggregate) or 0.0,
        summary=text_or_none(aggregate.summary),
        department=text_or_none(aggregate.department),
        required_for=text_or_none(aggregate.required_for),
        cost_code=text_or_none(aggregate.cost_code),
        coa_id=coa_id,
        budget_year=parse_year(aggregate.budget_year),
    )


def to_item_records(aggregate: RequestAggregate) -> list[ItemRecord]:
    records: list[ItemRecord] = []
    for item in aggregate.items:
        quantity = parse_number(item.quantity) or 0.0
        unit_price = parse_number(item.unit_price) or 0.0
        total = line_total(item)
        records.append(
            ItemRecord(
                item_name=cell_text(item.item_name),
                description=text_or_none(item.description),
                quantity=quantity,
                unit_price=unit_price,
                total_price=total if total is not None else quantity * unit_price,
                specifications=item.specifications,
            )
        )
    return records


def to_allocation_record(
    row: BudgetAllocationRow, coa_id: int, default_fiscal_year: int | None = None
) -> AllocationRecord:
    fiscal_year = parse_year(row.fiscal_year)
    if fiscal_year is None:
        fiscal_year = default_fiscal_year
    if fiscal_year is None:
        raise ValueError(f"row {row.row_number}: fiscal year missing and no default configured")
    allocated = parse_number(row.allocated_amount) or 0.0
    remaining = parse_number(row.remaining_amount)
    return AllocationRecord(
        coa_id=coa_id,
        fiscal_year=fiscal_year,
        allocated_amount=allocated,
        # 残額未指定なら配分額全額
        remaining_amount=allocated if remaining is None else remaining,
        cost_code=text_or_none(row.cost_code),
        category=text_or_none(row.category),
    )
