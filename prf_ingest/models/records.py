from __future__ import annotations

from dataclasses import dataclass
from datetime import date

"""Typed records handed to the record store.

These are produced from validated aggregates / budget rows by
services.coerce and carry plain Python values only (no CellValue), so that a
store implementation never needs to know about spreadsheet cells.
"""

__all__ = [
    "ItemRecord",
    "RequestRecord",
    "AllocationRecord",
]


@dataclass(frozen=True)
class ItemRecord:
    item_name: str
    description: str | None
    quantity: float
    unit_price: float
    total_price: float
    specifications: str  # JSON blob with the source row


@dataclass(frozen=True)
class RequestRecord:
    request_number: str
    submit_date: date | None
    submitter: str
    description: str
    requested_amount: float
    summary: str | None = None
    department: str | None = None
    required_for: str | None = None
    cost_code: str | None = None
    coa_id: int | None = None
    budget_year: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class AllocationRecord:
    coa_id: int
    fiscal_year: int
    allocated_amount: float
    remaining_amount: float | None = None
    cost_code: str | None = None
    category: str | None = None
