from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Import outcome models.

One ImportOutcome per request aggregate and one BudgetOutcome per budget row
are produced by the importer and consumed by the report builder.
"""

__all__ = [
    "OutcomeStatus",
    "ImportOutcome",
    "BudgetOutcome",
]


class OutcomeStatus(Enum):
    """Per-record import result.

    - CREATED / UPDATED: written to the store (counted as imported)
    - SKIPPED: already present, left untouched (warning)
    - CONFLICT: budget pair collided with another row of the same batch
    - FAILED: rejected by validation, resolution or persistence
    """
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    CONFLICT = "conflict"
    FAILED = "failed"

    @property
    def imported(self) -> bool:
        return self in (OutcomeStatus.CREATED, OutcomeStatus.UPDATED)


@dataclass(frozen=True)
class ImportOutcome:
    request_number: str
    status: OutcomeStatus
    rows: tuple[int, ...]
    request_id: int | None = None
    item_count: int = 0
    reason: str | None = None  # 失敗/スキップ理由

    @property
    def success(self) -> bool:
        return self.status.imported


@dataclass(frozen=True)
class BudgetOutcome:
    row: int
    cost_code: str
    fiscal_year: int | None
    status: OutcomeStatus
    allocation_id: int | None = None
    reason: str | None = None
