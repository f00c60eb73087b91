from __future__ import annotations

import logging
from collections.abc import Sequence

from ..db.store import RecordStore, StoreError
from ..models.budget import BudgetAllocationRow
from ..models.cell import cell_text, is_blank
from ..models.config_models import ImportOptions
from ..models.outcome import BudgetOutcome, ImportOutcome, OutcomeStatus
from ..models.request import RequestAggregate
from . import coerce
from .coa_resolver import CoaResolver
from .progress import ProgressTracker
from .reconcile import dedupe_items

"""Importer.

Writes validated request aggregates and budget rows to a RecordStore.

- one transaction per aggregate (header + items) or per budget row
- a StoreError inside that transaction rolls back that unit only and is
  recorded as a failed outcome; the loop continues
- StoreUnavailableError is not caught and stops the batch

Duplicate handling follows ImportOptions:

    found & update_existing            -> updated (header overwritten, items replaced)
    found & skip_duplicates            -> skipped
    found & neither                    -> failed ("already exists")
    not found                          -> created
"""

__all__ = [
    "Importer",
    "duplicate_message",
]

logger = logging.getLogger(__name__)


def duplicate_message(request_number: str) -> str:
    return f"Duplicate request number {request_number} - skipped"


class Importer:
    def __init__(
        self,
        store: RecordStore,
        resolver: CoaResolver,
        options: ImportOptions,
        *,
        default_fiscal_year: int | None = None,
        progress: bool = True,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.options = options
        self.default_fiscal_year = default_fiscal_year
        self.progress = progress

    # ------------------------------------------------------------------
    # purchase requests
    # ------------------------------------------------------------------
    def import_requests(self, aggregates: Sequence[RequestAggregate]) -> list[ImportOutcome]:
        """Import aggregates in order; one outcome per aggregate."""
        outcomes: list[ImportOutcome] = []
        with ProgressTracker(len(aggregates), enabled=self.progress) as bar:
            for aggregate in aggregates:
                outcome = self._import_one(aggregate)
                outcomes.append(outcome)
                bar.advance(aggregate.request_number, status=outcome.status.value)
        return outcomes

    def _failed(self, aggregate: RequestAggregate, reason: str) -> ImportOutcome:
        logger.warning("request %s failed: %s", aggregate.request_number, reason)
        return ImportOutcome(
            request_number=aggregate.request_number,
            status=OutcomeStatus.FAILED,
            rows=aggregate.rows,
            reason=reason,
        )

    def _import_one(self, aggregate: RequestAggregate) -> ImportOutcome:
        number = aggregate.request_number
        if self.options.dedupe_items:
            aggregate = dedupe_items(aggregate)
        try:
            existing = self.store.find_request(number)
            if existing is not None and not self.options.update_existing:
                if self.options.skip_duplicates:
                    logger.debug("request %s exists (id=%s) -> skipped", number, existing)
                    return ImportOutcome(
                        request_number=number,
                        status=OutcomeStatus.SKIPPED,
                        rows=aggregate.rows,
                        request_id=existing,
                        reason=duplicate_message(number),
                    )
                return self._failed(aggregate, f"Request number {number} already exists")

            coa_id: int | None = None
            if not is_blank(aggregate.cost_code):
                code = cell_text(aggregate.cost_code)
                resolution = self.resolver.resolve(code)
                if not resolution.found:
                    return self._failed(
                        aggregate, f"Cost code '{code}' not found in chart of accounts (auto-create disabled)"
                    )
                coa_id = resolution.coa_id

            record = coerce.to_request_record(aggregate, coa_id)
            items = coerce.to_item_records(aggregate)
            with self.store.transaction():
                if existing is not None:
                    self.store.update_request(existing, record)
                    request_id = existing
                    status = OutcomeStatus.UPDATED
                else:
                    request_id = self.store.create_request(record)
                    status = OutcomeStatus.CREATED
                item_count = self.store.replace_items(request_id, items)
        except StoreError as e:
            return self._failed(aggregate, str(e))

        logger.debug("request %s %s (id=%s items=%d)", number, status.value, request_id, item_count)
        return ImportOutcome(
            request_number=number,
            status=status,
            rows=aggregate.rows,
            request_id=request_id,
            item_count=item_count,
        )

    # ------------------------------------------------------------------
    # budget allocations
    # ------------------------------------------------------------------
    def import_budget_rows(self, rows: Sequence[BudgetAllocationRow]) -> list[BudgetOutcome]:
        """Import validated budget rows; each write is its own transaction.

        A (COA, fiscal year) pair already seen earlier in the same batch (created,
        updated or skipped as existing) is a conflict unless update_existing is set.
        """
        outcomes: list[BudgetOutcome] = []
        seen: dict[tuple[int, int], tuple[int, int]] = {}  # (coa_id, fy) -> (allocation_id, first row)
        with ProgressTracker(len(rows), description="Importing budgets", unit="row", enabled=self.progress) as bar:
            for row in rows:
                outcome = self._import_budget_row(row, seen)
                outcomes.append(outcome)
                bar.advance(outcome.cost_code)
        return outcomes

    def _import_budget_row(
        self, row: BudgetAllocationRow, seen: dict[tuple[int, int], tuple[int, int]]
    ) -> BudgetOutcome:
        code = cell_text(row.cost_code)
        fiscal_year = coerce.parse_year(row.fiscal_year)
        if fiscal_year is None:
            fiscal_year = self.default_fiscal_year

        def outcome(status: OutcomeStatus, allocation_id: int | None = None, reason: str | None = None) -> BudgetOutcome:
            return BudgetOutcome(row.row_number, code, fiscal_year, status, allocation_id, reason)

        try:
            resolution = self.resolver.resolve(code)
            if not resolution.found or resolution.coa_id is None:
                return outcome(
                    OutcomeStatus.FAILED,
                    reason=f"Cost code '{code}' not found in chart of accounts (auto-create disabled)",
                )
            record = coerce.to_allocation_record(row, resolution.coa_id, self.default_fiscal_year)
            key = (resolution.coa_id, record.fiscal_year)

            if key in seen:
                allocation_id, first_row = seen[key]
                if not self.options.update_existing:
                    logger.warning("budget %s FY%s row %d collides with row %d", code, fiscal_year, row.row_number, first_row)
                    return outcome(
                        OutcomeStatus.CONFLICT,
                        reason=f"Allocation for {code} FY{fiscal_year} already given in row {first_row}",
                    )
                with self.store.transaction():
                    self.store.update_allocation(allocation_id, record)
                seen[key] = (allocation_id, row.row_number)
                return outcome(OutcomeStatus.UPDATED, allocation_id)

            existing = self.store.find_allocation(*key)
            if existing is not None:
                if not self.options.update_existing:
                    seen[key] = (existing, row.row_number)
                    return outcome(
                        OutcomeStatus.SKIPPED,
                        existing,
                        reason=f"Allocation for {code} FY{fiscal_year} already exists - skipped",
                    )
                with self.store.transaction():
                    self.store.update_allocation(existing, record)
                seen[key] = (existing, row.row_number)
                return outcome(OutcomeStatus.UPDATED, existing)

            with self.store.transaction():
                allocation_id = self.store.create_allocation(record)
            seen[key] = (allocation_id, row.row_number)
            return outcome(OutcomeStatus.CREATED, allocation_id)
        except StoreError as e:
            logger.warning("budget row %d (%s FY%s) failed: %s", row.row_number, code, fiscal_year, e)
            return outcome(OutcomeStatus.FAILED, reason=str(e))
