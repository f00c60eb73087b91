from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.batch import BatchState
from ..models.error_record import ValidationIssue
from ..models.outcome import BudgetOutcome, ImportOutcome, OutcomeStatus
from ..models.request import RequestAggregate
from .importer import duplicate_message

"""Report builder.

Collects validation issues and import outcomes for one batch and produces an
immutable, fully serializable report. The dict shape (camelCase keys) is what
the UI renders and what the downloadable JSON / CSV report contains.

Accounting:
    totalRecords == totalAggregates
                 == importedRecords + skippedRecords + failedAggregates
where failedAggregates counts validation failures and import failures alike.
"""

__all__ = [
    "ValidationSection",
    "BudgetImportSummary",
    "ValidationReport",
    "ImportReport",
    "ReportBuilder",
]

CSV_COLUMNS = ["section", "type", "row", "field", "message", "requestNumber"]


def _issues(items: Iterable[ValidationIssue]) -> list[dict[str, Any]]:
    return [i.to_dict() for i in items]


def _issue_rows(section: str, kind: str, items: Iterable[ValidationIssue]) -> list[dict[str, Any]]:
    return [
        {
            "section": section,
            "type": kind,
            "row": i.row,
            "field": i.field or "",
            "message": i.message,
            "requestNumber": i.request_number or "",
        }
        for i in items
    ]


def _write_csv(rows: list[dict[str, Any]], path: Path | None) -> str:
    df = pd.DataFrame(rows, columns=CSV_COLUMNS)
    text = df.to_csv(index=False)
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return text


@dataclass(frozen=True)
class ValidationSection:
    valid_count: int
    invalid_count: int
    total_rows: int
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    total_aggregates: int | None = None  # request sheet only

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"validCount": self.valid_count, "invalidCount": self.invalid_count}
        if self.total_aggregates is not None:
            out["totalAggregates"] = self.total_aggregates
        out["totalRows"] = self.total_rows
        out["errors"] = _issues(self.errors)
        out["warnings"] = _issues(self.warnings)
        return out


@dataclass(frozen=True)
class BudgetImportSummary:
    total_rows: int
    outcomes: tuple[BudgetOutcome, ...] = ()
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    sheet: str | None = field(default=None, compare=False)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def created(self) -> int:
        return self._count(OutcomeStatus.CREATED)

    @property
    def updated(self) -> int:
        return self._count(OutcomeStatus.UPDATED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def conflicts(self) -> int:
        return self._count(OutcomeStatus.CONFLICT)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "totalRows": self.total_rows,
            "createdRecords": self.created,
            "updatedRecords": self.updated,
            "skippedRecords": self.skipped,
            "conflictRecords": self.conflicts,
            "failedRecords": self.failed,
            "errors": _issues(self.errors),
            "warnings": _issues(self.warnings),
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)


@dataclass(frozen=True)
class ValidationReport:
    state: BatchState
    request: ValidationSection
    budget: ValidationSection | None = None
    request_sheet: str | None = field(default=None, compare=False)
    budget_sheet: str | None = field(default=None, compare=False)

    @property
    def success(self) -> bool:
        if self.request.errors:
            return False
        return self.budget is None or not self.budget.errors

    @property
    def errors(self) -> tuple[ValidationIssue, ...]:
        return self.request.errors

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return self.request.warnings

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "state": self.state.value,
            "requestValidation": self.request.to_dict(),
            "budgetValidation": self.budget.to_dict() if self.budget is not None else None,
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    def to_csv(self, path: Path | None = None) -> str:
        rows = _issue_rows("request", "error", self.request.errors)
        rows += _issue_rows("request", "warning", self.request.warnings)
        if self.budget is not None:
            rows += _issue_rows("budget", "error", self.budget.errors)
            rows += _issue_rows("budget", "warning", self.budget.warnings)
        return _write_csv(rows, path)


@dataclass(frozen=True)
class ImportReport:
    state: BatchState
    total_rows: int
    outcomes: tuple[ImportOutcome, ...]
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    created_coa_codes: tuple[str, ...] = ()
    budget: BudgetImportSummary | None = None
    request_sheet: str | None = field(default=None, compare=False)
    budget_sheet: str | None = field(default=None, compare=False)

    @property
    def successful(self) -> list[ImportOutcome]:
        return [o for o in self.outcomes if o.status.imported]

    @property
    def skipped(self) -> list[ImportOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.SKIPPED]

    @property
    def failed(self) -> list[ImportOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]

    @property
    def total_records(self) -> int:
        return len(self.outcomes)

    @property
    def success(self) -> bool:
        if self.failed:
            return False
        return self.budget is None or self.budget.success

    def to_dict(self) -> dict[str, Any]:
        successful = self.successful
        failed = self.failed
        return {
            "success": self.success,
            "state": self.state.value,
            "totalRecords": self.total_records,
            "importedRecords": len(successful),
            "skippedRecords": len(self.skipped),
            "errors": _issues(self.errors),
            "warnings": _issues(self.warnings),
            "totalAggregates": self.total_records,
            "successfulAggregates": len(successful),
            "failedAggregates": len(failed),
            "aggregateDetails": {
                "successful": [
                    {
                        "requestNumber": o.request_number,
                        "requestId": o.request_id,
                        "itemCount": o.item_count,
                        "action": o.status.value,
                    }
                    for o in successful
                ],
                "failed": [
                    {"requestNumber": o.request_number, "reason": o.reason, "rows": list(o.rows)} for o in failed
                ],
            },
            "totalRows": self.total_rows,
            "createdCoaCodes": list(self.created_coa_codes),
            "budgetImport": self.budget.to_dict() if self.budget is not None else None,
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    def to_csv(self, path: Path | None = None) -> str:
        """One line per issue and per failed aggregate."""
        rows = _issue_rows("request", "error", self.errors)
        rows += _issue_rows("request", "warning", self.warnings)
        for o in self.failed:
            rows.append(
                {
                    "section": "request",
                    "type": "failed",
                    "row": o.rows[0] if o.rows else -1,
                    "field": "",
                    "message": f"{o.reason} (rows {','.join(str(r) for r in o.rows)})",
                    "requestNumber": o.request_number,
                }
            )
        if self.budget is not None:
            rows += _issue_rows("budget", "error", self.budget.errors)
            rows += _issue_rows("budget", "warning", self.budget.warnings)
        return _write_csv(rows, path)


class ReportBuilder:
    """Mutable accumulator for one batch; ``build_*`` returns the frozen report."""

    def __init__(self) -> None:
        self.state = BatchState.RECEIVED
        self.request_sheet: str | None = None
        self.budget_sheet: str | None = None
        self.total_rows = 0
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []
        self.outcomes: list[ImportOutcome] = []
        self.valid_count = 0
        self.invalid_count = 0
        self.created_coa_codes: list[str] = []
        # budget sheet
        self.budget_present = False
        self.budget_rows = 0
        self.budget_valid = 0
        self.budget_invalid = 0
        self.budget_errors: list[ValidationIssue] = []
        self.budget_warnings: list[ValidationIssue] = []
        self.budget_outcomes: list[BudgetOutcome] = []

    def advance(self, state: BatchState) -> None:
        self.state = state

    # --- request sheet ---
    def add_sheet_warning(self, message: str) -> None:
        self.warnings.append(ValidationIssue.warning(-1, None, message))

    def add_validation(self, aggregate: RequestAggregate, issues: Sequence[ValidationIssue]) -> bool:
        """Record an aggregate's issues; returns True when it is valid."""
        errors = [i for i in issues if i.is_error]
        self.errors.extend(errors)
        self.warnings.extend(i for i in issues if not i.is_error)
        if not errors:
            self.valid_count += 1
            return True
        self.invalid_count += 1
        self.outcomes.append(
            ImportOutcome(
                request_number=aggregate.request_number,
                status=OutcomeStatus.FAILED,
                rows=aggregate.rows,
                reason="Validation failed: " + "; ".join(e.message for e in errors),
            )
        )
        return False

    def add_outcomes(self, outcomes: Iterable[ImportOutcome]) -> None:
        """Record importer outcomes; skips become warnings and failures errors."""
        for o in outcomes:
            self.outcomes.append(o)
            row = o.rows[0] if o.rows else -1
            if o.status is OutcomeStatus.SKIPPED:
                self.warnings.append(
                    ValidationIssue.warning(row, "PRF No", o.reason or duplicate_message(o.request_number), o.request_number)
                )
            elif o.status is OutcomeStatus.FAILED:
                self.errors.append(ValidationIssue.error(row, None, o.reason or "Import failed", o.request_number))

    # --- budget sheet ---
    def add_budget_validation(self, issues: Sequence[ValidationIssue]) -> bool:
        errors = [i for i in issues if i.is_error]
        self.budget_errors.extend(errors)
        self.budget_warnings.extend(i for i in issues if not i.is_error)
        if errors:
            self.budget_invalid += 1
            return False
        self.budget_valid += 1
        return True

    def add_budget_warnings(self, issues: Iterable[ValidationIssue]) -> None:
        self.budget_warnings.extend(issues)

    def add_budget_outcomes(self, outcomes: Iterable[BudgetOutcome]) -> None:
        for o in outcomes:
            self.budget_outcomes.append(o)
            if o.status is OutcomeStatus.SKIPPED:
                self.budget_warnings.append(ValidationIssue.warning(o.row, "COA", o.reason or "skipped"))
            elif o.status in (OutcomeStatus.CONFLICT, OutcomeStatus.FAILED):
                self.budget_errors.append(ValidationIssue.error(o.row, "COA", o.reason or o.status.value))

    # --- build ---
    def _ordered_outcomes(self) -> tuple[ImportOutcome, ...]:
        # 集約は連続行なので先頭行番号順 == 初出順
        return tuple(sorted(self.outcomes, key=lambda o: o.rows[0] if o.rows else -1))

    def _by_row(self, issues: list[ValidationIssue]) -> tuple[ValidationIssue, ...]:
        return tuple(sorted(issues, key=lambda i: i.row))

    def build_validation_report(self) -> ValidationReport:
        request = ValidationSection(
            valid_count=self.valid_count,
            invalid_count=self.invalid_count,
            total_rows=self.total_rows,
            errors=self._by_row(self.errors),
            warnings=self._by_row(self.warnings),
            total_aggregates=self.valid_count + self.invalid_count,
        )
        budget = None
        if self.budget_present:
            budget = ValidationSection(
                valid_count=self.budget_valid,
                invalid_count=self.budget_invalid,
                total_rows=self.budget_rows,
                errors=self._by_row(self.budget_errors),
                warnings=self._by_row(self.budget_warnings),
            )
        return ValidationReport(
            state=self.state,
            request=request,
            budget=budget,
            request_sheet=self.request_sheet,
            budget_sheet=self.budget_sheet,
        )

    def build_budget_summary(self) -> BudgetImportSummary:
        return BudgetImportSummary(
            total_rows=self.budget_rows,
            outcomes=tuple(self.budget_outcomes),
            errors=self._by_row(self.budget_errors),
            warnings=self._by_row(self.budget_warnings),
            sheet=self.budget_sheet,
        )

    def build_import_report(self) -> ImportReport:
        return ImportReport(
            state=self.state,
            total_rows=self.total_rows,
            outcomes=self._ordered_outcomes(),
            errors=self._by_row(self.errors),
            warnings=self._by_row(self.warnings),
            created_coa_codes=tuple(self.created_coa_codes),
            budget=self.build_budget_summary() if self.budget_present else None,
            request_sheet=self.request_sheet,
            budget_sheet=self.budget_sheet,
        )
