from __future__ import annotations

import io
import json

import pandas as pd

from prf_ingest.models.batch import BatchState
from prf_ingest.models.error_record import ValidationIssue
from prf_ingest.models.outcome import BudgetOutcome, ImportOutcome, OutcomeStatus
from prf_ingest.models.request import RequestAggregate
from prf_ingest.services.report import CSV_COLUMNS, ImportReport, ReportBuilder


def agg(number, rows):
    return RequestAggregate(request_number=number, rows=rows)


def built_report() -> ImportReport:
    rb = ReportBuilder()
    rb.total_rows = 6
    rb.add_validation(agg("PRF-1", (3, 4)), [ValidationIssue.warning(3, "Date Submit", "Submit date is missing", "PRF-1")])
    rb.add_validation(agg("", (5,)), [ValidationIssue.error(5, "PRF No", "Request number is required")])
    rb.add_validation(agg("PRF-3", (6,)), [])
    rb.add_validation(agg("PRF-2", (2,)), [])
    rb.add_outcomes(
        [
            ImportOutcome("PRF-1", OutcomeStatus.CREATED, (3, 4), request_id=1, item_count=2),
            ImportOutcome("PRF-3", OutcomeStatus.SKIPPED, (6,), request_id=9, reason="Duplicate request number PRF-3 - skipped"),
            ImportOutcome("PRF-2", OutcomeStatus.FAILED, (2,), reason="db down"),
        ]
    )
    rb.advance(BatchState.REPORTED)
    return rb.build_import_report()


def test_accounting_invariant():
    report = built_report()
    d = report.to_dict()
    assert d["totalRecords"] == d["totalAggregates"] == 4
    assert d["importedRecords"] + d["skippedRecords"] + d["failedAggregates"] == d["totalRecords"]
    assert d["successfulAggregates"] == 1
    assert d["failedAggregates"] == 2
    assert d["success"] is False
    assert d["state"] == "reported"


def test_outcomes_in_first_seen_row_order():
    report = built_report()
    assert [o.rows[0] for o in report.outcomes] == [2, 3, 5, 6]


def test_validation_failure_reason_and_details():
    d = built_report().to_dict()
    failed = {f["requestNumber"]: f for f in d["aggregateDetails"]["failed"]}
    assert failed[""]["reason"] == "Validation failed: Request number is required"
    assert failed[""]["rows"] == [5]
    assert failed["PRF-2"]["reason"] == "db down"
    (ok,) = d["aggregateDetails"]["successful"]
    assert ok == {"requestNumber": "PRF-1", "requestId": 1, "itemCount": 2, "action": "created"}


def test_skip_becomes_warning_and_failure_becomes_error():
    report = built_report()
    assert [(w.row, w.field) for w in report.warnings] == [(3, "Date Submit"), (6, "PRF No")]
    errors = [(e.row, e.field, e.message) for e in report.errors]
    assert errors == [(2, None, "db down"), (5, "PRF No", "Request number is required")]


def test_issue_dict_omits_unset_keys():
    d = built_report().to_dict()
    assert d["errors"][0] == {"row": 2, "message": "db down", "requestNumber": "PRF-2"}
    assert d["errors"][1] == {"row": 5, "field": "PRF No", "message": "Request number is required"}


def test_report_is_json_serializable():
    text = built_report().to_json()
    assert json.loads(text)["budgetImport"] is None


def test_sheet_warning_sorts_first():
    rb = ReportBuilder()
    rb.add_validation(agg("PRF-1", (3,)), [ValidationIssue.warning(3, "Amount", "x", "PRF-1")])
    rb.add_sheet_warning("Budget sheet 'B' ignored")
    report = rb.build_validation_report()
    assert [w.row for w in report.warnings] == [-1, 3]
    assert report.request.to_dict()["warnings"][0] == {"row": -1, "message": "Budget sheet 'B' ignored"}


def test_budget_section():
    rb = ReportBuilder()
    rb.budget_present = True
    rb.budget_rows = 4
    rb.add_budget_validation([ValidationIssue.error(5, "COA", "COA is required")])
    for _ in range(3):
        rb.add_budget_validation([])
    rb.add_budget_outcomes(
        [
            BudgetOutcome(2, "C-1", 2024, OutcomeStatus.CREATED, 1),
            BudgetOutcome(3, "C-1", 2024, OutcomeStatus.CONFLICT, reason="Allocation for C-1 FY2024 already given in row 2"),
            BudgetOutcome(4, "C-2", 2024, OutcomeStatus.SKIPPED, 7, reason="already exists"),
        ]
    )
    summary = rb.build_budget_summary()
    d = summary.to_dict()
    assert d["createdRecords"] == 1
    assert d["conflictRecords"] == 1
    assert d["skippedRecords"] == 1
    assert d["success"] is False
    assert [e["row"] for e in d["errors"]] == [3, 5]
    assert d["warnings"] == [{"row": 4, "field": "COA", "message": "already exists"}]

    validation = rb.build_validation_report()
    assert validation.budget.to_dict()["validCount"] == 3
    assert validation.budget.to_dict()["invalidCount"] == 1
    assert "totalAggregates" not in validation.budget.to_dict()
    assert validation.success is False


def test_validation_report_shape():
    rb = ReportBuilder()
    rb.total_rows = 2
    rb.add_validation(agg("PRF-1", (3,)), [])
    rb.advance(BatchState.VALIDATED)
    d = rb.build_validation_report().to_dict()
    assert d["success"] is True
    assert d["state"] == "validated"
    assert d["requestValidation"] == {
        "validCount": 1,
        "invalidCount": 0,
        "totalAggregates": 1,
        "totalRows": 2,
        "errors": [],
        "warnings": [],
    }
    assert d["budgetValidation"] is None


def test_import_report_csv(tmp_path):
    report = built_report()
    path = tmp_path / "out" / "report.csv"
    text = report.to_csv(path)
    assert path.read_text(encoding="utf-8") == text
    df = pd.read_csv(io.StringIO(text), keep_default_na=False)
    assert list(df.columns) == CSV_COLUMNS
    assert set(df["type"]) == {"error", "warning", "failed"}
    assert len(df[df["type"] == "failed"]) == 2
