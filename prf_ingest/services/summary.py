from __future__ import annotations

from .report import BudgetImportSummary, ImportReport, ValidationReport

"""SUMMARY line rendering.

Format:
SUMMARY aggregates={n} imported={n} skipped={n} failed={n} rows={n} budget_rows={n} elapsed_sec={t}

For a validation-only run, imported / skipped are 0 and failed is the number
of invalid aggregates.
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
    "render_budget_summary_line",
]


def format_elapsed(elapsed: float) -> str:
    """Render seconds without scientific notation; integral values without decimals."""
    if elapsed == 0:
        return "0"
    if elapsed == int(elapsed):
        return str(int(elapsed))
    if elapsed < 0.01:
        return f"{elapsed:.6f}".rstrip("0").rstrip(".")
    return f"{elapsed:.3f}".rstrip("0").rstrip(".")


def render_summary_line(report: ImportReport | ValidationReport, elapsed: float) -> str:
    """Render the SUMMARY line for an import or validation report.

    Examples:
        >>> from prf_ingest.models.batch import BatchState
        >>> from prf_ingest.services.report import ImportReport
        >>> render_summary_line(ImportReport(state=BatchState.REPORTED, total_rows=0, outcomes=()), 2.0)
        'SUMMARY aggregates=0 imported=0 skipped=0 failed=0 rows=0 budget_rows=0 elapsed_sec=2'
    """
    if isinstance(report, ImportReport):
        aggregates = report.total_records
        imported = len(report.successful)
        skipped = len(report.skipped)
        failed = len(report.failed)
        rows = report.total_rows
        budget_rows = report.budget.total_rows if report.budget is not None else 0
    else:
        aggregates = report.request.valid_count + report.request.invalid_count
        imported = skipped = 0
        failed = report.request.invalid_count
        rows = report.request.total_rows
        budget_rows = report.budget.total_rows if report.budget is not None else 0

    return (
        f"SUMMARY aggregates={aggregates} "
        f"imported={imported} "
        f"skipped={skipped} "
        f"failed={failed} "
        f"rows={rows} "
        f"budget_rows={budget_rows} "
        f"elapsed_sec={format_elapsed(elapsed)}"
    )


def render_budget_summary_line(summary: BudgetImportSummary, elapsed: float) -> str:
    return (
        f"SUMMARY budget_rows={summary.total_rows} "
        f"created={summary.created} "
        f"updated={summary.updated} "
        f"skipped={summary.skipped} "
        f"failed={summary.failed + summary.conflicts} "
        f"elapsed_sec={format_elapsed(elapsed)}"
    )
