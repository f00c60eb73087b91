from __future__ import annotations

import logging
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, replace

from ..db.store import RecordStore
from ..excel.projector import SheetHeaderError, locate_header_row, project_rows
from ..excel.reader import SheetNotFoundError, Workbook, read_workbook
from ..excel.sheets import resolve_budget_sheet, resolve_sheets
from ..models.batch import BatchState
from ..models.budget import BudgetAllocationRow
from ..models.config_models import ImportOptions, PipelineConfig, SheetConfig
from ..models.request import RequestAggregate
from ..models.row_data import RawRow
from .coa_resolver import CoaResolver
from .grouper import build_budget_rows, group_requests
from .importer import Importer
from .reconcile import apply_fiscal_year_assignments, dedupe_allocations
from .report import BudgetImportSummary, ImportReport, ReportBuilder, ValidationReport
from .validator import validate_budget_row, validate_request

"""Pipeline entry points.

    list_sheets        -> sheet names of an uploaded workbook
    validate           -> parse + group + validate, nothing written
    import_workbook    -> validate, then import valid aggregates and budget rows
    reconcile_budgets  -> budget sheet only: dedupe, align fiscal years, upsert

Batch flow: received -> parsed -> grouped -> validated -> (validate-only stops)
-> imported -> reported. Reader / sheet failures raise ParseError subclasses
(the batch is rejected at parse); everything after that ends in a report.
"""

__all__ = [
    "ParsedBatch",
    "list_sheets",
    "parse_workbook",
    "validate",
    "import_workbook",
    "reconcile_budgets",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedBatch:
    request_sheet: str
    budget_sheet: str | None
    rows: tuple[RawRow, ...]
    aggregates: tuple[RequestAggregate, ...]
    budget_rows: tuple[BudgetAllocationRow, ...] | None  # None: no usable budget sheet
    sheet_warnings: tuple[str, ...] = ()


def list_sheets(data: bytes, filename: str | None = None) -> list[str]:
    return read_workbook(data, filename).sheet_names


def _project(wb: Workbook, sheet: str, sheet_cfg: SheetConfig, config: PipelineConfig) -> list[RawRow]:
    rows = wb.rows(sheet)
    aliases = sheet_cfg.aliases()
    header = locate_header_row(rows, aliases, sheet_cfg.header_row)
    logger.debug("sheet %s: header at row %d", sheet, header + 1)
    return project_rows(rows, header, aliases, config.null_sentinels, sheet=sheet)


def parse_workbook(
    data: bytes,
    request_sheet: str | None = None,
    budget_sheet: str | None = None,
    *,
    config: PipelineConfig,
    filename: str | None = None,
) -> ParsedBatch:
    """Read, resolve sheets, project rows and group requests.

    Raises ParseError subclasses for an unreadable workbook or an unusable
    request sheet. A budget sheet without a recognizable header is dropped
    with a warning instead.
    """
    wb = read_workbook(data, filename, config.keep_na_strings)
    selection = resolve_sheets(
        wb.sheet_names,
        request_sheet,
        budget_sheet,
        request_tokens=config.request_sheet.tokens,
        budget_tokens=config.budget_sheet.tokens,
    )
    rows = _project(wb, selection.request_sheet, config.request_sheet, config)

    budget_rows: list[BudgetAllocationRow] | None = None
    warnings: list[str] = []
    if selection.budget_sheet is not None:
        try:
            projected = _project(wb, selection.budget_sheet, config.budget_sheet, config)
            budget_rows = build_budget_rows(projected, selection.budget_sheet)
        except SheetHeaderError as e:
            logger.warning("budget sheet %s ignored: %s", selection.budget_sheet, e)
            warnings.append(f"Budget sheet '{selection.budget_sheet}' ignored: {e}")

    aggregates = group_requests(rows, selection.request_sheet)
    logger.info(
        "parsed %s: request_sheet=%s rows=%d aggregates=%d budget_sheet=%s budget_rows=%s",
        filename or "<upload>",
        selection.request_sheet,
        len(rows),
        len(aggregates),
        selection.budget_sheet,
        len(budget_rows) if budget_rows is not None else "-",
    )
    return ParsedBatch(
        request_sheet=selection.request_sheet,
        budget_sheet=selection.budget_sheet if budget_rows is not None else None,
        rows=tuple(rows),
        aggregates=tuple(aggregates),
        budget_rows=tuple(budget_rows) if budget_rows is not None else None,
        sheet_warnings=tuple(warnings),
    )


def _start(batch: ParsedBatch) -> ReportBuilder:
    builder = ReportBuilder()
    builder.advance(BatchState.PARSED)
    builder.request_sheet = batch.request_sheet
    builder.budget_sheet = batch.budget_sheet
    builder.total_rows = len(batch.rows)
    for message in batch.sheet_warnings:
        builder.add_sheet_warning(message)
    builder.advance(BatchState.GROUPED)
    return builder


def _validate_all(
    batch: ParsedBatch,
    builder: ReportBuilder,
    config: PipelineConfig,
    coa_codes: Collection[str] | None,
    auto_create_coa: bool,
) -> tuple[list[RequestAggregate], list[BudgetAllocationRow]]:
    valid: list[RequestAggregate] = []
    for aggregate in batch.aggregates:
        issues = validate_request(
            aggregate,
            coa_codes,
            year_range=config.year_range,
            auto_create_coa=auto_create_coa,
            tolerance=config.amount_tolerance,
        )
        if builder.add_validation(aggregate, issues):
            valid.append(aggregate)

    valid_budget: list[BudgetAllocationRow] = []
    if batch.budget_rows is not None:
        builder.budget_present = True
        builder.budget_rows = len(batch.budget_rows)
        for row in batch.budget_rows:
            issues = validate_budget_row(
                row, year_range=config.year_range, default_fiscal_year=config.default_fiscal_year
            )
            if builder.add_budget_validation(issues):
                valid_budget.append(row)

    builder.advance(BatchState.VALIDATED)
    logger.info(
        "validated: aggregates valid=%d invalid=%d budget valid=%d invalid=%d",
        builder.valid_count,
        builder.invalid_count,
        builder.budget_valid,
        builder.budget_invalid,
    )
    return valid, valid_budget


def validate(
    data: bytes,
    request_sheet: str | None = None,
    budget_sheet: str | None = None,
    *,
    config: PipelineConfig | None = None,
    coa_codes: Collection[str] | None = None,
    filename: str | None = None,
    auto_create_coa: bool | None = None,
) -> ValidationReport:
    """Validate a workbook without writing anything."""
    config = config or PipelineConfig()
    if auto_create_coa is None:
        auto_create_coa = config.defaults.auto_create_coa
    batch = parse_workbook(data, request_sheet, budget_sheet, config=config, filename=filename)
    builder = _start(batch)
    _validate_all(batch, builder, config, coa_codes, auto_create_coa)
    return builder.build_validation_report()


def import_workbook(
    data: bytes,
    options: ImportOptions | None = None,
    store: RecordStore | None = None,
    request_sheet: str | None = None,
    budget_sheet: str | None = None,
    *,
    config: PipelineConfig | None = None,
    filename: str | None = None,
    progress: bool = False,
) -> ImportReport | ValidationReport:
    """Validate and import a workbook.

    Returns a ValidationReport when ``options.validate_only`` is set.
    StoreUnavailableError (store unreachable) propagates.
    """
    config = config or PipelineConfig()
    options = options or config.defaults
    if store is None:
        raise ValueError("a RecordStore is required")

    # COA ディレクトリ読み出し (到達不能ならここで例外)
    coa_codes = store.list_coa_codes()
    if options.validate_only:
        return validate(
            data,
            request_sheet,
            budget_sheet,
            config=config,
            coa_codes=coa_codes,
            filename=filename,
            auto_create_coa=options.auto_create_coa,
        )

    batch = parse_workbook(data, request_sheet, budget_sheet, config=config, filename=filename)
    builder = _start(batch)
    valid, valid_budget = _validate_all(batch, builder, config, coa_codes, options.auto_create_coa)

    resolver = CoaResolver(store, options.auto_create_coa, config.default_coa_category)
    importer = Importer(
        store, resolver, options, default_fiscal_year=config.default_fiscal_year, progress=progress
    )
    builder.add_outcomes(importer.import_requests(valid))
    if valid_budget:
        builder.add_budget_outcomes(importer.import_budget_rows(valid_budget))
    builder.created_coa_codes = list(resolver.created_codes)
    builder.advance(BatchState.IMPORTED)

    builder.advance(BatchState.REPORTED)
    report = builder.build_import_report()
    logger.info(
        "imported %s: aggregates=%d imported=%d skipped=%d failed=%d created_coa=%d",
        filename or "<upload>",
        report.total_records,
        len(report.successful),
        len(report.skipped),
        len(report.failed),
        len(report.created_coa_codes),
    )
    return report


def reconcile_budgets(
    data: bytes,
    store: RecordStore,
    *,
    config: PipelineConfig | None = None,
    assignments: Mapping[str, Sequence[int]] | None = None,
    budget_sheet: str | None = None,
    filename: str | None = None,
    progress: bool = False,
) -> BudgetImportSummary:
    """Clean up a budget sheet and upsert it.

    Duplicate (code, fiscal year) rows keep the highest allocation, rows are
    aligned with the configured fiscal-year assignments, and the result is
    written with update_existing so existing allocations are corrected in place.
    """
    config = config or PipelineConfig()
    if assignments is None:
        assignments = config.fiscal_year_assignments

    wb = read_workbook(data, filename, config.keep_na_strings)
    sheet = resolve_budget_sheet(wb.sheet_names, budget_sheet, budget_tokens=config.budget_sheet.tokens)
    if sheet is None:
        raise SheetNotFoundError(f"no budget sheet found (available: {wb.sheet_names})")
    rows = build_budget_rows(_project(wb, sheet, config.budget_sheet, config), sheet)

    builder = ReportBuilder()
    builder.budget_present = True
    builder.budget_sheet = sheet
    builder.budget_rows = len(rows)
    valid = [
        row
        for row in rows
        if builder.add_budget_validation(
            validate_budget_row(row, year_range=config.year_range, default_fiscal_year=config.default_fiscal_year)
        )
    ]

    deduped, dedupe_warnings = dedupe_allocations(valid)
    builder.add_budget_warnings(dedupe_warnings)
    aligned, assignment_warnings = apply_fiscal_year_assignments(deduped, assignments)
    builder.add_budget_warnings(assignment_warnings)

    options = replace(config.defaults, update_existing=True, validate_only=False)
    resolver = CoaResolver(store, options.auto_create_coa, config.default_coa_category)
    importer = Importer(
        store, resolver, options, default_fiscal_year=config.default_fiscal_year, progress=progress
    )
    builder.add_budget_outcomes(importer.import_budget_rows(aligned))
    summary = builder.build_budget_summary()
    logger.info(
        "reconciled %s: rows=%d created=%d updated=%d failed=%d",
        sheet,
        summary.total_rows,
        summary.created,
        summary.updated,
        summary.failed,
    )
    return summary
