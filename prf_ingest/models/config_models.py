from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the PRF workbook ingestion pipeline.

The loader in prf_ingest.config.loader builds these from config/import.yml;
every entry point of the pipeline receives a PipelineConfig explicitly
(no module-level settings).
"""

__all__ = [
    "DatabaseConfig",
    "SheetConfig",
    "ImportOptions",
    "PipelineConfig",
    "REQUEST_COLUMNS",
    "BUDGET_COLUMNS",
]


# 正規フィールド名 -> ヘッダ別名 (小文字・空白正規化後に照合)
REQUEST_COLUMNS: dict[str, tuple[str, ...]] = {
    "row_no": ("no", "no."),
    "budget_year": ("budget", "budget year"),
    "submit_date": ("date submit", "submit date", "date submitted", "date"),
    "submitter": ("submit by", "submitted by", "requestor", "requester"),
    "request_number": ("prf no", "prf no.", "prf number", "request number", "request no"),
    "summary": ("sum description requested", "summary"),
    "description": ("description",),
    "cost_code": ("purchase cost code", "cost code"),
    "amount": ("amount", "requested amount"),
    "required_for": ("required for",),
    "department": ("department", "dept"),
    "item_name": ("item name", "item"),
    "item_description": ("item description", "specification"),
    "quantity": ("quantity", "qty"),
    "unit_price": ("unit price", "price"),
    "total_price": ("total price", "total", "line total"),
}

BUDGET_COLUMNS: dict[str, tuple[str, ...]] = {
    "cost_code": ("coa", "coa code", "cost code", "account code"),
    "category": ("category",),
    "fiscal_year": ("fiscal year", "fy", "year", "budget year"),
    "allocated_amount": ("initial budget", "allocated amount", "allocation", "budget amount"),
    "remaining_amount": ("remaining budget", "remaining"),
}


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class SheetConfig:
    """How one of the two sheet shapes is located and projected."""
    tokens: tuple[str, ...]  # sheet-name substrings (case-insensitive)
    header_row: int  # preferred 0-based header row index
    columns: dict[str, tuple[str, ...]]  # canonical field -> header aliases

    def aliases(self) -> dict[str, str]:
        """Flattened alias -> canonical field lookup."""
        lookup: dict[str, str] = {}
        for canonical, names in self.columns.items():
            lookup.setdefault(canonical, canonical)
            for name in names:
                lookup.setdefault(name, canonical)
        return lookup


@dataclass(frozen=True)
class ImportOptions:
    """Caller-supplied options for one import batch."""
    skip_duplicates: bool = True
    update_existing: bool = False
    auto_create_coa: bool = True
    validate_only: bool = False
    dedupe_items: bool = False


def _request_sheet() -> SheetConfig:
    return SheetConfig(tokens=("prf",), header_row=1, columns=dict(REQUEST_COLUMNS))


def _budget_sheet() -> SheetConfig:
    return SheetConfig(tokens=("budget",), header_row=0, columns=dict(BUDGET_COLUMNS))


@dataclass(frozen=True)
class PipelineConfig:
    """Root configuration object for the ingestion pipeline."""
    request_sheet: SheetConfig = field(default_factory=_request_sheet)
    budget_sheet: SheetConfig = field(default_factory=_budget_sheet)
    null_sentinels: frozenset[str] = frozenset()  # 文字列→EMPTY 変換対象 (大文字化済想定)
    keep_na_strings: tuple[str, ...] = ("NA",)
    min_fiscal_year: int = 2020
    max_fiscal_year: int = 2030
    default_fiscal_year: int | None = None
    amount_tolerance: float = 0.01
    default_coa_category: str = "General"
    defaults: ImportOptions = field(default_factory=ImportOptions)
    fiscal_year_assignments: dict[str, tuple[int, ...]] = field(default_factory=dict)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    @property
    def year_range(self) -> tuple[int, int]:
        return (self.min_fiscal_year, self.max_fiscal_year)
