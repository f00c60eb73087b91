"""Domain models for the PRF / budget workbook ingestion pipeline.

Cells, projected rows, request aggregates, budget rows, typed store records,
validation issues, import outcomes and configuration.
"""

from .batch import BatchState
from .budget import BudgetAllocationRow
from .cell import EMPTY, CellValue, DateValue, Empty, Number, Text
from .config_models import DatabaseConfig, ImportOptions, PipelineConfig, SheetConfig
from .error_record import ErrorRecord, Severity, ValidationIssue
from .outcome import BudgetOutcome, ImportOutcome, OutcomeStatus
from .records import AllocationRecord, ItemRecord, RequestRecord
from .request import RequestAggregate, RequestItemLine
from .row_data import RawRow

__all__ = [
    # Cells / rows
    "CellValue",
    "Text",
    "Number",
    "DateValue",
    "Empty",
    "EMPTY",
    "RawRow",
    # Aggregates
    "RequestAggregate",
    "RequestItemLine",
    "BudgetAllocationRow",
    # Store records
    "RequestRecord",
    "ItemRecord",
    "AllocationRecord",
    # Issues / outcomes
    "Severity",
    "ValidationIssue",
    "ErrorRecord",
    "OutcomeStatus",
    "ImportOutcome",
    "BudgetOutcome",
    "BatchState",
    # Configuration
    "DatabaseConfig",
    "SheetConfig",
    "ImportOptions",
    "PipelineConfig",
]
