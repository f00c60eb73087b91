from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

"""Validation issue and error log record models.

ValidationIssue is the value every validation rule and import step produces for
a row-level problem; it is never raised. Its serialized form
``{row, field?, message, requestNumber?}`` is rendered directly by the UI and
exported in the downloadable report, so the key set must stay stable.

ErrorRecord is the JSON Lines form of an issue written to the error log file.
It supports row=-1 as a sentinel for file-level errors where the specific row
cannot be determined.
"""

__all__ = [
    "Severity",
    "ValidationIssue",
    "ErrorRecord",
]


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """A single row-level error or warning.

    Attributes:
        row: 1-based sheet row the issue refers to (-1 when unknown)
        field: Business field name as shown in the sheet header (optional)
        message: Human-readable description
        request_number: Request number of the owning aggregate (optional)
        severity: ERROR excludes the aggregate from import, WARNING does not
    """
    row: int
    field: str | None
    message: str
    request_number: str | None = None
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    @staticmethod
    def error(row: int, field: str | None, message: str, request_number: str | None = None) -> ValidationIssue:
        return ValidationIssue(row, field, message, request_number or None, Severity.ERROR)

    @staticmethod
    def warning(row: int, field: str | None, message: str, request_number: str | None = None) -> ValidationIssue:
        return ValidationIssue(row, field, message, request_number or None, Severity.WARNING)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the report item shape. Optional keys are omitted when unset."""
        out: dict[str, Any] = {"row": self.row}
        if self.field is not None:
            out["field"] = self.field
        out["message"] = self.message
        if self.request_number:
            out["requestNumber"] = self.request_number
        return out


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Uploaded file name
        sheet: Sheet name within the file
        row: Row number (1-based). Use -1 for file-level errors where row is unknown
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Error description
        request_number: Request number, when the error belongs to an aggregate
    """
    timestamp: str  # ISO8601 UTC
    file: str
    sheet: str
    row: int  # 行番号。不明な場合 -1 許容
    error_type: str  # UPPER_SNAKE
    message: str
    request_number: str | None = None

    @staticmethod
    def create(
        file: str,
        sheet: str,
        row: int,
        error_type: str,
        message: str,
        request_number: str | None = None,
    ) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
            request_number=request_number,
        )

    @staticmethod
    def from_issue(file: str, sheet: str, issue: ValidationIssue) -> ErrorRecord:
        error_type = "VALIDATION_ERROR" if issue.is_error else "VALIDATION_WARNING"
        message = f"{issue.field}: {issue.message}" if issue.field else issue.message
        return ErrorRecord.create(file, sheet, issue.row, error_type, message, issue.request_number)

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format (no extra keys)."""
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
