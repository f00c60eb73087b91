# Shared pytest fixtures
from __future__ import annotations

import copy
import io
import tempfile
from collections.abc import Callable
from pathlib import Path

import pandas as pd
import pytest

from prf_ingest.logging.init import reset_logging

# PRF シートの標準ヘッダ (タイトル行の次、2 行目)
_PRF_HEADER = [
    "PRF No",
    "Date Submit",
    "Submit By",
    "Description",
    "No",
    "Item Name",
    "Quantity",
    "Unit Price",
    "Total Price",
]

_PRF_EXAMPLE_ROWS = [
    ["PRF-100", "2024-01-05", "A.Doe", "Laptop", 1, "LAPTOP-X", 1, 1500, 1500],
    [None, None, None, None, None, "MOUSE-1", 2, 20, 40],
]

_BUDGET_HEADER = ["COA", "Category", "Fiscal Year", "Initial Budget", "Remaining Budget"]


def _workbook_bytes(sheets: dict[str, list[list[object]]]) -> bytes:
    """Build an .xlsx in memory; every row is written as-is (no pandas header)."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return buf.getvalue()


def _prf_sheet(rows: list[list[object]], header: list[str] | None = None, title: str = "Purchase Request Form") -> list[list[object]]:
    return [[title], header or _PRF_HEADER, *rows]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def make_workbook() -> Callable[[dict[str, list[list[object]]]], bytes]:
    return _workbook_bytes


@pytest.fixture()
def prf_sheet() -> Callable[..., list[list[object]]]:
    """Builder for a PRF sheet: title row, header row, then the given rows."""
    return _prf_sheet


@pytest.fixture()
def prf_example_rows() -> list[list[object]]:
    return copy.deepcopy(_PRF_EXAMPLE_ROWS)


@pytest.fixture()
def budget_header() -> list[str]:
    return list(_BUDGET_HEADER)


@pytest.fixture()
def example_workbook() -> bytes:
    """The two-row PRF-100 request (laptop + mouse) plus a small budget sheet."""
    return _workbook_bytes(
        {
            "PRF": _prf_sheet(_PRF_EXAMPLE_ROWS),
            "Budget": [_BUDGET_HEADER, ["COA-6100", "IT Equipment", 2024, 50000, 45000]],
        }
    )


@pytest.fixture()
def sample_config_yaml() -> str:
    return """request_sheet:
  tokens: [prf]
  header_row: 1
budget_sheet:
  tokens: [budget]
  header_row: 0
null_sentinels: ["NULL"]
fiscal_year_range:
  min: 2020
  max: 2030
import:
  skip_duplicates: true
  update_existing: false
  auto_create_coa: true
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def clean_logging():
    reset_logging()
    yield
    reset_logging()
