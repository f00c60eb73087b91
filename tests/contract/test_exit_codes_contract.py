from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from prf_ingest.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL
from prf_ingest.cli.__main__ import main as cli_main
from prf_ingest.db.store import StoreUnavailableError
from prf_ingest.logging.init import reset_logging

"""Exit codes: 0 all good, 2 partial failure, 1 fatal."""


def _book(temp_workdir: Path, data: bytes) -> str:
    p = temp_workdir / "data" / "book.xlsx"
    p.write_bytes(data)
    return str(p)


def test_constants():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_fatal_config(temp_workdir: Path, capsys):
    reset_logging()
    code = cli_main(["--config", str(temp_workdir / "config" / "missing.yml"), "sheets", "x.xlsx"])
    assert code == EXIT_FATAL
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    p = temp_workdir / "data" / "ok.xlsx"
    p.write_bytes(example_workbook)
    assert cli_main(["import", str(p), "--dry-run"]) == EXIT_SUCCESS_ALL


def test_exit_code_partial_failure_on_invalid_aggregate(temp_workdir: Path, make_workbook, prf_sheet, prf_example_rows, capsys):
    reset_logging()
    rows = [prf_example_rows[0], ["PRF-101", "2024-01-05", "B", None, 2, "X", 1, 1, 1]]
    assert cli_main(["import", _book(temp_workdir, make_workbook({"PRF": prf_sheet(rows)})), "--dry-run"]) == EXIT_PARTIAL_FAILURE


def test_exit_code_partial_failure_on_budget_conflict(
    temp_workdir: Path, make_workbook, prf_sheet, prf_example_rows, budget_header, capsys
):
    reset_logging()
    sheets = {
        "PRF": prf_sheet([prf_example_rows[0]]),
        "Budget": [budget_header, ["C-1", "IT", 2024, 10, 10], ["C-1", "IT", 2024, 20, 20]],
    }
    assert cli_main(["import", _book(temp_workdir, make_workbook(sheets)), "--dry-run"]) == EXIT_PARTIAL_FAILURE


def test_exit_code_fatal_parse(temp_workdir: Path, capsys):
    reset_logging()
    p = temp_workdir / "data" / "bad.xlsx"
    p.write_bytes(b"\x00garbage")
    assert cli_main(["validate", str(p)]) == EXIT_FATAL


def test_exit_code_fatal_database(temp_workdir: Path, example_workbook: bytes, capsys, monkeypatch):
    reset_logging()
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    p = temp_workdir / "data" / "ok.xlsx"
    p.write_bytes(example_workbook)
    with patch("prf_ingest.cli.__main__.connect", side_effect=StoreUnavailableError("down")):
        assert cli_main(["reconcile-budgets", str(p)]) == EXIT_FATAL
