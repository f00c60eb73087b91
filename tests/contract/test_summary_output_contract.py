from __future__ import annotations

import re
from pathlib import Path

from prf_ingest.cli.__main__ import main as cli_main
from prf_ingest.logging.init import reset_logging

"""The SUMMARY line is parsed by operators' scripts; its format is fixed."""

SUMMARY_RE = re.compile(
    r"^SUMMARY aggregates=(\d+) imported=(\d+) skipped=(\d+) failed=(\d+) rows=(\d+) budget_rows=(\d+) "
    r"elapsed_sec=(\d+(\.\d+)?)$",
    re.MULTILINE,
)
BUDGET_SUMMARY_RE = re.compile(
    r"^SUMMARY budget_rows=(\d+) created=(\d+) updated=(\d+) skipped=(\d+) failed=(\d+) elapsed_sec=(\d+(\.\d+)?)$",
    re.MULTILINE,
)


def test_summary_line_format(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    p = temp_workdir / "data" / "book.xlsx"
    p.write_bytes(example_workbook)
    cli_main(["import", str(p), "--dry-run"])
    out = capsys.readouterr().out
    matches = SUMMARY_RE.findall(out)
    assert len(matches) == 1
    aggregates, imported, skipped, failed = (int(x) for x in matches[0][:4])
    assert aggregates == imported + skipped + failed


def test_summary_is_last_line(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    p = temp_workdir / "data" / "book.xlsx"
    p.write_bytes(example_workbook)
    cli_main(["validate", str(p)])
    lines = capsys.readouterr().out.strip().splitlines()
    assert SUMMARY_RE.match(lines[-1])


def test_every_line_is_labeled(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    p = temp_workdir / "data" / "book.xlsx"
    p.write_bytes(example_workbook)
    cli_main(["import", str(p), "--dry-run"])
    for line in capsys.readouterr().out.strip().splitlines():
        assert line.split(" ", 1)[0] in {"DEBUG", "INFO", "WARN", "ERROR", "SUMMARY"}, line


def test_budget_summary_format(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    p = temp_workdir / "data" / "book.xlsx"
    p.write_bytes(example_workbook)
    cli_main(["reconcile-budgets", str(p), "--dry-run"])
    assert len(BUDGET_SUMMARY_RE.findall(capsys.readouterr().out)) == 1
