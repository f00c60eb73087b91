from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

from prf_ingest.cli.__main__ import _dsn, main as cli_main
from prf_ingest.db.store import StoreUnavailableError
from prf_ingest.logging.init import reset_logging
from prf_ingest.models.config_models import DatabaseConfig, PipelineConfig

PG_VARS = ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE", "DISABLE_DB_CONNECT")


def _write(temp_workdir: Path, name: str, data: bytes) -> Path:
    p = temp_workdir / "data" / name
    p.write_bytes(data)
    return p


def test_import_dry_run_success(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    code = cli_main(["import", str(path), "--dry-run"])
    out = capsys.readouterr().out
    assert code == 0
    assert "INFO mode=memory state=reported" in out
    assert "SUMMARY aggregates=1 imported=1 skipped=0 failed=0 rows=2 budget_rows=1 elapsed_sec=" in out
    # 警告 (コード未記入など) はエラーログへ
    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1


def test_import_json_and_report_file(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    report_path = temp_workdir / "out" / "report.json"
    code = cli_main(["import", str(path), "--dry-run", "--json", "--report", str(report_path)])
    out = capsys.readouterr().out
    assert code == 0
    assert '"importedRecords": 1' in out
    saved = json.loads(report_path.read_text(encoding="utf-8"))
    # 予算シートの COA は自動作成される
    assert saved["createdCoaCodes"] == ["COA-6100"]
    assert saved["budgetImport"]["createdRecords"] == 1


def test_validate_partial_failure_exit_2(temp_workdir: Path, capsys, make_workbook, prf_sheet):
    reset_logging()
    rows = [
        ["PRF-100", "2024-01-05", "A.Doe", "Laptop", 1, "LAPTOP-X", 1, 1500, 1500],
        ["PRF-101", "2024-01-06", None, "Desk", 2, "DESK", 1, 300, 300],
    ]
    path = _write(temp_workdir, "book.xlsx", make_workbook({"PRF": prf_sheet(rows)}))
    code = cli_main(["validate", str(path)])
    out = capsys.readouterr().out
    assert code == 2
    assert "SUMMARY aggregates=2 imported=0 skipped=0 failed=1 rows=2 budget_rows=0" in out


def test_validate_csv_report(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    report_path = temp_workdir / "report.csv"
    assert cli_main(["validate", str(path), "--report", str(report_path)]) == 0
    text = report_path.read_text(encoding="utf-8")
    assert text.startswith("section,type,row,field,message,requestNumber")
    assert "Purchase cost code is missing" in text


def test_unreadable_file_rejected_at_parse(temp_workdir: Path, capsys):
    reset_logging()
    path = _write(temp_workdir, "broken.xlsx", b"not a workbook")
    code = cli_main(["import", str(path), "--dry-run"])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR parse:" in out
    payload = json.loads(out.strip().splitlines()[-1])
    assert payload["success"] is False
    assert payload["state"] == "rejected_at_parse"
    (log,) = (temp_workdir / "logs").glob("errors-*.log")
    record = json.loads(log.read_text(encoding="utf-8").splitlines()[0])
    assert record["error_type"] == "PARSE_ERROR"
    assert record["row"] == -1


def test_missing_file(temp_workdir: Path, capsys):
    reset_logging()
    code = cli_main(["validate", str(temp_workdir / "data" / "nope.xlsx")])
    assert code == 1
    assert "ERROR file not found:" in capsys.readouterr().out


def test_bad_config(temp_workdir: Path, capsys):
    reset_logging()
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text("unknown_key: 1\n", encoding="utf-8")
    code = cli_main(["template", str(temp_workdir / "t.xlsx")])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_sheets_command(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    assert cli_main(["sheets", str(path)]) == 0
    assert '["PRF", "Budget"]' in capsys.readouterr().out


def test_template_command(temp_workdir: Path, capsys):
    reset_logging()
    target = temp_workdir / "tpl" / "template.xlsx"
    assert cli_main(["template", str(target)]) == 0
    assert target.exists()
    assert "INFO template written:" in capsys.readouterr().out


def test_reconcile_budgets_dry_run(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    code = cli_main(["reconcile-budgets", str(path), "--dry-run"])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY budget_rows=1 created=1 updated=0 skipped=0 failed=0" in out


def test_live_import_database_unreachable(temp_workdir: Path, example_workbook: bytes, capsys, monkeypatch):
    reset_logging()
    for var in PG_VARS:
        monkeypatch.delenv(var, raising=False)
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    with patch("prf_ingest.cli.__main__.connect", side_effect=StoreUnavailableError("cannot connect to database")):
        code = cli_main(["import", str(path)])
    assert code == 1
    assert "ERROR database: cannot connect to database" in capsys.readouterr().out


def test_disable_db_connect_uses_memory_store(temp_workdir: Path, example_workbook: bytes, capsys, monkeypatch):
    reset_logging()
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    with patch("prf_ingest.cli.__main__.connect") as mock_connect:
        code = cli_main(["import", str(path)])
    assert code == 0
    mock_connect.assert_not_called()
    assert "mode=memory" in capsys.readouterr().out


def test_init_db_applies_schema(temp_workdir: Path, capsys, monkeypatch):
    reset_logging()
    for var in PG_VARS:
        monkeypatch.delenv(var, raising=False)
    conn = MagicMock()
    cursor = conn.cursor.return_value
    with patch("prf_ingest.cli.__main__.connect", return_value=conn):
        code = cli_main(["init-db"])
    assert code == 0
    statements = [c.args[0] for c in cursor.execute.call_args_list]
    assert statements[0] == "BEGIN"
    assert "CREATE TABLE IF NOT EXISTS chart_of_accounts" in statements[1]
    assert statements[-1] == "COMMIT"
    cursor.close.assert_called_once()
    conn.close.assert_called_once()


def test_debug_flag(temp_workdir: Path, example_workbook: bytes, capsys):
    reset_logging()
    path = _write(temp_workdir, "book.xlsx", example_workbook)
    assert cli_main(["--debug", "validate", str(path)]) == 0
    assert "DEBUG debug mode enabled" in capsys.readouterr().out
    reset_logging()


def test_dsn_precedence(monkeypatch):
    for var in PG_VARS:
        monkeypatch.delenv(var, raising=False)
    cfg = PipelineConfig(database=DatabaseConfig(host="cfg-host", port=6543, user="cfg", database="cfgdb"))
    assert _dsn(cfg) == "host=cfg-host port=6543 user=cfg dbname=cfgdb"

    monkeypatch.setenv("PGHOST", "env-host")
    monkeypatch.setenv("PGPASSWORD", "pw")
    assert _dsn(cfg) == "host=env-host port=6543 user=cfg dbname=cfgdb password=pw"

    monkeypatch.setenv("DATABASE_URL", "postgresql://u@h/db")
    assert _dsn(cfg) == "postgresql://u@h/db"


def test_env_file_loaded(temp_workdir: Path, monkeypatch, make_workbook):
    for var in PG_VARS:
        monkeypatch.delenv(var, raising=False)
    # load_dotenv が書き込む値をテスト後に元へ戻す
    monkeypatch.setenv("DISABLE_DB_CONNECT", "0")
    (temp_workdir / ".env").write_text("DISABLE_DB_CONNECT=1\n", encoding="utf-8")
    budget = make_workbook({"Budget": [["COA", "Fiscal Year", "Initial Budget"], ["C-1", 2024, 10]]})
    path = _write(temp_workdir, "b.xlsx", budget)
    reset_logging()
    with patch("prf_ingest.cli.__main__.connect") as mock_connect:
        code = cli_main(["reconcile-budgets", str(path)])
    assert code == 0
    mock_connect.assert_not_called()
