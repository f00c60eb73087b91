from __future__ import annotations

import argparse
import json
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from prf_ingest.config.loader import ConfigError, load_config
from prf_ingest.db.postgres import PostgresStore, connect, ensure_schema
from prf_ingest.db.store import InMemoryStore, RecordStore, StoreUnavailableError
from prf_ingest.excel.reader import ParseError
from prf_ingest.logging.error_log import ErrorLogBuffer, ErrorRecord
from prf_ingest.logging.init import log_summary, set_debug, setup_logging
from prf_ingest.models.config_models import ImportOptions, PipelineConfig
from prf_ingest.services.pipeline import import_workbook, list_sheets, reconcile_budgets, validate
from prf_ingest.services.report import ImportReport, ValidationReport
from prf_ingest.services.summary import render_budget_summary_line, render_summary_line
from prf_ingest.services.template import write_template

"""CLI entrypoint: ``python -m prf_ingest.cli <command>``.

Commands:
    sheets FILE              list sheet names
    validate FILE            validate without writing
    import FILE              validate + import (PostgreSQL, or in-memory with --dry-run)
    reconcile-budgets FILE   dedupe / align / upsert the budget sheet
    template PATH            write the import template workbook
    init-db                  apply the database schema

Exit codes: 0 all good, 2 partial failure, 1 fatal (config, parse, database).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _dsn(cfg: PipelineConfig) -> str:
    """Resolve the connection string.

    接続情報の優先順位 (.env を最優先):
        1. `.env` で読み込まれた環境変数 (main() 冒頭で上書きロード済み)
        2. DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
        3. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        4. config/import.yml の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn_env = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn_env:
        return dsn_env
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: PipelineConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 cursor; StoreUnavailableError when the database cannot be reached."""
    conn = connect(_dsn(cfg))
    cur = None
    try:
        cur = conn.cursor()
        yield cur
    finally:
        if cur is not None:
            try:
                cur.close()
            except Exception:
                pass
        try:
            conn.close()
        except Exception:
            pass


@contextmanager
def _open_store(cfg: PipelineConfig, dry_run: bool) -> Iterator[tuple[RecordStore, str]]:
    # DB 接続を完全に無効化したい場合 DISABLE_DB_CONNECT=1 (テスト等)
    if dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        yield InMemoryStore(), "memory"
        return
    with _db_connection(cfg) as cur:
        yield PostgresStore(cur), "live"


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv (override=True: .env wins over the environment)."""
    try:
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
    except Exception as e:  # pragma: no cover
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="prf_ingest", description="PRF / budget workbook ingestion")
    p.add_argument("--config", type=Path, default=None, help="Config YAML (default: config/import.yml if present)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--request-sheet", default=None, help="Explicit request sheet name")
    p.add_argument("--budget-sheet", default=None, help="Explicit budget sheet name")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("sheets", help="List sheet names")
    s.add_argument("file", type=Path)

    v = sub.add_parser("validate", help="Validate a workbook without writing")
    v.add_argument("file", type=Path)
    v.add_argument("--report", type=Path, default=None, help="Write the report (.json or .csv)")
    v.add_argument("--json", action="store_true", help="Print the report as JSON")

    i = sub.add_parser("import", help="Validate and import a workbook")
    i.add_argument("file", type=Path)
    i.add_argument("--update-existing", action="store_true", help="Overwrite existing requests / allocations")
    i.add_argument("--no-skip-duplicates", action="store_true", help="Treat existing request numbers as failures")
    i.add_argument("--no-auto-create-coa", action="store_true", help="Do not create unknown cost codes")
    i.add_argument("--validate-only", action="store_true", help="Stop after validation")
    i.add_argument("--dedupe-items", action="store_true", help="Drop repeated item lines within a request")
    i.add_argument("--dry-run", action="store_true", help="Use an in-memory store instead of PostgreSQL")
    i.add_argument("--report", type=Path, default=None, help="Write the report (.json or .csv)")
    i.add_argument("--json", action="store_true", help="Print the report as JSON")

    r = sub.add_parser("reconcile-budgets", help="Dedupe and upsert budget allocations")
    r.add_argument("file", type=Path)
    r.add_argument("--dry-run", action="store_true", help="Use an in-memory store instead of PostgreSQL")
    r.add_argument("--json", action="store_true", help="Print the summary as JSON")

    t = sub.add_parser("template", help="Write the import template workbook")
    t.add_argument("path", type=Path)

    sub.add_parser("init-db", help="Create tables (idempotent)")
    return p.parse_args(argv)


def _options(args: argparse.Namespace, cfg: PipelineConfig) -> ImportOptions:
    d = cfg.defaults
    return ImportOptions(
        skip_duplicates=d.skip_duplicates and not args.no_skip_duplicates,
        update_existing=d.update_existing or args.update_existing,
        auto_create_coa=d.auto_create_coa and not args.no_auto_create_coa,
        validate_only=args.validate_only,
        dedupe_items=d.dedupe_items or args.dedupe_items,
    )


def _write_report(report: ImportReport | ValidationReport, path: Path | None) -> None:
    if path is None:
        return
    if path.suffix.lower() == ".csv":
        report.to_csv(path)
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report.to_json(), encoding="utf-8")


def _log_issues(error_log: ErrorLogBuffer, file_name: str, report: ImportReport | ValidationReport) -> None:
    sheet = report.request_sheet or ""
    error_log.extend_issues(file_name, sheet, report.errors)
    error_log.extend_issues(file_name, sheet, report.warnings)
    budget = report.budget
    if budget is not None:
        bsheet = report.budget_sheet or ""
        error_log.extend_issues(file_name, bsheet, budget.errors)
        error_log.extend_issues(file_name, bsheet, budget.warnings)


def _rejected(logger, error_log: ErrorLogBuffer, file_name: str, e: Exception) -> int:
    logger.error(f"parse: {e}")
    error_log.append(ErrorRecord.create(file_name, "<FILE_LEVEL>", -1, "PARSE_ERROR", str(e)))
    error_log.flush()
    print(json.dumps({"success": False, "state": "rejected_at_parse", "error": str(e)}, ensure_ascii=False))
    return EXIT_FATAL


def _read_file(logger, path: Path) -> bytes | None:
    if not path.exists():
        logger.error(f"file not found: {path}")
        return None
    return path.read_bytes()


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: 空リスト [] を渡されたときに sys.argv[1:] を読まないよう None のときのみ参照
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    if args.command == "template":
        path = write_template(args.path)
        logger.info(f"template written: {path}")
        return EXIT_SUCCESS_ALL

    if args.command == "init-db":
        try:
            with _db_connection(cfg) as cur:
                ensure_schema(cur)
        except StoreUnavailableError as e:
            logger.error(f"database: {e}")
            return EXIT_FATAL
        return EXIT_SUCCESS_ALL

    data = _read_file(logger, args.file)
    if data is None:
        return EXIT_FATAL
    file_name = args.file.name
    error_log = ErrorLogBuffer()
    started = time.perf_counter()

    if args.command == "sheets":
        try:
            print(json.dumps(list_sheets(data, file_name), ensure_ascii=False))
        except ParseError as e:
            return _rejected(logger, error_log, file_name, e)
        return EXIT_SUCCESS_ALL

    try:
        if args.command == "validate":
            report: ImportReport | ValidationReport = validate(
                data, args.request_sheet, args.budget_sheet, config=cfg, filename=file_name
            )
            mode = "validate"
        elif args.command == "import":
            with _open_store(cfg, args.dry_run) as (store, mode):
                report = import_workbook(
                    data,
                    _options(args, cfg),
                    store,
                    args.request_sheet,
                    args.budget_sheet,
                    config=cfg,
                    filename=file_name,
                    progress=True,
                )
        else:  # reconcile-budgets
            with _open_store(cfg, args.dry_run) as (store, mode):
                summary = reconcile_budgets(
                    data, store, config=cfg, budget_sheet=args.budget_sheet, filename=file_name, progress=True
                )
            error_log.extend_issues(file_name, summary.sheet or "", summary.errors)
            error_log.extend_issues(file_name, summary.sheet or "", summary.warnings)
            log_path = error_log.flush()
            if log_path is not None:
                logger.info(f"error log: {log_path}")
            if args.json:
                print(summary.to_json())
            log_summary(render_budget_summary_line(summary, time.perf_counter() - started)[len("SUMMARY "):])
            return EXIT_SUCCESS_ALL if summary.success else EXIT_PARTIAL_FAILURE
    except ParseError as e:
        return _rejected(logger, error_log, file_name, e)
    except StoreUnavailableError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    logger.info(
        f"mode={mode} state={report.state.value} errors={len(report.errors)} warnings={len(report.warnings)}"
    )
    _log_issues(error_log, file_name, report)
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    _write_report(report, args.report)
    if args.json:
        print(report.to_json())

    summary_line = render_summary_line(report, time.perf_counter() - started)
    # log_summary が "SUMMARY " を付けるので除去
    log_summary(summary_line[len("SUMMARY "):])

    return EXIT_SUCCESS_ALL if report.success else EXIT_PARTIAL_FAILURE


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
