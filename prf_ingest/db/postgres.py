from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..models.records import AllocationRecord, ItemRecord, RequestRecord
from .batch_insert import BatchInsertError, batch_insert
from .store import ConstraintViolation, StoreError, StoreUnavailableError

"""PostgreSQL record store (psycopg2).

Transactions are explicit: ``transaction()`` issues BEGIN / COMMIT and
ROLLBACK on failure, one unit of work per request aggregate or budget row.
The connection is expected to run with ``autocommit = False``.

psycopg2 errors are translated at this boundary:
- IntegrityError -> ConstraintViolation
- InterfaceError (connection gone) -> StoreUnavailableError
- any other psycopg2.Error -> StoreError
"""

try:  # pragma: no cover - optional until psycopg2 present at runtime
    import psycopg2
except Exception:  # pragma: no cover
    psycopg2 = None  # type: ignore

__all__ = [
    "SCHEMA_PATH",
    "PostgresStore",
    "connect",
    "ensure_schema",
]

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

ITEM_COLUMNS = (
    "request_id",
    "item_name",
    "description",
    "quantity",
    "unit_price",
    "total_price",
    "specifications",
)


def _translate(e: Exception) -> Exception:
    if psycopg2 is not None:
        if isinstance(e, psycopg2.IntegrityError):
            return ConstraintViolation(str(e).strip())
        if isinstance(e, psycopg2.InterfaceError):
            return StoreUnavailableError(str(e).strip())
    return StoreError(str(e).strip())


def connect(dsn: str) -> Any:
    """Open a psycopg2 connection with explicit transaction boundaries."""
    if psycopg2 is None:
        raise StoreUnavailableError("psycopg2 not available")
    try:
        conn = psycopg2.connect(dsn)
    except psycopg2.Error as e:
        raise StoreUnavailableError(f"cannot connect to database: {e}".strip()) from e
    conn.autocommit = False  # BEGIN/COMMIT は PostgresStore 側で明示
    return conn


def ensure_schema(cursor: Any, schema_path: Path = SCHEMA_PATH) -> None:
    """Apply the DDL in schema.sql (idempotent: CREATE ... IF NOT EXISTS)."""
    ddl = schema_path.read_text(encoding="utf-8")
    store = PostgresStore(cursor)
    with store.transaction():
        store._exec(ddl)
    logger.info("schema applied from %s", schema_path.name)


class PostgresStore:
    """RecordStore backed by a psycopg2 cursor."""

    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor
        self._in_transaction = False

    def _exec(self, sql: str, params: Sequence[Any] | None = None) -> None:
        try:
            self.cursor.execute(sql, params)
        except Exception as e:
            if psycopg2 is not None and not isinstance(e, psycopg2.Error):
                raise
            if not self._in_transaction:
                # autocommit=False: 失敗した単発 SELECT が暗黙トランザクションを aborted のまま残さないよう戻す
                self._rollback()
            raise _translate(e) from e

    def _rollback(self) -> None:
        try:
            self.cursor.execute("ROLLBACK")
        except Exception:
            # 元の例外を優先 (rollback 失敗はログのみ)
            logger.debug("rollback failed", exc_info=True)

    def _fetch_id(self) -> int | None:
        row = self.cursor.fetchone()
        return int(row[0]) if row else None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._exec("BEGIN")
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._rollback()
            raise
        else:
            self._exec("COMMIT")
        finally:
            self._in_transaction = False

    # --- chart of accounts ---
    def list_coa_codes(self) -> set[str]:
        self._exec("SELECT code FROM chart_of_accounts")
        return {str(r[0]) for r in self.cursor.fetchall()}

    def find_coa_by_code(self, code: str) -> int | None:
        self._exec("SELECT id FROM chart_of_accounts WHERE code = %s", (code,))
        return self._fetch_id()

    def create_coa(self, code: str, name: str, category: str) -> int:
        self._exec(
            "INSERT INTO chart_of_accounts (code, name, category, is_active) VALUES (%s, %s, %s, TRUE) RETURNING id",
            (code, name, category),
        )
        cid = self._fetch_id()
        if cid is None:
            raise StoreError(f"COA insert for '{code}' returned no id")
        return cid

    # --- purchase requests ---
    def find_request(self, request_number: str) -> int | None:
        self._exec("SELECT id FROM purchase_requests WHERE request_number = %s", (request_number,))
        return self._fetch_id()

    @staticmethod
    def _request_params(record: RequestRecord) -> tuple[Any, ...]:
        return (
            record.submit_date,
            record.submitter,
            record.description,
            record.requested_amount,
            record.summary,
            record.department,
            record.required_for,
            record.cost_code,
            record.coa_id,
            record.budget_year,
            record.notes,
        )

    def create_request(self, record: RequestRecord) -> int:
        self._exec(
            "INSERT INTO purchase_requests (request_number, submit_date, submitter, description,"
            " requested_amount, summary, department, required_for, cost_code, coa_id, budget_year, notes)"
            " VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s) RETURNING id",
            (record.request_number, *self._request_params(record)),
        )
        rid = self._fetch_id()
        if rid is None:
            raise StoreError(f"request insert for '{record.request_number}' returned no id")
        return rid

    def update_request(self, request_id: int, record: RequestRecord) -> None:
        self._exec(
            "UPDATE purchase_requests SET submit_date = %s, submitter = %s, description = %s,"
            " requested_amount = %s, summary = %s, department = %s, required_for = %s, cost_code = %s,"
            " coa_id = %s, budget_year = %s, notes = %s, updated_at = now() WHERE id = %s",
            (*self._request_params(record), request_id),
        )
        if self.cursor.rowcount == 0:
            raise StoreError(f"request id {request_id} not found")

    def replace_items(self, request_id: int, items: Sequence[ItemRecord]) -> int:
        self._exec("DELETE FROM purchase_request_items WHERE request_id = %s", (request_id,))
        rows = [
            (request_id, i.item_name, i.description, i.quantity, i.unit_price, i.total_price, i.specifications)
            for i in items
        ]
        try:
            result = batch_insert(self.cursor, "purchase_request_items", ITEM_COLUMNS, rows)
        except BatchInsertError as e:
            cause = e.__cause__ if isinstance(e.__cause__, Exception) else e
            raise _translate(cause) from e
        return result.inserted_rows

    # --- budget allocations ---
    def find_allocation(self, coa_id: int, fiscal_year: int) -> int | None:
        self._exec(
            "SELECT id FROM budget_allocations WHERE coa_id = %s AND fiscal_year = %s", (coa_id, fiscal_year)
        )
        return self._fetch_id()

    def create_allocation(self, record: AllocationRecord) -> int:
        self._exec(
            "INSERT INTO budget_allocations (coa_id, fiscal_year, allocated_amount, remaining_amount, category)"
            " VALUES (%s, %s, %s, %s, %s) RETURNING id",
            (record.coa_id, record.fiscal_year, record.allocated_amount, record.remaining_amount, record.category),
        )
        aid = self._fetch_id()
        if aid is None:
            raise StoreError(f"allocation insert for COA {record.coa_id} / FY{record.fiscal_year} returned no id")
        return aid

    def update_allocation(self, allocation_id: int, record: AllocationRecord) -> None:
        self._exec(
            "UPDATE budget_allocations SET allocated_amount = %s, remaining_amount = %s, category = %s,"
            " updated_at = now() WHERE id = %s",
            (record.allocated_amount, record.remaining_amount, record.category, allocation_id),
        )
        if self.cursor.rowcount == 0:
            raise StoreError(f"allocation id {allocation_id} not found")
