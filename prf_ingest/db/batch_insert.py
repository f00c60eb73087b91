from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

"""DB batch insert.

psycopg2.extras.execute_values によるバッチ INSERT (item 行の一括投入用)。
RETURNING 指定時は挿入行の id を返す。
"""

try:  # pragma: no cover - optional until psycopg2 present at runtime
    import psycopg2
    from psycopg2.extras import execute_values
except Exception:  # pragma: no cover
    psycopg2 = None  # type: ignore
    execute_values = None  # type: ignore

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "batch_insert",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_ids: list[int] | None = None


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: bool = False,
    page_size: int = 1000,
) -> InsertResult:
    """Perform batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: 対象テーブル名 (固定値のみ渡す想定)
    columns: 挿入列
    rows: 行シーケンス
    returning: True の場合 RETURNING id を付与して id を回収
    page_size: execute_values の page_size

    Raises
    ------
    BatchInsertError: psycopg2 unavailable or execute_values failed. The
        original psycopg2 error is kept as ``__cause__`` so callers can tell
        integrity errors apart.
    """
    if execute_values is None:
        raise BatchInsertError("psycopg2 not available")

    rows_list = [tuple(r) for r in rows]
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_ids=[] if returning else None)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if returning:
        sql += " RETURNING id"

    try:
        returned = execute_values(cursor, sql, rows_list, page_size=page_size, fetch=returning)
    except Exception as e:
        raise BatchInsertError(str(e)) from e

    ids = [int(r[0]) for r in returned] if returning and returned is not None else None
    return InsertResult(inserted_rows=len(rows_list), returned_ids=ids)
