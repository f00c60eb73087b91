from __future__ import annotations

import copy
from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, replace
from typing import Protocol

from ..models.records import AllocationRecord, ItemRecord, RequestRecord

"""Record store interface and the in-memory implementation.

The pipeline talks to persistence only through RecordStore. Every write of
one request aggregate (or one budget row) happens inside ``transaction()``:
an exception raised inside the block rolls back everything written in it.

Errors:
- StoreError: a single unit of work failed (the batch continues)
- ConstraintViolation: uniqueness violated (request number, or COA + fiscal year)
- StoreUnavailableError: the store cannot be reached at all (propagates)
"""

__all__ = [
    "StoreError",
    "ConstraintViolation",
    "StoreUnavailableError",
    "CoaEntry",
    "RecordStore",
    "InMemoryStore",
]


class StoreError(Exception):
    pass


class ConstraintViolation(StoreError):
    pass


class StoreUnavailableError(Exception):
    pass


@dataclass(frozen=True)
class CoaEntry:
    id: int
    code: str
    name: str
    category: str
    is_active: bool = True


class RecordStore(Protocol):
    def transaction(self) -> AbstractContextManager[None]: ...

    def list_coa_codes(self) -> set[str]: ...

    def find_coa_by_code(self, code: str) -> int | None: ...

    def create_coa(self, code: str, name: str, category: str) -> int: ...

    def find_request(self, request_number: str) -> int | None: ...

    def create_request(self, record: RequestRecord) -> int: ...

    def update_request(self, request_id: int, record: RequestRecord) -> None: ...

    def replace_items(self, request_id: int, items: Sequence[ItemRecord]) -> int: ...

    def find_allocation(self, coa_id: int, fiscal_year: int) -> int | None: ...

    def create_allocation(self, record: AllocationRecord) -> int: ...

    def update_allocation(self, allocation_id: int, record: AllocationRecord) -> None: ...


class InMemoryStore:
    """Dict-backed RecordStore used for dry runs and tests.

    ``transaction()`` snapshots the whole state and restores it when the
    block raises, which gives the same all-or-nothing unit of work as the
    PostgreSQL store.
    """

    def __init__(self, coa_codes: Sequence[str] = ()) -> None:
        self.coas: dict[int, CoaEntry] = {}
        self.requests: dict[int, RequestRecord] = {}
        self.items: dict[int, list[ItemRecord]] = {}
        self.allocations: dict[int, AllocationRecord] = {}
        self._next_id = 1
        self.commits = 0
        self.rollbacks = 0
        for code in coa_codes:
            self.create_coa(code, code, "General")

    def _new_id(self) -> int:
        nid = self._next_id
        self._next_id += 1
        return nid

    def _state(self) -> tuple:
        return (self.coas, self.requests, self.items, self.allocations, self._next_id)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = copy.deepcopy(self._state())
        try:
            yield
        except BaseException:
            self.coas, self.requests, self.items, self.allocations, self._next_id = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    # --- chart of accounts ---
    def list_coa_codes(self) -> set[str]:
        return {c.code for c in self.coas.values()}

    def find_coa_by_code(self, code: str) -> int | None:
        for coa in self.coas.values():
            if coa.code == code:
                return coa.id
        return None

    def create_coa(self, code: str, name: str, category: str) -> int:
        if self.find_coa_by_code(code) is not None:
            raise ConstraintViolation(f"duplicate COA code '{code}'")
        cid = self._new_id()
        self.coas[cid] = CoaEntry(id=cid, code=code, name=name, category=category)
        return cid

    # --- purchase requests ---
    def find_request(self, request_number: str) -> int | None:
        for rid, rec in self.requests.items():
            if rec.request_number == request_number:
                return rid
        return None

    def create_request(self, record: RequestRecord) -> int:
        if self.find_request(record.request_number) is not None:
            raise ConstraintViolation(f"duplicate request number '{record.request_number}'")
        rid = self._new_id()
        self.requests[rid] = record
        self.items[rid] = []
        return rid

    def update_request(self, request_id: int, record: RequestRecord) -> None:
        if request_id not in self.requests:
            raise StoreError(f"request id {request_id} not found")
        self.requests[request_id] = record

    def replace_items(self, request_id: int, items: Sequence[ItemRecord]) -> int:
        if request_id not in self.requests:
            raise StoreError(f"request id {request_id} not found")
        self.items[request_id] = list(items)
        return len(items)

    # --- budget allocations ---
    def find_allocation(self, coa_id: int, fiscal_year: int) -> int | None:
        for aid, rec in self.allocations.items():
            if rec.coa_id == coa_id and rec.fiscal_year == fiscal_year:
                return aid
        return None

    def create_allocation(self, record: AllocationRecord) -> int:
        if self.find_allocation(record.coa_id, record.fiscal_year) is not None:
            raise ConstraintViolation(f"duplicate allocation for COA {record.coa_id} / FY{record.fiscal_year}")
        aid = self._new_id()
        self.allocations[aid] = record
        return aid

    def update_allocation(self, allocation_id: int, record: AllocationRecord) -> None:
        current = self.allocations.get(allocation_id)
        if current is None:
            raise StoreError(f"allocation id {allocation_id} not found")
        # 行き先 (COA, 年度) は変えない
        self.allocations[allocation_id] = replace(record, coa_id=current.coa_id, fiscal_year=current.fiscal_year)
