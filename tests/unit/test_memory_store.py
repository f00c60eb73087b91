from __future__ import annotations

from datetime import date

import pytest

from prf_ingest.db.store import ConstraintViolation, InMemoryStore, StoreError
from prf_ingest.models.records import AllocationRecord, ItemRecord, RequestRecord


def _request(number="PRF-1", amount=100.0):
    return RequestRecord(
        request_number=number,
        submit_date=date(2024, 1, 5),
        submitter="A.Doe",
        description="Laptop",
        requested_amount=amount,
    )


def _item(name="Pen"):
    return ItemRecord(item_name=name, description=None, quantity=1, unit_price=2, total_price=2, specifications="{}")


def test_seeded_coa_codes():
    store = InMemoryStore(["C-1", "C-2"])
    assert store.list_coa_codes() == {"C-1", "C-2"}
    assert store.find_coa_by_code("C-2") is not None
    assert store.find_coa_by_code("c-2") is None


def test_duplicate_coa_is_constraint_violation():
    store = InMemoryStore(["C-1"])
    with pytest.raises(ConstraintViolation):
        store.create_coa("C-1", "x", "General")


def test_request_lifecycle():
    store = InMemoryStore()
    rid = store.create_request(_request())
    assert store.find_request("PRF-1") == rid
    assert store.replace_items(rid, [_item("a"), _item("b")]) == 2
    store.update_request(rid, _request(amount=250.0))
    assert store.requests[rid].requested_amount == 250.0
    assert store.replace_items(rid, [_item("c")]) == 1
    assert [i.item_name for i in store.items[rid]] == ["c"]


def test_request_number_unique():
    store = InMemoryStore()
    store.create_request(_request())
    with pytest.raises(ConstraintViolation):
        store.create_request(_request())


def test_unknown_ids_are_store_errors():
    store = InMemoryStore()
    with pytest.raises(StoreError):
        store.update_request(99, _request())
    with pytest.raises(StoreError):
        store.replace_items(99, [])
    with pytest.raises(StoreError):
        store.update_allocation(99, AllocationRecord(coa_id=1, fiscal_year=2024, allocated_amount=1))


def test_transaction_rolls_back_everything_on_error():
    store = InMemoryStore()
    with pytest.raises(StoreError):
        with store.transaction():
            rid = store.create_request(_request())
            store.replace_items(rid, [_item()])
            store.update_request(rid + 100, _request())
    assert store.requests == {}
    assert store.items == {}
    assert store.rollbacks == 1
    assert store.commits == 0
    # ID 採番も巻き戻る
    assert store.create_request(_request()) == rid


def test_transaction_commit_counts():
    store = InMemoryStore()
    with store.transaction():
        store.create_request(_request())
    assert store.commits == 1
    assert store.find_request("PRF-1") is not None


def test_allocation_unique_per_coa_and_year():
    store = InMemoryStore(["C-1"])
    cid = store.find_coa_by_code("C-1")
    aid = store.create_allocation(AllocationRecord(coa_id=cid, fiscal_year=2024, allocated_amount=100))
    store.create_allocation(AllocationRecord(coa_id=cid, fiscal_year=2025, allocated_amount=100))
    with pytest.raises(ConstraintViolation):
        store.create_allocation(AllocationRecord(coa_id=cid, fiscal_year=2024, allocated_amount=5))
    assert store.find_allocation(cid, 2024) == aid


def test_update_allocation_keeps_coa_and_year():
    store = InMemoryStore(["C-1"])
    cid = store.find_coa_by_code("C-1")
    aid = store.create_allocation(AllocationRecord(coa_id=cid, fiscal_year=2024, allocated_amount=100))
    store.update_allocation(aid, AllocationRecord(coa_id=999, fiscal_year=1999, allocated_amount=300, remaining_amount=50))
    rec = store.allocations[aid]
    assert (rec.coa_id, rec.fiscal_year, rec.allocated_amount, rec.remaining_amount) == (cid, 2024, 300, 50)
