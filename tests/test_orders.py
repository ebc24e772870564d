from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pymongo.errors import PyMongoError

import orders as orders_module
from database import ORDERS
from errors import InvalidStatus, OrderNotFound, PlacementError, SequencingError
from orders import OrderSequencer, OrderStore, format_order_id
from schemas import OrderIn


@pytest.fixture
def store(db, clock):
    return OrderStore(db, OrderSequencer(db, clock=clock))


@pytest.fixture
def order(order_payload):
    return OrderIn(**order_payload)


def seed_legacy_order(db, order_id):
    db[ORDERS].insert_one({
        "orderID": order_id,
        "orderDate": order_id[:10],
        "firstName": "Legacy",
        "order_status": "Completed",
    })


def test_format_order_id():
    assert format_order_id("2024-05-01", 7) == "2024-05-01-007"
    assert format_order_id("2024-05-01", 1000) == "2024-05-01-1000"


def test_sequential_orders_have_no_gaps(store, order):
    placed = [store.place(order) for _ in range(5)]
    assert placed == [f"2024-05-01-{n:03d}" for n in range(1, 6)]


def test_placed_order_is_pending_with_decimal_amounts(store, order, db):
    order_id = store.place(order)
    row = db[ORDERS].find_one({"orderID": order_id})
    assert row["order_status"] == "Pending"
    assert row["orderDate"] == "2024-05-01"
    assert row["orderSeq"] == 1
    assert row["total"].to_decimal() == Decimal("95.45")


def test_counter_restarts_each_day(store, order, clock):
    assert store.place(order) == "2024-05-01-001"
    assert store.place(order) == "2024-05-01-002"
    clock.now = datetime(2024, 5, 2, 0, 0, 1, tzinfo=timezone.utc)
    assert store.place(order) == "2024-05-02-001"


def test_third_order_of_the_day_after_two_legacy_rows(store, order, db):
    seed_legacy_order(db, "2024-05-01-001")
    seed_legacy_order(db, "2024-05-01-002")

    assert store.place(order) == "2024-05-01-003"
    assert db[ORDERS].count_documents({"orderDate": "2024-05-01"}) == 3


def test_reservations_taken_before_insert_are_distinct(db, clock):
    sequencer = OrderSequencer(db, clock=clock)
    first = sequencer.next_order_id()
    second = sequencer.next_order_id()
    assert first.order_id != second.order_id
    assert (first.seq, second.seq) == (1, 2)


def test_interleaved_placements_get_distinct_ids(store, order, monkeypatch):
    real_create = orders_module.create_document
    state = {"interleaved": False}
    inner = []

    def create_with_interleaving(db, collection_name, row):
        # A second checkout lands between id reservation and insert
        if not state["interleaved"]:
            state["interleaved"] = True
            inner.append(store.place(order))
        return real_create(db, collection_name, row)

    monkeypatch.setattr(orders_module, "create_document", create_with_interleaving)
    outer = store.place(order)

    assert {outer, inner[0]} == {"2024-05-01-001", "2024-05-01-002"}


def test_lost_counter_is_renumbered_instead_of_duplicated(store, order, db):
    assert store.place(order) == "2024-05-01-001"
    assert store.place(order) == "2024-05-01-002"
    db["counters"].delete_many({})

    assert store.place(order) == "2024-05-01-003"
    ids = [row["orderID"] for row in db[ORDERS].find()]
    assert len(ids) == len(set(ids)) == 3


def test_retries_are_bounded(db, clock, order):
    seed_legacy_order(db, "2024-05-01-001")
    store = OrderStore(db, OrderSequencer(db, clock=clock), max_attempts=1)

    with pytest.raises(PlacementError):
        store.place(order)
    assert db[ORDERS].count_documents({}) == 1


def test_highest_stored_seq_scans_every_legacy_row(db, clock):
    for order_id in ("2024-05-01-001", "2024-05-01-007", "2024-05-01-004", "2024-04-30-020"):
        seed_legacy_order(db, order_id)
    assert OrderSequencer(db, clock=clock).highest_stored_seq("2024-05-01") == 7


def test_gapped_legacy_ids_are_skipped_in_one_resync(db, clock, order):
    for order_id in ("2024-05-01-001", "2024-05-01-007", "2024-05-01-004"):
        seed_legacy_order(db, order_id)
    store = OrderStore(db, OrderSequencer(db, clock=clock), max_attempts=2)

    assert store.place(order) == "2024-05-01-008"


def test_sequencing_failure_writes_nothing(store, order, db, monkeypatch):
    def broken_counter(db, name):
        raise PyMongoError("counter unavailable")

    monkeypatch.setattr(orders_module, "next_sequence", broken_counter)

    with pytest.raises(SequencingError):
        store.place(order)
    assert db[ORDERS].count_documents({}) == 0


def test_insert_failure_raises_placement_error(store, order, monkeypatch):
    def broken_insert(db, collection_name, row):
        raise PyMongoError("write failed")

    monkeypatch.setattr(orders_module, "create_document", broken_insert)

    with pytest.raises(PlacementError):
        store.place(order)


def test_failed_id_is_not_reused(store, order, monkeypatch):
    real_create = orders_module.create_document
    calls = {"n": 0}

    def fail_first(db, collection_name, row):
        calls["n"] += 1
        if calls["n"] == 1:
            raise PyMongoError("write failed")
        return real_create(db, collection_name, row)

    monkeypatch.setattr(orders_module, "create_document", fail_first)
    with pytest.raises(PlacementError):
        store.place(order)
    assert store.place(order) == "2024-05-01-002"


def test_list_is_ordered_by_date_then_sequence(store, order, clock):
    clock.now = datetime(2024, 5, 2, 9, 0, tzinfo=timezone.utc)
    store.place(order)
    clock.now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    store.place(order)
    store.place(order)

    assert [o["orderID"] for o in store.list()] == ["2024-05-01-001", "2024-05-01-002", "2024-05-02-001"]


def test_update_status(store, order, db):
    order_id = store.place(order)
    assert store.update_status(order_id, "Processing") == 1
    assert db[ORDERS].find_one({"orderID": order_id})["order_status"] == "Processing"


def test_invalid_status_leaves_row_untouched(store, order, db):
    order_id = store.place(order)
    with pytest.raises(InvalidStatus):
        store.update_status(order_id, "Shipped")
    with pytest.raises(InvalidStatus):
        store.update_status(order_id, None)
    assert db[ORDERS].find_one({"orderID": order_id})["order_status"] == "Pending"


def test_status_update_matches_id_as_string(store, order):
    store.place(order)
    with pytest.raises(OrderNotFound):
        store.update_status("2024-05-01-1", "Completed")
    with pytest.raises(OrderNotFound):
        store.update_status("2099-01-01-001", "Completed")
