"""
orders.py - Order sequencing and order persistence

Order identifiers look like `2024-05-01-003`: the UTC calendar date of
placement followed by a per-date counter, zero-padded to three digits.

Sequencing Overview:
1. Increment the `order:<date>` counter atomically (one findAndModify with
   upsert), so concurrent placements on the same date always receive
   different values.
2. Insert the order. The unique index on `orderID` is the backstop: if a row
   with the same id already exists (rows written before the counter existed,
   or a counter that was lost), the counter is raised past the highest stored
   sequence for that date and a fresh id is reserved.
3. The loop is bounded by `ORDER_ID_MAX_ATTEMPTS`. An id whose insert failed
   is never handed out again.
"""

from datetime import datetime, timezone
from typing import Callable, List, NamedTuple, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import ORDERS, create_document, doc_to_dict, next_sequence, raise_sequence, to_decimal128
from errors import InvalidStatus, OrderNotFound, PersistenceError, PlacementError, SequencingError
from logging_config import get_logger
from schemas import OrderIn, OrderStatus

log = get_logger(__name__)

MONEY_FIELDS = ("subtotal", "deliveryFee", "discount", "total")
VALID_STATUSES = tuple(s.value for s in OrderStatus)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_order_id(order_date: str, seq: int) -> str:
    return f"{order_date}-{seq:03d}"


def counter_name(order_date: str) -> str:
    return f"order:{order_date}"


class ReservedOrderID(NamedTuple):
    order_date: str
    seq: int
    order_id: str


class OrderSequencer:
    """
    Hands out the next order identifier for the current date.

    Args:
        db (Database): MongoDB handle.
        clock (Callable[[], datetime]): Source of "now"; the server clock in
            UTC by default. The date is never taken from the client.
    """

    def __init__(self, db: Database, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def today(self) -> str:
        return self.clock().date().isoformat()

    def next_order_id(self) -> ReservedOrderID:
        order_date = self.today()
        try:
            seq = next_sequence(self.db, counter_name(order_date))
        except PyMongoError as e:
            log.exception("Order counter for %s could not be incremented", order_date)
            raise SequencingError() from e
        return ReservedOrderID(order_date, seq, format_order_id(order_date, seq))

    def highest_stored_seq(self, order_date: str) -> int:
        orders = self.db[ORDERS]
        latest = orders.find_one(
            {"orderDate": order_date, "orderSeq": {"$ne": None}},
            {"orderSeq": 1},
            sort=[("orderSeq", DESCENDING)],
        )
        highest = int(latest["orderSeq"]) if latest else 0

        # Legacy rows only carry the textual id
        legacy = orders.find({"orderDate": order_date, "orderSeq": None}, {"orderID": 1})
        for row in legacy:
            try:
                highest = max(highest, int(str(row.get("orderID", "")).rsplit("-", 1)[-1]))
            except ValueError:
                continue
        return highest

    def resync(self, order_date: str) -> int:
        """Raises the date's counter to the highest sequence already stored; returns the counter value."""
        try:
            floor = max(self.highest_stored_seq(order_date), self.count_for_date(order_date))
            return raise_sequence(self.db, counter_name(order_date), floor)
        except PyMongoError as e:
            log.exception("Order counter for %s could not be resynchronised", order_date)
            raise SequencingError() from e

    def count_for_date(self, order_date: str) -> int:
        return self.db[ORDERS].count_documents({"orderDate": order_date})


class OrderStore:
    def __init__(self, db: Database, sequencer: Optional[OrderSequencer] = None, max_attempts: int = 5):
        self.db = db
        self.collection = db[ORDERS]
        self.sequencer = sequencer or OrderSequencer(db)
        self.max_attempts = max(1, max_attempts)

    def place(self, order: OrderIn) -> str:
        """
        Stores a new order with status Pending and returns its orderID.

        Raises:
            SequencingError: If no identifier could be reserved; nothing is written.
            PlacementError: If the insert failed or every attempt collided.
        """
        data = order.model_dump()
        for name in MONEY_FIELDS:
            data[name] = to_decimal128(data[name])
        data["order_status"] = OrderStatus.PENDING.value

        for attempt in range(1, self.max_attempts + 1):
            reserved = self.sequencer.next_order_id()
            log_prefix = f"[Order: {reserved.order_id}]"
            row = dict(
                data,
                orderID=reserved.order_id,
                orderDate=reserved.order_date,
                orderSeq=reserved.seq,
            )
            try:
                create_document(self.db, ORDERS, row)
            except DuplicateKeyError:
                log.warning(f"{log_prefix} Identifier already taken (attempt {attempt}/{self.max_attempts}), renumbering.")
                self.sequencer.resync(reserved.order_date)
                continue
            except PyMongoError as e:
                log.error(f"{log_prefix} Insert failed: {e}")
                raise PlacementError() from e

            log.info(f"{log_prefix} Order placed for {order.firstName} {order.lastName}, total {order.total}.")
            return reserved.order_id

        log.critical(f"Could not place order after {self.max_attempts} attempts, every identifier collided.")
        raise PlacementError()

    def list(self) -> List[dict]:
        try:
            docs = self.collection.find().sort([("orderDate", ASCENDING), ("orderSeq", ASCENDING)])
            return [doc_to_dict(d) for d in docs]
        except PyMongoError:
            log.exception("Listing orders failed")
            raise PersistenceError("Failed to fetch order details")

    def update_status(self, order_id: str, status: Optional[str]) -> int:
        """
        Moves an order to another status.

        Args:
            order_id (str): Exact orderID, compared as a string.
            status (str): One of Pending, Processing, Completed.

        Returns:
            int: Number of matched orders (always 1 on success).
        """
        if status not in VALID_STATUSES:
            raise InvalidStatus()

        try:
            result = self.collection.update_one(
                {"orderID": order_id},
                {"$set": {"order_status": status, "updated_at": utc_now()}},
            )
        except PyMongoError:
            log.exception(f"[Order: {order_id}] Status update to {status} failed")
            raise PersistenceError("Error updating order status")

        if result.matched_count == 0:
            raise OrderNotFound()
        log.info(f"[Order: {order_id}] Status set to {status}.")
        return result.matched_count
