"""
database.py - MongoDB access helpers

The connection is created once by the app factory and stored on
`app.state.db`; nothing here keeps a module-level handle. Every helper takes
the `Database` it works on as its first argument.

Collections:
- prod_details:   products (see catalog.py)
- coupon_details: discount coupons (see coupons.py)
- order_details:  customer orders (see orders.py)
- counters:       named monotonic sequences `{_id: name, seq: int}`
- admin_login:    admin accounts for the login stub
"""

from datetime import datetime, timezone, date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.decimal128 import Decimal128
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from logging_config import get_logger

log = get_logger(__name__)

PRODUCTS = "prod_details"
COUPONS = "coupon_details"
ORDERS = "order_details"
COUNTERS = "counters"
ADMINS = "admin_login"


def connect(database_url: Optional[str], database_name: Optional[str]) -> Optional[Database]:
    """Returns a database handle, or None when the connection is not configured."""
    if not (database_url and database_name):
        log.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
        return None
    client = MongoClient(database_url, tz_aware=True)
    log.info("MongoDB client created for database %s", database_name)
    return client[database_name]


def ensure_indexes(db: Database):
    db[PRODUCTS].create_index([("prod_id", ASCENDING)], unique=True)
    db[PRODUCTS].create_index([("category", ASCENDING)])
    db[COUPONS].create_index([("coupon_id", ASCENDING)], unique=True)
    db[COUPONS].create_index([("coupon_code", ASCENDING)])
    # Backstop for the order sequencer: two placements can never share an id
    db[ORDERS].create_index([("orderID", ASCENDING)], unique=True)
    db[ORDERS].create_index([("orderDate", ASCENDING), ("orderSeq", ASCENDING)])
    db[ADMINS].create_index([("admin_name", ASCENDING)])


# ---------- Counters ----------

def next_sequence(db: Database, name: str) -> int:
    """Atomically increments the named counter and returns the new value (first call returns 1)."""
    doc = db[COUNTERS].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


def raise_sequence(db: Database, name: str, floor: int) -> int:
    """Moves the named counter up to at least `floor`; never moves it down."""
    doc = db[COUNTERS].find_one_and_update(
        {"_id": name},
        {"$max": {"seq": int(floor)}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


# ---------- Conversion ----------

def to_decimal128(value: Union[Decimal, int, float, str, None]) -> Optional[Decimal128]:
    if value is None:
        return None
    if isinstance(value, Decimal128):
        return value
    return Decimal128(Decimal(str(value)))


def doc_to_dict(doc: dict) -> dict:
    """Converts a stored document into plain JSON-friendly values and drops `_id`."""
    out = {}
    for k, v in doc.items():
        if k == "_id":
            continue
        if isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, Decimal128):
            out[k] = v.to_decimal()
        elif isinstance(v, (datetime, date)):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out


# ---------- Generic CRUD ----------

def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> dict:
    """Inserts one document with created_at/updated_at timestamps and returns what was stored."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    db[collection_name].insert_one(data_dict)
    return data_dict


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    projection: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
