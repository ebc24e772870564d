"""
catalog.py - Product catalog store

Products mix fixed scalar columns with three schema-less variant fields
(`sub_category`, `color_variations`, `other_variations`). The variant fields
are stored as JSON text in their own document fields so that whatever the
admin UI sends comes back exactly as sent; an absent value is stored as
null and stays distinguishable from an empty list or object.

The image reference is a bare filename owned by assets.AssetManager. This
store never touches files: `update` and `delete` hand back the filename that
stopped being referenced and the caller schedules its reclaim.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, List, NamedTuple, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import UPDATE_MISSING_IGNORE, UPDATE_MISSING_NOT_FOUND
from database import PRODUCTS, create_document, doc_to_dict, get_documents, next_sequence, to_decimal128
from errors import MissingFields, NoMatch, PersistenceError, ProductNotFound, UpdateFailed, ValidationError
from logging_config import get_logger
from schemas import ProductFields

log = get_logger(__name__)

REQUIRED_FIELDS = ("prod_name", "prod_qty", "new_price", "old_price")
VARIANT_FIELDS = ("sub_category", "color_variations", "other_variations")
MONEY_FIELDS = ("new_price", "old_price")
SEARCH_PROJECTION = {
    "_id": 0,
    "prod_id": 1,
    "prod_name": 1,
    "prod_image": 1,
    "prod_qty": 1,
    "new_price": 1,
    "old_price": 1,
}
PRODUCT_ID_COUNTER = "prod_id"


# ---------- Variant codec ----------

def _encode_default(value):
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _check_lossless(value: Any):
    if isinstance(value, tuple):
        raise ValidationError("Variant data is not JSON-compatible: tuples would come back as lists")
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"Variant data is not JSON-compatible: key {key!r} is not a string")
            _check_lossless(item)
    elif isinstance(value, (list, set, frozenset)):
        for item in value:
            _check_lossless(item)


def encode_variant(value: Any) -> Optional[str]:
    """
    Serializes a variant structure for storage.

    None means "absent" and is stored as null; every other value, including
    an empty list or dict, becomes JSON text. Sets are stored as sorted lists.

    Raises:
        ValidationError: If the value cannot be represented as JSON, or would
            not decode to an equal value (non-string keys, tuples).
    """
    if value is None:
        return None
    _check_lossless(value)
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False, default=_encode_default)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Variant data is not JSON-compatible: {e}")


def decode_variant(text: Optional[str]) -> Any:
    if text is None:
        return None
    if not isinstance(text, str):
        # Already a native structure
        return text
    try:
        return json.loads(text)
    except ValueError:
        # Rows written before the JSON encoding hold plain text
        log.warning("Stored variant value is not JSON, returning it as text: %r", text[:80])
        return text


def parse_variant_input(raw: Optional[str]) -> Any:
    """
    Interprets a variant field as it arrives in a multipart form.

    Empty or missing input is absent. Text holding a JSON array or object is
    that structure; anything else, including JSON scalars such as `2024`,
    `true` or `null`, is kept as the plain string that was sent.
    """
    if raw is None:
        return None
    stripped = raw.strip()
    if not stripped:
        return None
    try:
        parsed = json.loads(stripped)
    except ValueError:
        return raw
    if isinstance(parsed, (list, dict)):
        return parsed
    return raw


# ---------- Store ----------

class ProductUpdate(NamedTuple):
    matched: bool
    previous_image: Optional[str]


def _has_sub_category(decoded: Any, wanted: str) -> bool:
    if isinstance(decoded, (list, tuple)):
        return wanted in decoded
    return decoded == wanted


class CatalogStore:
    """
    Persists products in the "prod_details" collection.

    Args:
        db (Database): MongoDB handle.
        update_missing (str): "ignore" reports an update of an unknown id as a
            success with nothing matched, "not_found" raises ProductNotFound.
    """

    def __init__(self, db: Database, update_missing: str = UPDATE_MISSING_IGNORE):
        self.db = db
        self.collection = db[PRODUCTS]
        self.update_missing = update_missing

    def _stored_fields(self, fields: ProductFields) -> dict:
        data = fields.model_dump()
        for name in MONEY_FIELDS:
            data[name] = to_decimal128(data[name])
        for name in VARIANT_FIELDS:
            data[name] = encode_variant(data[name])
        return data

    def _to_product(self, doc: dict) -> dict:
        product = doc_to_dict(doc)
        for name in VARIANT_FIELDS:
            if name in product:
                product[name] = decode_variant(product[name])
        return product

    def add(self, fields: ProductFields, image: Optional[str] = None) -> int:
        """
        Creates a product and returns its new `prod_id`.

        Raises:
            MissingFields: If name, quantity, new price or old price is missing.
            PersistenceError: If the insert fails.
        """
        missing = [name for name in REQUIRED_FIELDS if getattr(fields, name) in (None, "")]
        if missing:
            log.error("Missing required fields: %s", missing)
            raise MissingFields(missing, "Missing required product fields")

        data = self._stored_fields(fields)
        try:
            data["prod_id"] = next_sequence(self.db, PRODUCT_ID_COUNTER)
            data["prod_image"] = image
            create_document(self.db, PRODUCTS, data)
        except PyMongoError:
            log.exception("Error adding product %r", fields.prod_name)
            raise PersistenceError("Failed to add product")

        log.info("Product %s added (%s)", data["prod_id"], fields.prod_name)
        return data["prod_id"]

    def update(self, prod_id: int, fields: ProductFields, image: Optional[str] = None) -> ProductUpdate:
        """
        Rewrites every scalar and variant field of a product in one round trip.

        The image reference changes only when `image` is given; in that case
        the returned `previous_image` is the filename that was replaced.
        """
        changes = self._stored_fields(fields)
        changes["updated_at"] = datetime.now(timezone.utc)
        if image is not None:
            changes["prod_image"] = image

        try:
            before = self.collection.find_one_and_update(
                {"prod_id": prod_id},
                {"$set": changes},
                projection={"_id": 0, "prod_image": 1},
                return_document=ReturnDocument.BEFORE,
            )
        except PyMongoError:
            log.exception("Error updating product %s", prod_id)
            raise UpdateFailed()

        if before is None:
            log.warning("Update of unknown product %s matched nothing", prod_id)
            if self.update_missing == UPDATE_MISSING_NOT_FOUND:
                raise ProductNotFound()
            return ProductUpdate(matched=False, previous_image=None)

        previous = before.get("prod_image") if image is not None else None
        if previous == image:
            previous = None
        return ProductUpdate(matched=True, previous_image=previous)

    def delete(self, prod_id: int) -> dict:
        """Removes a product and returns it; the caller reclaims its `prod_image`."""
        try:
            removed = self.collection.find_one_and_delete({"prod_id": prod_id})
        except PyMongoError:
            log.exception("Error deleting product %s", prod_id)
            raise PersistenceError("Failed to delete product")
        if removed is None:
            raise ProductNotFound()
        log.info("Product %s deleted", prod_id)
        return self._to_product(removed)

    def get(self, prod_id: int) -> dict:
        try:
            doc = self.collection.find_one({"prod_id": prod_id})
        except PyMongoError:
            log.exception("Error loading product %s", prod_id)
            raise PersistenceError()
        if doc is None:
            raise ProductNotFound()
        return self._to_product(doc)

    def search(self, term: str) -> List[dict]:
        """Case-insensitive substring match on the product name."""
        query = {"prod_name": {"$regex": re.escape(term), "$options": "i"}}
        try:
            docs = list(self.collection.find(query, SEARCH_PROJECTION).sort("prod_id", ASCENDING))
        except PyMongoError:
            log.exception("Search for %r failed", term)
            raise PersistenceError("Internal Server Error")
        if not docs:
            raise NoMatch(f'No results found for "{term}"')
        return [doc_to_dict(d) for d in docs]

    def list_by_category(self, category: Optional[str], sub_category: Optional[str] = None) -> List[dict]:
        if category is None:
            return []
        try:
            docs = list(self.collection.find({"category": category}).sort("prod_id", ASCENDING))
        except PyMongoError:
            log.exception("Listing category %r failed", category)
            raise PersistenceError("Internal Server Error")

        products = [self._to_product(d) for d in docs]
        if sub_category:
            products = [p for p in products if _has_sub_category(p.get("sub_category"), sub_category)]
        return products

    def list_all(self) -> List[dict]:
        try:
            docs = get_documents(self.db, PRODUCTS, sort=[("prod_id", ASCENDING)])
        except PyMongoError:
            log.exception("Listing products failed")
            raise PersistenceError()
        return [self._to_product(d) for d in docs]
