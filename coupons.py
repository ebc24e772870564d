"""
coupons.py - Discount coupon store

`coupon_code` is the natural lookup key used at checkout. It is indexed but
not unique-constrained; when several rows share a code the oldest coupon
(lowest `coupon_id`) is the one applied.
"""

from typing import List

from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import COUPONS, create_document, doc_to_dict, get_documents, next_sequence, to_decimal128
from errors import InvalidCoupon, MissingFields, PersistenceError, ValidationError
from logging_config import get_logger
from schemas import CouponIn, CouponUpdate

log = get_logger(__name__)

COUPON_ID_COUNTER = "coupon_id"
REQUIRED_FIELDS = ("coupon_code", "coupon_name", "discount_percentage")


class CouponStore:
    def __init__(self, db: Database):
        self.db = db
        self.collection = db[COUPONS]

    def list(self) -> List[dict]:
        try:
            docs = get_documents(self.db, COUPONS, sort=[("coupon_id", ASCENDING)])
            return [doc_to_dict(d) for d in docs]
        except PyMongoError:
            log.exception("Listing coupons failed")
            raise PersistenceError()

    def add(self, coupon: CouponIn) -> int:
        missing = [name for name in REQUIRED_FIELDS if getattr(coupon, name) in (None, "")]
        if missing:
            raise MissingFields(missing, "Missing coupon details")

        try:
            coupon_id = next_sequence(self.db, COUPON_ID_COUNTER)
            create_document(self.db, COUPONS, {
                "coupon_id": coupon_id,
                "coupon_code": coupon.coupon_code,
                "coupon_name": coupon.coupon_name,
                "discount_percentage": to_decimal128(coupon.discount_percentage),
            })
        except PyMongoError:
            log.exception("Error inserting coupon %r", coupon.coupon_code)
            raise PersistenceError()

        log.info("Coupon %s added (%s)", coupon_id, coupon.coupon_code)
        return coupon_id

    def apply_by_code(self, code: str) -> dict:
        """
        Looks up a coupon by its exact code.

        Returns:
            dict: `coupon_name` and `discount_percentage` of the matching coupon.

        Raises:
            ValidationError: If no code was given.
            InvalidCoupon: If no coupon has this code.
        """
        if not code:
            raise ValidationError("Coupon code is required")
        try:
            doc = self.collection.find_one({"coupon_code": code}, sort=[("coupon_id", ASCENDING)])
        except PyMongoError:
            log.exception("Coupon lookup for %r failed", code)
            raise PersistenceError()
        if doc is None:
            log.info("Rejected unknown coupon code %r", code)
            raise InvalidCoupon()

        coupon = doc_to_dict(doc)
        return {
            "coupon_name": coupon["coupon_name"],
            "discount_percentage": coupon["discount_percentage"],
        }

    def update(self, coupon_id: int, changes: CouponUpdate) -> int:
        """Overwrites name, code and percentage; returns the number of matched coupons."""
        try:
            result = self.collection.update_one(
                {"coupon_id": coupon_id},
                {"$set": {
                    "coupon_name": changes.coupon_name,
                    "coupon_code": changes.coupon_code,
                    "discount_percentage": to_decimal128(changes.discount_percentage),
                }},
            )
        except PyMongoError:
            log.exception("Error updating coupon %s", coupon_id)
            raise PersistenceError("Failed to update coupon")
        return result.matched_count

    def delete(self, coupon_id: int) -> int:
        try:
            result = self.collection.delete_one({"coupon_id": coupon_id})
        except PyMongoError:
            log.exception("Error deleting coupon %s", coupon_id)
            raise PersistenceError("Failed to delete coupon")
        return result.deleted_count
