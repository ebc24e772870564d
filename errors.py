"""
errors.py - Error taxonomy shared by the stores and the HTTP boundary.

Every store failure is a `StoreError`. Its `status_code` is the HTTP status
the boundary answers with and `message` is the only text the caller sees;
underlying driver errors are logged server-side, never returned.
"""


class StoreError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def body(self) -> dict:
        return {"error": self.message}


# ---------- 400 ----------

class ValidationError(StoreError):
    status_code = 400
    default_message = "Invalid request"


class MissingFields(ValidationError):
    default_message = "Missing required fields"

    def __init__(self, fields, message=None):
        self.fields = list(fields)
        super().__init__(message or f"Missing required fields: {', '.join(self.fields)}")


class InvalidStatus(ValidationError):
    default_message = "Invalid order status"


# ---------- 401 ----------

class InvalidCredentials(StoreError):
    status_code = 401
    default_message = "Invalid credentials"

    def body(self) -> dict:
        return {"message": self.message}


# ---------- 404 ----------

class NotFoundError(StoreError):
    status_code = 404
    default_message = "Not found"


class ProductNotFound(NotFoundError):
    default_message = "Product not found"


class OrderNotFound(NotFoundError):
    default_message = "Order not found"


class NoMatch(NotFoundError):
    default_message = "No results found"


class InvalidCoupon(NotFoundError):
    default_message = "Invalid coupon code"

    def body(self) -> dict:
        return {"success": False, "message": self.message}


# ---------- 500 ----------

class PersistenceError(StoreError):
    default_message = "Database query failed"


class UpdateFailed(PersistenceError):
    default_message = "Failed to update product"


class SequencingError(PersistenceError):
    default_message = "Error generating Order ID"


class PlacementError(PersistenceError):
    default_message = "Failed to place order"
