"""
Request schemas for the storefront admin API

Each model validates one request body. Required-field checks that must answer
with the store's own error (e.g. "Missing required product fields") are left
to the stores, so those fields are Optional here.

Collections they end up in:
- ProductFields: "prod_details"
- CouponIn / CouponUpdate: "coupon_details"
- OrderIn: "order_details"
"""
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------
# Product Catalog
# ---------------------------
class ProductFields(BaseModel):
    """
    Editable product attributes. The three variant fields accept any
    JSON-compatible structure and are stored encoded.
    """
    prod_name: Optional[str] = Field(None, description="Display name")
    prod_qty: Optional[int] = Field(None, ge=0, description="Units in stock")
    new_price: Optional[Decimal] = Field(None, ge=0, description="Current selling price")
    old_price: Optional[Decimal] = Field(None, ge=0, description="Price before discount (not required to exceed new_price)")
    prod_description: Optional[str] = None
    category: Optional[str] = None
    sub_category: Any = Field(None, description="Set of sub-category names")
    color_variations: Any = None
    other_variations: Any = None


# ---------------------------
# Coupons
# ---------------------------
class CouponIn(BaseModel):
    coupon_code: Optional[str] = None
    coupon_name: Optional[str] = None
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)


class CouponUpdate(CouponIn):
    pass


class ApplyCouponIn(BaseModel):
    coupon_code: Optional[str] = None


# ---------------------------
# Orders
# ---------------------------
class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"


class OrderIn(BaseModel):
    """Checkout payload. orderID and order date are assigned by the server."""
    firstName: str
    lastName: str
    contactNumber: str
    address1: str
    address2: Optional[str] = None
    city: str
    province: str
    postalCode: str
    specialNote: Optional[str] = None
    subtotal: Decimal = Field(..., ge=0)
    deliveryFee: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)


class OrderStatusIn(BaseModel):
    order_status: Optional[str] = None


# ---------------------------
# Admin
# ---------------------------
class AdminLoginIn(BaseModel):
    admin_name: Optional[str] = None
    admin_pw: Optional[str] = None
