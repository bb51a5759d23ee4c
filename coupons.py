"""Vendor discount codes."""
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from database import db, now_utc
from schemas import DiscountType


class CouponError(Exception):
    pass


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def find_coupon(code: str) -> Optional[dict]:
    return db["coupon"].find_one({"code": code.strip().upper()})


def evaluate(coupon: Optional[Mapping[str, Any]], cart_total: float, vendor_id: Optional[str] = None,
             now: Optional[datetime] = None) -> float:
    """Discount the coupon gives on `cart_total`, or CouponError saying why not."""
    if not coupon:
        raise CouponError("Coupon not found")
    if not coupon.get("is_active", True):
        raise CouponError("Coupon is not active")

    now = _as_utc(now) or now_utc()
    valid_from = _as_utc(coupon.get("valid_from"))
    valid_until = _as_utc(coupon.get("valid_until"))
    if valid_from and now < valid_from:
        raise CouponError("Coupon is not yet valid")
    if valid_until and now > valid_until:
        raise CouponError("Coupon has expired")

    usage_limit = coupon.get("usage_limit")
    if usage_limit and coupon.get("usage_count", 0) >= usage_limit:
        raise CouponError("Coupon usage limit reached")

    min_purchase = coupon.get("min_purchase")
    if min_purchase and cart_total < float(min_purchase):
        raise CouponError(f"Minimum purchase of {min_purchase:,.0f} VND required")

    if vendor_id and coupon.get("vendor_id") != vendor_id:
        raise CouponError("Coupon is not valid for this store")

    value = float(coupon["discount_value"])
    if coupon.get("discount_type") == DiscountType.PERCENTAGE.value:
        discount = cart_total * (value / 100)
    else:
        discount = value

    max_discount = coupon.get("max_discount")
    if max_discount and discount > float(max_discount):
        discount = float(max_discount)
    return min(discount, cart_total)


def redeem(coupon: Mapping[str, Any]) -> bool:
    """Count one use. False when the usage limit was hit in the meantime."""
    match = {"_id": coupon["_id"]}
    if coupon.get("usage_limit"):
        match["usage_count"] = {"$lt": coupon["usage_limit"]}
    result = db["coupon"].update_one(match, {"$inc": {"usage_count": 1}})
    return result.modified_count == 1


def unredeem(coupon: Mapping[str, Any]) -> None:
    db["coupon"].update_one({"_id": coupon["_id"], "usage_count": {"$gt": 0}}, {"$inc": {"usage_count": -1}})
