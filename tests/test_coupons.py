from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from coupons import CouponError, evaluate
from schemas import Coupon

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def coupon(**fields):
    data = {
        "vendor_id": "v1",
        "code": "SALE",
        "discount_type": "PERCENTAGE",
        "discount_value": 20,
        "valid_from": NOW - timedelta(days=1),
    }
    data.update(fields)
    return Coupon(**data).model_dump()


def test_percentage_capped_by_max_discount():
    assert evaluate(coupon(), 100000, now=NOW) == 20000
    assert evaluate(coupon(max_discount=5000), 100000, now=NOW) == 5000


def test_fixed_never_exceeds_cart_total():
    assert evaluate(coupon(discount_type="FIXED", discount_value=80000), 50000, now=NOW) == 50000


def test_naive_stored_dates_are_utc():
    c = coupon()
    c["valid_from"] = (NOW + timedelta(hours=1)).replace(tzinfo=None)
    with pytest.raises(CouponError, match="not yet valid"):
        evaluate(c, 1000, now=NOW)


@pytest.mark.parametrize("fields,message", [
    ({"is_active": False}, "not active"),
    ({"usage_limit": 2, "usage_count": 2}, "usage limit"),
    ({"min_purchase": 200000}, "Minimum purchase"),
    ({"vendor_id": "v2"}, "not valid for this store"),
])
def test_rejections(fields, message):
    with pytest.raises(CouponError, match=message):
        evaluate(coupon(**fields), 100000, vendor_id="v1", now=NOW)


def test_missing_coupon():
    with pytest.raises(CouponError, match="not found"):
        evaluate(None, 100000)


def test_percentage_over_100_rejected():
    with pytest.raises(ValidationError):
        coupon(discount_value=150)
