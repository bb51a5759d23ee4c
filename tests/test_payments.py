from urllib.parse import parse_qs, urlparse

import pytest
from pydantic import ValidationError

from payments import (
    format_phone, format_vnd, generate_vietqr_url, has_payment_configured,
    is_valid_phone, parse_vnd, payment_qr_for_order, qr_amount,
    remove_vietnamese_diacritics,
)
from schemas import Customer


@pytest.mark.parametrize("amount", [0, 500, 999])
def test_qr_amount_has_a_floor(amount):
    assert qr_amount(amount) == 1000


def test_qr_amount_rounds_half_up():
    assert qr_amount(5000.75) == 5001
    assert qr_amount(5000.5) == 5001
    assert qr_amount(5000.25) == 5000


def test_phone_validation():
    assert is_valid_phone("0987654321")
    assert not is_valid_phone("098765432")
    assert not is_valid_phone("09876543210")
    assert not is_valid_phone("098765432a")
    assert not is_valid_phone("1987654321")
    assert not is_valid_phone("0987654321\n")


def test_phone_requires_ascii_digits():
    assert not is_valid_phone("0٩٨٧٦٥٤٣٢١")
    assert not is_valid_phone("０９８７６５４３２１")
    with pytest.raises(ValidationError):
        Customer(full_name="Nguyễn Văn An", phone_number="0٩٨٧٦٥٤٣٢١", email="buyer@gmail.com")


def test_phone_and_currency_formatting():
    assert format_phone("0123456789") == "0123 456 789"
    assert format_phone("12345") == "12345"
    assert format_vnd(123456) == "123.456₫"
    assert format_vnd("abc") == "0₫"
    assert parse_vnd("123.456₫") == 123456
    assert parse_vnd("") == 0


def test_remove_diacritics():
    assert remove_vietnamese_diacritics("Trần Thị Bình") == "Tran Thi Binh"
    assert remove_vietnamese_diacritics("ĐỖ ĐỨC") == "DO DUC"
    assert remove_vietnamese_diacritics("plain") == "plain"


class TestVietQRUrl:

    def test_url_shape(self):
        url = generate_vietqr_url("VCB", "0123456789", "Trần Thị Bình", 100000, "Đơn hàng #42!")
        parsed = urlparse(url)
        assert parsed.netloc == "img.vietqr.io"
        assert parsed.path == "/image/VCB-0123456789-compact2.png"
        query = parse_qs(parsed.query)
        assert query["amount"] == ["100000"]
        assert query["accountName"] == ["TRAN THI BINH"]
        assert query["addInfo"] == ["Don hang 42"]

    def test_description_is_truncated(self):
        url = generate_vietqr_url("VCB", "1", "A", 1000, "x" * 40)
        assert parse_qs(urlparse(url).query)["addInfo"] == ["x" * 25]

    def test_minimum_amount(self):
        with pytest.raises(ValueError, match="at least 1000"):
            generate_vietqr_url("VCB", "1", "A", 999)

    def test_missing_bank_fields(self):
        with pytest.raises(ValueError):
            generate_vietqr_url("", "1", "A", 1000)

    def test_order_payment(self):
        vendor = {"bank_id": "VCB", "bank_account": "0123", "bank_account_name": "An"}
        payment = payment_qr_for_order(vendor, "65f0c0ffee0000000000abcd", 999)
        assert payment["amount"] == 1000
        assert payment["description"] == "DH 0000ABCD"
        assert has_payment_configured(vendor)
        assert payment_qr_for_order({"bank_id": "VCB"}, "x", 5000) is None
