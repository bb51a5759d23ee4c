"""
Bank transfer helpers (VietQR) and Vietnamese formatting.

QR images are served by img.vietqr.io; we only build the URL.
"""
import math
import re
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

VIETQR_IMAGE_BASE = "https://img.vietqr.io/image"
VIETQR_TEMPLATES = ("compact2", "compact", "qr_only", "print")
MIN_QR_AMOUNT = 1000
MAX_ADD_INFO_LENGTH = 25

PHONE_PATTERN = r"^0[0-9]{9}$"
_PHONE_RE = re.compile(PHONE_PATTERN)

_DIACRITICS = {
    "a": "àáảãạăằắẳẵặâầấẩẫậ",
    "e": "èéẻẽẹêềếểễệ",
    "i": "ìíỉĩị",
    "o": "òóỏõọôồốổỗộơờớởỡợ",
    "u": "ùúủũụưừứửữự",
    "y": "ỳýỷỹỵ",
    "d": "đ",
}
_DIACRITICS_TABLE = {}
for _plain, _marked in _DIACRITICS.items():
    for _ch in _marked:
        _DIACRITICS_TABLE[ord(_ch)] = _plain
        _DIACRITICS_TABLE[ord(_ch.upper())] = _plain.upper()


def remove_vietnamese_diacritics(text: str) -> str:
    return text.translate(_DIACRITICS_TABLE)


def qr_amount(amount: float) -> int:
    """Amount for a transfer QR: rounded half up, never below MIN_QR_AMOUNT."""
    return max(MIN_QR_AMOUNT, int(math.floor(float(amount) + 0.5)))


def clean_transfer_note(description: str) -> str:
    text = re.sub(r"[^a-zA-Z0-9\s]", "", remove_vietnamese_diacritics(description))
    return text[:MAX_ADD_INFO_LENGTH].strip()


def generate_vietqr_url(bank_id: str, account_no: str, account_name: str, amount: int,
                        description: str = "", template: str = "compact2") -> str:
    if not bank_id or not account_no or not account_name:
        raise ValueError("bank_id, account_no, and account_name are required")
    if amount < MIN_QR_AMOUNT:
        raise ValueError(f"Amount must be at least {MIN_QR_AMOUNT} VND")
    if template not in VIETQR_TEMPLATES:
        raise ValueError(f"Unknown VietQR template: {template}")

    params = {"amount": str(amount)}
    if description:
        params["addInfo"] = clean_transfer_note(description)
    params["accountName"] = remove_vietnamese_diacritics(account_name).upper()

    return f"{VIETQR_IMAGE_BASE}/{bank_id}-{account_no}-{template}.png?{urlencode(params)}"


def has_payment_configured(vendor: Optional[Mapping[str, Any]]) -> bool:
    if not vendor:
        return False
    return bool(vendor.get("bank_id") and vendor.get("bank_account") and vendor.get("bank_account_name"))


def payment_qr_for_order(vendor: Mapping[str, Any], order_id: str, total: float) -> Optional[dict]:
    """QR payload for an order, or None when the vendor has no bank details."""
    if not has_payment_configured(vendor):
        return None
    amount = qr_amount(total)
    note = f"DH {order_id[-8:].upper()}"
    return {
        "bank_id": vendor["bank_id"],
        "bank_account": vendor["bank_account"],
        "bank_account_name": vendor["bank_account_name"],
        "amount": amount,
        "description": clean_transfer_note(note),
        "qr_url": generate_vietqr_url(vendor["bank_id"], vendor["bank_account"],
                                      vendor["bank_account_name"], amount, note),
    }


# ---------- Phone / currency formatting ----------

def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE_RE.fullmatch(phone or ""))


def format_phone(phone: str) -> str:
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"{digits[:4]} {digits[4:7]} {digits[7:]}"
    return phone


def format_vnd(amount: Any) -> str:
    """123456 -> '123.456₫'"""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return "0₫"
    if math.isnan(value):
        return "0₫"
    return f"{int(round(value)):,}".replace(",", ".") + "₫"


def parse_vnd(text: str) -> int:
    digits = re.sub(r"[^\d]", "", text or "")
    return int(digits) if digits else 0
