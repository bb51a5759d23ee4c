"""
Database Schemas

Multi-vendor storefront models.
Each Pydantic model corresponds to a MongoDB collection (lowercased class name).

Collections:
- Vendor: a shop, with the bank details used for transfer QR codes
- Product: sellable item, optionally with variant axes (Size, Color, ...)
- VariantStock: one row per (product, variant key) holding quantity on hand
- Order: checkout result, items snapshot prices and the chosen variant key
- Coupon: vendor discount codes
- ShopComponent: one block of a vendor's shop page
"""
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from payments import PHONE_PATTERN

RESERVED_KEY_CHARS = (":", ",")

StockCount = Annotated[int, Field(ge=0)]


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class Vendor(BaseModel):
    shop_name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=2000)
    bank_id: Optional[str] = Field(None, description="VietQR bank code, e.g. 'VCB'")
    bank_account: Optional[str] = None
    bank_account_name: Optional[str] = None


def _check_key_text(text: str, what: str) -> str:
    text = text.strip()
    if not text:
        raise ValueError(f"{what} must not be empty")
    if any(ch in text for ch in RESERVED_KEY_CHARS):
        raise ValueError(f"{what} must not contain ':' or ','")
    return text


class ColorValue(BaseModel):
    name: str
    color: str = Field(..., pattern=r"^#[0-9A-Fa-f]{6}$", description="Hex color like '#FF0000'")

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _check_key_text(v, "Variant value")


class VariantAxis(BaseModel):
    name: str
    values: List[Union[str, ColorValue]] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _check_key_text(v, "Variant name")

    @field_validator("values")
    @classmethod
    def _values(cls, values):
        seen = set()
        cleaned = []
        for value in values:
            if isinstance(value, str):
                value = _check_key_text(value, "Variant value")
                label = value
            else:
                label = value.name
            if label in seen:
                raise ValueError(f"Duplicate variant value: {label}")
            seen.add(label)
            cleaned.append(value)
        return cleaned


class VariantForm(BaseModel):
    variants: List[VariantAxis] = Field(default_factory=list, description="Variant axes")

    @field_validator("variants", mode="before")
    @classmethod
    def _variants(cls, raw):
        # Accepts a JSON string, a {name: [values]} mapping or a list of axes
        if raw is None:
            return []
        if isinstance(raw, str):
            try:
                raw = json.loads(raw) if raw.strip() else []
            except ValueError:
                raise ValueError("Variants must be valid JSON")
        if isinstance(raw, dict):
            raw = [{"name": name, "values": values} for name, values in raw.items()]
        return raw

    @field_validator("variants")
    @classmethod
    def _unique_axes(cls, axes: List[VariantAxis]) -> List[VariantAxis]:
        names = [axis.name for axis in axes]
        if len(names) != len(set(names)):
            raise ValueError("Variant names must be unique")
        return axes


class VariantStockForm(VariantForm):
    """Axes plus the stock table the vendor typed in, keyed by variant key."""
    variant_stock: Dict[str, StockCount] = Field(default_factory=dict)

    @field_validator("variant_stock", mode="before")
    @classmethod
    def _variant_stock(cls, raw):
        if raw is None:
            return {}
        if isinstance(raw, str):
            try:
                raw = json.loads(raw) if raw.strip() else {}
            except ValueError:
                raise ValueError("Variant stock must be valid JSON")
        return raw


class ProductBase(VariantForm):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Unit price in VND")
    stock: StockCount = Field(0, description="General stock, used when the product has no variants")
    category: Optional[str] = Field(None, description="Category, e.g. 'shirts', 'bags'")
    images: List[str] = Field(default_factory=list, description="Array of image URLs")


class Product(ProductBase):
    """
    Collection: "product"
    Variant stock is not embedded; see VariantStock.
    """
    vendor_id: str = Field(..., description="Owning vendor id")


class VariantStock(BaseModel):
    product_id: str
    key: str = Field(..., description="Canonical variant key, e.g. 'Color:Red,Size:M'")
    quantity: int = 0


class Address(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1, description="State / district")
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class Customer(BaseModel):
    full_name: str = Field(..., min_length=2)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    email: EmailStr


class OrderItem(BaseModel):
    product_id: str
    name: str = Field(..., description="Snapshot of product name at order time")
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    selected_variant: Optional[str] = Field(None, description="Canonical variant key, if any")
    line_total: float = Field(..., ge=0)
    image: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    vendor_id: str
    customer: Customer
    address: Address
    items: List[OrderItem]
    currency: str = Field("VND", description="ISO currency code")
    subtotal: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    coupon_code: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING


class CouponBase(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    code: str = Field(..., min_length=3, max_length=32)
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0)
    min_purchase: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_count: int = Field(0, ge=0)
    is_active: bool = True
    valid_from: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    valid_until: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def _percentage(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class Coupon(CouponBase):
    vendor_id: str


class ShopComponent(BaseModel):
    vendor_id: str
    type: str
    order: int = Field(0, ge=0)
    config: Dict[str, Any] = Field(default_factory=dict)
