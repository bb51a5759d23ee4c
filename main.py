import logging
import os
from typing import List, Optional

from bson import ObjectId
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import PyMongoError

import coupons
import inventory
import shop_builder
from analytics import summarize
from database import db, create_document, get_documents, now_utc
from payments import PHONE_PATTERN, format_vnd, payment_qr_for_order
from schemas import (
    Address, Coupon, CouponBase, Customer, Order, OrderItem, OrderStatus,
    Product, ProductBase, ShopComponent, Vendor, VariantStockForm,
)
from variants import (
    canonical_key, format_key, has_variants, reconcile_stock,
    regenerate_combinations, stock_status, total_stock,
)

MAX_QUANTITY_PER_ITEM = 999

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Multi-vendor Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----- Utilities -----

def to_str_id(doc: dict) -> dict:
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


def ensure_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid ID format")


def get_vendor(vendor_id: str) -> dict:
    doc = db["vendor"].find_one({"_id": ensure_object_id(vendor_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Vendor not found")
    return doc


def get_vendor_product(vendor_id: str, product_id: str) -> dict:
    doc = db["product"].find_one({"_id": ensure_object_id(product_id), "vendor_id": vendor_id})
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return doc


def product_out(doc: dict, variant_stock: Optional[dict] = None) -> dict:
    d = to_str_id(doc)
    if has_variants(d):
        d["variant_stock"] = variant_stock or {}
        d["variant_status"] = {key: stock_status(d, key) for key in d["variant_stock"]}
    else:
        d["variant_stock"] = {}
        d["stock_status"] = stock_status(d)
    d["total_stock"] = total_stock(d)
    return d


def order_out(doc: dict) -> dict:
    d = to_str_id(doc)
    d["items"] = [dict(item, variant_label=format_key(item.get("selected_variant"))) for item in doc.get("items", [])]
    return d


# ----- Health -----
@app.get("/")
def read_root():
    return {"message": "Multi-vendor Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


# ----- Vendors / shops -----
@app.post("/api/vendors", status_code=201)
def create_vendor(vendor: Vendor):
    inserted_id = create_document("vendor", vendor)
    return to_str_id(db["vendor"].find_one({"_id": ObjectId(inserted_id)}))


@app.get("/api/shop/{vendor_id}")
def get_shop(vendor_id: str):
    vendor = to_str_id(get_vendor(vendor_id))
    components = [to_str_id(c) for c in db["shopcomponent"].find({"vendor_id": vendor_id}).sort("order", 1)]
    products = get_documents("product", {"vendor_id": vendor_id})
    stock = inventory.read_variant_stock_many(str(p["_id"]) for p in products)
    return {
        "vendor": vendor,
        "components": components,
        "products": [product_out(p, stock.get(str(p["_id"]))) for p in products],
    }


class PaymentSettings(BaseModel):
    bank_id: str = Field(..., min_length=1)
    bank_account: str = Field(..., min_length=1)
    bank_account_name: str = Field(..., min_length=1)


@app.get("/api/shop/{vendor_id}/payment")
def get_shop_payment(vendor_id: str):
    vendor = get_vendor(vendor_id)
    return {
        "bank_id": vendor.get("bank_id") or None,
        "bank_account": vendor.get("bank_account") or None,
        "bank_account_name": vendor.get("bank_account_name") or None,
    }


@app.put("/api/vendor/{vendor_id}/payment")
def update_payment(vendor_id: str, settings: PaymentSettings):
    get_vendor(vendor_id)
    data = settings.model_dump()
    data["updated_at"] = now_utc()
    db["vendor"].update_one({"_id": ObjectId(vendor_id)}, {"$set": data})
    return get_shop_payment(vendor_id)


# ----- Products -----
class ProductForm(ProductBase, VariantStockForm):
    pass


@app.get("/api/products")
def list_products(vendor_id: Optional[str] = None):
    docs = get_documents("product", {"vendor_id": vendor_id} if vendor_id else None)
    stock = inventory.read_variant_stock_many(str(d["_id"]) for d in docs)
    return [product_out(d, stock.get(str(d["_id"]))) for d in docs]


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    _id = ensure_object_id(product_id)
    doc = db["product"].find_one({"_id": _id})
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return product_out(doc, inventory.read_variant_stock(product_id))


@app.post("/api/products/variant-stock/preview")
def preview_variant_stock(form: VariantStockForm):
    """Stock table for the submitted axes, without saving anything."""
    current = {canonical_key(k): v for k, v in form.variant_stock.items()}
    return {
        "combinations": regenerate_combinations(form.variants),
        "variant_stock": reconcile_stock(form.variants, current),
    }


def _save_product_stock(product_id: str, form: ProductForm) -> dict:
    if form.variants:
        return inventory.save_variant_stock(product_id, form.variants, form.variant_stock)
    inventory.delete_variant_stock(product_id)
    return {}


@app.post("/api/vendor/{vendor_id}/products", status_code=201)
def create_product(vendor_id: str, form: ProductForm):
    get_vendor(vendor_id)
    product = Product(vendor_id=vendor_id, **form.model_dump(exclude={"variant_stock"}))
    inserted_id = create_document("product", product)
    stock = _save_product_stock(inserted_id, form)
    doc = db["product"].find_one({"_id": ObjectId(inserted_id)})
    return product_out(doc, stock)


@app.put("/api/vendor/{vendor_id}/products/{product_id}")
def update_product(vendor_id: str, product_id: str, form: ProductForm):
    existing = get_vendor_product(vendor_id, product_id)
    data = form.model_dump(exclude={"variant_stock"})
    data["updated_at"] = now_utc()
    db["product"].update_one({"_id": existing["_id"]}, {"$set": data})
    stock = _save_product_stock(product_id, form)
    return product_out(db["product"].find_one({"_id": existing["_id"]}), stock)


@app.delete("/api/vendor/{vendor_id}/products/{product_id}")
def delete_product(vendor_id: str, product_id: str):
    existing = get_vendor_product(vendor_id, product_id)
    db["product"].delete_one({"_id": existing["_id"]})
    inventory.delete_variant_stock(product_id)
    return {"deleted": product_id}


# ----- Checkout / Orders -----
class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY_PER_ITEM)
    selected_variant: Optional[str] = None


class CheckoutRequest(BaseModel):
    full_name: str = Field(..., min_length=2)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    email: EmailStr
    address: Address
    items: List[CartItem]
    coupon_code: Optional[str] = None


@app.post("/api/checkout", status_code=201)
def create_checkout(req: CheckoutRequest):
    if not req.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    ids = [ensure_object_id(item.product_id) for item in req.items]
    products_map = {}
    for doc in db["product"].find({"_id": {"$in": ids}}):
        products_map[doc["_id"]] = doc

    # Build order items from database to ensure trusted pricing
    order_items: List[OrderItem] = []
    stock_lines: List[inventory.StockLine] = []
    vendor_ids = set()
    subtotal = 0.0

    for pid, item in zip(ids, req.items):
        prod = products_map.get(pid)
        if not prod:
            raise HTTPException(status_code=404, detail=f"Product {item.product_id} not found")
        vendor_ids.add(prod["vendor_id"])

        variant_key = None
        if has_variants(prod):
            variant_key = canonical_key(item.selected_variant)
            if not variant_key:
                raise HTTPException(status_code=400, detail=f"Please select a variant for {prod.get('name', 'item')}")

        unit_price = float(prod.get("price", 0))
        line_total = unit_price * item.quantity
        subtotal += line_total

        imgs = prod.get("images") or []
        order_items.append(OrderItem(
            product_id=str(pid),
            name=prod.get("name", "Product"),
            quantity=item.quantity,
            unit_price=unit_price,
            selected_variant=variant_key,
            line_total=line_total,
            image=imgs[0] if imgs else None,
        ))
        stock_lines.append(inventory.StockLine(pid, item.quantity, variant_key, prod.get("name", "")))

    if len(vendor_ids) > 1:
        raise HTTPException(status_code=400, detail="All items in an order must come from the same shop")
    vendor_id = vendor_ids.pop()

    coupon = None
    discount = 0.0
    if req.coupon_code:
        coupon = coupons.find_coupon(req.coupon_code)
        try:
            discount = coupons.evaluate(coupon, subtotal, vendor_id)
        except coupons.CouponError as e:
            raise HTTPException(status_code=400, detail=str(e))

    try:
        inventory.reserve(stock_lines)
    except inventory.InsufficientStock as e:
        raise HTTPException(status_code=400, detail=str(e))

    order = Order(
        vendor_id=vendor_id,
        customer=Customer(full_name=req.full_name, phone_number=req.phone_number, email=req.email),
        address=req.address,
        items=order_items,
        subtotal=subtotal,
        discount=discount,
        total=subtotal - discount,
        coupon_code=coupon["code"] if coupon else None,
    )

    if coupon is not None:
        try:
            redeemed = coupons.redeem(coupon)
        except PyMongoError:
            logger.exception("Failed to redeem coupon %s; releasing reserved stock", coupon["code"])
            inventory.release(stock_lines)
            raise
        if not redeemed:
            inventory.release(stock_lines)
            raise HTTPException(status_code=400, detail="Coupon usage limit reached")

    try:
        order_id = create_document("order", order)
    except PyMongoError:
        logger.exception("Failed to store order; releasing reserved stock")
        inventory.release(stock_lines)
        if coupon is not None:
            coupons.unredeem(coupon)
        raise

    logger.info("Order %s created for vendor %s (%d items, total %s)",
                order_id, vendor_id, len(order_items), order.total)

    vendor = db["vendor"].find_one({"_id": ensure_object_id(vendor_id)})
    return {
        "order_id": order_id,
        "status": order.status,
        "subtotal": order.subtotal,
        "discount": order.discount,
        "total": order.total,
        "currency": order.currency,
        "payment": payment_qr_for_order(vendor, order_id, order.total) if vendor else None,
    }


def get_order_doc(order_id: str) -> dict:
    doc = db["order"].find_one({"_id": ensure_object_id(order_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    return doc


@app.get("/api/orders/{order_id}")
def get_order(order_id: str):
    return order_out(get_order_doc(order_id))


@app.get("/api/orders/{order_id}/receipt")
def get_receipt(order_id: str):
    doc = get_order_doc(order_id)
    return {
        "order_id": order_id,
        "status": doc["status"],
        "created_at": doc.get("created_at"),
        "customer": doc["customer"],
        "address": doc["address"],
        "items": [
            {
                "name": item["name"],
                "variant": format_key(item.get("selected_variant")),
                "quantity": item["quantity"],
                "unit_price": format_vnd(item["unit_price"]),
                "line_total": format_vnd(item["line_total"]),
            }
            for item in doc.get("items", [])
        ],
        "subtotal": format_vnd(doc["subtotal"]),
        "discount": format_vnd(doc.get("discount", 0)),
        "total": format_vnd(doc["total"]),
    }


@app.get("/api/orders/{order_id}/payment")
def get_order_payment(order_id: str):
    doc = get_order_doc(order_id)
    vendor = get_vendor(doc["vendor_id"])
    payment = payment_qr_for_order(vendor, order_id, doc["total"])
    if payment is None:
        raise HTTPException(status_code=400, detail="Shop has not configured bank transfer payments")
    return payment


class CancelRequest(BaseModel):
    email: EmailStr


def _apply_transition(order_id: str, status: OrderStatus, query: dict, not_found: str) -> dict:
    try:
        doc, _ = inventory.transition_order(ensure_object_id(order_id), status, query)
    except inventory.OrderNotFound:
        raise HTTPException(status_code=404, detail=not_found)
    except inventory.InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    except inventory.OrderConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    return order_out(doc)


@app.post("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, req: CancelRequest):
    return _apply_transition(order_id, OrderStatus.CANCELLED, {"customer.email": req.email}, "Order not found")


@app.get("/api/vendor/{vendor_id}/orders")
def list_vendor_orders(vendor_id: str, status: Optional[OrderStatus] = None):
    query = {"vendor_id": vendor_id}
    if status:
        query["status"] = status.value
    return [order_out(d) for d in db["order"].find(query).sort("created_at", -1)]


class StatusUpdate(BaseModel):
    status: OrderStatus


@app.patch("/api/vendor/{vendor_id}/orders/{order_id}")
def update_order_status(vendor_id: str, order_id: str, req: StatusUpdate):
    return _apply_transition(order_id, req.status, {"vendor_id": vendor_id}, "Order not found or unauthorized")


@app.get("/api/vendor/{vendor_id}/analytics")
def vendor_analytics(vendor_id: str):
    get_vendor(vendor_id)
    orders = get_documents("order", {"vendor_id": vendor_id})
    products = get_documents("product", {"vendor_id": vendor_id})
    stock = inventory.read_variant_stock_many(str(p["_id"]) for p in products)
    return summarize(orders, products, stock)


# ----- Coupons -----
@app.post("/api/vendor/{vendor_id}/coupons", status_code=201)
def create_coupon(vendor_id: str, form: CouponBase):
    get_vendor(vendor_id)
    if coupons.find_coupon(form.code):
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    coupon = Coupon(vendor_id=vendor_id, **form.model_dump())
    inserted_id = create_document("coupon", coupon)
    return to_str_id(db["coupon"].find_one({"_id": ObjectId(inserted_id)}))


@app.get("/api/vendor/{vendor_id}/coupons")
def list_coupons(vendor_id: str):
    return [to_str_id(d) for d in get_documents("coupon", {"vendor_id": vendor_id})]


class CouponCheck(BaseModel):
    code: str = Field(..., min_length=1)
    cart_total: float = Field(..., gt=0)
    vendor_id: Optional[str] = None


@app.post("/api/coupons/validate")
def validate_coupon(req: CouponCheck):
    coupon = coupons.find_coupon(req.code)
    try:
        discount = coupons.evaluate(coupon, req.cart_total, req.vendor_id)
    except coupons.CouponError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "valid": True,
        "discount": discount,
        "coupon": {
            "code": coupon["code"],
            "discount_type": coupon["discount_type"],
            "discount_value": coupon["discount_value"],
        },
    }


# ----- Shop builder -----
class ComponentCreate(BaseModel):
    type: str
    config: Optional[dict] = None
    order: Optional[int] = Field(None, ge=0)


class ComponentUpdate(BaseModel):
    config: dict


class ComponentReorder(BaseModel):
    component_ids: List[str]


def _component_config(type_name: str, config: Optional[dict]) -> dict:
    try:
        component_type = shop_builder.parse_type(type_name)
        if config is None:
            return shop_builder.default_config(component_type)
        return shop_builder.validate_config(component_type, config)
    except shop_builder.ComponentConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/shop/{vendor_id}/components")
def list_components(vendor_id: str):
    return [to_str_id(c) for c in db["shopcomponent"].find({"vendor_id": vendor_id}).sort("order", 1)]


@app.post("/api/shop/{vendor_id}/components", status_code=201)
def add_component(vendor_id: str, req: ComponentCreate):
    get_vendor(vendor_id)
    config = _component_config(req.type, req.config)
    order = req.order
    if order is None:
        existing = [c.get("order", 0) for c in db["shopcomponent"].find({"vendor_id": vendor_id})]
        order = shop_builder.next_order(existing)
    component = ShopComponent(vendor_id=vendor_id, type=req.type, order=order, config=config)
    inserted_id = create_document("shopcomponent", component)
    return to_str_id(db["shopcomponent"].find_one({"_id": ObjectId(inserted_id)}))


@app.put("/api/shop/{vendor_id}/components/reorder")
def reorder_components(vendor_id: str, req: ComponentReorder):
    current = [str(c["_id"]) for c in db["shopcomponent"].find({"vendor_id": vendor_id})]
    try:
        plan = shop_builder.reorder_plan(current, req.component_ids)
    except shop_builder.ComponentConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    for component_id, position in plan.items():
        db["shopcomponent"].update_one({"_id": ObjectId(component_id)}, {"$set": {"order": position}})
    return list_components(vendor_id)


def get_component(vendor_id: str, component_id: str) -> dict:
    doc = db["shopcomponent"].find_one({"_id": ensure_object_id(component_id), "vendor_id": vendor_id})
    if not doc:
        raise HTTPException(status_code=404, detail="Component not found")
    return doc


@app.patch("/api/shop/{vendor_id}/components/{component_id}")
def update_component(vendor_id: str, component_id: str, req: ComponentUpdate):
    doc = get_component(vendor_id, component_id)
    config = _component_config(doc["type"], req.config)
    db["shopcomponent"].update_one({"_id": doc["_id"]}, {"$set": {"config": config, "updated_at": now_utc()}})
    return to_str_id(db["shopcomponent"].find_one({"_id": doc["_id"]}))


@app.delete("/api/shop/{vendor_id}/components/{component_id}")
def delete_component(vendor_id: str, component_id: str):
    doc = get_component(vendor_id, component_id)
    db["shopcomponent"].delete_one({"_id": doc["_id"]})
    return {"deleted": component_id}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
