"""
Stock ledger for products and their variant combinations.

General stock lives on the product document (`stock`). Variant stock lives in
the `variantstock` collection, one document per (product_id, key). Every
change is a single conditional update on one document:

    deduct:  {_id | product_id+key, <qty field>: {$gte: q}}  ->  $inc -q
    restore: {_id | product_id+key}                         ->  $inc +q

so two checkouts racing for the last unit cannot both win.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import db, now_utc
from schemas import OrderStatus
from variants import canonical_key, format_key, reconcile_stock

logger = logging.getLogger(__name__)

VARIANT_STOCK = "variantstock"

# CANCELLED is reachable only before shipping; DELIVERED and CANCELLED are terminal
_FORWARD = [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]
CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PROCESSING)


class StockError(Exception):
    pass


class InsufficientStock(StockError):
    def __init__(self, product_name: str, variant_key: Optional[str] = None, requested: int = 0):
        self.product_name = product_name
        self.variant_key = variant_key
        self.requested = requested
        label = product_name
        if variant_key:
            label = f"{product_name} ({format_key(variant_key)})"
        super().__init__(f"Insufficient stock for product: {label}")


class OrderNotFound(StockError):
    pass


class InvalidTransition(StockError):
    def __init__(self, old: OrderStatus, new: OrderStatus):
        self.old = old
        self.new = new
        super().__init__(f"Cannot change order status from {old.value} to {new.value}")


class OrderConflict(StockError):
    pass


@dataclass
class StockLine:
    product_id: ObjectId
    quantity: int
    variant_key: Optional[str] = None
    name: str = ""

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "StockLine":
        return cls(
            product_id=ObjectId(item["product_id"]),
            quantity=int(item["quantity"]),
            variant_key=item.get("selected_variant") or None,
            name=item.get("name", ""),
        )


# ---------- Variant stock rows ----------

def read_variant_stock(product_id: str) -> Dict[str, int]:
    rows = db[VARIANT_STOCK].find({"product_id": str(product_id)})
    return {row["key"]: int(row.get("quantity", 0)) for row in rows}


def read_variant_stock_many(product_ids: Iterable[str]) -> Dict[str, Dict[str, int]]:
    ids = [str(pid) for pid in product_ids]
    stock: Dict[str, Dict[str, int]] = {pid: {} for pid in ids}
    for row in db[VARIANT_STOCK].find({"product_id": {"$in": ids}}):
        stock.setdefault(row["product_id"], {})[row["key"]] = int(row.get("quantity", 0))
    return stock


def save_variant_stock(product_id: str, variants: Iterable[Any], stock_map: Any = None) -> Dict[str, int]:
    """Persist the stock table for the current axes and return it.

    Combinations missing from `stock_map` keep their stored count (or 0 when
    new); rows for combinations that no longer exist are removed.
    """
    product_id = str(product_id)
    existing = read_variant_stock(product_id)
    if stock_map:
        existing.update({canonical_key(key): qty for key, qty in stock_map.items()})
    reconciled = reconcile_stock(variants, existing)

    db[VARIANT_STOCK].delete_many({"product_id": product_id, "key": {"$nin": list(reconciled)}})
    for key, quantity in reconciled.items():
        db[VARIANT_STOCK].update_one(
            {"product_id": product_id, "key": key},
            {"$set": {"quantity": max(0, int(quantity)), "updated_at": now_utc()}},
            upsert=True,
        )
    return reconciled


def delete_variant_stock(product_id: str) -> int:
    return db[VARIANT_STOCK].delete_many({"product_id": str(product_id)}).deleted_count


# ---------- Deduct / restore ----------

def deduct(line: StockLine) -> bool:
    """Take `line.quantity` units if that many are on hand. Returns False otherwise."""
    if line.variant_key:
        result = db[VARIANT_STOCK].update_one(
            {"product_id": str(line.product_id), "key": line.variant_key, "quantity": {"$gte": line.quantity}},
            {"$inc": {"quantity": -line.quantity}},
        )
    else:
        result = db["product"].update_one(
            {"_id": line.product_id, "stock": {"$gte": line.quantity}},
            {"$inc": {"stock": -line.quantity}},
        )
    return result.modified_count == 1


def restore(line: StockLine) -> None:
    if line.variant_key:
        db[VARIANT_STOCK].update_one(
            {"product_id": str(line.product_id), "key": line.variant_key},
            {"$inc": {"quantity": line.quantity}},
            upsert=True,
        )
        return
    result = db["product"].update_one({"_id": line.product_id}, {"$inc": {"stock": line.quantity}})
    if result.matched_count == 0:
        logger.warning("Stock restore for missing product %s (qty %d)", line.product_id, line.quantity)


def reserve(lines: List[StockLine]) -> None:
    """Deduct every line or none of them."""
    taken: List[StockLine] = []
    for line in lines:
        try:
            ok = deduct(line)
        except PyMongoError:
            logger.exception("Reservation failed at %s; releasing %d taken line(s)", line.product_id, len(taken))
            release(taken)
            raise
        if not ok:
            release(taken)
            logger.warning("Rejected reservation: %s %s x%d", line.product_id, line.variant_key or "-", line.quantity)
            raise InsufficientStock(line.name or str(line.product_id), line.variant_key, line.quantity)
        taken.append(line)


def release(lines: Iterable[StockLine]) -> None:
    for line in lines:
        restore(line)


def restore_cancelled(order: Mapping[str, Any]) -> None:
    """Put back the stock of a cancelled order, each item at most once.

    An item is claimed in `restored_items` before its stock is restored, and
    unclaimed if the restore fails, so a retry picks up only what is left.
    """
    order_id = order["_id"]
    for index, item in enumerate(order.get("items", [])):
        claimed = db["order"].update_one(
            {"_id": order_id, "restored_items": {"$ne": index}},
            {"$addToSet": {"restored_items": index}},
        )
        if claimed.modified_count != 1:
            continue
        try:
            restore(StockLine.from_item(item))
        except PyMongoError:
            db["order"].update_one({"_id": order_id}, {"$pull": {"restored_items": index}})
            raise
    db["order"].update_one({"_id": order_id}, {"$set": {"stock_restored": True}})


# ---------- Order status ----------

def can_transition(old: OrderStatus, new: OrderStatus) -> bool:
    if old == new:
        return True
    if new == OrderStatus.CANCELLED:
        return old in CANCELLABLE
    if old not in _FORWARD or new not in _FORWARD:
        return False
    return _FORWARD.index(new) > _FORWARD.index(old)


def transition_order(order_id: ObjectId, new_status: OrderStatus, query: Optional[Dict[str, Any]] = None) -> Tuple[dict, bool]:
    """Move an order to `new_status`, restoring stock on cancellation.

    Returns (order, changed). The status write is guarded by the status that
    was read, so only one concurrent caller can perform a given transition.
    A cancelled order whose restoration was interrupted (`stock_restored` is
    False) finishes it when cancelled again; each item is restored at most once.
    """
    match = {"_id": order_id}
    if query:
        match.update(query)
    order = db["order"].find_one(match)
    if not order:
        raise OrderNotFound(str(order_id))

    old_status = OrderStatus(order["status"])
    if old_status == new_status:
        if new_status == OrderStatus.CANCELLED and order.get("stock_restored") is False:
            logger.warning("Order %s: resuming interrupted stock restoration", order_id)
            restore_cancelled(order)
            order = db["order"].find_one({"_id": order_id})
        return order, False
    if not can_transition(old_status, new_status):
        raise InvalidTransition(old_status, new_status)

    changes: Dict[str, Any] = {"status": new_status.value, "updated_at": now_utc()}
    if new_status == OrderStatus.CANCELLED:
        changes["stock_restored"] = False
    updated = db["order"].find_one_and_update(
        {"_id": order_id, "status": old_status.value},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        current = db["order"].find_one({"_id": order_id})
        if current and current.get("status") == new_status.value:
            return current, False
        raise OrderConflict(f"Order {order_id} was modified concurrently")

    if new_status == OrderStatus.CANCELLED:
        restore_cancelled(updated)
        updated = db["order"].find_one({"_id": order_id})

    logger.info("Order %s: %s -> %s", order_id, old_status.value, new_status.value)
    return updated, True
