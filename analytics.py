"""Vendor sales summary."""
from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Mapping

from schemas import OrderStatus
from variants import LOW_STOCK_THRESHOLD, format_key, has_variants


def summarize(orders: Iterable[Mapping[str, Any]], products: Iterable[Mapping[str, Any]],
              variant_stock: Mapping[str, Mapping[str, int]], top: int = 5) -> Dict[str, Any]:
    by_status = Counter({status.value: 0 for status in OrderStatus})
    revenue = 0.0
    counted = 0
    units: Dict[str, int] = defaultdict(int)
    sales: Dict[str, float] = defaultdict(float)
    names: Dict[str, str] = {}

    for order in orders:
        status = order.get("status", OrderStatus.PENDING.value)
        by_status[status] += 1
        if status == OrderStatus.CANCELLED.value:
            continue
        counted += 1
        revenue += float(order.get("total", 0))
        for item in order.get("items", []):
            pid = item["product_id"]
            units[pid] += int(item.get("quantity", 0))
            sales[pid] += float(item.get("line_total", 0))
            names.setdefault(pid, item.get("name", ""))

    top_products = [
        {"product_id": pid, "name": names[pid], "units_sold": qty, "revenue": sales[pid]}
        for pid, qty in sorted(units.items(), key=lambda kv: (-kv[1], names[kv[0]]))[:top]
    ]

    low_stock: List[Dict[str, Any]] = []
    for product in products:
        pid = str(product["_id"])
        if not has_variants(product):
            stock = int(product.get("stock") or 0)
            if stock < LOW_STOCK_THRESHOLD:
                low_stock.append({"product_id": pid, "name": product.get("name", ""), "variant": None, "stock": stock})
            continue
        for key, qty in sorted(variant_stock.get(pid, {}).items()):
            if qty < LOW_STOCK_THRESHOLD:
                low_stock.append({"product_id": pid, "name": product.get("name", ""),
                                  "variant": format_key(key), "stock": qty})

    return {
        "revenue": revenue,
        "orders": counted,
        "average_order_value": revenue / counted if counted else 0.0,
        "orders_by_status": dict(by_status),
        "top_products": top_products,
        "low_stock": low_stock,
    }
