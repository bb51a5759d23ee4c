"""
Product variant helpers.

A variant key is the canonical string for one combination of axis values:
attribute names sorted, each written as `name:value`, joined with `,`.

    {"Size": "M", "Color": "Red"}  ->  "Color:Red,Size:M"

Stock per combination is a plain {key: quantity} mapping. Everything here is
pure and never raises on bad stored data, because it is also used while
rendering pages.
"""
import itertools
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

LOW_STOCK_THRESHOLD = 5

COLOR_AXIS_PATTERNS = ("màu", "color", "colours", "colors", "colour")


# ---------- Key codec ----------

def build_key(selection: Mapping[str, str]) -> str:
    return ",".join(f"{name}:{value}" for name, value in sorted(selection.items(), key=lambda kv: kv[0]))


def parse_key(key: Optional[str]) -> Dict[str, str]:
    """Inverse of build_key. A segment without ':' is kept under the empty name."""
    if not key:
        return {}
    selection: Dict[str, str] = {}
    for segment in key.split(","):
        if not segment:
            continue
        name, sep, value = segment.partition(":")
        if sep:
            selection[name] = value
        else:
            selection[""] = segment
    return selection


def canonical_key(key: Optional[str]) -> str:
    if not key:
        return ""
    key = key.strip()
    segments = [s for s in key.split(",") if s.strip()]
    if not segments or any(":" not in s for s in segments):
        return key
    selection: Dict[str, str] = {}
    for segment in segments:
        name, _, value = segment.partition(":")
        selection[name.strip()] = value.strip()
    if len(selection) != len(segments):
        # repeated attribute name
        return key
    return build_key(selection)


# ---------- Axis values ----------

def display_value(value: Any) -> str:
    """Label of a variant value: plain strings, or {name, color} for color axes."""
    if isinstance(value, Mapping):
        return str(value.get("name", ""))
    name = getattr(value, "name", None)
    if name is not None:
        return str(name)
    return str(value)


def is_color_axis(name: str) -> bool:
    lowered = name.lower().strip()
    return any(pattern in lowered for pattern in COLOR_AXIS_PATTERNS)


def _axis_parts(axis: Any):
    if isinstance(axis, Mapping):
        return axis.get("name", ""), axis.get("values") or []
    return axis.name, axis.values or []


def has_variants(product: Mapping[str, Any]) -> bool:
    return bool(product.get("variants"))


def regenerate_combinations(variants: Optional[Iterable[Any]]) -> List[str]:
    """Every variant key of the Cartesian product of the axes' values."""
    axes = [_axis_parts(axis) for axis in (variants or [])]
    if not axes:
        return []
    names = [name for name, _ in axes]
    labels = [[display_value(v) for v in values] for _, values in axes]
    return [build_key(dict(zip(names, combo))) for combo in itertools.product(*labels)]


def reconcile_stock(variants: Optional[Iterable[Any]], existing: Any = None) -> Dict[str, int]:
    current = parse_stock(existing)
    return {key: current.get(key, 0) for key in regenerate_combinations(variants)}


# ---------- Stock lookup ----------

def parse_stock(raw: Any) -> Dict[str, int]:
    if not raw:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    if not isinstance(raw, Mapping):
        return {}
    stock: Dict[str, int] = {}
    for key, qty in raw.items():
        if isinstance(qty, bool):
            continue
        if isinstance(qty, int):
            stock[str(key)] = qty
        elif isinstance(qty, float) and qty.is_integer():
            stock[str(key)] = int(qty)
    return stock


def stock_for(variant_stock: Any, key: Optional[str]) -> int:
    if not key:
        return 0
    return max(0, parse_stock(variant_stock).get(key, 0))


def available_stock(product: Mapping[str, Any], key: Optional[str] = None) -> int:
    """Units purchasable for `key`; products without axes use general stock."""
    if not has_variants(product):
        return max(0, int(product.get("stock") or 0))
    return stock_for(product.get("variant_stock"), canonical_key(key))


def total_stock(product: Mapping[str, Any]) -> int:
    if not has_variants(product):
        return max(0, int(product.get("stock") or 0))
    return sum(max(0, qty) for qty in parse_stock(product.get("variant_stock")).values())


def stock_status(product: Mapping[str, Any], key: Optional[str] = None) -> str:
    stock = available_stock(product, key)
    if stock == 0:
        return "out_of_stock"
    if stock < LOW_STOCK_THRESHOLD:
        return "low_stock"
    return "in_stock"


# ---------- Display ----------

def format_key(key: Optional[str]) -> str:
    """'Size:M,Color:Red' -> 'Size: M, Color: Red'. Malformed parts are shown raw."""
    if not key:
        return ""
    parts = []
    for segment in key.split(","):
        name, sep, value = segment.partition(":")
        parts.append(f"{name}: {value}" if sep and value else segment)
    return ", ".join(parts)
