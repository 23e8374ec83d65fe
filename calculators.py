"""
Domain calculators shared by the API, the dashboard and the notification messages.

All functions take plain documents (dicts as stored in Mongo) so they work the
same on request payloads and on records read back from the database.
"""
import math
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

LOW_STOCK_THRESHOLD = 100
FALLBACK_PRICE_PER_METER = 450

ORDER_STATUS_TRANSITIONS = {
    "pending": {"confirmed", "processing", "cancelled"},
    "confirmed": {"processing", "shipped", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

ACTIVE_ORDER_EXCLUDED = ("delivered", "cancelled")


def item_total(item: Dict) -> float:
    return float(item.get("quantity", 0)) * float(item.get("pricePerMeters", 0))


def order_total(items: Optional[Iterable[Dict]]) -> float:
    """Sum of quantity x pricePerMeters over the order items, 0 for no items."""
    if not items:
        return 0.0
    return round(sum(item_total(i) for i in items), 2)


def stock_total_quantity(variants: Optional[Iterable[Dict]]) -> float:
    if not variants:
        return 0
    return sum(float(v.get("quantity", 0)) for v in variants)


def suggest_stock_status(stock: Dict) -> str:
    """Status implied by the quantities.

    The stored status is whatever the caller set; this is returned next to it
    so the client can reconcile the two.
    """
    total = stock_total_quantity(stock.get("variants"))
    if total == 0:
        return "out"
    if total < LOW_STOCK_THRESHOLD:
        return "low"
    if stock.get("stockType") == "Factory Stock":
        return "processing"
    return "available"


def can_transition(current: Optional[str], new: str) -> bool:
    if current is None or current == new:
        return True
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def find_order_item(order: Dict, product: str, color: str) -> Optional[Dict]:
    for item in order.get("orderItems") or []:
        if item.get("product") == product and item.get("color") == color:
            return item
    return None


def refund_amount(order: Optional[Dict], product: str, color: str, quantity: float) -> float:
    """Refund for returning `quantity` of (product, color) from `order`.

    Uses the matching order item's price, or FALLBACK_PRICE_PER_METER when the
    order has no such item.
    """
    item = find_order_item(order or {}, product, color)
    price = float(item["pricePerMeters"]) if item else FALLBACK_PRICE_PER_METER
    return round(float(quantity) * price, 2)


def ordered_quantity(order: Dict, product: str, color: str) -> float:
    return sum(
        float(i.get("quantity", 0))
        for i in order.get("orderItems") or []
        if i.get("product") == product and i.get("color") == color
    )


def returnable_quantity(order: Dict, product: str, color: str, other_returns: Iterable[Dict]) -> float:
    """Ordered quantity minus what other, non-rejected returns already claim."""
    claimed = sum(
        float(r.get("quantityInMeters", 0))
        for r in other_returns
        if r.get("product") == product and r.get("color") == color and not r.get("isRejected")
    )
    return ordered_quantity(order, product, color) - claimed


def return_status_label(ret: Dict) -> str:
    if ret.get("isRejected"):
        return "Rejected"
    return "Approved" if ret.get("isApprove") else "Pending"


def display_id(prefix: str, object_id) -> str:
    """Human friendly id such as ORD-042, built from the digits of the document id"""
    digits = re.sub(r"[^0-9]", "", str(object_id))
    return f"{prefix}-{digits[-3:].rjust(3, '0')}"


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def delivery_priority(delivery_date, now: Optional[datetime] = None) -> str:
    if delivery_date is None:
        return "low"
    if isinstance(delivery_date, str):
        delivery_date = datetime.fromisoformat(delivery_date.replace("Z", "+00:00"))
    now = as_utc(now or datetime.now(timezone.utc))
    days = math.ceil((as_utc(delivery_date) - now).total_seconds() / 86400)
    if days <= 3:
        return "high"
    if days <= 7:
        return "medium"
    return "low"


def format_inr(amount: float) -> str:
    """Rupee amount with Indian digit grouping, e.g. 1234567 -> ₹12,34,567"""
    amount = round(float(amount), 2)
    sign = "-" if amount < 0 else ""
    whole, _, fraction = f"{abs(amount):.2f}".partition(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups: List[str] = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    fraction = fraction.rstrip("0")
    return f"{sign}₹{whole}" + (f".{fraction}" if fraction else "")
