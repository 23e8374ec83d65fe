"""
Stock movement ledger.

Every order and approved return owns a set of signed movements keyed by
(product, color). Callers describe the effect a source *should* have and
`sync_movements` appends whatever delta separates the ledger from that target,
so running it twice for the same state writes nothing the second time.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from schemas import StockMovement

logger = logging.getLogger(__name__)

EPSILON = 1e-9

Key = Tuple[str, str]


def order_targets(order: Optional[Dict]) -> Dict[Key, Tuple[float, Optional[str]]]:
    """Ordered quantities leave stock unless the order is cancelled."""
    targets: Dict[Key, Tuple[float, Optional[str]]] = {}
    if not order or order.get("status") == "cancelled":
        return targets
    for item in order.get("orderItems") or []:
        key = (item["product"], item["color"])
        qty, _ = targets.get(key, (0.0, None))
        targets[key] = (qty - float(item["quantity"]), item.get("unit"))
    return targets


def return_targets(ret: Optional[Dict]) -> Dict[Key, Tuple[float, Optional[str]]]:
    """Approved returns put the returned meters back."""
    if not ret or not ret.get("isApprove") or ret.get("isRejected"):
        return {}
    return {(ret["product"], ret["color"]): (float(ret["quantityInMeters"]), "METERS")}


def net_by_key(collection, source: str, source_id: str) -> Dict[Key, float]:
    net: Dict[Key, float] = {}
    for m in collection.find({"source": source, "sourceId": source_id}):
        key = (m["product"], m["color"])
        net[key] = net.get(key, 0.0) + float(m["quantity"])
    return net


def sync_movements(collection, source: str, source_id: str, targets: Dict[Key, Tuple[float, Optional[str]]]) -> List[Dict]:
    current = net_by_key(collection, source, source_id)
    written = []
    for key in sorted(set(current) | set(targets)):
        target_qty, unit = targets.get(key, (0.0, None))
        delta = target_qty - current.get(key, 0.0)
        if abs(delta) < EPSILON:
            continue
        movement = StockMovement(
            product=key[0],
            color=key[1],
            unit=unit,
            quantity=round(delta, 6),
            source=source,
            sourceId=source_id,
            created_at=datetime.now(timezone.utc),
        ).model_dump()
        collection.insert_one(movement)
        logger.debug("Stock movement %s %s/%s %+g", source, key[0], key[1], delta)
        written.append(movement)
    return written


def sync_order(collection, order_id: str, order: Optional[Dict]) -> List[Dict]:
    return sync_movements(collection, "order", order_id, order_targets(order))


def sync_return(collection, return_id: str, ret: Optional[Dict]) -> List[Dict]:
    return sync_movements(collection, "return", return_id, return_targets(ret))


def stock_levels(collection, product: Optional[str] = None, color: Optional[str] = None) -> List[Dict]:
    match = {}
    if product:
        match["product"] = product
    if color:
        match["color"] = color
    pipeline = [
        {"$match": match},
        {"$group": {"_id": {"product": "$product", "color": "$color"}, "quantity": {"$sum": "$quantity"}, "movements": {"$sum": 1}}},
    ]
    levels = []
    for row in collection.aggregate(pipeline):
        levels.append({
            "product": row["_id"]["product"],
            "color": row["_id"]["color"],
            "netQuantity": round(row["quantity"], 6),
            "movements": row["movements"],
        })
    return sorted(levels, key=lambda l: (l["product"], l["color"]))
