"""
WhatsApp notifications.

Events raised by the API are turned into text messages and pushed to the admin
numbers through Twilio. Whether an event is sent at all is decided by the
WhatsappNotification settings the caller hands to the dispatcher. Delivery
failures are logged to the whatsapp_message collection and never reach the
request that triggered them.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import requests
from pymongo.errors import PyMongoError

from calculators import format_inr, order_total, stock_total_quantity
from schemas import WhatsappNotification

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
DEFAULT_FROM_NUMBER = "whatsapp:+14155238886"

EVENT_TOGGLES = {
    "customer_created": "newCustomers",
    "order_created": "orderUpdates",
    "order_updated": "orderUpdates",
    "order_deleted": "orderUpdates",
    "product_created": "productUpdates",
    "product_updated": "productUpdates",
    "product_deleted": "productUpdates",
    "stock_created": "stockAlerts",
    "stock_updated": "stockAlerts",
    "stock_deleted": "stockAlerts",
    "stock_low": "lowStockWarnings",
    "return_created": "returnRequests",
    "return_updated": "returnRequests",
    "return_deleted": "returnRequests",
    "daily_report": "dailyReports",
}

EVENT_TYPES = {
    "customer": "new_customer",
    "order": "order_update",
    "product": "product_update",
    "stock": "stock_alert",
    "return": "return_request",
    "daily": "daily_report",
}


class NotificationError(Exception):
    pass


class TwilioWhatsAppClient:
    def __init__(self, account_sid: Optional[str], auth_token: Optional[str],
                 from_number: str = DEFAULT_FROM_NUMBER, timeout: int = 10):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    @classmethod
    def from_env(cls):
        return cls(
            os.getenv("TWILIO_ACCOUNT_SID"),
            os.getenv("TWILIO_AUTH_TOKEN"),
            os.getenv("TWILIO_WHATSAPP_FROM", DEFAULT_FROM_NUMBER),
        )

    def send(self, to: str, body: str) -> Optional[str]:
        if not self.account_sid or not self.auth_token:
            raise NotificationError("Twilio credentials not configured")
        resp = requests.post(
            TWILIO_MESSAGES_URL.format(sid=self.account_sid),
            auth=(self.account_sid, self.auth_token),
            data={"From": self.from_number, "To": f"whatsapp:{to}", "Body": body},
            timeout=self.timeout,
        )
        if resp.status_code >= 300:
            raise NotificationError(f"Twilio responded {resp.status_code}: {resp.text[:200]}")
        sid = resp.json().get("sid")
        logger.info("WhatsApp message sent: %s", sid)
        return sid


def admin_numbers() -> List[str]:
    raw = os.getenv("WHATSAPP_NOTIFICATION_NUMBER", "")
    return [n.strip() for n in raw.split(",") if n.strip()]


def client_url() -> str:
    return os.getenv("CLIENT_URL", "http://localhost:3000").rstrip("/")


class NotificationDispatcher:
    def __init__(self, settings: WhatsappNotification, client, log_collection,
                 recipients: Optional[List[str]] = None):
        self.settings = settings
        self.client = client
        self.log_collection = log_collection
        self.recipients = list(recipients) if recipients is not None else admin_numbers()

    def enabled(self, event: str) -> bool:
        toggle = EVENT_TOGGLES.get(event)
        return bool(toggle and getattr(self.settings, toggle, False))

    def notify(self, event: str, message: str) -> Optional[Dict]:
        """Send `message` for `event` if its toggle is on. Returns the log record, or None when skipped."""
        if not self.enabled(event):
            return None
        return self.deliver(message, EVENT_TYPES.get(event.split("_")[0], "general"), self.recipients, event=event)

    def deliver(self, message: str, message_type: str, numbers: Iterable[str], event: Optional[str] = None) -> Dict:
        numbers = list(numbers)
        delivered = 0
        for number in numbers:
            try:
                self.client.send(number, message)
                delivered += 1
            except (NotificationError, requests.RequestException):
                logger.exception("WhatsApp notification to %s failed (%s)", number, event or message_type)
        record = {
            "message": message,
            "type": message_type,
            "event": event,
            "sentToCount": delivered,
            "status": "Delivered" if numbers and delivered == len(numbers) else "Not Delivered",
            "created_at": datetime.now(timezone.utc),
        }
        try:
            self.log_collection.insert_one(record)
        except PyMongoError:
            logger.exception("Could not record WhatsApp message log (%s)", event or message_type)
        return record


# Message templates

def _link(path: str) -> str:
    return f"{client_url()}/{path}"


def customer_created_message(customer: Dict) -> str:
    return (
        "🆕 New Customer Added!\n\n"
        f"👤 Name: {customer.get('customerName')}\n"
        f"🏷 Type: {customer.get('customerType')}\n"
        f"📧 Email: {customer.get('email')}\n"
        f"📞 Phone: {customer.get('phone')}\n"
        f"🏙 City: {customer.get('city')}\n"
        f"💳 Credit Limit: {format_inr(customer.get('creditLimit') or 0)}\n"
        f"📍 Address: {customer.get('address')}\n\n"
        f"View details: {_link('customers/' + str(customer.get('_id')))}"
    )


def order_message(order: Dict, action: str) -> str:
    lines = [f"🛒 Order {action.capitalize()}!", "", f"👤 Customer: {order.get('customer')}"]
    if action != "deleted":
        lines.append(f"📌 Status: {order.get('status')}")
        for item in order.get("orderItems") or []:
            lines.append(f"  • {item.get('product')} ({item.get('color')}): {item.get('quantity')} {item.get('unit')} @ {format_inr(item.get('pricePerMeters', 0))}")
        lines.append(f"💰 Total: {format_inr(order_total(order.get('orderItems')))}")
        lines.append("")
        lines.append(f"View details: {_link('orders/' + str(order.get('_id')))}")
    return "\n".join(lines)


def product_message(product: Dict, action: str) -> str:
    lines = [f"📦 Product {action.capitalize()}: {product.get('productName')}"]
    if action != "deleted":
        lines.append(f"Category: {product.get('category')}")
        for v in product.get("variants") or []:
            lines.append(f"  - {v.get('color')}: {format_inr(v.get('pricePerMeters', 0))}/m, Stock: {v.get('stockInMeters', 0)}m")
        lines.append(f"View changes at {_link('products/' + str(product.get('_id')))}")
    return "\n".join(lines)


def stock_message(stock: Dict, action: str) -> str:
    details = stock.get("stockDetails") or {}
    lines = [
        f"🏭 {stock.get('stockType')} {action.capitalize()}",
        f"Product: {details.get('product', 'Unknown Product')}",
    ]
    if action != "deleted":
        lines.append(f"Status: {stock.get('status')}")
        lines.append(f"Total quantity: {stock_total_quantity(stock.get('variants')):g}")
        lines.append(f"View details: {_link('stock/' + str(stock.get('_id')))}")
    return "\n".join(lines)


def low_stock_message(stock: Dict, suggested_status: str) -> str:
    details = stock.get("stockDetails") or {}
    label = "OUT OF STOCK" if suggested_status == "out" else "Low stock"
    return (
        f"⚠️ {label}: {details.get('product', 'Unknown Product')} ({stock.get('stockType')})\n"
        f"Remaining: {stock_total_quantity(stock.get('variants')):g}\n"
        f"View details: {_link('stock/' + str(stock.get('_id')))}"
    )


def return_message(ret: Dict, action: str) -> str:
    lines = [
        f"↩️ Return {action.capitalize()}",
        f"Customer: {ret.get('customer')}",
        f"Product: {ret.get('product')} ({ret.get('color')})",
    ]
    if action != "deleted":
        lines.append(f"Quantity: {ret.get('quantityInMeters')}m")
        lines.append(f"Reason: {ret.get('returnReason')}")
        lines.append(f"Refund: {format_inr(ret.get('refundAmount') or 0)}")
        lines.append(f"View details: {_link('returns/' + str(ret.get('_id')))}")
    return "\n".join(lines)


def product_updates_message(products: Iterable[Dict]) -> str:
    message = "📢 Product Updates:\n\n"
    for index, p in enumerate(products, start=1):
        message += f"{index}. {p.get('productName')}\n"
        if p.get("description"):
            message += f"   📝 {p['description']}\n"
        message += f"   Category: {p.get('category')}\n"
        message += f"   Unit: {p.get('unit')}\n"
        if p.get("variants"):
            message += "   Variants:\n"
            for v in p["variants"]:
                message += f"     - {v.get('color')}: ₹{v.get('pricePerMeters')}/m, Stock: {v.get('stockInMeters')}m\n"
        message += "\n"
    return message


def daily_report_message(summary: Dict) -> str:
    return (
        f"📊 Daily Report ({summary.get('date')})\n\n"
        f"Orders today: {summary.get('ordersToday', 0)}\n"
        f"Revenue today: {format_inr(summary.get('revenueToday', 0))}\n"
        f"Active orders: {summary.get('activeOrders', 0)}\n"
        f"Low stock items: {summary.get('lowStockItems', 0)}\n"
        f"Pending returns: {summary.get('pendingReturns', 0)}"
    )
