import os
import re
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

import ledger
from calculators import (
    ACTIVE_ORDER_EXCLUDED,
    LOW_STOCK_THRESHOLD,
    as_utc,
    can_transition,
    delivery_priority,
    display_id,
    find_order_item,
    format_inr,
    item_total,
    order_total,
    refund_amount,
    return_status_label,
    returnable_quantity,
    stock_total_quantity,
    suggest_stock_status,
)
from database import db, create_document
from notifications import (
    NotificationDispatcher,
    TwilioWhatsAppClient,
    customer_created_message,
    daily_report_message,
    low_stock_message,
    order_message,
    product_message,
    product_updates_message,
    return_message,
    stock_message,
)
from schemas import (
    Agent as AgentSchema,
    Business as BusinessSchema,
    Customer as CustomerSchema,
    Order as OrderSchema,
    OrderUpdate,
    Product as ProductSchema,
    ProductUpdateBroadcast,
    Return as ReturnSchema,
    ReturnUpdate,
    Stock as StockSchema,
    User as UserSchema,
    WhatsappMessage as WhatsappMessageSchema,
    WhatsappNotification,
    WhatsappNotificationUpdate,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Textile ERP API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter(prefix="/api/v1")


# Error handling
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": [str(p) for p in e.get("loc", [])], "msg": e.get("msg")} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"success": False, "message": "Validation failed", "errors": errors})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Server Error"})


# Helpers
def col(name: str):
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db[name]


def to_obj_id(id_str: str) -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise HTTPException(status_code=400, detail="Invalid id")
    return ObjectId(id_str)


def to_str_id(doc):
    if not doc:
        return doc
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


def ok(message: Optional[str] = None, **payload):
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(payload)
    return body


def now_utc():
    return datetime.now(timezone.utc)


def find_or_404(collection: str, doc_id: str, label: str) -> Dict:
    doc = col(collection).find_one({"_id": to_obj_id(doc_id)})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def replace_fields(collection: str, doc_id: str, data: Dict, label: str) -> Dict:
    data["updated_at"] = now_utc()
    updated = col(collection).find_one_and_update(
        {"_id": to_obj_id(doc_id)},
        {"$set": data},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return updated


def delete_or_404(collection: str, doc_id: str, label: str) -> Dict:
    deleted = col(collection).find_one_and_delete({"_id": to_obj_id(doc_id)})
    if not deleted:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return deleted


# Notification wiring
def get_whatsapp_client():
    return TwilioWhatsAppClient.from_env()


def load_notification_settings() -> WhatsappNotification:
    doc = col("whatsapp_notification").find_one() or {}
    return WhatsappNotification.model_validate({k: v for k, v in doc.items() if k in WhatsappNotification.model_fields})


def get_dispatcher(client=Depends(get_whatsapp_client)) -> NotificationDispatcher:
    return NotificationDispatcher(
        settings=load_notification_settings(),
        client=client,
        log_collection=col("whatsapp_message"),
    )


# Presenters
def present_order(doc: Dict, customers: Optional[Dict[str, Dict]] = None) -> Dict:
    doc = to_str_id(doc)
    doc["totalAmount"] = order_total(doc.get("orderItems"))
    doc["displayId"] = display_id("ORD", doc["_id"])
    doc["priority"] = delivery_priority(doc.get("deliveryDate"))
    customer_id = doc.get("customerId")
    if customer_id:
        if customers is None:
            customers = customers_by_id([customer_id])
        doc["customerDetails"] = customers.get(customer_id)
    return doc


def customers_by_id(ids: List[str]) -> Dict[str, Dict]:
    oids = [ObjectId(i) for i in set(ids) if i and ObjectId.is_valid(i)]
    if not oids:
        return {}
    return {str(c["_id"]): to_str_id(c) for c in col("customer").find({"_id": {"$in": oids}})}


def present_stock(doc: Dict) -> Dict:
    doc = to_str_id(doc)
    doc["totalQuantity"] = stock_total_quantity(doc.get("variants"))
    doc["suggestedStatus"] = suggest_stock_status(doc)
    return doc


def present_return(doc: Dict) -> Dict:
    doc = to_str_id(doc)
    doc["displayId"] = display_id("RET", doc["_id"])
    doc["statusLabel"] = return_status_label(doc)
    return doc


# Health and test
@app.get("/")
def read_root():
    return {"message": "Textile ERP Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["whatsapp"] = "✅ Set" if os.getenv("TWILIO_ACCOUNT_SID") else "❌ Not Set"
    return response


# Product Endpoints
@router.post("/products", status_code=201)
@router.post("/products/addProduct", status_code=201)
def create_product(product: ProductSchema, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    product_id = create_document("product", product)
    created = col("product").find_one({"_id": ObjectId(product_id)})
    logger.info("Product created: %s", product_id)
    dispatcher.notify("product_created", product_message(created, "created"))
    return ok("Product Created Successfully!", product=to_str_id(created))


@router.get("/products")
def list_products(q: Optional[str] = Query(default=None, description="Search by product name or tag"),
                  category: Optional[str] = None):
    query = {}
    if q:
        pattern = re.escape(q)
        query["$or"] = [
            {"productName": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]
    if category:
        query["category"] = category
    products = list(col("product").find(query).sort("created_at", -1))
    return ok(products=[to_str_id(p) for p in products])


@router.get("/products/{product_id}")
def get_product(product_id: str):
    return ok(product=to_str_id(find_or_404("product", product_id, "Product")))


@router.put("/products/{product_id}")
def update_product(product_id: str, product: ProductSchema,
                   dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    updated = replace_fields("product", product_id, product.model_dump(), "Product")
    dispatcher.notify("product_updated", product_message(updated, "updated"))
    return ok("Product updated successfully", product=to_str_id(updated))


@router.delete("/products/{product_id}")
def delete_product(product_id: str, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    deleted = delete_or_404("product", product_id, "Product")
    logger.info("Product deleted: %s", product_id)
    dispatcher.notify("product_deleted", product_message(deleted, "deleted"))
    return ok("Product deleted successfully")


# Customer Endpoints
@router.post("/customer", status_code=201)
@router.post("/customer/addCustomer", status_code=201)
def create_customer(customer: CustomerSchema, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    customer_id = create_document("customer", customer)
    created = col("customer").find_one({"_id": ObjectId(customer_id)})
    logger.info("Customer created: %s", customer_id)
    dispatcher.notify("customer_created", customer_created_message(created))
    return ok("Customer created successfully", customer=to_str_id(created))


@router.get("/customer")
def list_customers(q: Optional[str] = None, customerType: Optional[str] = None, city: Optional[str] = None):
    query = {}
    if q:
        pattern = re.escape(q)
        query["$or"] = [
            {"customerName": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
            {"phone": {"$regex": pattern, "$options": "i"}},
        ]
    if customerType:
        query["customerType"] = customerType
    if city:
        query["city"] = city
    customers = list(col("customer").find(query).sort("customerName", 1))
    return ok(customers=[to_str_id(c) for c in customers])


@router.get("/customer/{customer_id}")
def get_customer(customer_id: str):
    return ok(customer=to_str_id(find_or_404("customer", customer_id, "Customer")))


@router.put("/customer/{customer_id}")
def update_customer(customer_id: str, customer: CustomerSchema):
    updated = replace_fields("customer", customer_id, customer.model_dump(), "Customer")
    return ok("Customer updated successfully", customer=to_str_id(updated))


@router.delete("/customer/{customer_id}")
def delete_customer(customer_id: str):
    delete_or_404("customer", customer_id, "Customer")
    logger.info("Customer deleted: %s", customer_id)
    return ok("Customer deleted successfully")


# Orders
def resolve_customer_name(customer_id: str) -> str:
    customer = col("customer").find_one({"_id": to_obj_id(customer_id)})
    if not customer:
        raise HTTPException(status_code=400, detail=f"Customer not found: {customer_id}")
    return customer["customerName"]


@router.post("/order", status_code=201)
@router.post("/order/addOrder", status_code=201)
def create_order(payload: OrderSchema, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    if not payload.orderItems or not (payload.customer or payload.customerId):
        raise HTTPException(status_code=400, detail="Missing Required Fields or No Order Items Provided!")

    data = payload.model_dump()
    if payload.customerId:
        data["customer"] = resolve_customer_name(payload.customerId)
    now = now_utc()
    data.update({"created_at": now, "updated_at": now})

    result = col("order").insert_one(data)
    order_id = str(result.inserted_id)
    created = col("order").find_one({"_id": result.inserted_id})

    ledger.sync_order(col("stock_movement"), order_id, created)
    logger.info("Order created: %s for %s", order_id, created.get("customer"))
    dispatcher.notify("order_created", order_message(created, "created"))
    return ok("Order Created Successfully!", order=present_order(created))


@router.get("/order")
def list_orders(status: Optional[str] = None, customer: Optional[str] = None):
    query = {}
    if status:
        query["status"] = status
    if customer:
        query["customer"] = customer
    orders = list(col("order").find(query).sort("created_at", -1))
    customers = customers_by_id([o.get("customerId") for o in orders if o.get("customerId")])
    return ok(orders=[present_order(o, customers) for o in orders])


@router.get("/order/{order_id}")
def get_order(order_id: str):
    return ok(order=present_order(find_or_404("order", order_id, "Order")))


@router.put("/order/{order_id}")
def update_order(order_id: str, payload: OrderUpdate, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    existing = find_or_404("order", order_id, "Order")
    data = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "orderItems" in data and not data["orderItems"]:
        raise HTTPException(status_code=400, detail="An order needs at least one item")
    new_status = data.get("status")
    if new_status and not can_transition(existing.get("status"), new_status):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change order status from {existing.get('status')} to {new_status}",
        )
    if data.get("customerId") and data["customerId"] != existing.get("customerId"):
        data["customer"] = resolve_customer_name(data["customerId"])

    updated = replace_fields("order", order_id, data, "Order")
    ledger.sync_order(col("stock_movement"), order_id, updated)
    dispatcher.notify("order_updated", order_message(updated, "updated"))
    return ok("Order updated successfully", order=present_order(updated))


@router.delete("/order/{order_id}")
def delete_order(order_id: str, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    deleted = delete_or_404("order", order_id, "Order")
    ledger.sync_order(col("stock_movement"), order_id, None)
    logger.info("Order deleted: %s", order_id)
    dispatcher.notify("order_deleted", order_message(deleted, "deleted"))
    return ok("Order deleted successfully")


# Stock
def notify_stock(dispatcher: NotificationDispatcher, stock: Dict, action: str):
    dispatcher.notify(f"stock_{action}", stock_message(stock, action))
    if action == "deleted":
        return
    suggested = suggest_stock_status(stock)
    if suggested in ("low", "out"):
        dispatcher.notify("stock_low", low_stock_message(stock, suggested))


@router.post("/stock", status_code=201)
@router.post("/stock/addStock", status_code=201)
def create_stock(stock: StockSchema, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    stock_id = create_document("stock", stock)
    created = col("stock").find_one({"_id": ObjectId(stock_id)})
    logger.info("Stock added: %s (%s)", stock_id, stock.stockType)
    notify_stock(dispatcher, created, "created")
    return ok("Stock added successfully!", stock=present_stock(created))


@router.get("/stock")
def list_stocks(stockType: Optional[str] = None, status: Optional[str] = None):
    query = {}
    if stockType:
        query["stockType"] = stockType
    if status:
        query["status"] = status
    stocks = list(col("stock").find(query).sort("updated_at", -1))
    return ok(stocks=[present_stock(s) for s in stocks])


@router.get("/stock/movements")
def list_stock_movements(product: Optional[str] = None, color: Optional[str] = None,
                         source: Optional[str] = None, sourceId: Optional[str] = None):
    query = {}
    for key, value in (("product", product), ("color", color), ("source", source), ("sourceId", sourceId)):
        if value:
            query[key] = value
    movements = list(col("stock_movement").find(query).sort("created_at", -1))
    return ok(movements=[to_str_id(m) for m in movements])


@router.get("/stock/levels")
def get_stock_levels(product: Optional[str] = None, color: Optional[str] = None):
    return ok(levels=ledger.stock_levels(col("stock_movement"), product=product, color=color))


@router.get("/stock/{stock_id}")
def get_stock(stock_id: str):
    return ok(stock=present_stock(find_or_404("stock", stock_id, "Stock")))


@router.put("/stock/{stock_id}")
def update_stock(stock_id: str, stock: StockSchema, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    updated = replace_fields("stock", stock_id, stock.model_dump(), "Stock")
    notify_stock(dispatcher, updated, "updated")
    return ok("Stock updated successfully", stock=present_stock(updated))


@router.delete("/stock/{stock_id}")
def delete_stock(stock_id: str, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    deleted = delete_or_404("stock", stock_id, "Stock")
    logger.info("Stock deleted: %s", stock_id)
    notify_stock(dispatcher, deleted, "deleted")
    return ok("Stock deleted successfully")


# Returns
def check_returnable(order: Dict, product: str, color: str, quantity: float, others: List[Dict]):
    if not find_order_item(order, product, color):
        return
    remaining = returnable_quantity(order, product, color, others)
    if quantity > remaining + 1e-9:
        raise HTTPException(
            status_code=400,
            detail=f"Only {max(remaining, 0):g} meters of {product} ({color}) can be returned for this order",
        )


@router.post("/returns", status_code=201)
@router.post("/returns/addReturn", status_code=201)
def create_return(payload: ReturnSchema, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    order = col("order").find_one({"_id": to_obj_id(payload.order)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found!")

    others = list(col("return").find({"order": payload.order}))
    check_returnable(order, payload.product, payload.color, payload.quantityInMeters, others)

    data = payload.model_dump()
    data.update({
        "customer": order.get("customer"),
        "isApprove": False,
        "isRejected": False,
        "refundAmount": refund_amount(order, payload.product, payload.color, payload.quantityInMeters),
    })
    return_id = create_document("return", data)
    created = col("return").find_one({"_id": ObjectId(return_id)})
    logger.info("Return created: %s against order %s", return_id, payload.order)
    dispatcher.notify("return_created", return_message(created, "created"))
    return ok("Return request created successfully!", **{"return": present_return(created)})


@router.get("/returns")
def list_returns(order: Optional[str] = None):
    query = {"order": order} if order else {}
    returns = list(col("return").find(query).sort("created_at", -1))
    return ok(returns=[present_return(r) for r in returns])


@router.get("/returns/{return_id}")
def get_return(return_id: str):
    return ok(**{"return": present_return(find_or_404("return", return_id, "Return"))})


@router.put("/returns/{return_id}/undo")
def undo_return(return_id: str, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    updated = replace_fields("return", return_id, {"isApprove": False, "isRejected": False}, "Return")
    ledger.sync_return(col("stock_movement"), return_id, updated)
    dispatcher.notify("return_updated", return_message(updated, "moved back to pending"))
    return ok("Return moved back to pending", **{"return": present_return(updated)})


@router.put("/returns/{return_id}")
def update_return(return_id: str, payload: ReturnUpdate, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    existing = find_or_404("return", return_id, "Return")
    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    merged = {**existing, **data}
    if merged.get("isApprove") and merged.get("isRejected"):
        raise HTTPException(status_code=400, detail="A return cannot be both approved and rejected")

    order_ref = existing.get("order")
    order = col("order").find_one({"_id": ObjectId(order_ref)}) if ObjectId.is_valid(order_ref or "") else None
    if order and not merged.get("isRejected"):
        others = [r for r in col("return").find({"order": order_ref}) if r["_id"] != existing["_id"]]
        check_returnable(order, merged["product"], merged["color"], float(merged["quantityInMeters"]), others)
    if order or any(k in data for k in ("product", "color", "quantityInMeters")):
        data["refundAmount"] = refund_amount(order, merged["product"], merged["color"], merged["quantityInMeters"])

    updated = replace_fields("return", return_id, data, "Return")
    ledger.sync_return(col("stock_movement"), return_id, updated)
    dispatcher.notify("return_updated", return_message(updated, return_status_label(updated).lower()))
    return ok("Return updated successfully", **{"return": present_return(updated)})


@router.delete("/returns/{return_id}")
def delete_return(return_id: str, dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    deleted = delete_or_404("return", return_id, "Return")
    ledger.sync_return(col("stock_movement"), return_id, None)
    dispatcher.notify("return_deleted", return_message(deleted, "deleted"))
    return ok("Return deleted successfully")


# Business profile
@router.get("/business")
def get_business():
    return ok(business=to_str_id(col("business").find_one()))


@router.put("/business")
def update_business(business: BusinessSchema):
    now = now_utc()
    updated = col("business").find_one_and_update(
        {},
        {"$set": {**business.model_dump(), "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return ok("Business info updated successfully", business=to_str_id(updated))


# WhatsApp notification settings
@router.get("/whatsapp-notifications")
def get_notification_settings():
    settings = col("whatsapp_notification").find_one()
    if not settings:
        col("whatsapp_notification").insert_one(WhatsappNotification().model_dump())
        settings = col("whatsapp_notification").find_one()
    return ok(settings=to_str_id(settings))


@router.put("/whatsapp-notifications")
def update_notification_settings(payload: WhatsappNotificationUpdate):
    changes = payload.model_dump(exclude_none=True)
    settings = col("whatsapp_notification").find_one()
    if not settings:
        col("whatsapp_notification").insert_one(WhatsappNotification().model_dump())
    updated = col("whatsapp_notification").find_one_and_update(
        {},
        {"$set": {**changes, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    return ok("Notification settings updated", settings=to_str_id(updated))


@router.post("/whatsapp-notifications/send-product-updates")
def send_product_updates(payload: ProductUpdateBroadcast,
                         dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    if not payload.customerIds or not payload.productIds:
        raise HTTPException(status_code=400, detail="Customer IDs and Product IDs are required")

    customers = col("customer").find({"_id": {"$in": [to_obj_id(i) for i in payload.customerIds]}})
    numbers = [c["phone"] for c in customers if c.get("phone")]
    if not numbers:
        raise HTTPException(status_code=404, detail="No valid customer phone numbers found")

    products = list(col("product").find({"_id": {"$in": [to_obj_id(i) for i in payload.productIds]}}))
    if not products:
        raise HTTPException(status_code=404, detail="No products found")

    record = dispatcher.deliver(product_updates_message(products), "product_update", numbers, event="product_broadcast")
    return ok("Product updates sent to customers", customers=numbers, status=record["status"])


def daily_summary(today: Optional[datetime] = None) -> Dict:
    today = as_utc(today or now_utc()).date()
    orders = list(col("order").find())
    todays = [o for o in orders if o.get("orderDate") and as_utc(o["orderDate"]).date() == today]
    return {
        "date": today.isoformat(),
        "ordersToday": len(todays),
        "revenueToday": round(sum(order_total(o.get("orderItems")) for o in todays if o.get("status") != "cancelled"), 2),
        "activeOrders": sum(1 for o in orders if o.get("status") not in ACTIVE_ORDER_EXCLUDED),
        "lowStockItems": col("stock").count_documents({"status": {"$in": ["low", "out"]}}),
        "pendingReturns": col("return").count_documents({"isApprove": False, "isRejected": False}),
    }


@router.post("/whatsapp-notifications/send-daily-report")
def send_daily_report(dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    summary = daily_summary()
    record = dispatcher.notify("daily_report", daily_report_message(summary))
    if record is None:
        return ok("Daily reports are disabled", sent=False, report=summary)
    return ok("Daily report dispatched", sent=True, status=record["status"], report=summary)


# WhatsApp message log
@router.get("/whatsapp-messages")
def list_whatsapp_messages(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100)):
    total = col("whatsapp_message").count_documents({})
    messages = list(
        col("whatsapp_message").find().sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    )
    return ok(
        messages=[to_str_id(m) for m in messages],
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.post("/whatsapp-messages", status_code=201)
def create_whatsapp_message(message: WhatsappMessageSchema):
    messages = col("whatsapp_message")
    message_id = create_document("whatsapp_message", message)
    created = messages.find_one({"_id": ObjectId(message_id)})
    return ok("Message saved", data=to_str_id(created))


# Agents
def generate_agent_id() -> str:
    count = col("agent").count_documents({}) + 1
    while col("agent").find_one({"agentId": f"AGT-{count:03d}"}):
        count += 1
    return f"AGT-{count:03d}"


@router.post("/agent", status_code=201)
def create_agent(agent: AgentSchema):
    data = agent.model_dump()
    data["agentId"] = generate_agent_id()
    agent_id = create_document("agent", data)
    created = col("agent").find_one({"_id": ObjectId(agent_id)})
    return ok("Agent created successfully", agent=to_str_id(created))


@router.get("/agent")
def list_agents():
    agents = list(col("agent").find().sort("agentId", 1))
    return ok(agents=[to_str_id(a) for a in agents])


@router.get("/agent/{agent_id}")
def get_agent(agent_id: str):
    return ok(agent=to_str_id(find_or_404("agent", agent_id, "Agent")))


@router.put("/agent/{agent_id}")
def update_agent(agent_id: str, agent: AgentSchema):
    updated = replace_fields("agent", agent_id, agent.model_dump(), "Agent")
    return ok("Agent updated successfully", agent=to_str_id(updated))


@router.delete("/agent/{agent_id}")
def delete_agent(agent_id: str):
    delete_or_404("agent", agent_id, "Agent")
    return ok("Agent deleted successfully")


# Users
@router.post("/user", status_code=201)
def create_user(user: UserSchema):
    if col("user").find_one({"email": user.email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_id = create_document("user", user)
    created = col("user").find_one({"_id": ObjectId(user_id)})
    return ok("User created successfully", user=to_str_id(created))


@router.get("/user")
def list_users():
    users = list(col("user").find().sort("created_at", -1))
    return ok(users=[to_str_id(u) for u in users])


@router.get("/user/{user_id}")
def get_user(user_id: str):
    return ok(user=to_str_id(find_or_404("user", user_id, "User")))


@router.put("/user/{user_id}")
def update_user(user_id: str, user: UserSchema):
    oid = to_obj_id(user_id)
    if col("user").find_one({"email": user.email, "_id": {"$ne": oid}}):
        raise HTTPException(status_code=400, detail="Email already in use")
    updated = replace_fields("user", user_id, user.model_dump(), "User")
    return ok("User updated successfully", user=to_str_id(updated))


@router.delete("/user/{user_id}")
def delete_user(user_id: str):
    delete_or_404("user", user_id, "User")
    return ok("User deleted successfully")


# Dashboard
@router.get("/dashboard/stats")
def dashboard_stats():
    return ok(data={
        "totalProducts": col("product").count_documents({}),
        "activeOrders": col("order").count_documents({"status": {"$nin": list(ACTIVE_ORDER_EXCLUDED)}}),
        "totalCustomers": col("customer").count_documents({}),
        "lowStockItems": col("stock").count_documents({"status": "low"}),
    })


@router.get("/dashboard/recent-orders")
def dashboard_recent_orders():
    recent = []
    for order in col("order").find().sort("created_at", -1).limit(5):
        items = order.get("orderItems") or []
        first = items[0] if items else None
        recent.append({
            "id": display_id("ORD", order["_id"]),
            "originalId": str(order["_id"]),
            "customer": order.get("customer"),
            "product": first["product"] if first else "N/A",
            "quantity": f"{first['quantity']:g}{first['unit']}" if first else "N/A",
            "status": order.get("status"),
            "priority": delivery_priority(order.get("deliveryDate")),
            "amount": format_inr(order_total(items)),
        })
    return ok(recentOrders=recent)


@router.get("/dashboard/latest-products")
def dashboard_latest_products():
    latest = [
        {
            "id": str(p["_id"]),
            "name": p.get("productName"),
            "category": p.get("category") or "Uncategorized",
            "createdAt": p.get("created_at"),
        }
        for p in col("product").find().sort("created_at", -1).limit(5)
    ]
    return ok(latestProducts=latest)


def stock_label(stock: Dict) -> str:
    details = stock.get("stockDetails") or {}
    stock_type = stock.get("stockType")
    if stock_type == "Gray Stock":
        return f"{details.get('factory') or ''} Gray Stock".strip()
    if stock_type == "Design Stock":
        return f"{details.get('design') or ''} Design".strip()
    if stock_type == "Factory Stock":
        return f"{details.get('processingFactory') or ''} Factory Stock".strip()
    return stock_type or "Unknown Type"


@router.get("/dashboard/stock-alerts")
def dashboard_stock_alerts():
    alerts = []
    for stock in col("stock").find({"status": {"$in": ["low", "out"]}}).sort("updated_at", -1).limit(5):
        variants = stock.get("variants") or []
        first = variants[0] if variants else None
        alerts.append({
            "product": (stock.get("stockDetails") or {}).get("product") or "Unknown Product",
            "stockTypeLabel": stock_label(stock),
            "current": f"{first['quantity']:g}{first.get('unit', '')}" if first else "0",
            "totalQuantity": stock_total_quantity(variants),
            "minimum": str(LOW_STOCK_THRESHOLD),
            "severity": "critical" if stock.get("status") == "out" else "warning",
            "stockType": stock.get("stockType"),
        })
    return ok(stockAlerts=alerts)


@router.get("/dashboard/revenue")
def dashboard_revenue():
    by_customer: Dict[str, Dict] = {}
    by_product: Dict[str, Dict] = {}
    total = 0.0
    orders = col("order").find({"status": {"$ne": "cancelled"}})
    for order in orders:
        items = order.get("orderItems") or []
        amount = order_total(items)
        total += amount
        entry = by_customer.setdefault(order.get("customer") or "Unknown", {"orders": 0, "revenue": 0.0})
        entry["orders"] += 1
        entry["revenue"] = round(entry["revenue"] + amount, 2)
        for item in items:
            p = by_product.setdefault(item["product"], {"quantity": 0.0, "revenue": 0.0})
            p["quantity"] += float(item["quantity"])
            p["revenue"] = round(p["revenue"] + item_total(item), 2)
    customers = sorted(({"name": k, **v} for k, v in by_customer.items()), key=lambda c: c["revenue"], reverse=True)
    products = sorted(({"name": k, **v} for k, v in by_product.items()), key=lambda p: p["revenue"], reverse=True)
    return ok(data={"totalRevenue": round(total, 2), "customers": customers, "products": products})


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
