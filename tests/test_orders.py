import re

from conftest import API, customer_payload, order_payload


def create_order(client, **overrides):
    resp = client.post(f"{API}/order", json=order_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()["order"]


def levels(client, product="Premium Cotton Base"):
    resp = client.get(f"{API}/stock/levels", params={"product": product})
    return {row["color"]: row["netQuantity"] for row in resp.json()["levels"]}


def test_create_order_returns_derived_total(client):
    order = create_order(client)
    assert order["totalAmount"] == 2000
    assert order["status"] == "pending"
    assert re.fullmatch(r"ORD-\d{3}", order["displayId"])
    assert order["priority"] in ("high", "medium", "low")


def test_legacy_add_order_path(client):
    resp = client.post(f"{API}/order/addOrder", json=order_payload())
    assert resp.status_code == 201
    assert resp.json()["message"] == "Order Created Successfully!"


def test_order_without_items_is_rejected(client):
    resp = client.post(f"{API}/order", json=order_payload(orderItems=[]))
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Missing Required Fields or No Order Items Provided!"}


def test_order_with_missing_dates_fails_validation(client):
    payload = order_payload()
    del payload["orderDate"]
    resp = client.post(f"{API}/order", json=payload)
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"


def test_order_with_negative_quantity_fails_validation(client):
    items = [{"product": "Premium Cotton Base", "color": "Red", "quantity": -3, "unit": "METERS", "pricePerMeters": 100}]
    resp = client.post(f"{API}/order", json=order_payload(orderItems=items))
    assert resp.status_code == 400


def test_get_order_errors(client):
    assert client.get(f"{API}/order/not-an-id").status_code == 400
    resp = client.get(f"{API}/order/65a1b2c3d4e5f60718293a4b")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Order not found"


def test_list_orders_filters_by_status(client):
    create_order(client)
    create_order(client, status="confirmed")
    resp = client.get(f"{API}/order", params={"status": "confirmed"})
    orders = resp.json()["orders"]
    assert len(orders) == 1
    assert orders[0]["status"] == "confirmed"


def test_order_by_customer_id_joins_customer(client):
    customer = client.post(f"{API}/customer", json=customer_payload()).json()["customer"]
    payload = order_payload(customerId=customer["_id"])
    del payload["customer"]
    resp = client.post(f"{API}/order", json=payload)
    assert resp.status_code == 201
    order = resp.json()["order"]
    assert order["customer"] == "Rajesh Textiles"
    assert order["customerDetails"]["city"] == "Surat"

    listed = client.get(f"{API}/order").json()["orders"]
    assert listed[0]["customerDetails"]["_id"] == customer["_id"]


def test_order_with_unknown_customer_id_is_rejected(client):
    resp = client.post(f"{API}/order", json=order_payload(customerId="65a1b2c3d4e5f60718293a4b"))
    assert resp.status_code == 400


def test_status_follows_transition_table(client):
    order = create_order(client)
    url = f"{API}/order/{order['_id']}"

    resp = client.put(url, json={"status": "delivered"})
    assert resp.status_code == 400
    assert "pending to delivered" in resp.json()["message"]

    for status in ("confirmed", "shipped", "delivered"):
        resp = client.put(url, json={"status": status})
        assert resp.status_code == 200, resp.text
    assert client.put(url, json={"status": "cancelled"}).status_code == 400


def test_partial_update_recomputes_total(client):
    order = create_order(client)
    items = [{"product": "Premium Cotton Base", "color": "Red", "quantity": 4, "unit": "METERS", "pricePerMeters": 250}]
    resp = client.put(f"{API}/order/{order['_id']}", json={"orderItems": items})
    updated = resp.json()["order"]
    assert updated["totalAmount"] == 1000
    assert updated["customer"] == "Fashion Hub"
    assert updated["notes"] == "Deliver to godown 2"


def test_put_of_get_representation_does_not_drift(client):
    order = create_order(client)
    url = f"{API}/order/{order['_id']}"
    before = client.get(url).json()["order"]

    assert client.put(url, json=before).status_code == 200
    after = client.get(url).json()["order"]

    before.pop("updated_at")
    after.pop("updated_at")
    assert after == before


def test_order_lifecycle_moves_stock_through_ledger(client):
    order = create_order(client)
    assert levels(client) == {"Red": -10, "Blue": -5}

    url = f"{API}/order/{order['_id']}"
    items = order_payload()["orderItems"]
    items[0]["quantity"] = 12
    client.put(url, json={"orderItems": items})
    assert levels(client) == {"Red": -12, "Blue": -5}

    client.put(url, json={"status": "cancelled"})
    assert levels(client) == {"Red": 0, "Blue": 0}

    movements = client.get(f"{API}/stock/movements", params={"sourceId": order["_id"]}).json()["movements"]
    assert sorted(m["quantity"] for m in movements) == [-10, -5, -2, 5, 12]


def test_resaving_an_order_writes_no_extra_movements(client):
    order = create_order(client)
    url = f"{API}/order/{order['_id']}"
    client.put(url, json={"notes": "call before delivery"})
    movements = client.get(f"{API}/stock/movements", params={"sourceId": order["_id"]}).json()["movements"]
    assert len(movements) == 2


def test_delete_order_reverses_movements(client):
    order = create_order(client)
    resp = client.delete(f"{API}/order/{order['_id']}")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Order deleted successfully"}
    assert levels(client) == {"Red": 0, "Blue": 0}
    assert client.delete(f"{API}/order/{order['_id']}").status_code == 404
