import main
from conftest import API, customer_payload, order_payload, product_payload, stock_payload


def test_health_endpoints(client):
    assert client.get("/").json() == {"message": "Textile ERP Backend Running"}
    report = client.get("/test").json()
    assert report["database"] == "✅ Connected"
    assert report["database_name"] == "✅ Set"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get(f"{API}/invoices")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


# Products

def test_product_crud(client):
    resp = client.post(f"{API}/products/addProduct", json=product_payload())
    assert resp.status_code == 201
    product = resp.json()["product"]
    url = f"{API}/products/{product['_id']}"

    assert client.get(url).json()["product"]["productName"] == "Premium Cotton Base"

    resp = client.put(url, json=product_payload(productName="Premium Cotton Base II"))
    assert resp.json()["product"]["productName"] == "Premium Cotton Base II"

    assert client.delete(url).json() == {"success": True, "message": "Product deleted successfully"}
    assert client.get(url).status_code == 404


def test_product_variant_colors_must_be_unique(client):
    variants = [
        {"color": "Red", "pricePerMeters": 300, "stockInMeters": 10},
        {"color": "red", "pricePerMeters": 310, "stockInMeters": 5},
    ]
    assert client.post(f"{API}/products", json=product_payload(variants=variants)).status_code == 400


def test_product_search(client):
    client.post(f"{API}/products", json=product_payload())
    client.post(f"{API}/products", json=product_payload(productName="Silk Blend Base", category="Silk", tags=["silk"]))
    names = [p["productName"] for p in client.get(f"{API}/products", params={"q": "silk"}).json()["products"]]
    assert names == ["Silk Blend Base"]
    cotton = client.get(f"{API}/products", params={"category": "Cotton"}).json()["products"]
    assert len(cotton) == 1


def test_product_search_treats_query_as_plain_text(client):
    client.post(f"{API}/products", json=product_payload(productName="Cotton (60s)"))
    client.post(f"{API}/products", json=product_payload(productName="Cotton 60s"))
    resp = client.get(f"{API}/products", params={"q": "(60s"})
    assert resp.status_code == 200
    assert [p["productName"] for p in resp.json()["products"]] == ["Cotton (60s)"]


def test_product_round_trip(client):
    product = client.post(f"{API}/products", json=product_payload()).json()["product"]
    url = f"{API}/products/{product['_id']}"
    before = client.get(url).json()["product"]
    client.put(url, json=before)
    after = client.get(url).json()["product"]
    before.pop("updated_at")
    after.pop("updated_at")
    assert after == before


# Customers

def test_customer_crud_and_filters(client):
    created = client.post(f"{API}/customer/addCustomer", json=customer_payload()).json()["customer"]
    client.post(f"{API}/customer", json=customer_payload(customerName="Style Point", customerType="Retail",
                                                        email="style@example.com", city="Bangalore"))
    retail = client.get(f"{API}/customer", params={"customerType": "Retail"}).json()["customers"]
    assert [c["customerName"] for c in retail] == ["Style Point"]

    url = f"{API}/customer/{created['_id']}"
    before = client.get(url).json()["customer"]
    client.put(url, json=before)
    after = client.get(url).json()["customer"]
    before.pop("updated_at")
    after.pop("updated_at")
    assert after == before

    assert client.delete(url).status_code == 200
    assert client.delete(url).status_code == 404


def test_customer_search_by_phone_number(client):
    client.post(f"{API}/customer", json=customer_payload(phone="+919812345678"))
    client.post(f"{API}/customer", json=customer_payload(customerName="Style Point", email="style@example.com",
                                                        phone="919812345678"))
    resp = client.get(f"{API}/customer", params={"q": "+91981"})
    assert resp.status_code == 200
    assert [c["phone"] for c in resp.json()["customers"]] == ["+919812345678"]


def test_customer_requires_all_fields(client):
    payload = customer_payload()
    del payload["creditLimit"]
    resp = client.post(f"{API}/customer", json=payload)
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["loc"][-1] == "creditLimit"


# Business profile

def test_business_is_a_single_upserted_document(client):
    assert client.get(f"{API}/business").json() == {"success": True, "business": None}
    first = client.put(f"{API}/business", json={"businessName": "Shree Textiles", "city": "Surat"}).json()["business"]
    second = client.put(f"{API}/business", json={"businessName": "Shree Textiles Pvt Ltd", "city": "Surat"}).json()["business"]
    assert first["_id"] == second["_id"]
    assert client.get(f"{API}/business").json()["business"]["businessName"] == "Shree Textiles Pvt Ltd"


# Agents and users

def test_agents_get_sequential_ids(client):
    ids = [client.post(f"{API}/agent", json={"name": n, "factory": "Surat Mills"}).json()["agent"]["agentId"]
           for n in ("Mahesh", "Suresh")]
    assert ids == ["AGT-001", "AGT-002"]
    agents = client.get(f"{API}/agent").json()["agents"]
    assert [a["name"] for a in agents] == ["Mahesh", "Suresh"]


def test_agent_update_keeps_agent_id(client):
    agent = client.post(f"{API}/agent", json={"name": "Mahesh", "factory": "Surat Mills"}).json()["agent"]
    updated = client.put(f"{API}/agent/{agent['_id']}", json={"name": "Mahesh P", "factory": "Vapi Works"}).json()["agent"]
    assert updated["agentId"] == agent["agentId"]
    assert updated["factory"] == "Vapi Works"


def test_user_email_is_unique(client):
    user = {"name": "Asha", "email": "asha@example.com", "role": "manager"}
    assert client.post(f"{API}/user", json=user).status_code == 201
    resp = client.post(f"{API}/user", json=user)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Email already registered"
    assert client.post(f"{API}/user", json={**user, "email": "x@example.com", "role": "admin"}).status_code == 400


# Dashboard

def test_dashboard_stats(client):
    client.post(f"{API}/products", json=product_payload())
    client.post(f"{API}/customer", json=customer_payload())
    client.post(f"{API}/order", json=order_payload())
    client.post(f"{API}/order", json=order_payload(status="delivered"))
    client.post(f"{API}/stock", json=stock_payload(status="low"))
    data = client.get(f"{API}/dashboard/stats").json()["data"]
    assert data == {"totalProducts": 1, "activeOrders": 1, "totalCustomers": 1, "lowStockItems": 1}


def test_dashboard_recent_orders_format(client):
    client.post(f"{API}/order", json=order_payload())
    recent = client.get(f"{API}/dashboard/recent-orders").json()["recentOrders"]
    assert recent[0]["amount"] == "₹2,000"
    assert recent[0]["product"] == "Premium Cotton Base"
    assert recent[0]["quantity"] == "10METERS"
    assert recent[0]["id"].startswith("ORD-")


def test_dashboard_stock_alerts(client):
    client.post(f"{API}/stock", json=stock_payload(status="low"))
    client.post(f"{API}/stock", json=stock_payload())
    alerts = client.get(f"{API}/dashboard/stock-alerts").json()["stockAlerts"]
    assert len(alerts) == 1
    assert alerts[0]["product"] == "Silk Blend Base"
    assert alerts[0]["stockTypeLabel"] == "Surat Mills Gray Stock"
    assert alerts[0]["current"] == "40meters"
    assert alerts[0]["severity"] == "warning"


def test_dashboard_revenue_skips_cancelled_orders(client):
    client.post(f"{API}/order", json=order_payload())
    client.post(f"{API}/order", json=order_payload(customer="Style Point", status="cancelled"))
    data = client.get(f"{API}/dashboard/revenue").json()["data"]
    assert data["totalRevenue"] == 2000
    assert data["customers"] == [{"name": "Fashion Hub", "orders": 1, "revenue": 2000}]
    assert data["products"] == [{"name": "Premium Cotton Base", "quantity": 15, "revenue": 2000}]


def test_dashboard_latest_products(client):
    client.post(f"{API}/products", json=product_payload())
    latest = client.get(f"{API}/dashboard/latest-products").json()["latestProducts"]
    assert latest[0]["name"] == "Premium Cotton Base"
    assert latest[0]["category"] == "Cotton"


def test_message_log_without_database_uses_error_envelope(client, monkeypatch):
    monkeypatch.setattr(main, "db", None)
    resp = client.post(f"{API}/whatsapp-messages", json={"message": "Stock updated"})
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "Database not configured"}
