import os

import mongomock
import pymongo
import pytest

os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "textile_erp_test"
os.environ["WHATSAPP_NOTIFICATION_NUMBER"] = "+919800000001"
os.environ["CLIENT_URL"] = "http://erp.test"

# database.py connects at import time; point it at the in-memory server.
pymongo.MongoClient = mongomock.MongoClient

import database  # noqa: E402
import main  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from notifications import NotificationError  # noqa: E402

API = "/api/v1"


class FakeWhatsAppClient:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, body):
        self.sent.append((to, body))
        if self.fail:
            raise NotificationError("provider unavailable")
        return "SM0001"


@pytest.fixture(autouse=True)
def clean_db():
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)
    yield


@pytest.fixture
def whatsapp():
    fake = FakeWhatsAppClient()
    main.app.dependency_overrides[main.get_whatsapp_client] = lambda: fake
    yield fake
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(whatsapp):
    return TestClient(main.app)


@pytest.fixture
def enable_notifications(client):
    def _enable(**toggles):
        resp = client.put(f"{API}/whatsapp-notifications", json=toggles)
        assert resp.status_code == 200
        return resp.json()["settings"]
    return _enable


def product_payload(**overrides):
    payload = {
        "productName": "Premium Cotton Base",
        "description": "60s count cotton",
        "category": "Cotton",
        "tags": ["cotton", "base"],
        "unit": "meters",
        "variants": [
            {"color": "Red", "pricePerMeters": 300, "stockInMeters": 500},
            {"color": "Blue", "pricePerMeters": 320, "stockInMeters": 250},
        ],
    }
    payload.update(overrides)
    return payload


def customer_payload(**overrides):
    payload = {
        "customerName": "Rajesh Textiles",
        "customerType": "Wholesale",
        "email": "rajesh@example.com",
        "phone": "+919811111111",
        "city": "Surat",
        "creditLimit": 250000,
        "address": "Ring Road, Surat",
    }
    payload.update(overrides)
    return payload


def order_payload(**overrides):
    payload = {
        "customer": "Fashion Hub",
        "orderDate": "2025-01-10T00:00:00",
        "deliveryDate": "2025-01-20T00:00:00",
        "orderItems": [
            {"product": "Premium Cotton Base", "color": "Red", "quantity": 10, "unit": "METERS", "pricePerMeters": 100},
            {"product": "Premium Cotton Base", "color": "Blue", "quantity": 5, "unit": "METERS", "pricePerMeters": 200},
        ],
        "notes": "Deliver to godown 2",
    }
    payload.update(overrides)
    return payload


def stock_payload(**overrides):
    payload = {
        "stockType": "Gray Stock",
        "status": "available",
        "variants": [
            {"color": "Red", "quantity": 40, "unit": "meters"},
            {"color": "Blue", "quantity": 70, "unit": "meters"},
        ],
        "stockDetails": {"product": "Silk Blend Base", "factory": "Surat Mills", "agent": "Mahesh", "orderNumber": "GS-12"},
        "additionalInfo": {"batchNumber": "B-7", "qualityGrade": "A", "notes": "first lot"},
    }
    payload.update(overrides)
    return payload
