import mongomock
import pytest
from fastapi.testclient import TestClient

from database import get_db
from main import app


@pytest.fixture
def db():
    return mongomock.MongoClient()["bedding_store_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _register(client, name, email, password="Secret123"):
    res = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 200, res.text
    body = res.json()
    return {"id": body["user"]["id"], "headers": {"Authorization": f"Bearer {body['access_token']}"}}


@pytest.fixture
def user(client):
    return _register(client, "Jane Smith", "jane@example.com")


@pytest.fixture
def other_user(client):
    return _register(client, "John Doe", "john@example.com")


@pytest.fixture
def admin(client, db):
    account = _register(client, "Admin User", "admin@example.com")
    db["user"].update_one({"email": "admin@example.com"}, {"$set": {"is_admin": True}})
    return account


@pytest.fixture
def make_product(client, admin):
    def _make(name="Percale Cotton Sheets", price=10.0, stock=10, **extra):
        payload = {
            "name": name,
            "brand": "LuxurySleep",
            "category": "Cotton",
            "description": "Crisp percale weave cotton sheets.",
            "price": price,
            "countInStock": stock,
            **extra,
        }
        res = client.post("/products", json=payload, headers=admin["headers"])
        assert res.status_code == 201, res.text
        return res.json()
    return _make


def order_payload(*lines, tax=0.0, shipping=0.0, payment_method="Cash on Delivery"):
    """Build an order body from (product, qty) pairs with consistent totals."""
    items = [
        {"product": p["id"], "name": p["name"], "image": p.get("image"), "price": p["price"], "qty": qty}
        for p, qty in lines
    ]
    items_price = round(sum(i["price"] * i["qty"] for i in items), 2)
    return {
        "orderItems": items,
        "shippingAddress": {"address": "12 Mall Road", "city": "Lahore", "postalCode": "54000", "phoneNumber": "0300"},
        "paymentMethod": payment_method,
        "itemsPrice": items_price,
        "taxPrice": tax,
        "shippingPrice": shipping,
        "totalPrice": round(items_price + tax + shipping, 2),
    }


def stock_of(client, product):
    return client.get(f"/products/{product['id']}").json()["countInStock"]
