"""
Tests for the HTTP endpoints.
"""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app import create_app


@pytest.fixture
def client(session_factory, clock):
    return TestClient(create_app(session_factory, clock=clock))


def signup_and_login(client, username="alice", email="alice@example.com"):
    response = client.post(
        "/api/auth/signup",
        json={
            "username": username,
            "email": email,
            "password": "secret123",
            "full_name": "Alice Nguyen",
            "phone": "0901234567",
        },
    )
    assert response.status_code == 201
    return auth_headers(client, username, "secret123")


def auth_headers(client, username, password):
    response = client.post(
        "/api/auth/login",
        json={"username_or_email": username, "password": password},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_signup_rejects_bad_email(client):
    response = client.post(
        "/api/auth/signup",
        json={
            "username": "alice",
            "email": "bad-email",
            "password": "secret123",
            "full_name": "Alice Nguyen",
            "phone": "0901234567",
        },
    )
    assert response.status_code == 400
    assert "email" in response.json()["detail"].lower()


def test_login_invalid_credentials(client):
    response = client.post(
        "/api/auth/login",
        json={"username_or_email": "nonexistent", "password": "wrongpassword1"},
    )
    assert response.status_code == 401


def test_protected_routes_need_token(client):
    assert client.get("/api/cart").status_code == 401
    assert client.get("/api/cart", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/api/cart", headers={"Authorization": "Token x"}).status_code == 401


def test_menu(client):
    response = client.get("/api/menu", params={"category": "Noodles"})
    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [1, 3]

    available = client.get("/api/menu", params={"available_only": True}).json()
    assert 6 not in [item["id"] for item in available]

    assert client.get("/api/menu/categories").json() == ["Appetizer", "Noodles", "Rice", "Sushi"]
    assert client.get("/api/menu/999").status_code == 404


def test_cart_flow(client):
    headers = signup_and_login(client)

    client.post("/api/cart", json={"food_item_id": 1, "quantity": 2}, headers=headers)
    response = client.post("/api/cart", json={"food_item_id": 3, "quantity": 1}, headers=headers)
    assert response.status_code == 200
    cart = response.json()
    assert cart["item_count"] == 3
    assert Decimal(cart["subtotal"]) == Decimal("245000")
    assert Decimal(cart["delivery_fee"]) == Decimal("0")

    response = client.put("/api/cart/1", json={"quantity": 0}, headers=headers)
    assert [line["food_item_id"] for line in response.json()["lines"]] == [3]

    assert client.put("/api/cart/4", json={"quantity": 2}, headers=headers).status_code == 404
    assert client.delete("/api/cart", headers=headers).json()["lines"] == []


def test_cart_rejects_bad_items(client):
    headers = signup_and_login(client)

    assert client.post("/api/cart", json={"food_item_id": 1, "quantity": 0}, headers=headers).status_code == 400
    assert client.post("/api/cart", json={"food_item_id": 999}, headers=headers).status_code == 404
    assert client.post("/api/cart", json={"food_item_id": 6}, headers=headers).status_code == 400


def test_checkout_and_bill_history(client):
    headers = signup_and_login(client)

    # No real address yet
    client.post("/api/cart", json={"food_item_id": 7, "quantity": 1}, headers=headers)
    assert client.post("/api/checkout", json={}, headers=headers).status_code == 400

    profile = client.put(
        "/api/me",
        json={"full_name": "Alice Nguyen", "address": "12 Le Loi, District 1", "phone": "0901234567"},
        headers=headers,
    )
    assert profile.status_code == 200

    response = client.post("/api/checkout", json={"notes": "Extra sauce"}, headers=headers)
    assert response.status_code == 200
    bill = response.json()["bill"]
    assert bill["bill_id"] == 1
    assert Decimal(bill["total_amount"]) == Decimal("60000")
    assert bill["status"] == "PENDING"

    assert client.get("/api/cart", headers=headers).json()["lines"] == []
    assert len(client.get("/api/bills", headers=headers).json()) == 1
    assert client.get("/api/bills/2", headers=headers).status_code == 404

    cancelled = client.post("/api/bills/1/cancel", headers=headers)
    assert cancelled.json()["status"] == "CANCELLED"
    assert client.post("/api/bills/1/cancel", headers=headers).status_code == 400


def test_carts_are_separate_per_token(client):
    alice = signup_and_login(client)
    bob = signup_and_login(client, username="bob", email="bob@example.com")

    client.post("/api/cart", json={"food_item_id": 1, "quantity": 2}, headers=alice)

    assert client.get("/api/cart", headers=bob).json()["lines"] == []


def test_owner_routes(client):
    customer = signup_and_login(client)
    owner = auth_headers(client, "owner", "owner123")

    client.put(
        "/api/me",
        json={"full_name": "Alice Nguyen", "address": "12 Le Loi, District 1", "phone": "0901234567"},
        headers=customer,
    )
    client.post("/api/cart", json={"food_item_id": 2, "quantity": 1}, headers=customer)
    client.post("/api/checkout", json={}, headers=customer)

    assert client.get("/api/owner/orders", headers=customer).status_code == 403

    orders = client.get("/api/owner/orders", headers=owner).json()
    assert [(o["owner_username"], o["bill_id"]) for o in orders] == [("alice", 1)]
    assert client.get("/api/owner/orders", params={"status": "BOGUS"}, headers=owner).status_code == 400

    advanced = client.post("/api/owner/orders/alice/1/advance", headers=owner)
    assert advanced.status_code == 200
    assert advanced.json()["status"] == "CONFIRMED"

    customers = client.get("/api/owner/customers", headers=owner).json()
    assert [c["username"] for c in customers] == ["alice"]


def test_owner_menu_edits_reach_carts_but_not_bills(client):
    customer = signup_and_login(client)
    owner = auth_headers(client, "owner", "owner123")
    client.put(
        "/api/me",
        json={"full_name": "Alice Nguyen", "address": "12 Le Loi, District 1", "phone": "0901234567"},
        headers=customer,
    )
    client.post("/api/cart", json={"food_item_id": 1, "quantity": 2}, headers=customer)
    client.post("/api/checkout", json={}, headers=customer)
    client.post("/api/cart", json={"food_item_id": 1, "quantity": 1}, headers=customer)

    assert client.put("/api/owner/menu/1", json={"price": "90000"}, headers=customer).status_code == 403
    response = client.put("/api/owner/menu/1", json={"price": "90000", "is_available": False}, headers=owner)
    assert response.status_code == 200
    assert Decimal(response.json()["price"]) == Decimal("90000")
    assert response.json()["is_available"] is False
    assert client.put("/api/owner/menu/999", json={"is_available": True}, headers=owner).status_code == 404

    assert Decimal(client.get("/api/cart", headers=customer).json()["subtotal"]) == Decimal("90000")
    assert Decimal(client.get("/api/bills/1", headers=customer).json()["total_amount"]) == Decimal("170000")
    assert client.post("/api/cart", json={"food_item_id": 1}, headers=customer).status_code == 400
