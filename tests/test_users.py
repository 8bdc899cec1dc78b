from conftest import order_payload


def test_profile_requires_login(client):
    assert client.get("/users/profile").status_code == 401
    assert client.put("/users/profile", json={"name": "Nobody"}).status_code == 401
    assert client.get("/users/orders").status_code == 401


def test_get_profile(client, user):
    profile = client.get("/users/profile", headers=user["headers"]).json()
    assert profile["id"] == user["id"]
    assert profile["email"] == "jane@example.com"
    assert "password_hash" not in profile


def test_update_name_and_email(client, db, user):
    res = client.put("/users/profile", json={"name": "Jane Doe", "email": "Jane.Doe@Example.com"}, headers=user["headers"])
    assert res.status_code == 200
    body = res.json()
    assert body["user"]["name"] == "Jane Doe"
    assert body["user"]["email"] == "jane.doe@example.com"
    assert "password_hash" not in body["user"]

    headers = {"Authorization": f"Bearer {body['access_token']}"}
    assert client.get("/users/profile", headers=headers).json()["name"] == "Jane Doe"
    assert db["user"].find_one({"email": "jane.doe@example.com"})["updatedAt"]


def test_update_password(client, user):
    res = client.put("/users/profile", json={"password": "NewSecret456"}, headers=user["headers"])
    assert res.status_code == 200

    old = client.post("/auth/login", json={"email": "jane@example.com", "password": "Secret123"})
    assert old.status_code == 400
    new = client.post("/auth/login", json={"email": "jane@example.com", "password": "NewSecret456"})
    assert new.status_code == 200


def test_email_taken_by_another_account_is_rejected(client, db, user, other_user):
    res = client.put("/users/profile", json={"email": "john@example.com"}, headers=user["headers"])
    assert res.status_code == 400
    assert res.json() == {"message": "Email already in use"}
    assert db["user"].count_documents({"email": "john@example.com"}) == 1

    # Re-submitting your own email is not a conflict
    same = client.put("/users/profile", json={"email": "JANE@example.com", "name": "Jane S"}, headers=user["headers"])
    assert same.status_code == 200
    assert same.json()["user"]["email"] == "jane@example.com"


def test_invalid_profile_fields(client, user):
    res = client.put("/users/profile", json={"email": "not-an-email", "password": "123"}, headers=user["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Validation failed"
    assert sorted(e["field"] for e in res.json()["errors"]) == ["email", "password"]


def test_user_orders_lists_only_own_orders(client, user, other_user, make_product):
    product = make_product(stock=10)
    mine = client.post("/orders", json=order_payload((product, 1)), headers=user["headers"]).json()
    client.post("/orders", json=order_payload((product, 2)), headers=other_user["headers"])

    orders = client.get("/users/orders", headers=user["headers"]).json()
    assert [o["id"] for o in orders] == [mine["id"]]
    assert orders[0]["user"] == user["id"]
