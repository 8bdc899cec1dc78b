def test_register_login_and_me(client):
    res = client.post("/auth/register", json={"name": "Sara Khan", "email": "Sara@Example.com", "password": "Secret123"})
    assert res.status_code == 200
    body = res.json()
    assert body["token_type"] == "bearer"
    assert "password_hash" not in body["user"]
    assert body["user"]["email"] == "sara@example.com"
    assert body["user"]["is_admin"] is False

    login = client.post("/auth/login", json={"email": "sara@example.com", "password": "Secret123"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["name"] == "Sara Khan"
    assert "password_hash" not in me


def test_duplicate_registration_and_bad_login(client, user):
    dup = client.post("/auth/register", json={"name": "Jane Again", "email": "jane@example.com", "password": "Secret123"})
    assert dup.status_code == 400
    assert dup.json() == {"message": "Email already registered"}

    bad = client.post("/auth/login", json={"email": "jane@example.com", "password": "wrong"})
    assert bad.status_code == 400


def test_invalid_tokens_are_rejected(client):
    assert client.get("/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Basic abc"}).status_code == 401


def test_unknown_route_uses_message_shape(client):
    res = client.get("/nowhere")
    assert res.status_code == 404
    assert "message" in res.json()


def test_auth_failures_use_message_shape(client, user):
    missing = client.get("/auth/me")
    assert missing.status_code == 401
    assert missing.json() == {"message": "Not authenticated"}

    expired = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert expired.json() == {"message": "Invalid or expired token"}

    not_admin = client.get("/orders", headers=user["headers"])
    assert not_admin.status_code == 403
    assert not_admin.json() == {"message": "Admin access required"}
