from datetime import datetime, timedelta, timezone

import jwt

from config import JWT_SECRET
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, auth_header, register
from database import db


def test_register_returns_token_and_public_profile(client):
    data = register(client, email="A@X.com", name="Alice", phone="555-0100")
    assert data["success"] is True
    assert data["token"]
    user = data["user"]
    assert user["email"] == "a@x.com"
    assert user["role"] == "client"
    assert user["phone"] == "555-0100"
    assert "passwordHash" not in user
    assert "password" not in user


def test_register_duplicate_email(client):
    register(client)
    resp = client.post("/api/auth/register", json={"email": "a@x.com", "password": "secret1", "name": "Again"})
    assert resp.status_code == 400
    assert resp.json() == {"message": "User already exists"}


def test_register_validation_errors_are_400(client):
    resp = client.post("/api/auth/register", json={"email": "not-an-email", "password": "secret1", "name": "A"})
    assert resp.status_code == 400
    assert "email" in resp.json()["message"]

    resp = client.post("/api/auth/register", json={"email": "b@x.com", "password": "123", "name": "B"})
    assert resp.status_code == 400
    assert "password" in resp.json()["message"]


def test_register_sends_welcome_notification(client):
    data = register(client)
    notes = list(db["notification"].find({"recipient_id": data["user"]["id"]}))
    assert len(notes) == 1
    assert notes[0]["type"] == "INFO"
    assert notes[0]["message"] == "Welcome to Bubbly Crochet, Alice!"


def test_login_and_me(client):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "a@x.com", "password": "secret1"})
    assert resp.status_code == 200
    token = resp.json()["token"]
    client.cookies.clear()

    me = client.get("/api/auth/me", headers=auth_header(token))
    assert me.status_code == 200
    assert me.json()["user"]["name"] == "Alice"


def test_login_wrong_password(client):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "a@x.com", "password": "nope123"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid credentials"


def test_me_requires_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Not authorized, no token"


def test_expired_and_garbage_tokens_are_rejected(client, shopper):
    expired = jwt.encode(
        {"id": shopper["id"], "role": "client", "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
        JWT_SECRET,
        algorithm="HS256",
    )
    assert client.get("/api/auth/me", headers=auth_header(expired)).status_code == 401
    assert client.get("/api/auth/me", headers=auth_header("garbage")).status_code == 401


def test_cookie_auth(client):
    client.post("/api/auth/register", json={"email": "c@x.com", "password": "secret1", "name": "Cookie"})
    assert "token" in client.cookies
    resp = client.get("/api/auth/me")
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "c@x.com"

    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").status_code == 401


def test_admin_login(client, admin_user):
    resp = client.post("/api/auth/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "admin"
    assert "adminToken" in client.cookies


def test_admin_login_rejects_clients(client, shopper):
    resp = client.post("/api/auth/admin/login", json={"email": "a@x.com", "password": "secret1"})
    assert resp.status_code == 403


def test_profile_update_keeps_role_and_email(client, shopper):
    resp = client.put(
        "/api/auth/profile",
        json={"bio": "Loves yarn", "interests": ["amigurumi"], "role": "admin", "email": "evil@x.com"},
        headers=auth_header(shopper["token"]),
    )
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["bio"] == "Loves yarn"
    assert user["interests"] == ["amigurumi"]
    assert user["role"] == "client"
    assert user["email"] == "a@x.com"


def test_profile_update_ignores_null_fields(client, shopper, make_product):
    headers = auth_header(shopper["token"])
    client.put("/api/auth/profile", json={"interests": ["amigurumi"]}, headers=headers)
    resp = client.put("/api/auth/profile", json={"name": None, "interests": None, "bio": "Hooks daily"}, headers=headers)
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["name"] == "Alice"
    assert user["interests"] == ["amigurumi"]
    assert user["bio"] == "Hooks daily"
    assert "passwordHash" not in user

    me = client.get("/api/auth/me", headers=headers).json()["user"]
    assert me["name"] == "Alice"
    assert "passwordHash" not in me

    product = make_product()
    order = client.post("/api/orders", json={"items": [{"productId": product["id"], "quantity": 1}]}, headers=headers)
    assert order.status_code == 201
    assert order.json()["order"]["userName"] == "Alice"


def test_change_password(client, shopper):
    headers = auth_header(shopper["token"])
    bad = client.put("/api/auth/change-password", json={"currentPassword": "wrong1", "newPassword": "newpass1"}, headers=headers)
    assert bad.status_code == 401

    ok = client.put("/api/auth/change-password", json={"currentPassword": "secret1", "newPassword": "newpass1"}, headers=headers)
    assert ok.status_code == 200

    assert client.post("/api/auth/login", json={"email": "a@x.com", "password": "secret1"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "a@x.com", "password": "newpass1"}).status_code == 200


def test_delete_account_removes_user_reviews_and_notifications(client, shopper, make_product):
    product = make_product()
    headers = auth_header(shopper["token"])
    client.post("/api/reviews", json={"productId": product["id"], "rating": 5, "comment": "Lovely"}, headers=headers)
    order = client.post("/api/orders", json={"items": [{"productId": product["id"], "quantity": 1}]}, headers=headers).json()["order"]

    resp = client.delete("/api/auth/account", headers=headers)
    assert resp.status_code == 200

    assert db["user"].count_documents({"email": "a@x.com"}) == 0
    assert db["review"].count_documents({"user_id": shopper["id"]}) == 0
    assert db["notification"].count_documents({"recipient_id": shopper["id"]}) == 0
    # Orders are kept as snapshots
    assert db["order"].count_documents({"user_id": shopper["id"]}) == 1
    assert order["userName"] == "Alice"
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_admin_cannot_delete_account(client, admin_token):
    resp = client.delete("/api/auth/account", headers=auth_header(admin_token))
    assert resp.status_code == 403


def test_reset_password_request_does_not_leak_accounts(client, shopper):
    known = client.post("/api/auth/reset-password-request", json={"email": "a@x.com"})
    unknown = client.post("/api/auth/reset-password-request", json={"email": "nobody@x.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
