import os
import sys

import mongomock
import pymongo
import pytest

# The app binds its MongoClient at import time; swap in the in-memory one first.
os.environ.setdefault("DATABASE_NAME", "bubblycrochet_test")
os.environ.setdefault("JWT_SECRET", "test-secret")
pymongo.MongoClient = mongomock.MongoClient
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient  # noqa: E402

from auth import create_token, hash_password  # noqa: E402
from database import create_document, db  # noqa: E402
from main import app  # noqa: E402
from schemas import User  # noqa: E402

ADMIN_EMAIL = "admin@bubblycrochet.com"
ADMIN_PASSWORD = "admin123"


@pytest.fixture(autouse=True)
def clean_db():
    for name in db.list_collection_names():
        db.drop_collection(name)
    app.state.cache.clear()
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email="a@x.com", password="secret1", name="Alice", **extra):
    resp = client.post("/api/auth/register", json={"email": email, "password": password, "name": name, **extra})
    assert resp.status_code == 201, resp.text
    # Keep requests explicit about credentials; cookie auth has its own tests.
    client.cookies.clear()
    return resp.json()


@pytest.fixture
def admin_user():
    uid = create_document("user", User(email=ADMIN_EMAIL, password_hash=hash_password(ADMIN_PASSWORD), name="Admin User", role="admin"))
    return {"id": uid, "email": ADMIN_EMAIL}


@pytest.fixture
def admin_token(admin_user):
    return create_token(admin_user["id"], "admin")


@pytest.fixture
def shopper(client):
    data = register(client, address="12 Yarn Lane, Portland")
    return {"id": data["user"]["id"], "token": data["token"], "user": data["user"]}


@pytest.fixture
def make_product(client, admin_token):
    def _make(**overrides):
        body = {
            "name": "P1",
            "description": "Hand-made test product",
            "price": 10,
            "category": "Toys",
            "images": ["https://example.com/p1.jpg"],
            "shippingCost": 2,
        }
        body.update(overrides)
        resp = client.post("/api/products", json=body, headers=auth_header(admin_token))
        assert resp.status_code == 201, resp.text
        return resp.json()["product"]
    return _make
