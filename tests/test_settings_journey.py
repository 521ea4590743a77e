from conftest import auth_header
from database import db
from main import SETTINGS_ID, load_settings


def resource(**overrides):
    body = {
        "title": "Magic ring tutorial",
        "description": "Start amigurumi in the round",
        "url": "https://example.com/magic-ring",
        "thumbnailUrl": "https://example.com/thumb.jpg",
        "category": "styles",
    }
    body.update(overrides)
    return body


def test_settings_are_created_lazily_once(client):
    assert db["settings"].count_documents({}) == 0
    first = client.get("/api/settings").json()["settings"]
    second = client.get("/api/settings").json()["settings"]
    assert first["storeName"] == "Bubbly Crochet"
    assert first["id"] == second["id"]
    assert db["settings"].count_documents({}) == 1


def test_settings_update_is_admin_only_and_replaces(client, shopper, admin_token):
    client.get("/api/settings")
    body = {"storeName": "Loop & Co", "ownerName": "Rae", "contactEmail": "hi@loop.co", "contactPhone": "555", "instagramUrl": "https://instagram.com/loop"}

    assert client.put("/api/settings", json=body).status_code == 401
    assert client.put("/api/settings", json=body, headers=auth_header(shopper["token"])).status_code == 403

    resp = client.put("/api/settings", json=body, headers=auth_header(admin_token))
    assert resp.status_code == 200
    settings = resp.json()["settings"]
    assert settings["storeName"] == "Loop & Co"
    assert settings["instagramUrl"] == "https://instagram.com/loop"
    assert db["settings"].count_documents({}) == 1
    assert client.get("/api/settings").json()["settings"]["ownerName"] == "Rae"


def test_settings_put_creates_when_missing(client, admin_token):
    resp = client.put("/api/settings", json={"storeName": "Fresh"}, headers=auth_header(admin_token))
    assert resp.json()["settings"]["storeName"] == "Fresh"
    assert db["settings"].count_documents({}) == 1


def test_journey_crud(client, admin_token):
    headers = auth_header(admin_token)
    created = client.post("/api/journey", json=resource(), headers=headers)
    assert created.status_code == 201
    rid = created.json()["data"]["id"]
    client.post("/api/journey", json=resource(title="Hook sizes", category="tools"), headers=headers)

    assert client.get("/api/journey").json()["count"] == 2
    tools = client.get("/api/journey", params={"category": "tools"}).json()["data"]
    assert [r["title"] for r in tools] == ["Hook sizes"]

    updated = client.put(f"/api/journey/{rid}", json={"title": "Magic ring, slowly"}, headers=headers)
    assert updated.json()["data"]["title"] == "Magic ring, slowly"
    assert client.get(f"/api/journey/{rid}").json()["data"]["thumbnailUrl"] == "https://example.com/thumb.jpg"

    assert client.delete(f"/api/journey/{rid}", headers=headers).status_code == 200
    assert client.get(f"/api/journey/{rid}").status_code == 404


def test_journey_validation_and_access(client, shopper, admin_token):
    assert client.post("/api/journey", json=resource(category="videos"), headers=auth_header(admin_token)).status_code == 400
    assert client.post("/api/journey", json=resource(title=""), headers=auth_header(admin_token)).status_code == 400
    assert client.post("/api/journey", json=resource(), headers=auth_header(shopper["token"])).status_code == 403
    assert client.post("/api/journey", json=resource()).status_code == 401


def test_grouped_journey_is_cached_and_invalidated(client, admin_token):
    headers = auth_header(admin_token)
    client.post("/api/journey", json=resource(), headers=headers)

    first = client.get("/api/journey/grouped").json()
    assert first["cached"] is False
    assert set(first["data"]) == {"styles", "tools", "resources", "stores"}
    assert len(first["data"]["styles"]) == 1

    second = client.get("/api/journey/grouped").json()
    assert second["cached"] is True
    assert second["data"] == first["data"]

    client.post("/api/journey", json=resource(title="Etsy yarn shop", category="stores"), headers=headers)
    third = client.get("/api/journey/grouped").json()
    assert third["cached"] is False
    assert [r["title"] for r in third["data"]["stores"]] == ["Etsy yarn shop"]


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["database"] == "connected"


def test_settings_stay_a_single_document(client, admin_token):
    first = load_settings()
    second = load_settings()
    assert first["_id"] == second["_id"] == SETTINGS_ID

    client.put("/api/settings", json={"storeName": "Loop & Co"}, headers=auth_header(admin_token))
    load_settings()
    assert db["settings"].count_documents({}) == 1
    settings = client.get("/api/settings").json()["settings"]
    assert settings["id"] == SETTINGS_ID
    assert settings["storeName"] == "Loop & Co"
