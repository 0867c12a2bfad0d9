import pytest

import audit
import media
from database import AUDIT_LOGS, PROPERTIES

OWNER = "owner@example.com"


@pytest.fixture
def owner_headers(make_user, auth_headers):
    make_user(OWNER, name="Owner")
    return auth_headers(OWNER)


@pytest.fixture
def hosted_images(monkeypatch):
    uploaded, destroyed = [], []

    def fake_upload(raw, folder, public_id, transformation=None):
        uploaded.append(public_id)
        return f"https://img.example.com/{folder}/{public_id}.jpg", f"{folder}/{public_id}"

    def fake_destroy(public_id):
        if public_id:
            destroyed.append(public_id)
        return bool(public_id)

    monkeypatch.setattr(media, "upload_image", fake_upload)
    monkeypatch.setattr(media, "destroy", fake_destroy)
    return uploaded, destroyed


def create(client, headers, **body):
    data = {"title": "A", "location": "B", "price": "1000"}
    data.update(body)
    response = client.post("/api/properties", json=data, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_property_lifecycle(client, owner_headers):
    response = client.post("/api/properties", json={"title": "A", "location": "B", "price": "1000"},
                           headers=owner_headers)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    created = body["data"]
    assert created["beds"] == 0
    assert created["baths"] == 0
    assert created["type"] == "rent"
    assert created["category"] == "Flat to Rent"
    assert isinstance(created["_id"], str)
    property_id = created["_id"]

    sale = client.get("/api/properties", params={"type": "sale"}).json()
    assert property_id not in [p["_id"] for p in sale["data"]]

    updated = client.put(f"/api/properties/{property_id}", json={"price": "2000"}, headers=owner_headers)
    assert updated.status_code == 200
    fetched = client.get(f"/api/properties/{property_id}").json()["data"]
    assert fetched["price"] == "2000"
    assert fetched["createdAt"] == created["createdAt"]

    deleted = client.delete(f"/api/properties/{property_id}", headers=owner_headers)
    assert deleted.status_code == 200
    assert deleted.json()["deletedProperty"] == {"_id": property_id, "title": "A", "location": "B"}
    assert client.get(f"/api/properties/{property_id}").status_code == 404


def test_create_requires_authentication(client):
    response = client.post("/api/properties", json={"title": "A", "location": "B", "price": "1"})
    assert response.status_code == 401


@pytest.mark.parametrize("missing", ["title", "location", "price"])
def test_create_requires_title_location_price(client, owner_headers, missing):
    data = {"title": "A", "location": "B", "price": "1000"}
    del data[missing]
    response = client.post("/api/properties", json=data, headers=owner_headers)
    assert response.status_code == 400
    assert missing in response.json()["message"]


def test_create_rejects_blank_title(client, owner_headers):
    response = client.post("/api/properties", json={"title": "  ", "location": "B", "price": "1"},
                           headers=owner_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Valid title is required"


def test_create_coerces_numbers_and_stamps_owner(client, owner_headers, db):
    created = create(client, owner_headers, price=15000, beds="3", baths="two", type="sale")
    assert created["price"] == "15000"
    assert created["beds"] == 3
    assert created["baths"] == 0
    assert created["type"] == "sale"
    assert created["createdByEmail"] == OWNER
    assert created["createdByName"] == "Owner"
    stored = db[PROPERTIES].find_one({})
    assert stored["price"] == "15000"



@pytest.mark.parametrize("beds", ["1" + "0" * 30, 10 ** 20, -1, "1001"])
def test_create_rejects_out_of_range_counts(client, owner_headers, db, beds):
    response = client.post("/api/properties", json={"title": "A", "location": "B", "price": "1", "beds": beds},
                           headers=owner_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "beds must be between 0 and 1000"
    assert db[PROPERTIES].count_documents({}) == 0


def test_update_rejects_out_of_range_counts(client, owner_headers):
    created = create(client, owner_headers, baths=2)
    response = client.put(f"/api/properties/{created['_id']}", json={"baths": "9" * 25}, headers=owner_headers)
    assert response.status_code == 400
    assert client.get(f"/api/properties/{created['_id']}").json()["data"]["baths"] == 2


def test_update_ignores_id_and_created_at(client, owner_headers):
    created = create(client, owner_headers)
    response = client.put(
        f"/api/properties/{created['_id']}",
        json={"_id": "000000000000000000000000", "createdAt": "1999-01-01T00:00:00", "title": "New"},
        headers=owner_headers,
    )
    data = response.json()["data"]
    assert response.status_code == 200
    assert data["_id"] == created["_id"]
    assert data["createdAt"] == created["createdAt"]
    assert data["title"] == "New"


def test_update_by_stranger_is_forbidden(client, owner_headers, make_user, auth_headers):
    created = create(client, owner_headers)
    make_user("stranger@example.com")
    response = client.put(f"/api/properties/{created['_id']}", json={"price": "1"},
                          headers=auth_headers("stranger@example.com"))
    assert response.status_code == 403


def test_admin_can_update_and_delete_any_property(client, owner_headers, make_user, auth_headers):
    created = create(client, owner_headers)
    make_user("admin@example.com", role="admin")
    admin = auth_headers("admin@example.com")
    assert client.put(f"/api/properties/{created['_id']}", json={"beds": 4}, headers=admin).json()["data"]["beds"] == 4
    assert client.delete(f"/api/properties/{created['_id']}", headers=admin).status_code == 200


def test_role_comes_from_directory_not_token(client, owner_headers, make_user, auth_headers):
    created = create(client, owner_headers)
    make_user("sneaky@example.com", role="user")
    response = client.delete(f"/api/properties/{created['_id']}",
                             headers=auth_headers("sneaky@example.com", role="admin"))
    assert response.status_code == 403


def test_delete_missing_property_is_404(client, owner_headers):
    response = client.delete("/api/properties/64b7f0c2a1b2c3d4e5f60718", headers=owner_headers)
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_malformed_id_is_400(client, owner_headers):
    assert client.get("/api/properties/not-an-id").status_code == 400
    assert client.put("/api/properties/not-an-id", json={}, headers=owner_headers).status_code == 400
    assert client.delete("/api/properties/not-an-id", headers=owner_headers).status_code == 400


def test_list_filters_and_pagination(client, owner_headers):
    create(client, owner_headers, title="Flat 1", location="Dhanmondi, Dhaka")
    create(client, owner_headers, title="Flat 2", location="Gulshan, Dhaka", type="sale")
    create(client, owner_headers, title="Room", location="Chittagong", category="Single Room to Rent")

    everything = client.get("/api/properties").json()
    assert everything["totalCount"] == 3

    dhaka = client.get("/api/properties", params={"location": "dhaka"}).json()
    assert {p["title"] for p in dhaka["data"]} == {"Flat 1", "Flat 2"}

    rooms = client.get("/api/properties", params={"category": "Single Room to Rent"}).json()
    assert [p["title"] for p in rooms["data"]] == ["Room"]

    page = client.get("/api/properties", params={"limit": 2, "page": 2}).json()
    assert page["count"] == 1
    assert page["totalPages"] == 2
    assert page["page"] == 2

    mine = client.get("/api/properties", params={"createdByEmail": OWNER.upper()}).json()
    assert mine["totalCount"] == 3


def test_location_filter_is_not_a_regex(client, owner_headers):
    create(client, owner_headers, location="Block (C)")
    assert client.get("/api/properties", params={"location": "(c)"}).json()["totalCount"] == 1
    assert client.get("/api/properties", params={"location": ".*"}).json()["totalCount"] == 0


@pytest.mark.parametrize("params", [{"limit": 501}, {"page": 0}, {"limit": 0}])
def test_list_rejects_bad_paging(client, params):
    assert client.get("/api/properties", params=params).status_code == 400


def test_images_upload_and_cascade_delete(client, owner_headers, hosted_images):
    uploaded, destroyed = hosted_images
    created = create(client, owner_headers)
    files = [
        ("images", ("a.jpg", b"fake-jpeg-a", "image/jpeg")),
        ("images", ("b.png", b"fake-png-b", "image/png")),
    ]
    response = client.post(f"/api/properties/{created['_id']}/images", files=files, headers=owner_headers)
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert len(data["images"]) == 2
    assert data["image"] == data["images"][0]
    assert data["imagePublicId"] == data["imagePublicIds"][0]

    removed = data["imagePublicIds"][1]
    response = client.delete(f"/api/properties/{created['_id']}/images/{removed}", headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["data"]["imagePublicIds"] == data["imagePublicIds"][:1]
    assert destroyed == [removed]

    client.delete(f"/api/properties/{created['_id']}", headers=owner_headers)
    assert destroyed == [removed, data["imagePublicIds"][0]]


def test_image_upload_rejects_non_images(client, owner_headers, hosted_images):
    created = create(client, owner_headers)
    files = [("images", ("notes.txt", b"hello", "text/plain"))]
    response = client.post(f"/api/properties/{created['_id']}/images", files=files, headers=owner_headers)
    assert response.status_code == 400
    assert hosted_images[0] == []


def test_image_upload_limit(client, owner_headers, hosted_images):
    created = create(client, owner_headers)
    files = [("images", (f"{i}.jpg", b"x", "image/jpeg")) for i in range(11)]
    response = client.post(f"/api/properties/{created['_id']}/images", files=files, headers=owner_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Maximum 10 images allowed"


def test_mutations_are_audited(client, owner_headers, db):
    created = create(client, owner_headers)
    client.put(f"/api/properties/{created['_id']}", json={"title": "Z"}, headers=owner_headers)
    client.delete(f"/api/properties/{created['_id']}", headers=owner_headers)
    audit.audit_queue.join()

    actions = sorted(e["action"] for e in db[AUDIT_LOGS].find({}))
    assert actions == ["PROPERTY_CREATED", "PROPERTY_DELETED", "PROPERTY_UPDATED"]
    entry = db[AUDIT_LOGS].find_one({"action": "PROPERTY_DELETED"})
    assert entry["userEmail"] == OWNER
    assert entry["ipAddress"] == "testclient"
