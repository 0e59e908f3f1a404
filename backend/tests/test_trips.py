from tripcurator.models import Location, Tag, Trip, User
from tripcurator.services.tags import create_tag, set_location_tags


def _add_location(db, trip, name, category=None, order_index=0, **kwargs):
    loc = Location(
        trip_id=trip.id,
        user_id=trip.user_id,
        name=name,
        category=category,
        latitude=38.71,
        longitude=-9.14,
        order_index=order_index,
        **kwargs,
    )
    db.add(loc)
    db.commit()
    return loc


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_trip(client, auth):
    resp = client.post("/api/trips", json={"title": "  Porto Weekend ", "description": "Port cellars"}, headers=auth)

    assert resp.status_code == 201
    data = resp.json()
    assert data["title"] == "Porto Weekend"
    assert data["isPublic"] is False
    assert len(data["shareToken"]) > 0


def test_create_trip_requires_title(client, auth):
    assert client.post("/api/trips", json={"title": "   "}, headers=auth).status_code == 422


def test_trips_require_identity(client):
    assert client.get("/api/trips").status_code == 401
    assert client.get("/api/trips", headers={"X-User-Id": "unknown"}).status_code == 401


def test_list_trips_with_counts_and_previews(client, db, trip, auth):
    for i in range(6):
        _add_location(db, trip, f"Place {i}", order_index=i, url_image=f"https://img.example/{i}.jpg")
    db.add(Trip(user_id=trip.user_id, title="Empty Trip"))
    db.commit()

    data = client.get("/api/trips", headers=auth).json()

    by_title = {t["title"]: t for t in data}
    lisbon = by_title["Lisbon Long Weekend"]
    assert lisbon["locationCount"] == 6
    assert [p["name"] for p in lisbon["locations"]] == ["Place 0", "Place 1", "Place 2", "Place 3"]
    assert lisbon["locations"][0]["urlImage"] == "https://img.example/0.jpg"
    assert by_title["Empty Trip"]["locationCount"] == 0


def test_get_trip_with_category_filter(client, db, trip, auth):
    _add_location(db, trip, "Time Out Market", category="Food", order_index=1)
    _add_location(db, trip, "Park Bar", category="Bars", order_index=2)
    _add_location(db, trip, "Somewhere", order_index=3)

    full = client.get(f"/api/trips/{trip.id}", headers=auth).json()
    assert [loc["name"] for loc in full["locations"]] == ["Time Out Market", "Park Bar", "Somewhere"]
    assert full["categories"] == ["Bars", "Food", "Uncategorized"]

    food = client.get(f"/api/trips/{trip.id}", params={"category": "Food"}, headers=auth).json()
    assert [loc["name"] for loc in food["locations"]] == ["Time Out Market"]
    assert food["categories"] == ["Bars", "Food", "Uncategorized"]

    uncategorized = client.get(f"/api/trips/{trip.id}", params={"category": "Uncategorized"}, headers=auth).json()
    assert [loc["name"] for loc in uncategorized["locations"]] == ["Somewhere"]


def test_get_other_users_trip_is_404(client, db, trip):
    db.add(User(id="u2", email="other@example.com", name="Other"))
    db.commit()

    resp = client.get(f"/api/trips/{trip.id}", headers={"X-User-Id": "u2"})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Trip not found"


def test_update_trip_partial(client, trip, auth):
    resp = client.put(
        f"/api/trips/{trip.id}",
        json={"isPublic": True, "homeBaseAddress": "Rua Augusta 1, Lisboa", "title": ""},
        headers=auth,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Lisbon Long Weekend"
    assert data["description"] == "Food and viewpoints"
    assert data["isPublic"] is True
    assert data["homeBaseAddress"] == "Rua Augusta 1, Lisboa"


def test_delete_trip_removes_locations_and_updates_tag_counts(client, db, trip, auth):
    loc = _add_location(db, trip, "Park Bar")
    tag = create_tag(db, "skyline", "feature")
    tag_id = tag.id
    set_location_tags(db, loc, [tag])
    db.refresh(tag)
    assert tag.usage_count == 1

    resp = client.delete(f"/api/trips/{trip.id}", headers=auth)

    assert resp.json() == {"success": True}
    db.expire_all()
    assert db.query(Location).count() == 0
    assert db.get(Tag, tag_id).usage_count == 0
    assert client.get(f"/api/trips/{trip.id}", headers=auth).status_code == 404
