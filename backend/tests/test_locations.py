from unittest.mock import patch
import pytest
from tripcurator.models import Location, Tag, User
from tripcurator.services.llm import Transcription
from tripcurator.services.pipeline import MISSING_COORDINATES_MESSAGE
from tripcurator.services.places import PlaceEnrichment
from tripcurator.services.settings import set_setting
from tripcurator.services.url_fetcher import UrlContent

BISTRO_PAGE = UrlContent(
    title="Example Bistro",
    description="Modern French dining",
    content="Example Bistro serves seasonal French plates. 123 Main St.",
    address="123 Main St",
    cuisine="French",
)

BISTRO_GEOCODE = {
    "name": "Example Bistro",
    "address": "123 Main St",
    "coordinates": {"lat": 10.0, "lng": 20.0},
    "confidence": "high",
    "reasoning": "Address printed on the page",
}


@pytest.fixture
def location(db, trip):
    loc = Location(
        trip_id=trip.id,
        user_id=trip.user_id,
        name="Time Out Market",
        latitude=38.707,
        longitude=-9.146,
        address="Av. 24 de Julho 49, Lisboa",
        order_index=1,
    )
    db.add(loc)
    db.commit()
    db.refresh(loc)
    return loc


@pytest.fixture
def stranger(db):
    u = User(id="u2", email="stranger@example.com", name="Sam Stranger")
    db.add(u)
    db.commit()
    return {"X-User-Id": u.id}


# --- Create ---


def test_create_from_url_runs_pipeline(client, trip, auth):
    with patch("tripcurator.services.pipeline.fetch_url_content", return_value=BISTRO_PAGE) as fetch, \
         patch("tripcurator.services.pipeline.geocode_from_content", return_value=BISTRO_GEOCODE), \
         patch("tripcurator.services.pipeline.get_place_enrichment",
               return_value=PlaceEnrichment(google_place_id="ChIJexample", google_rating=4.5)), \
         patch("tripcurator.services.pipeline.extract_tags",
               return_value=[{"name": "french", "category": "cuisine", "existing": False}]):
        resp = client.post(
            "/api/locations",
            json={"tripId": trip.id, "sourceUrl": "https://example.com/restaurant"},
            headers=auth,
        )

    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "Example Bistro"
    assert data["latitude"] == 10.0
    assert data["longitude"] == 20.0
    assert data["address"] == "123 Main St"
    assert data["googleRating"] == 4.5
    assert data["cuisine"] == "French"
    assert [t["name"] for t in data["tags"]] == ["french"]
    assert data["pipeline"]["fetch"]["status"] == "ok"
    assert data["pipeline"]["geocode"]["status"] == "ok"
    assert data["pipeline"]["write"]["status"] == "skipped"
    fetch.assert_called_once_with("https://example.com/restaurant")


def test_create_without_coordinates_is_refused(client, db, trip, auth):
    resp = client.post("/api/locations", json={"tripId": trip.id, "name": "Somewhere Nice"}, headers=auth)

    assert resp.status_code == 400
    assert resp.json()["detail"] == MISSING_COORDINATES_MESSAGE
    assert db.query(Location).count() == 0


def test_create_url_geocode_without_result_is_refused(client, db, trip, auth):
    no_coords = {**BISTRO_GEOCODE, "coordinates": None, "confidence": "low"}
    with patch("tripcurator.services.pipeline.fetch_url_content", return_value=BISTRO_PAGE), \
         patch("tripcurator.services.pipeline.geocode_from_content", return_value=no_coords):
        resp = client.post(
            "/api/locations",
            json={"tripId": trip.id, "sourceUrl": "https://example.com/restaurant"},
            headers=auth,
        )

    assert resp.status_code == 400
    assert db.query(Location).count() == 0


def test_create_without_name_is_refused(client, trip, auth):
    resp = client.post("/api/locations", json={"tripId": trip.id, "latitude": 38.7, "longitude": -9.1}, headers=auth)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Location name is required"


def test_create_round_trips_name_and_tags(client, trip, auth):
    resp = client.post(
        "/api/locations",
        json={
            "tripId": trip.id,
            "name": "  Park   Bar ",
            "latitude": 38.7093,
            "longitude": -9.1466,
            "category": "Bars",
            "tagNames": ["Rooftop", "sunset"],
        },
        headers=auth,
    )

    assert resp.status_code == 201
    created = resp.json()
    assert created["pipeline"]["geocode"] == {"status": "skipped", "detail": "Coordinates supplied"}
    assert created["pipeline"]["tag"]["status"] == "skipped"

    fetched = client.get(f"/api/locations/{created['id']}", headers=auth).json()
    assert fetched["name"] == "Park Bar"
    assert fetched["category"] == "Bars"
    assert {t["name"] for t in fetched["tags"]} == {"rooftop", "sunset"}
    assert fetched["trip"]["title"] == "Lisbon Long Weekend"


def test_create_skips_blank_tag_names(client, db, trip, auth):
    resp = client.post(
        "/api/locations",
        json={"tripId": trip.id, "name": "Park Bar", "latitude": 38.7093, "longitude": -9.1466, "tagNames": ["  ", "sunset"]},
        headers=auth,
    )

    assert resp.status_code == 201
    assert {t["name"] for t in resp.json()["tags"]} == {"sunset"}
    assert db.query(Tag).filter(Tag.name == "").count() == 0


def test_failed_stage_still_saves(client, db, trip, auth):
    with patch("tripcurator.services.pipeline.extract_tags", side_effect=RuntimeError("LLM down")):
        resp = client.post(
            "/api/locations",
            json={"tripId": trip.id, "name": "Miradouro", "latitude": 38.71, "longitude": -9.13, "notes": "best at dusk"},
            headers=auth,
        )

    assert resp.status_code == 201
    assert resp.json()["pipeline"]["tag"] == {"status": "failed", "detail": "LLM down"}
    assert resp.json()["rawTranscription"] == "best at dusk"
    assert db.query(Location).filter(Location.name == "Miradouro").count() == 1


def test_create_assigns_next_order_index(client, trip, location, auth):
    resp = client.post(
        "/api/locations",
        json={"tripId": trip.id, "name": "LX Factory", "latitude": 38.703, "longitude": -9.178},
        headers=auth,
    )
    assert resp.json()["orderIndex"] == 2


def test_create_in_foreign_trip_is_404(client, trip, stranger):
    resp = client.post(
        "/api/locations",
        json={"tripId": trip.id, "name": "Nope", "latitude": 1.0, "longitude": 1.0},
        headers=stranger,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Trip not found"


def test_create_requires_identity(client, trip):
    resp = client.post("/api/locations", json={"tripId": trip.id, "name": "Nope"})
    assert resp.status_code == 401


# --- Read / update / delete ---


def test_list_locations_filters_by_trip(client, db, trip, location, auth):
    resp = client.get("/api/locations", params={"tripId": trip.id}, headers=auth)
    assert [loc["name"] for loc in resp.json()] == ["Time Out Market"]
    assert client.get("/api/locations", params={"tripId": "other"}, headers=auth).json() == []


def test_get_foreign_location_is_404(client, location, stranger):
    resp = client.get(f"/api/locations/{location.id}", headers=stranger)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Location not found"


def test_update_location_fields_and_tags(client, db, location, auth):
    sunset = db.query(Tag).filter(Tag.name == "sunset").one()

    resp = client.put(
        f"/api/locations/{location.id}",
        json={"name": "Mercado da Ribeira", "polishedDescription": "A food hall.", "tagIds": [sunset.id]},
        headers=auth,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Mercado da Ribeira"
    assert data["polishedDescription"] == "A food hall."
    assert data["address"] == "Av. 24 de Julho 49, Lisboa"
    assert [t["name"] for t in data["tags"]] == ["sunset"]

    cleared = client.put(f"/api/locations/{location.id}", json={"tagIds": []}, headers=auth).json()
    assert cleared["tags"] == []


def test_update_location_ignores_null_coordinates(client, location, auth):
    resp = client.put(
        f"/api/locations/{location.id}",
        json={"latitude": None, "longitude": None, "address": "Mercado da Ribeira"},
        headers=auth,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["latitude"] == 38.707
    assert data["longitude"] == -9.146
    assert data["address"] == "Mercado da Ribeira"


def test_delete_location(client, location, auth):
    resp = client.delete(f"/api/locations/{location.id}", headers=auth)
    assert resp.json() == {"success": True}
    assert client.get(f"/api/locations/{location.id}", headers=auth).status_code == 404


# --- Voice notes ---


def _audio_files():
    return {"audio": ("note.webm", b"\x1a\x45\xdf\xa3" + b"\x00" * 1000, "audio/webm")}


def test_audio_disabled_is_403(client, db, location, auth):
    set_setting(db, "audio_recording_enabled", "false")
    resp = client.post(f"/api/locations/{location.id}/audio", files=_audio_files(), headers=auth)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Audio recording is disabled"


def test_audio_missing_file_is_400(client, location, auth):
    resp = client.post(f"/api/locations/{location.id}/audio", data={"duration": "5"}, headers=auth)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No audio file provided"


def test_audio_longer_than_maximum_is_400(client, db, location, auth):
    set_setting(db, "max_audio_duration_seconds", "60")
    resp = client.post(
        f"/api/locations/{location.id}/audio",
        files=_audio_files(),
        data={"duration": "120"},
        headers=auth,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Audio duration exceeds maximum of 60 seconds"


def test_audio_reprocesses_description_and_tags(client, location, auth):
    suggestions = [{"name": "seafood", "category": "cuisine", "existing": False}]
    with patch("tripcurator.services.pipeline.transcribe_audio",
               return_value=Transcription(text="The sardines were incredible.", duration=4)), \
         patch("tripcurator.services.pipeline.generate_travel_writing",
               return_value="Grilled sardines worth crossing the city for."), \
         patch("tripcurator.services.pipeline.extract_tags", return_value=suggestions):
        resp = client.post(f"/api/locations/{location.id}/audio", files=_audio_files(), headers=auth)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["transcription"] == "The sardines were incredible."
    assert data["description"] == "Grilled sardines worth crossing the city for."
    assert data["tags"] == suggestions
    assert data["location"]["rawTranscription"] == "The sardines were incredible."
    assert [t["name"] for t in data["location"]["tags"]] == ["seafood"]


def test_audio_transcription_failure_is_500(client, location, auth):
    with patch("tripcurator.services.pipeline.transcribe_audio", side_effect=RuntimeError("whisper unavailable")):
        resp = client.post(f"/api/locations/{location.id}/audio", files=_audio_files(), headers=auth)
    assert resp.status_code == 500
    assert resp.json()["detail"] == "whisper unavailable"


# --- Places enrichment ---


def test_enrich_location(client, location, auth):
    with patch("tripcurator.routers.locations.enrich_location", return_value=True) as enrich:
        resp = client.post(f"/api/locations/{location.id}/enrich", params={"force": "true"}, headers=auth)

    assert resp.status_code == 200
    assert resp.json()["enriched"] is True
    assert enrich.call_args.kwargs["force"] is True


def test_enrich_without_coordinates_is_400(client, db, trip, auth):
    loc = Location(trip_id=trip.id, user_id=trip.user_id, name="Unplaced", latitude=0.0, longitude=0.0)
    db.add(loc)
    db.commit()
    assert client.post(f"/api/locations/{loc.id}/enrich", headers=auth).status_code == 400


# --- User photos ---


def test_upload_and_delete_image(client, location, auth):
    resp = client.post(
        f"/api/locations/{location.id}/image",
        files={"image": ("photo.png", b"\x89PNG\r\n\x1a\n", "image/png")},
        headers=auth,
    )
    assert resp.status_code == 200
    assert resp.json()["userImage"] == "data:image/png;base64,iVBORw0KGgo="

    assert client.delete(f"/api/locations/{location.id}/image", headers=auth).json() == {"success": True}
    assert client.get(f"/api/locations/{location.id}", headers=auth).json()["userImage"] is None


def test_upload_image_rejects_other_types(client, location, auth):
    resp = client.post(
        f"/api/locations/{location.id}/image",
        files={"image": ("notes.txt", b"hello", "text/plain")},
        headers=auth,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Invalid file type")


def test_upload_image_rejects_large_files(client, location, auth):
    resp = client.post(
        f"/api/locations/{location.id}/image",
        files={"image": ("big.jpg", b"\xff" * (5 * 1024 * 1024 + 1), "image/jpeg")},
        headers=auth,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "File too large. Maximum size is 5MB"
