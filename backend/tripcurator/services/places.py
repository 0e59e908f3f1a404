import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy.orm import Session

from tripcurator.models import Location
from tripcurator.services.cost_tracker import CostEntry, track_api_usage
from tripcurator.services.settings import get_setting

logger = logging.getLogger(__name__)

PLACES_API_BASE = "https://places.googleapis.com/v1"
SEARCH_RADIUS_M = 500.0
ENRICHMENT_MAX_AGE = timedelta(days=30)

PLACE_FIELDS = [
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "types",
    "rating",
    "userRatingCount",
    "websiteUri",
    "nationalPhoneNumber",
    "internationalPhoneNumber",
    "regularOpeningHours",
    "priceLevel",
]

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": "Free",
    "PRICE_LEVEL_INEXPENSIVE": "$",
    "PRICE_LEVEL_MODERATE": "$$",
    "PRICE_LEVEL_EXPENSIVE": "$$$",
    "PRICE_LEVEL_VERY_EXPENSIVE": "$$$$",
}


@dataclass
class PlaceEnrichment:
    google_place_id: str
    google_rating: float | None = None
    google_review_count: int | None = None
    google_types: list[str] = field(default_factory=list)
    google_website: str | None = None
    google_formatted_phone: str | None = None
    google_formatted_address: str | None = None
    hours: str | None = None
    price_range: str | None = None


def search_place(
    db: Session,
    name: str,
    lat: float,
    lng: float,
    radius_m: float = SEARCH_RADIUS_M,
    client: httpx.Client | None = None,
) -> dict | None:
    """Text search biased to a circle around (lat, lng). Returns the first place or None."""
    api_key = get_setting(db, "google_places_api_key")
    if not api_key:
        logger.warning("Google Places API key not configured")
        return None

    should_close = False
    if client is None:
        client = httpx.Client(timeout=15.0)
        should_close = True

    try:
        response = client.post(
            f"{PLACES_API_BASE}/places:searchText",
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": api_key,
                "X-Goog-FieldMask": ",".join(f"places.{f}" for f in PLACE_FIELDS),
            },
            json={
                "textQuery": name,
                "locationBias": {
                    "circle": {
                        "center": {"latitude": lat, "longitude": lng},
                        "radius": radius_m,
                    }
                },
                "maxResultCount": 1,
            },
        )
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"Places API search error for '{name}': {e.response.status_code} {e.response.text}")
        return None
    except Exception as e:
        logger.error(f"Error searching place '{name}': {e}")
        return None
    finally:
        if should_close:
            client.close()

    places = data.get("places") or []
    if not places:
        logger.info(f"No Places match for '{name}' near ({lat}, {lng})")
        return None
    return places[0]


def get_place_details(db: Session, place_id: str, client: httpx.Client | None = None) -> dict | None:
    api_key = get_setting(db, "google_places_api_key")
    if not api_key:
        logger.warning("Google Places API key not configured")
        return None

    should_close = False
    if client is None:
        client = httpx.Client(timeout=15.0)
        should_close = True

    try:
        response = client.get(
            f"{PLACES_API_BASE}/places/{place_id}",
            headers={
                "X-Goog-Api-Key": api_key,
                "X-Goog-FieldMask": ",".join(PLACE_FIELDS),
            },
        )
        response.raise_for_status()
        return response.json()
    except Exception as e:
        logger.error(f"Error getting place details for '{place_id}': {e}")
        return None
    finally:
        if should_close:
            client.close()


def format_price_level(price_level: str | None) -> str | None:
    if not price_level:
        return None
    return PRICE_LEVELS.get(price_level)


def extract_enrichment_data(place: dict) -> PlaceEnrichment:
    weekday = (place.get("regularOpeningHours") or {}).get("weekdayDescriptions") or []
    return PlaceEnrichment(
        google_place_id=place["id"],
        google_rating=place.get("rating") or None,
        google_review_count=place.get("userRatingCount") or None,
        google_types=place.get("types") or [],
        google_website=place.get("websiteUri") or None,
        google_formatted_phone=place.get("internationalPhoneNumber") or place.get("nationalPhoneNumber") or None,
        google_formatted_address=place.get("formattedAddress") or None,
        hours="; ".join(weekday) or None,
        price_range=format_price_level(place.get("priceLevel")),
    )


def get_place_enrichment(
    db: Session,
    name: str,
    lat: float,
    lng: float,
    user_id: str | None = None,
    location_id: str | None = None,
    client: httpx.Client | None = None,
) -> PlaceEnrichment | None:
    """Search for the place and map the first match; records the search in the usage ledger."""
    place = search_place(db, name, lat, lng, client=client)
    if not place:
        return None

    track_api_usage(db, CostEntry(
        user_id=user_id,
        service="google_places",
        operation="text_search",
        location_id=location_id,
    ))
    return extract_enrichment_data(place)


def apply_enrichment(location: Location, enrichment: PlaceEnrichment) -> None:
    """Copy enrichment onto a location. Places data wins over scraped fields when present."""
    location.google_place_id = enrichment.google_place_id
    location.google_rating = enrichment.google_rating
    location.google_review_count = enrichment.google_review_count
    location.google_types = enrichment.google_types
    location.google_website = enrichment.google_website
    location.google_formatted_phone = enrichment.google_formatted_phone
    location.google_formatted_address = enrichment.google_formatted_address
    location.phone = enrichment.google_formatted_phone or location.phone
    location.hours = enrichment.hours or location.hours
    location.price_range = enrichment.price_range or location.price_range
    location.address = enrichment.google_formatted_address or location.address
    location.places_enriched_at = datetime.now(timezone.utc)


def _enriched_recently(location: Location) -> bool:
    enriched_at = location.places_enriched_at
    if enriched_at is None:
        return False
    if enriched_at.tzinfo is None:
        enriched_at = enriched_at.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - enriched_at < ENRICHMENT_MAX_AGE


def enrich_location(
    db: Session,
    location: Location,
    force: bool = False,
    user_id: str | None = None,
    client: httpx.Client | None = None,
) -> bool:
    """Re-enrich a stored location. Returns True when the location holds Places data afterwards."""
    if not force and _enriched_recently(location):
        logger.info(f"Location '{location.name}' already enriched recently, skipping")
        return True

    enrichment = get_place_enrichment(
        db,
        location.name,
        location.latitude,
        location.longitude,
        user_id=user_id or location.user_id,
        location_id=location.id,
        client=client,
    )
    if enrichment is None:
        logger.info(f"No matching place found for '{location.name}'")
        return False

    apply_enrichment(location, enrichment)
    db.commit()
    logger.info(f"Location enriched with Places data: {location.name}")
    return True
