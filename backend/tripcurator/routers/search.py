from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.dependencies import get_current_user
from tripcurator.models import Location, LocationTag, Tag, Trip, User
from tripcurator.schemas import LocationWithTripResponse, TagResponse
from tripcurator.services.structured_output import normalize_tag_name
from typing import Optional

router = APIRouter(prefix="/api/search", tags=["search"])

MAX_RESULTS = 50


@router.get("")
def search(
    q: str = Query("", description="Free text matched against name, descriptions and address"),
    tags: str = Query("", description="Comma-separated tag names; a location matches if it has any of them"),
    trip_id: Optional[str] = Query(None, alias="tripId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Search the user's locations.

    Returns up to 50 locations (newest first) along with the active tags and
    the user's trips for building filters.
    """
    query = db.query(Location).filter(Location.user_id == user.id)

    if trip_id:
        query = query.filter(Location.trip_id == trip_id)

    q = q.strip()
    if q:
        pattern = f"%{q}%"
        query = query.filter(
            or_(
                Location.name.ilike(pattern),
                Location.polished_description.ilike(pattern),
                Location.raw_transcription.ilike(pattern),
                Location.address.ilike(pattern),
            )
        )

    tag_names = [name for name in map(normalize_tag_name, tags.split(",")) if name]
    if tag_names:
        tagged = (
            db.query(LocationTag.location_id)
            .join(Tag, Tag.id == LocationTag.tag_id)
            .filter(Tag.name.in_(tag_names))
        )
        query = query.filter(Location.id.in_(tagged))

    locations = query.order_by(Location.created_at.desc()).limit(MAX_RESULTS).all()

    all_tags = (
        db.query(Tag)
        .filter(Tag.is_active.is_(True))
        .order_by(Tag.category.asc(), Tag.usage_count.desc())
        .all()
    )
    trips = db.query(Trip).filter(Trip.user_id == user.id).order_by(Trip.title.asc()).all()

    return {
        "locations": [LocationWithTripResponse.model_validate(loc).model_dump(by_alias=True, mode="json") for loc in locations],
        "tags": [TagResponse.model_validate(t).model_dump(by_alias=True) for t in all_tags],
        "trips": [{"id": t.id, "title": t.title} for t in trips],
    }
