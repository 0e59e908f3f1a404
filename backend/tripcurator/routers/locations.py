import base64
import logging
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.dependencies import get_current_user, get_owned_location, get_owned_trip
from tripcurator.models import Location, Tag, User
from tripcurator.schemas import (
    AudioProcessResponse,
    EnrichResponse,
    LocationCreateRequest,
    LocationResponse,
    LocationSaveResponse,
    LocationUpdateRequest,
    LocationWithTripResponse,
)
from tripcurator.services.pipeline import (
    MissingCoordinatesError,
    MissingNameError,
    SaveRequest,
    reprocess_audio,
    run_location_pipeline,
)
from tripcurator.services.places import enrich_location
from tripcurator.services.settings import SettingsCache, get_bool_setting, get_int_setting, get_settings_cache
from tripcurator.services.tags import refresh_usage_counts, set_location_tags
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/locations", tags=["locations"])

MAX_IMAGE_SIZE = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp", "image/gif"]
NON_NULL_FIELDS = ("latitude", "longitude")


@router.get("", response_model=list[LocationWithTripResponse])
def list_locations(
    trip_id: Optional[str] = Query(None, alias="tripId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Location).filter(Location.user_id == user.id)
    if trip_id:
        query = query.filter(Location.trip_id == trip_id)
    return query.order_by(Location.created_at.desc()).all()


@router.post("", response_model=LocationSaveResponse, status_code=201)
def create_location(
    request: LocationCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a location directly or from a URL.

    Supplied coordinates are used as-is; otherwise the source URL is fetched and
    geocoded. The save is refused when no coordinates can be determined.
    """
    trip = get_owned_trip(db, request.trip_id, user)

    try:
        location, report = run_location_pipeline(
            db,
            trip,
            SaveRequest(**request.model_dump()),
            require_coordinates=True,
        )
    except (MissingNameError, MissingCoordinatesError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = LocationSaveResponse.model_validate(location)
    response.pipeline = report.as_dict()
    return response


@router.get("/{location_id}", response_model=LocationWithTripResponse)
def get_location(location_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_owned_location(db, location_id, user)


@router.put("/{location_id}", response_model=LocationResponse)
def update_location(
    location_id: str,
    request: LocationUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    location = get_owned_location(db, location_id, user)

    updates = request.model_dump(exclude_unset=True)
    tag_ids = updates.pop("tag_ids", None)
    for field, value in updates.items():
        if field == "name" and not value:
            continue
        if field in NON_NULL_FIELDS and value is None:
            continue
        setattr(location, field, value)
    db.commit()

    if tag_ids is not None:
        tags = db.query(Tag).filter(Tag.id.in_(tag_ids)).all() if tag_ids else []
        set_location_tags(db, location, tags)

    db.refresh(location)
    return location


@router.delete("/{location_id}")
def delete_location(location_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    location = get_owned_location(db, location_id, user)
    db.delete(location)
    db.commit()
    refresh_usage_counts(db)
    logger.info(f"Deleted location {location_id}")
    return {"success": True}


@router.post("/{location_id}/audio", response_model=AudioProcessResponse)
def process_audio(
    location_id: str,
    audio: Optional[UploadFile] = File(None),
    duration: float = Form(0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
):
    """Transcribe a voice note, then rewrite the description and tags from it."""
    if not get_bool_setting(db, "audio_recording_enabled", cache=cache):
        raise HTTPException(status_code=403, detail="Audio recording is disabled")

    location = get_owned_location(db, location_id, user)

    if audio is None:
        raise HTTPException(status_code=400, detail="No audio file provided")

    max_duration = get_int_setting(db, "max_audio_duration_seconds", cache=cache)
    if max_duration > 0 and duration > max_duration:
        raise HTTPException(
            status_code=400,
            detail=f"Audio duration exceeds maximum of {max_duration} seconds",
        )

    try:
        result = reprocess_audio(db, location, audio.file.read(), user.id, filename=audio.filename or "recording.webm")
    except Exception as e:
        logger.exception(f"Audio processing failed for location {location_id}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to process audio")

    return {**result, "location": location}


@router.post("/{location_id}/enrich", response_model=EnrichResponse)
def enrich(
    location_id: str,
    force: bool = Query(False),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    location = get_owned_location(db, location_id, user)
    if not location.latitude or not location.longitude:
        raise HTTPException(status_code=400, detail="Location has no coordinates to enrich from")

    enriched = enrich_location(db, location, force=force, user_id=user.id)
    db.refresh(location)
    return {"enriched": enriched, "location": location}


@router.post("/{location_id}/image")
def upload_image(
    location_id: str,
    image: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Store a user photo on the location as a data URL."""
    location = get_owned_location(db, location_id, user)

    if image is None:
        raise HTTPException(status_code=400, detail="No image provided")
    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Invalid file type. Allowed: JPEG, PNG, WebP, GIF")

    data = image.file.read()
    if len(data) > MAX_IMAGE_SIZE:
        raise HTTPException(status_code=400, detail="File too large. Maximum size is 5MB")

    location.user_image = f"data:{image.content_type};base64,{base64.b64encode(data).decode('ascii')}"
    db.commit()
    return {"success": True, "userImage": location.user_image}


@router.delete("/{location_id}/image")
def delete_image(location_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    location = get_owned_location(db, location_id, user)
    location.user_image = None
    db.commit()
    return {"success": True}
