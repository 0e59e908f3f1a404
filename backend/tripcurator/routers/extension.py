"""Endpoints used by the browser extension popup."""
import logging
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.dependencies import get_current_user, get_optional_user, get_owned_trip
from tripcurator.models import Trip, User
from tripcurator.services.pipeline import SaveRequest, run_location_pipeline
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/extension", tags=["extension"])


@router.get("/status")
def extension_status(user: User | None = Depends(get_optional_user), db: Session = Depends(get_db)):
    """Whether the browser is signed in, plus the trips it can save into (most recently updated first)."""
    if user is None:
        return {"authenticated": False}

    trips = db.query(Trip).filter(Trip.user_id == user.id).order_by(Trip.updated_at.desc()).all()
    return {
        "authenticated": True,
        "user": {"id": user.id, "name": user.name, "email": user.email},
        "trips": [{"id": t.id, "title": t.title} for t in trips],
    }


@router.post("/save-location")
def save_location(
    trip_id: Optional[str] = Form(None, alias="tripId"),
    name: Optional[str] = Form(None),
    source_url: Optional[str] = Form(None, alias="sourceUrl"),
    audio: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Save the current tab as a location.

    Every enrichment stage is best-effort: the location is always stored,
    at (0, 0) and untagged if nothing could be resolved.
    """
    name = " ".join((name or "").split())
    if not trip_id or not name:
        raise HTTPException(status_code=400, detail="Trip ID and name are required")

    trip = get_owned_trip(db, trip_id, user)

    audio_bytes = audio.file.read() if audio is not None else None
    location, report = run_location_pipeline(
        db,
        trip,
        SaveRequest(
            trip_id=trip.id,
            name=name,
            source_url=source_url or None,
            audio=audio_bytes or None,
            audio_filename=(audio.filename if audio is not None else None) or "recording.webm",
        ),
    )

    return {
        "id": location.id,
        "name": location.name,
        "address": location.address,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "polishedDescription": location.polished_description,
        "tags": [t.name for t in location.tags],
        "pipeline": report.as_dict(),
    }
