"""Read-only access to shared trips by share token; no identity required."""
import logging
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.models import Trip
from tripcurator.schemas import PublicTripResponse
from tripcurator.services.share_page import public_trip_data, render_not_found_html, render_shared_trip_html

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public"])


def _find_shared_trip(db: Session, token: str) -> Trip | None:
    return db.query(Trip).filter(Trip.share_token == token).first()


@router.get("/api/public/trips/{token}", response_model=PublicTripResponse)
def get_public_trip(token: str, db: Session = Depends(get_db)):
    """
    Sanitised trip for anyone holding the share link.

    User ids and raw voice-note transcriptions are never included.
    """
    trip = _find_shared_trip(db, token)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    return public_trip_data(trip)


@router.get("/share/{token}", response_class=HTMLResponse)
def share_page(token: str, db: Session = Depends(get_db)):
    trip = _find_shared_trip(db, token)
    if not trip:
        return HTMLResponse(content=render_not_found_html(), status_code=404)
    return HTMLResponse(content=render_shared_trip_html(trip))
