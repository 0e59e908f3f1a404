from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.dependencies import get_current_user, get_owned_trip
from tripcurator.models import Location, Trip, User
from tripcurator.schemas import (
    LocationPreview,
    LocationResponse,
    TripCreateRequest,
    TripDetailResponse,
    TripListItem,
    TripResponse,
    TripUpdateRequest,
)
from tripcurator.services.tags import refresh_usage_counts
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trips", tags=["trips"])

UNCATEGORIZED = "Uncategorized"


@router.get("", response_model=list[TripListItem])
def list_trips(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    trips = db.query(Trip).filter(Trip.user_id == user.id).order_by(Trip.updated_at.desc()).all()
    counts = dict(
        db.query(Location.trip_id, func.count(Location.id))
        .filter(Location.user_id == user.id)
        .group_by(Location.trip_id)
        .all()
    )

    items = []
    for trip in trips:
        item = TripListItem.model_validate(trip)
        item.location_count = counts.get(trip.id, 0)
        item.locations = [LocationPreview.model_validate(loc) for loc in trip.locations[:4]]
        items.append(item)
    return items


@router.post("", response_model=TripResponse, status_code=201)
def create_trip(
    request: TripCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    trip = Trip(user_id=user.id, **request.model_dump())
    db.add(trip)
    db.commit()
    db.refresh(trip)
    logger.info(f"Created trip {trip.id} '{trip.title}' for user {user.id}")
    return trip


@router.get("/{trip_id}", response_model=TripDetailResponse)
def get_trip(
    trip_id: str,
    category: Optional[str] = Query(None, description="Only locations in this category"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Trip with its ordered locations.

    - **category**: filter locations; `Uncategorized` selects locations without one
    """
    trip = get_owned_trip(db, trip_id, user)

    locations = trip.locations
    if category == UNCATEGORIZED:
        locations = [loc for loc in locations if not loc.category]
    elif category:
        locations = [loc for loc in locations if loc.category == category]

    categories = sorted({loc.category or UNCATEGORIZED for loc in trip.locations})

    response = TripDetailResponse.model_validate(trip)
    response.locations = [LocationResponse.model_validate(loc) for loc in locations]
    response.categories = categories
    return response


@router.put("/{trip_id}", response_model=TripResponse)
def update_trip(
    trip_id: str,
    request: TripUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    trip = get_owned_trip(db, trip_id, user)

    for field, value in request.model_dump(exclude_unset=True).items():
        if field == "title" and not value:
            continue
        setattr(trip, field, value)

    db.commit()
    db.refresh(trip)
    return trip


@router.delete("/{trip_id}")
def delete_trip(trip_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    trip = get_owned_trip(db, trip_id, user)
    db.delete(trip)
    db.commit()
    refresh_usage_counts(db)
    logger.info(f"Deleted trip {trip_id}")
    return {"success": True}
