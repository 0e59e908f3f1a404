"""Request identity.

Sign-in lives outside this service: callers forward the signed-in user's id in
the ``X-User-Id`` header, or the browser carries it in the ``tripcurator_user``
cookie (the extension sends requests with credentials included).
"""
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from tripcurator.database import get_db
from tripcurator.models import Location, Trip, User

USER_COOKIE = "tripcurator_user"


def get_optional_user(
    x_user_id: Optional[str] = Header(None),
    tripcurator_user: Optional[str] = Cookie(None),
    db: Session = Depends(get_db),
) -> User | None:
    user_id = x_user_id or tripcurator_user
    if not user_id:
        return None
    return db.query(User).filter(User.id == user_id).first()


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_owned_trip(db: Session, trip_id: str, user: User) -> Trip:
    trip = db.query(Trip).filter(Trip.id == trip_id, Trip.user_id == user.id).first()
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    return trip


def get_owned_location(db: Session, location_id: str, user: User) -> Location:
    location = db.query(Location).filter(Location.id == location_id, Location.user_id == user.id).first()
    if not location:
        raise HTTPException(status_code=404, detail="Location not found")
    return location
