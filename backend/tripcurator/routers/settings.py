from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.dependencies import get_current_user
from tripcurator.models import User
from tripcurator.services.settings import SettingsCache, get_bool_setting, get_int_setting, get_setting, get_settings_cache

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/audio")
def audio_settings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
):
    return {
        "enabled": get_bool_setting(db, "audio_recording_enabled", cache=cache),
        "maxDuration": get_int_setting(db, "max_audio_duration_seconds", cache=cache),
    }


@router.get("/maps")
def maps_settings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
):
    return {"apiKey": get_setting(db, "google_maps_api_key", cache) or ""}


@router.get("/mapbox")
def mapbox_settings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
):
    return {"token": get_setting(db, "mapbox_api_key", cache) or ""}
