"""Admin-only endpoints: runtime settings, tag vocabulary and API cost reporting."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.dependencies import require_admin
from tripcurator.models import TAG_CATEGORIES, SystemSetting, Tag, User
from tripcurator.schemas import (
    SettingUpdateRequest,
    TagCreateRequest,
    TagMergeRequest,
    TagMergeResponse,
    TagResponse,
    TagUpdateRequest,
)
from tripcurator.services.cost_tracker import build_cost_report
from tripcurator.services.settings import SettingsCache, get_settings_cache, mask_value, set_setting
from tripcurator.services.tags import TagError, create_tag, delete_tag, merge_tags, update_tag
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


# --- Settings ---


@router.get("/settings")
def list_settings(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """All settings keyed by name; API keys are masked."""
    settings = db.query(SystemSetting).order_by(SystemSetting.key).all()
    return {
        s.key: {
            "value": mask_value(s.key, s.value),
            "hasValue": bool(s.value),
            "description": s.description,
        }
        for s in settings
    }


@router.put("/settings")
def update_setting(
    request: SettingUpdateRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
):
    setting = set_setting(db, request.key, request.value, cache)
    return {
        "success": True,
        "setting": {
            "key": setting.key,
            "value": mask_value(setting.key, setting.value),
            "description": setting.description,
        },
    }


# --- Tags ---


def _get_tag(db: Session, tag_id: str) -> Tag:
    tag = db.query(Tag).filter(Tag.id == tag_id).first()
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")
    return tag


@router.get("/tags")
def list_tags(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    include_inactive: bool = Query(False, alias="includeInactive"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Tag)
    if category:
        query = query.filter(Tag.category == category)
    if search:
        query = query.filter(Tag.name.ilike(f"%{search}%"))
    if not include_inactive:
        query = query.filter(Tag.is_active.is_(True))

    tags = [
        TagResponse.model_validate(t).model_dump(by_alias=True)
        for t in query.order_by(Tag.category.asc(), Tag.usage_count.desc()).all()
    ]
    return {
        "tags": tags,
        "grouped": {c: [t for t in tags if t["category"] == c] for c in TAG_CATEGORIES},
        "categories": TAG_CATEGORIES,
    }


@router.post("/tags", response_model=TagResponse, status_code=201)
def create_tag_endpoint(request: TagCreateRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return create_tag(db, request.name, request.category)
    except TagError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/tags", response_model=TagResponse)
def update_tag_endpoint(request: TagUpdateRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    tag = _get_tag(db, request.id)
    try:
        return update_tag(db, tag, name=request.name, category=request.category, is_active=request.is_active)
    except TagError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/tags")
def delete_tag_endpoint(
    tag_id: Optional[str] = Query(None, alias="id"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Tags still in use are deactivated instead of deleted."""
    if not tag_id:
        raise HTTPException(status_code=400, detail="Tag ID is required")
    tag = _get_tag(db, tag_id)
    soft_deleted = delete_tag(db, tag)
    if soft_deleted:
        return {"success": True, "softDeleted": True}
    return {"success": True}


@router.post("/tags/merge", response_model=TagMergeResponse)
def merge_tags_endpoint(request: TagMergeRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if request.source_tag_id == request.target_tag_id:
        raise HTTPException(status_code=400, detail="Cannot merge a tag with itself")

    source = db.query(Tag).filter(Tag.id == request.source_tag_id).first()
    target = db.query(Tag).filter(Tag.id == request.target_tag_id).first()
    if not source or not target:
        raise HTTPException(status_code=404, detail="One or both tags not found")

    merged_count = merge_tags(db, source, target)
    return {"success": True, "merged_count": merged_count, "target_tag": target}


# --- Costs ---


@router.get("/costs")
def cost_report(
    period: str = Query("month", pattern="^(day|week|month|year)$"),
    service: str = Query("all"),
    user_id: str = Query("all", alias="userId"),
    page: int = Query(1, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    API usage and cost report.

    - **period**: day, week, month or year
    - **service**: groq, groq_audio, google_places or all
    - **userId**: restrict to one user, or all
    - **page**: 50 log rows per page
    """
    return build_cost_report(db, period=period, service=service, user_id=user_id, page=page)
