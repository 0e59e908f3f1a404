import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from tripcurator.models import TAG_CATEGORIES, Location, LocationTag, Tag
from tripcurator.services.structured_output import normalize_tag_name

logger = logging.getLogger(__name__)

DEFAULT_TAGS = {
    "place_type": ["restaurant", "cafe", "bar", "museum", "park", "beach", "hotel", "viewpoint", "shopping", "landmark"],
    "ambience": ["romantic", "lively", "quiet", "cozy", "upscale", "casual", "family-friendly"],
    "timing": ["late-night", "early-morning", "sunset", "weekend-only", "reservation-required"],
    "feature": ["outdoor-seating", "wifi", "pet-friendly", "vegetarian-options", "live-music", "ocean-view", "rooftop"],
    "cuisine": ["italian", "japanese", "mexican", "thai", "indian", "french", "local-cuisine"],
    "activity": ["hiking", "swimming", "photography", "sightseeing"],
}


class TagError(ValueError):
    """Invalid tag operation (duplicate name, unknown category, self-merge)."""


def find_tag_by_name(db: Session, name: str) -> Tag | None:
    return db.scalar(select(Tag).where(Tag.name == normalize_tag_name(name)))


def active_vocabulary(db: Session) -> list[dict]:
    """Active tags as [{id, name, category}] for prompting and matching."""
    tags = db.scalars(select(Tag).where(Tag.is_active.is_(True)).order_by(Tag.category, Tag.name))
    return [{"id": t.id, "name": t.name, "category": t.category} for t in tags]


def refresh_usage_counts(db: Session) -> None:
    """Recompute every tag's usage_count from the live associations."""
    live_count = (
        select(func.count())
        .select_from(LocationTag)
        .where(LocationTag.tag_id == Tag.id)
        .scalar_subquery()
    )
    db.execute(
        update(Tag).values(usage_count=live_count).execution_options(synchronize_session=False)
    )
    db.commit()


def create_tag(db: Session, name: str, category: str, created_by_llm: bool = False) -> Tag:
    normalized = normalize_tag_name(name)
    if not normalized:
        raise TagError("Tag name is required")
    if category not in TAG_CATEGORIES:
        raise TagError(f"Category must be one of: {', '.join(TAG_CATEGORIES)}")
    if find_tag_by_name(db, normalized):
        raise TagError("Tag already exists")

    tag = Tag(name=normalized, category=category, created_by_llm=created_by_llm)
    db.add(tag)
    db.commit()
    db.refresh(tag)
    logger.info(f"Created tag '{tag.name}' ({tag.category})")
    return tag


def get_or_create_tag(db: Session, name: str, category: str, created_by_llm: bool = False) -> Tag:
    normalized = normalize_tag_name(name)
    if not normalized:
        raise TagError("Tag name is required")
    tag = find_tag_by_name(db, normalized)
    if tag:
        return tag
    if category not in TAG_CATEGORIES:
        category = "feature"
    tag = Tag(name=normalized, category=category, created_by_llm=created_by_llm)
    db.add(tag)
    db.flush()
    return tag


def update_tag(
    db: Session,
    tag: Tag,
    name: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
) -> Tag:
    if name is not None:
        normalized = normalize_tag_name(name)
        if not normalized:
            raise TagError("Tag name is required")
        clash = find_tag_by_name(db, normalized)
        if clash and clash.id != tag.id:
            raise TagError("Tag already exists")
        tag.name = normalized
    if category:
        if category not in TAG_CATEGORIES:
            raise TagError(f"Category must be one of: {', '.join(TAG_CATEGORIES)}")
        tag.category = category
    if is_active is not None:
        tag.is_active = is_active
    db.commit()
    db.refresh(tag)
    return tag


def delete_tag(db: Session, tag: Tag) -> bool:
    """Soft-delete a tag still in use, hard-delete it otherwise. Returns True when soft-deleted."""
    in_use = db.scalar(select(func.count()).select_from(LocationTag).where(LocationTag.tag_id == tag.id))
    if in_use:
        tag.is_active = False
        db.commit()
        logger.info(f"Tag '{tag.name}' still used by {in_use} locations, marked inactive")
        return True

    db.delete(tag)
    db.commit()
    logger.info(f"Tag '{tag.name}' deleted")
    return False


def merge_tags(db: Session, source: Tag, target: Tag) -> int:
    """Move all of source's locations onto target, then remove source.

    Locations already tagged with target are not tagged twice. Returns the
    number of associations the source tag had.
    """
    if source.id == target.id:
        raise TagError("Cannot merge a tag with itself")

    source_location_ids = set(
        db.scalars(select(LocationTag.location_id).where(LocationTag.tag_id == source.id))
    )
    target_location_ids = set(
        db.scalars(select(LocationTag.location_id).where(LocationTag.tag_id == target.id))
    )
    for location_id in source_location_ids - target_location_ids:
        db.add(LocationTag(location_id=location_id, tag_id=target.id))

    db.execute(delete(LocationTag).where(LocationTag.tag_id == source.id))
    db.flush()
    db.expire(source)
    db.delete(source)
    db.commit()

    refresh_usage_counts(db)
    db.refresh(target)
    logger.info(f"Merged {len(source_location_ids)} associations into '{target.name}'")
    return len(source_location_ids)


def set_location_tags(db: Session, location: Location, tags: list[Tag]) -> None:
    """Replace a location's tags, dropping duplicates, and refresh usage counts."""
    location.location_tags.clear()
    db.flush()
    seen = set()
    for tag in tags:
        if tag.id in seen:
            continue
        seen.add(tag.id)
        location.location_tags.append(LocationTag(tag_id=tag.id))
    db.commit()
    refresh_usage_counts(db)


def tags_from_suggestions(db: Session, suggestions: list[dict]) -> list[Tag]:
    """Resolve LLM suggestions to Tag rows, creating machine-suggested tags for new names."""
    return [
        get_or_create_tag(db, s["name"], s["category"], created_by_llm=True)
        for s in suggestions
    ]


def seed_default_tags(db: Session) -> None:
    for category, names in DEFAULT_TAGS.items():
        for name in names:
            if find_tag_by_name(db, name) is None:
                db.add(Tag(name=name, category=category, created_by_llm=False))
        db.flush()
    db.commit()
