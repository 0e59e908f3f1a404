import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tripcurator.models import ImportJob, Location, Tag, Trip
from tripcurator.services.llm import (
    extract_locations_from_text,
    extract_tags,
    generate_travel_writing,
    geocode_from_content,
    transcribe_audio,
)
from tripcurator.services.places import PlaceEnrichment, apply_enrichment, get_place_enrichment
from tripcurator.services.structured_output import normalize_tag_name
from tripcurator.services.tags import (
    active_vocabulary,
    get_or_create_tag,
    set_location_tags,
    tags_from_suggestions,
)
from tripcurator.services.url_fetcher import UrlContent, fetch_url_content, format_url_content_for_llm

logger = logging.getLogger(__name__)

MISSING_COORDINATES_MESSAGE = "Could not determine location coordinates. Please provide them manually."

# Overridable session factory for testing
_session_factory = None


def set_session_factory(factory):
    global _session_factory
    _session_factory = factory


def _get_session() -> Session:
    if _session_factory:
        return _session_factory()
    from tripcurator.database import SessionLocal
    return SessionLocal()


class MissingCoordinatesError(ValueError):
    pass


class MissingNameError(ValueError):
    pass


@dataclass
class StageResult:
    name: str
    status: str  # ok, empty, skipped, failed
    detail: str | None = None


@dataclass
class PipelineReport:
    stages: list[StageResult] = field(default_factory=list)

    def record(self, name: str, status: str, detail: str | None = None) -> None:
        self.stages.append(StageResult(name, status, detail))
        log = logger.warning if status == "failed" else logger.info
        log(f"Stage {name}: {status}" + (f" ({detail})" if detail else ""))

    def as_dict(self) -> dict:
        return {s.name: {"status": s.status, "detail": s.detail} for s in self.stages}


@dataclass
class SaveRequest:
    trip_id: str
    name: str | None = None
    source_url: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    category: str | None = None
    notes: str | None = None
    url_title: str | None = None
    url_description: str | None = None
    url_image: str | None = None
    audio: bytes | None = None
    audio_filename: str = "recording.webm"
    tag_ids: list[str] | None = None
    tag_names: list[str] | None = None


def has_coordinates(lat: float | None, lng: float | None) -> bool:
    """(0, 0) and missing values both mean 'not located'."""
    return bool(lat) and bool(lng)


def next_order_index(db: Session, trip_id: str) -> int:
    current = db.scalar(select(func.max(Location.order_index)).where(Location.trip_id == trip_id))
    return (current or 0) + 1


def _explicit_tags(db: Session, req: SaveRequest) -> list[Tag]:
    tags = []
    for tag_id in req.tag_ids or []:
        tag = db.get(Tag, tag_id)
        if tag:
            tags.append(tag)
    for name in req.tag_names or []:
        if not normalize_tag_name(name):
            continue
        tags.append(get_or_create_tag(db, name, "feature"))
    return tags


def run_location_pipeline(
    db: Session,
    trip: Trip,
    req: SaveRequest,
    require_coordinates: bool = False,
) -> tuple[Location, PipelineReport]:
    """Save one place: fetch -> [transcribe] -> geocode -> [enrich] -> [write] -> tag -> persist.

    Every external stage is best-effort; its failure is recorded in the report
    and the next stage runs with what is available. With require_coordinates
    (direct creation) only a source URL is geocoded and the save is refused
    with MissingCoordinatesError when no stage produced a location; otherwise
    the location is stored at (0, 0).
    """
    user_id = trip.user_id
    location_id = str(uuid.uuid4())
    report = PipelineReport()

    # fetch
    content = UrlContent(title=req.url_title or "", description=req.url_description or "")
    content_text = ""
    if req.source_url:
        fetched = fetch_url_content(req.source_url)
        if fetched.title or fetched.content:
            content = fetched
            content.title = content.title or req.url_title or ""
            content.description = content.description or req.url_description or ""
            report.record("fetch", "ok")
        else:
            report.record("fetch", "failed", "No content could be fetched")
        content_text = format_url_content_for_llm(content)
    else:
        report.record("fetch", "skipped")

    # transcribe
    transcription = req.notes or ""
    if req.audio:
        try:
            result = transcribe_audio(db, req.audio, user_id, location_id, filename=req.audio_filename)
            transcription = "\n\n".join(t for t in [transcription, result.text] if t)
            report.record("transcribe", "ok")
        except Exception as e:
            logger.exception("Audio transcription failed")
            report.record("transcribe", "failed", str(e))
    else:
        report.record("transcribe", "skipped")

    # geocode
    latitude, longitude = req.latitude, req.longitude
    name = req.name
    address = req.address
    if has_coordinates(latitude, longitude):
        report.record("geocode", "skipped", "Coordinates supplied")
    elif req.source_url or (not require_coordinates and (req.name or content_text)):
        try:
            geo = geocode_from_content(
                db,
                req.source_url or "",
                req.name or content.title,
                content_text or content.description,
                transcription or req.address or "",
                user_id,
                location_id,
            )
            if geo["coordinates"]:
                latitude, longitude = geo["coordinates"]["lat"], geo["coordinates"]["lng"]
                report.record("geocode", "ok", f"confidence={geo['confidence']}")
            else:
                report.record("geocode", "empty", geo["reasoning"] or "No coordinates")
            name = name or geo["name"]
            address = address or geo["address"]
        except Exception as e:
            logger.exception("Geocoding failed")
            report.record("geocode", "failed", str(e))
    else:
        report.record("geocode", "skipped", "Nothing to geocode")

    name = name or content.title
    if not name:
        raise MissingNameError("Location name is required")
    if require_coordinates and not has_coordinates(latitude, longitude):
        raise MissingCoordinatesError(MISSING_COORDINATES_MESSAGE)
    latitude, longitude = latitude or 0.0, longitude or 0.0

    # enrich
    enrichment: PlaceEnrichment | None = None
    if has_coordinates(latitude, longitude):
        try:
            enrichment = get_place_enrichment(db, name, latitude, longitude, user_id, location_id)
            report.record("enrich", "ok" if enrichment else "empty")
        except Exception as e:
            logger.exception("Places enrichment failed")
            report.record("enrich", "failed", str(e))
    else:
        report.record("enrich", "skipped", "No coordinates")

    # write
    polished_description = ""
    if req.audio and transcription:
        try:
            polished_description = generate_travel_writing(
                db, name, content.address or address or "", transcription, content_text, user_id, location_id
            )
            report.record("write", "ok")
        except Exception as e:
            logger.exception("Travel writing failed")
            report.record("write", "failed", str(e))
    else:
        report.record("write", "skipped")

    # tag
    tags: list[Tag] = []
    if req.tag_ids or req.tag_names:
        tags = _explicit_tags(db, req)
        report.record("tag", "skipped", "Tags supplied")
    elif polished_description or transcription or content.description or content.content:
        try:
            suggestions = extract_tags(
                db,
                name,
                polished_description or content.description,
                transcription,
                active_vocabulary(db),
                user_id,
                location_id,
            )
            tags = tags_from_suggestions(db, suggestions)
            report.record("tag", "ok" if tags else "empty")
        except Exception as e:
            logger.exception("Tag extraction failed")
            db.rollback()
            report.record("tag", "failed", str(e))
    else:
        report.record("tag", "skipped", "No text to tag")

    # persist
    location = Location(
        id=location_id,
        trip_id=trip.id,
        user_id=user_id,
        name=name,
        category=req.category,
        latitude=latitude,
        longitude=longitude,
        address=address or content.address,
        source_url=req.source_url,
        url_title=content.title or None,
        url_description=content.description or None,
        url_image=req.url_image or (content.images[0] if content.images else None),
        phone=content.phone,
        hours=content.hours,
        price_range=content.price_range,
        rating=content.rating,
        cuisine=content.cuisine,
        reservation_url=content.reservation_url,
        raw_transcription=transcription or None,
        polished_description=polished_description or None,
        order_index=next_order_index(db, trip.id),
    )
    if enrichment:
        apply_enrichment(location, enrichment)
    db.add(location)
    db.flush()
    set_location_tags(db, location, tags)
    db.refresh(location)

    logger.info(f"Saved location '{location.name}' ({location.latitude}, {location.longitude}) to trip {trip.id}")
    return location, report


def reprocess_audio(
    db: Session,
    location: Location,
    audio: bytes,
    user_id: str,
    filename: str = "recording.webm",
) -> dict:
    """Transcribe a new voice note, rewrite the description and re-tag the location.

    Unlike the save pipeline, errors here propagate to the caller.
    """
    transcription = transcribe_audio(db, audio, user_id, location.id, filename=filename)
    location.raw_transcription = transcription.text
    db.commit()

    description = generate_travel_writing(
        db,
        location.name,
        location.address or "",
        transcription.text,
        location.url_description or "",
        user_id,
        location.id,
    )
    location.polished_description = description
    db.commit()

    suggestions = extract_tags(
        db, location.name, description, transcription.text, active_vocabulary(db), user_id, location.id
    )
    set_location_tags(db, location, tags_from_suggestions(db, suggestions))
    db.refresh(location)

    return {"transcription": transcription.text, "description": description, "tags": suggestions}


def _import_item(db: Session, job: ImportJob, item: dict, order_index: int) -> bool:
    """Import one item; returns False when it could not be located."""
    latitude, longitude = item.get("latitude"), item.get("longitude")
    if not has_coordinates(latitude, longitude):
        geo = geocode_from_content(
            db,
            item.get("url") or "",
            item["name"],
            item.get("notes") or "",
            item.get("address") or "",
            job.user_id,
        )
        if geo["coordinates"]:
            latitude, longitude = geo["coordinates"]["lat"], geo["coordinates"]["lng"]

    if not has_coordinates(latitude, longitude):
        return False

    db.add(Location(
        trip_id=job.trip_id,
        user_id=job.user_id,
        name=item["name"],
        latitude=latitude,
        longitude=longitude,
        address=item.get("address"),
        source_url=item.get("url"),
        raw_transcription=item.get("notes"),
        order_index=order_index,
    ))
    db.commit()
    return True


def run_import_job(job_id: str) -> None:
    """Background bulk import: items are processed one at a time, progress committed after each."""
    db: Session = _get_session()
    try:
        job = db.get(ImportJob, job_id)
        if not job:
            logger.error(f"Import job {job_id} not found")
            return

        payload = job.payload or {}
        if job.source_type == "text":
            items = extract_locations_from_text(db, payload.get("text", ""), job.user_id)
        else:
            items = [i for i in payload.get("items", []) if i.get("name")]

        job.total_locations = len(items)
        db.commit()
        logger.info(f"Import job {job_id}: {len(items)} locations to import")

        order_index = next_order_index(db, job.trip_id)
        imported = 0
        errors = []
        for item in items:
            try:
                if _import_item(db, job, item, order_index):
                    imported += 1
                    order_index += 1
                else:
                    errors.append(f"Could not geocode: {item['name']}")
            except Exception:
                logger.exception(f"Import job {job_id}: failed to import '{item.get('name')}'")
                db.rollback()
                errors.append(f"Failed to import: {item.get('name')}")

            job.processed_locations += 1
            db.commit()

        job.status = "completed"
        job.imported_locations = imported
        job.completed_at = datetime.now(timezone.utc)
        job.error_message = "; ".join(errors) if errors else None
        db.commit()
        logger.info(f"Import job {job_id}: completed, {imported}/{len(items)} imported")

    except Exception as e:
        logger.exception(f"Import job {job_id} failed")
        db.rollback()
        job = db.get(ImportJob, job_id)
        if job:
            job.status = "failed"
            job.error_message = str(e)
            job.completed_at = datetime.now(timezone.utc)
            db.commit()
    finally:
        db.close()
