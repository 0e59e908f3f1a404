from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session
from tripcurator.database import get_db
from tripcurator.dependencies import get_current_user, get_owned_trip
from tripcurator.models import ImportJob, User
from tripcurator.schemas import ImportJobResponse, ImportRequest, ParseTextRequest
from tripcurator.services.llm import extract_locations_from_text
from tripcurator.services.pipeline import run_import_job
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/import", tags=["import"])


def _build_payload(request: ImportRequest) -> dict | None:
    if request.source_type == "direct" and request.locations:
        return {"items": [item.model_dump() for item in request.locations]}
    if request.source_type == "csv" and request.csv_data:
        return {"items": [item.model_dump() for item in request.csv_data]}
    if request.source_type == "text" and request.text and request.text.strip():
        return {"text": request.text}
    return None


@router.post("", response_model=ImportJobResponse, status_code=202)
def create_import(
    request: ImportRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Queue a bulk import into a trip; poll the returned job for progress."""
    trip = get_owned_trip(db, request.trip_id, user)

    payload = _build_payload(request)
    if payload is None:
        raise HTTPException(status_code=400, detail="Invalid import data")

    job = ImportJob(
        user_id=user.id,
        trip_id=trip.id,
        source_type=request.source_type,
        status="processing",
        total_locations=len(payload.get("items", [])),
        payload=payload,
    )
    db.add(job)
    db.commit()
    db.refresh(job)

    background_tasks.add_task(run_import_job, job.id)
    logger.info(f"Queued {request.source_type} import job {job.id} for trip {trip.id}")

    return job


@router.get("/{job_id}", response_model=ImportJobResponse)
def get_import(job_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    job = db.query(ImportJob).filter(ImportJob.id == job_id, ImportJob.user_id == user.id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found")
    return job


@router.post("/parse-text")
def parse_text(request: ParseTextRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Preview the places the LLM finds in pasted text, without saving anything."""
    try:
        locations = extract_locations_from_text(db, request.text, user.id)
    except Exception as e:
        logger.exception("Parse text failed")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to parse text")
    return {"locations": locations}
