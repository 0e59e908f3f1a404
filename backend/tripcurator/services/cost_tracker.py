import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tripcurator.models import ApiUsageLog, User
from tripcurator.services.settings import get_setting

logger = logging.getLogger(__name__)

PAGE_SIZE = 50

# USD rates. LLM models are priced per token, transcription models per audio
# second, places operations per request.
PRICING = {
    "groq": {
        "llama-3.3-70b-versatile": {"input": 0.59 / 1_000_000, "output": 0.79 / 1_000_000},
        "llama-3.1-8b-instant": {"input": 0.05 / 1_000_000, "output": 0.08 / 1_000_000},
        "openai/gpt-oss-120b": {"input": 0.15 / 1_000_000, "output": 0.75 / 1_000_000},
        "openai/gpt-oss-20b": {"input": 0.10 / 1_000_000, "output": 0.50 / 1_000_000},
    },
    "groq_audio": {
        "whisper-large-v3-turbo": {"audio_second": 0.04 / 3600},
        "whisper-large-v3": {"audio_second": 0.111 / 3600},
    },
    "google_places": {
        "text_search": {"request": 0.032},
        "place_details": {"request": 0.017},
    },
}

PERIODS = ("day", "week", "month", "year")


@dataclass
class CostEntry:
    user_id: str | None
    service: str
    operation: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    audio_duration_seconds: float | None = None
    model: str | None = None
    location_id: str | None = None
    request_metadata: dict = field(default_factory=dict)


def calculate_cost(entry: CostEntry) -> float:
    """Compute the USD cost of one call from the pricing table; unknown models cost 0."""
    if entry.service == "groq" and entry.model:
        pricing = PRICING["groq"].get(entry.model)
        if pricing and entry.input_tokens is not None and entry.output_tokens is not None:
            return entry.input_tokens * pricing["input"] + entry.output_tokens * pricing["output"]
    elif entry.service == "groq_audio" and entry.model:
        pricing = PRICING["groq_audio"].get(entry.model)
        if pricing and entry.audio_duration_seconds is not None:
            return entry.audio_duration_seconds * pricing["audio_second"]
    elif entry.service == "google_places":
        pricing = PRICING["google_places"].get(entry.operation)
        if pricing:
            return pricing["request"]
    return 0.0


def track_api_usage(db: Session, entry: CostEntry) -> ApiUsageLog:
    """Append one row to the usage ledger."""
    log = ApiUsageLog(
        user_id=entry.user_id,
        service=entry.service,
        operation=entry.operation,
        input_tokens=entry.input_tokens,
        output_tokens=entry.output_tokens,
        audio_duration_seconds=entry.audio_duration_seconds,
        cost_usd=calculate_cost(entry),
        model=entry.model,
        location_id=entry.location_id,
        request_metadata=entry.request_metadata or None,
    )
    db.add(log)
    db.commit()
    logger.debug(f"Tracked {entry.service}/{entry.operation}: ${log.cost_usd:.6f}")
    return log


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def period_start(period: str, now: datetime | None = None) -> datetime:
    now = now or _utcnow()
    if period == "day":
        return datetime(now.year, now.month, now.day)
    if period == "week":
        return now - timedelta(days=7)
    if period == "year":
        return datetime(now.year, 1, 1)
    return datetime(now.year, now.month, 1)


def get_user_monthly_cost(db: Session, user_id: str) -> float:
    total = db.scalar(
        select(func.sum(ApiUsageLog.cost_usd)).where(
            ApiUsageLog.user_id == user_id,
            ApiUsageLog.created_at >= period_start("month"),
        )
    )
    return total or 0.0


def get_total_monthly_cost(db: Session) -> float:
    total = db.scalar(
        select(func.sum(ApiUsageLog.cost_usd)).where(ApiUsageLog.created_at >= period_start("month"))
    )
    return total or 0.0


def build_cost_report(
    db: Session,
    period: str = "month",
    service: str = "all",
    user_id: str = "all",
    page: int = 1,
) -> dict:
    """Aggregate the ledger for the admin cost view."""
    if period not in PERIODS:
        period = "month"
    page = max(page, 1)

    filters = [ApiUsageLog.created_at >= period_start(period)]
    if service != "all":
        filters.append(ApiUsageLog.service == service)
    if user_id != "all":
        filters.append(ApiUsageLog.user_id == user_id)

    by_service_rows = db.execute(
        select(ApiUsageLog.service, func.sum(ApiUsageLog.cost_usd), func.count(ApiUsageLog.id))
        .where(*filters)
        .group_by(ApiUsageLog.service)
    ).all()

    by_user_rows = db.execute(
        select(ApiUsageLog.user_id, func.sum(ApiUsageLog.cost_usd), func.count(ApiUsageLog.id))
        .where(*filters)
        .group_by(ApiUsageLog.user_id)
    ).all()

    user_ids = [row[0] for row in by_user_rows if row[0]]
    users = {u.id: u for u in db.scalars(select(User).where(User.id.in_(user_ids)))} if user_ids else {}

    by_user = [
        {
            "userId": uid,
            "user": {"email": users[uid].email, "name": users[uid].name} if uid in users else None,
            "totalCost": cost or 0.0,
            "count": count,
        }
        for uid, cost, count in by_user_rows
    ]
    by_user.sort(key=lambda u: u["totalCost"], reverse=True)

    total_count = db.scalar(select(func.count(ApiUsageLog.id)).where(*filters)) or 0
    logs = db.scalars(
        select(ApiUsageLog)
        .where(*filters)
        .order_by(ApiUsageLog.created_at.desc(), ApiUsageLog.id.desc())
        .offset((page - 1) * PAGE_SIZE)
        .limit(PAGE_SIZE)
    ).all()

    monthly_total = get_total_monthly_cost(db)
    try:
        threshold = float(get_setting(db, "cost_alert_threshold_usd") or 0)
    except ValueError:
        threshold = 0.0

    return {
        "summary": {
            "total": sum((cost or 0.0) for _, cost, _ in by_service_rows),
            "byService": [
                {"service": svc, "cost": cost or 0.0, "count": count}
                for svc, cost, count in by_service_rows
            ],
            "byUser": by_user,
        },
        "alert": {
            "monthlyTotal": monthly_total,
            "threshold": threshold,
            "exceeded": threshold > 0 and monthly_total > threshold,
        },
        "logs": [
            {
                "id": log.id,
                "userId": log.user_id,
                "service": log.service,
                "operation": log.operation,
                "inputTokens": log.input_tokens,
                "outputTokens": log.output_tokens,
                "audioDurationSeconds": log.audio_duration_seconds,
                "costUsd": log.cost_usd,
                "model": log.model,
                "locationId": log.location_id,
                "createdAt": log.created_at.isoformat() if log.created_at else None,
            }
            for log in logs
        ],
        "pagination": {
            "page": page,
            "limit": PAGE_SIZE,
            "totalCount": total_count,
            "totalPages": math.ceil(total_count / PAGE_SIZE),
        },
    }
