# app/routers/incidents.py

from typing import List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..auth import CurrentMember, get_current_member, require_cron_secret
from ..config import RATE_LIMIT_INCIDENTS, RATE_LIMIT_INGEST, RATE_LIMIT_WINDOW_SECONDS
from ..db import get_db
from ..ratelimit import RateLimiter, rate_limited
from ..services.claims import available_incidents
from ..services.ingest import STATUS_FAILED, STATUS_PARTIAL, run_ingestion
from ..services.relevance import (
    MAX_WINDOW_MINUTES,
    MIN_WINDOW_MINUTES,
    recent_incidents,
    relevant_incidents,
)
from ..services.sources import IncidentSource, build_sources

router = APIRouter()

# Dashboard reads share one budget per client
incidents_limiter = RateLimiter(RATE_LIMIT_INCIDENTS, RATE_LIMIT_WINDOW_SECONDS)
ingest_limiter = RateLimiter(RATE_LIMIT_INGEST, RATE_LIMIT_WINDOW_SECONDS)


def get_sources() -> List[IncidentSource]:
    return build_sources()


@router.post(
    "/ingest",
    dependencies=[Depends(rate_limited(ingest_limiter)), Depends(require_cron_secret)],
)
async def ingest(
    response: Response,
    db: Session = Depends(get_db),
    sources: List[IncidentSource] = Depends(get_sources),
):
    """
    Pull every configured feed into the incidents table. Called by the
    scheduler with the shared cron secret.

    200 when everything landed, 207 when some records or sources failed,
    502 when no source could be fetched or none is configured.
    """
    result = await run_ingestion(db, sources)

    if result.status == STATUS_PARTIAL:
        response.status_code = 207
    elif result.status == STATUS_FAILED:
        response.status_code = 502
    return result.to_dict()


@router.get("/nearby", dependencies=[Depends(rate_limited(incidents_limiter))])
def get_nearby(
    minutes: int = Query(60, ge=MIN_WINDOW_MINUTES, le=MAX_WINDOW_MINUTES),
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
):
    """
    Incidents from the last `minutes` minutes inside the caller's service
    radius, nearest first, each with its distance from the yard.
    """
    incidents = recent_incidents(db, minutes)
    nearby = relevant_incidents(member.company, incidents)
    return {
        "ok": True,
        "minutes": minutes,
        "incidents": [n.to_dict() for n in nearby],
    }


@router.get("/available", dependencies=[Depends(rate_limited(incidents_limiter))])
def get_available(
    minutes: int = Query(60, ge=MIN_WINDOW_MINUTES, le=MAX_WINDOW_MINUTES),
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
):
    """Nearby incidents nobody in the company has claimed yet (driver view)."""
    incidents = recent_incidents(db, minutes)
    nearby = relevant_incidents(member.company, incidents)
    available = available_incidents(db, member.company.id, nearby)
    return {
        "ok": True,
        "minutes": minutes,
        "incidents": [n.to_dict() for n in available],
    }
