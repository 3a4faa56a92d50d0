# app/routers/alerts.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import CurrentMember, get_current_member, require_cron_secret
from ..db import get_db
from ..models.notifications import InAppAlert
from ..services.alerts import AlertEngine

router = APIRouter()


class RefreshRequest(BaseModel):
    # Incident ids the dashboard already showed on its previous poll
    seen_ids: List[int] = []


def get_alert_engine() -> AlertEngine:
    return AlertEngine()


@router.post("/run", dependencies=[Depends(require_cron_secret)])
async def run_alerts(
    db: Session = Depends(get_db),
    engine: AlertEngine = Depends(get_alert_engine),
):
    """Scheduler entry point: one alert pass for every company."""
    results = await engine.run_all(db)
    return {
        "ok": all(not r.failures for r in results),
        "companies": len(results),
        "notified": sum(len(r.notified) for r in results),
        "results": [r.to_dict() for r in results],
    }


@router.post("/refresh")
async def refresh_alerts(
    req: Optional[RefreshRequest] = None,
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
    engine: AlertEngine = Depends(get_alert_engine),
):
    """Dashboard refresh cycle for the caller's company."""
    seen_ids = req.seen_ids if req is not None else None
    result = await engine.run_for_company(db, member.company, seen_ids=seen_ids)
    return {"ok": not result.failures, **result.to_dict()}


@router.get("")
def list_alerts(
    limit: int = Query(20, ge=1, le=100),
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(InAppAlert)
        .filter(InAppAlert.company_id == member.company.id)
        .order_by(InAppAlert.created_at.desc(), InAppAlert.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "ok": True,
        "alerts": [
            {
                "id": a.id,
                "incident_id": a.incident_id,
                "title": a.title,
                "body": a.body,
                "audible": a.audible,
                "created_at": a.created_at.isoformat() if a.created_at else None,
            }
            for a in rows
        ],
    }
