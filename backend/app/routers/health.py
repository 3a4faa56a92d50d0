# app/routers/health.py

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..db import get_db
from ..models.companies import Company
from ..models.incidents import Incident

router = APIRouter()

# No incident refreshed for this long usually means ingestion stopped
STALE_INGEST_MINUTES = 30


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.get("/health")
def health(response: Response, db: Session = Depends(get_db)):
    now = datetime.now(timezone.utc)
    report = {
        "timestamp": now.isoformat(),
        "status": "ok",
        "checks": {
            "env": {
                "database_url": bool(config.DATABASE_URL),
                "jwt_secret": bool(config.SUPABASE_JWT_SECRET),
                "cron_secret": bool(config.CRON_SECRET),
                "sources": [s.strip() for s in config.INCIDENT_SOURCES.split(",") if s.strip()],
            },
        },
    }
    checks = report["checks"]

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"connected": True, "error": None}

        checks["incidents_last_24h"] = (
            db.query(func.count(Incident.id))
            .filter(Incident.occurred_at >= now - timedelta(hours=24))
            .scalar()
        )

        last_ingest = _as_utc(db.query(func.max(Incident.updated_at)).scalar())
        if last_ingest is not None:
            minutes_ago = int((now - last_ingest).total_seconds() // 60)
            checks["last_incident_ingested"] = last_ingest.isoformat()
            checks["minutes_since_last_ingest"] = minutes_ago
            if minutes_ago > STALE_INGEST_MINUTES:
                checks["warning"] = f"No incidents ingested in {minutes_ago} minutes"
                report["status"] = "warning"

        checks["companies"] = db.query(func.count(Company.id)).scalar()
    except SQLAlchemyError as e:
        checks["database"] = {"connected": False, "error": str(e)}
        report["status"] = "error"

    response.status_code = 503 if report["status"] == "error" else 200
    return report
