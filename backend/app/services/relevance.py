# app/services/relevance.py

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

import numpy as np
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.companies import Company
from ..models.incidents import Incident
from .classify import classify_incident
from .geo import distances_km, has_coordinates
from .sources.base import utcnow

MIN_WINDOW_MINUTES = 1
MAX_WINDOW_MINUTES = 60 * 24


@dataclass
class NearbyIncident:
    incident: Incident
    # Computed once here; display and alerting both read this value
    distance_km: float
    display_category: str

    def to_dict(self) -> dict:
        inc = self.incident
        return {
            "id": inc.id,
            "source": inc.source,
            "external_id": inc.external_id,
            "category": inc.category,
            "display_category": self.display_category,
            "description": inc.description,
            "lat": inc.lat,
            "lng": inc.lng,
            "road": inc.road,
            "city": inc.city,
            "state": inc.state,
            "occurred_at": inc.occurred_at.isoformat() if inc.occurred_at else None,
            "distance_km": round(self.distance_km, 3),
        }


def validate_window(minutes: int) -> int:
    if not isinstance(minutes, int) or isinstance(minutes, bool):
        raise ValidationError("minutes must be an integer")
    if not MIN_WINDOW_MINUTES <= minutes <= MAX_WINDOW_MINUTES:
        raise ValidationError(
            f"minutes must be between {MIN_WINDOW_MINUTES} and {MAX_WINDOW_MINUTES}"
        )
    return minutes


def recent_incidents(
    db: Session,
    minutes: int,
    now: Optional[datetime] = None,
) -> List[Incident]:
    """Incidents whose occurred_at falls in the last `minutes` minutes."""
    validate_window(minutes)
    since = (now or utcnow()) - timedelta(minutes=minutes)

    q = (
        db.query(Incident)
        .filter(Incident.occurred_at >= since)
        .order_by(Incident.occurred_at.desc())
    )
    return q.all()


def annotate_distances(
    base_lat: float,
    base_lng: float,
    incidents: Iterable[Incident],
) -> List[NearbyIncident]:
    """
    Attach distance from (base_lat, base_lng) to each incident.

    Incidents with missing or non-finite coordinates are dropped.
    """
    incidents = [inc for inc in incidents if has_coordinates(inc.lat, inc.lng)]
    if not incidents:
        return []

    lats = [inc.lat for inc in incidents]
    lngs = [inc.lng for inc in incidents]
    dists = distances_km(base_lat, base_lng, lats, lngs)

    out = []
    for inc, d in zip(incidents, dists):
        if not np.isfinite(d):
            continue
        out.append(
            NearbyIncident(
                incident=inc,
                distance_km=float(d),
                display_category=classify_incident(inc.category, inc.description),
            )
        )
    return out


def filter_within(
    company: Company,
    incidents: Iterable[Incident],
    extra_km: float = 0.0,
) -> List[NearbyIncident]:
    """
    Incidents within company.radius_km + extra_km of the company base,
    nearest first.
    """
    if company.radius_km is None or company.radius_km <= 0:
        raise ValidationError("company radius_km must be positive")

    limit = company.radius_km + (extra_km or 0.0)
    annotated = annotate_distances(company.base_lat, company.base_lng, incidents)
    kept = [n for n in annotated if n.distance_km <= limit]
    kept.sort(key=lambda n: n.distance_km)
    return kept


def relevant_incidents(company: Company, incidents: Iterable[Incident]) -> List[NearbyIncident]:
    """Plain service-area relevance (no alert buffer)."""
    return filter_within(company, incidents)
