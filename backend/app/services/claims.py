# app/services/claims.py

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import MAX_ACTIVE_JOBS
from ..db import insert_for
from ..errors import (
    CapacityError,
    ConflictError,
    InvalidTransitionError,
    NoTruckAvailableError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..models.claims import Claim
from ..models.companies import Company
from ..models.incidents import Incident
from ..models.trucks import TRUCK_AVAILABLE, TRUCK_ON_JOB, Truck
from .relevance import NearbyIncident
from .sources.base import utcnow

log = logging.getLogger(__name__)

CLAIMED = "claimed"
EN_ROUTE = "en_route"
ON_SCENE = "on_scene"
COMPLETED = "completed"

# Lifecycle order; a claim only ever moves to a later state
CLAIM_STATES = [CLAIMED, EN_ROUTE, ON_SCENE, COMPLETED]

STATUS_TIMESTAMP = {
    CLAIMED: "claimed_at",
    EN_ROUTE: "en_route_at",
    ON_SCENE: "on_scene_at",
    COMPLETED: "completed_at",
}


@dataclass
class TransitionResult:
    claim: Claim
    # False when completion could not hand the truck back; needs a dispatcher
    truck_released: bool = True


def claim_to_dict(claim: Claim) -> dict:
    def iso(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    return {
        "company_id": claim.company_id,
        "incident_id": claim.incident_id,
        "status": claim.status,
        "truck_id": claim.truck_id,
        "driver_id": claim.driver_id,
        "note": claim.note,
        "claimed_at": iso(claim.claimed_at),
        "en_route_at": iso(claim.en_route_at),
        "on_scene_at": iso(claim.on_scene_at),
        "completed_at": iso(claim.completed_at),
    }


def active_claims_for_driver(db: Session, company_id: int, driver_id: str) -> List[Claim]:
    return (
        db.query(Claim)
        .filter(
            Claim.company_id == company_id,
            Claim.driver_id == driver_id,
            Claim.status != COMPLETED,
        )
        .order_by(Claim.claimed_at.desc())
        .all()
    )


def list_claims(db: Session, company_id: int, status: Optional[str] = None) -> List[Claim]:
    q = db.query(Claim).filter(Claim.company_id == company_id)
    if status is not None:
        if status not in CLAIM_STATES:
            raise ValidationError(f"unknown claim status {status!r}")
        q = q.filter(Claim.status == status)
    return q.order_by(Claim.claimed_at.desc()).all()


def available_incidents(
    db: Session,
    company_id: int,
    nearby: List[NearbyIncident],
) -> List[NearbyIncident]:
    """Drop incidents the company has already claimed (in any state)."""
    claimed_ids = {
        row[0]
        for row in db.query(Claim.incident_id).filter(Claim.company_id == company_id).all()
    }
    return [n for n in nearby if n.incident.id not in claimed_ids]


def _pick_truck(
    db: Session,
    company_id: int,
    driver_id: Optional[str],
    truck_id: Optional[int],
) -> Truck:
    """Requested truck, else the driver's own available truck, else any available one."""
    q = db.query(Truck).filter(
        Truck.company_id == company_id,
        Truck.status == TRUCK_AVAILABLE,
    )

    if truck_id is not None:
        truck = q.filter(Truck.id == truck_id).one_or_none()
        if truck is None:
            raise NoTruckAvailableError(f"Truck {truck_id} is not available")
        return truck

    if driver_id is not None:
        truck = q.filter(Truck.assigned_driver_id == driver_id).order_by(Truck.id).first()
        if truck is not None:
            return truck

    truck = q.order_by(Truck.id).first()
    if truck is None:
        raise NoTruckAvailableError("No available trucks. Contact your dispatcher.")
    return truck


def claim_incident(
    db: Session,
    company: Company,
    incident_id: int,
    driver_id: Optional[str] = None,
    truck_id: Optional[int] = None,
    note: Optional[str] = None,
    max_active_jobs: int = MAX_ACTIVE_JOBS,
) -> Claim:
    """
    Claim an incident for `company`, optionally for a driver.

    The claim row insert is conditional on (company_id, incident_id) and the
    truck hand-off is conditional on the truck still being available; both
    happen in one transaction. Losing either race raises a ConflictError
    and leaves nothing behind.
    """
    incident = db.get(Incident, incident_id)
    if incident is None:
        raise NotFoundError(f"Incident {incident_id} not found")

    if driver_id is not None:
        active = len(active_claims_for_driver(db, company.id, driver_id))
        if active >= max_active_jobs:
            raise CapacityError(
                f"You can only have {max_active_jobs} active jobs at a time. "
                "Complete a job first."
            )

    truck = _pick_truck(db, company.id, driver_id, truck_id)
    now = utcnow()

    stmt = (
        insert_for(db, Claim.__table__)
        .values(
            company_id=company.id,
            incident_id=incident_id,
            status=CLAIMED,
            truck_id=truck.id,
            driver_id=driver_id,
            note=note,
            claimed_at=now,
        )
        .on_conflict_do_nothing(index_elements=["company_id", "incident_id"])
    )

    try:
        res = db.execute(stmt)
        if res.rowcount != 1:
            db.rollback()
            raise ConflictError("Incident has already been claimed")

        truck_res = db.execute(
            update(Truck)
            .where(Truck.id == truck.id, Truck.status == TRUCK_AVAILABLE)
            .values(status=TRUCK_ON_JOB, updated_at=now)
        )
        if truck_res.rowcount != 1:
            db.rollback()
            raise NoTruckAvailableError(f"Truck {truck.id} was taken by another job")

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("[claims] Claim of incident %s by company %s failed: %s", incident_id, company.id, e)
        raise PersistenceError("Error claiming incident. Try again.") from e

    log.info(
        "[claims] Company %s claimed incident %s (truck=%s, driver=%s)",
        company.id,
        incident_id,
        truck.id,
        driver_id,
    )
    return db.get(Claim, (company.id, incident_id))


def advance_claim(
    db: Session,
    company_id: int,
    incident_id: int,
    target: str,
    driver_id: Optional[str] = None,
) -> TransitionResult:
    """
    Move a claim forward to `target`, stamping its timestamp.

    Any later state is reachable (claimed -> completed is fine); moving
    backwards or to the current state is rejected. When `driver_id` is given
    only that driver's claim can move. Completing hands the truck back in
    the same transaction.
    """
    if target not in CLAIM_STATES or target == CLAIMED:
        raise ValidationError(f"cannot transition a claim to {target!r}")

    earlier = CLAIM_STATES[: CLAIM_STATES.index(target)]
    now = utcnow()

    conditions = [
        Claim.company_id == company_id,
        Claim.incident_id == incident_id,
    ]
    if driver_id is not None:
        conditions.append(Claim.driver_id == driver_id)

    existing = db.query(Claim).filter(*conditions).one_or_none()
    if existing is None:
        raise NotFoundError(f"No claim on incident {incident_id}")
    truck_id = existing.truck_id

    truck_released = True
    try:
        res = db.execute(
            update(Claim)
            .where(*conditions, Claim.status.in_(earlier))
            .values(status=target, **{STATUS_TIMESTAMP[target]: now})
        )
        if res.rowcount != 1:
            db.rollback()
            current = db.query(Claim.status).filter(*conditions).scalar()
            raise InvalidTransitionError(f"Claim is {current}, cannot move to {target}")

        if target == COMPLETED and truck_id is not None:
            truck_res = db.execute(
                update(Truck)
                .where(Truck.id == truck_id, Truck.status == TRUCK_ON_JOB)
                .values(status=TRUCK_AVAILABLE, updated_at=now)
            )
            truck_released = truck_res.rowcount == 1

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("[claims] Status change of incident %s to %s failed: %s", incident_id, target, e)
        raise PersistenceError("Error updating job status. Try again.") from e

    if not truck_released:
        log.error(
            "[claims] Incident %s completed but truck %s was not on_job; "
            "truck status needs manual correction",
            incident_id,
            truck_id,
        )

    db.expire_all()
    claim = db.get(Claim, (company_id, incident_id))
    return TransitionResult(claim=claim, truck_released=truck_released)
