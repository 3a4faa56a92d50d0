# app/routers/claims.py

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import CurrentMember, get_current_member
from ..db import get_db
from ..services.claims import (
    active_claims_for_driver,
    advance_claim,
    claim_incident,
    claim_to_dict,
    list_claims,
)

router = APIRouter()


class ClaimRequest(BaseModel):
    incident_id: int
    truck_id: Optional[int] = None
    # Dispatchers may claim on behalf of a driver; drivers always claim for themselves
    driver_id: Optional[str] = None
    note: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


@router.post("", status_code=201)
def create_claim(
    req: ClaimRequest,
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
):
    driver_id = member.user_id if member.is_driver else req.driver_id
    claim = claim_incident(
        db,
        member.company,
        req.incident_id,
        driver_id=driver_id,
        truck_id=req.truck_id,
        note=req.note,
    )
    return {"ok": True, "claim": claim_to_dict(claim)}


@router.post("/{incident_id}/status")
def change_status(
    incident_id: int,
    req: StatusRequest,
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
):
    result = advance_claim(
        db,
        member.company.id,
        incident_id,
        req.status,
        driver_id=member.user_id if member.is_driver else None,
    )
    return {
        "ok": True,
        "claim": claim_to_dict(result.claim),
        "truck_released": result.truck_released,
    }


@router.get("")
def get_claims(
    status: Optional[str] = None,
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
):
    claims = list_claims(db, member.company.id, status=status)
    return {"ok": True, "claims": [claim_to_dict(c) for c in claims]}


@router.get("/mine")
def get_my_claims(
    member: CurrentMember = Depends(get_current_member),
    db: Session = Depends(get_db),
):
    """Active (non-completed) jobs for the calling driver."""
    claims = active_claims_for_driver(db, member.company.id, member.user_id)
    return {"ok": True, "claims": [claim_to_dict(c) for c in claims]}
