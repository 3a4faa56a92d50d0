import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import config
from .db import get_db
from .errors import AuthError, NotFoundError
from .models.companies import Company, CompanyMember

ALGORITHM = "HS256"

ROLE_OWNER = "owner"
ROLE_DISPATCHER = "dispatcher"
ROLE_DRIVER = "driver"


@dataclass
class CurrentMember:
    user_id: str
    role: str
    company: Company

    @property
    def is_driver(self) -> bool:
        return self.role == ROLE_DRIVER


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError("Missing authorization")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid authorization header")
    return token.strip()


def decode_user_id(token: str) -> str:
    """Validate an access token from the auth provider and return its subject."""
    if not config.SUPABASE_JWT_SECRET:
        raise AuthError("Token validation is not configured")
    try:
        payload = jwt.decode(
            token,
            config.SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=config.JWT_AUDIENCE,
        )
    except JWTError:
        raise AuthError("Invalid session")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid session - no user")
    return str(user_id)


def get_current_member(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> CurrentMember:
    user_id = decode_user_id(_bearer_token(authorization))

    row = (
        db.query(CompanyMember, Company)
        .join(Company, Company.id == CompanyMember.company_id)
        .filter(CompanyMember.user_id == user_id)
        .order_by(CompanyMember.id)
        .first()
    )
    if row is None:
        raise NotFoundError("No company profile found")

    member, company = row
    return CurrentMember(user_id=user_id, role=member.role, company=company)


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Shared-secret check for scheduler-triggered endpoints."""
    expected = config.CRON_SECRET
    if not expected or not authorization:
        raise AuthError("Unauthorized")
    if not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise AuthError("Unauthorized")
