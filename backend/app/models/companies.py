from sqlalchemy import (
    Column,
    Integer,
    Text,
    Float,
    Boolean,
    Time,
    JSON,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
)
from ..db import Base

DEFAULT_ALERT_CATEGORIES = {
    "crash": True,
    "disabled": True,
    "hazard": False,
}


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)

    base_lat = Column(Float, nullable=False)
    base_lng = Column(Float, nullable=False)
    radius_km = Column(Float, nullable=False, default=40.0)

    alert_enabled = Column(Boolean, nullable=False, default=True)
    # display category -> enabled
    alert_categories = Column(
        JSON, nullable=False, default=lambda: dict(DEFAULT_ALERT_CATEGORIES)
    )
    # Extra distance beyond radius_km that still triggers an alert
    alert_buffer_km = Column(Float, nullable=False, default=5.0)

    alert_email = Column(Text)
    alert_phone = Column(Text)
    push_token = Column(Text)

    quiet_hours_start = Column(Time)
    quiet_hours_end = Column(Time)
    timezone = Column(Text, nullable=False, default="UTC")

    __table_args__ = (
        CheckConstraint("radius_km > 0", name="ck_companies_radius_positive"),
    )


class CompanyMember(Base):
    __tablename__ = "company_members"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # Subject of the auth provider's token
    user_id = Column(Text, nullable=False, index=True)

    # owner | dispatcher | driver
    role = Column(Text, nullable=False, default="dispatcher")

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uc_company_members_user"),
    )
