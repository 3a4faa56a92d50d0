from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey, func
from ..db import Base
from .incidents import ID_TYPE


class NotificationRecord(Base):
    """Dedup ledger: one row per (company, incident) ever alerted."""

    __tablename__ = "notification_records"

    company_id = Column(Integer, ForeignKey("companies.id"), primary_key=True)
    incident_id = Column(ID_TYPE, ForeignKey("incidents.id"), primary_key=True)

    # e.g. "in_app,email,sms"
    channels = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class InAppAlert(Base):
    __tablename__ = "in_app_alerts"

    id = Column(ID_TYPE, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    incident_id = Column(ID_TYPE, ForeignKey("incidents.id"), nullable=False)

    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)

    # False while the company is inside its quiet hours
    audible = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
