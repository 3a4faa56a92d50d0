from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from ..db import Base
from .incidents import ID_TYPE


class Claim(Base):
    __tablename__ = "claims"

    # Composite key enforces one claim per (company, incident) at the storage layer
    company_id = Column(Integer, ForeignKey("companies.id"), primary_key=True)
    incident_id = Column(ID_TYPE, ForeignKey("incidents.id"), primary_key=True)

    # claimed | en_route | on_scene | completed
    status = Column(Text, nullable=False, index=True)

    truck_id = Column(Integer, ForeignKey("trucks.id"))
    driver_id = Column(Text, index=True)
    note = Column(Text)

    claimed_at = Column(DateTime(timezone=True), nullable=False)
    en_route_at = Column(DateTime(timezone=True))
    on_scene_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
