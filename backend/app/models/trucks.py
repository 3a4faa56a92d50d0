from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, func
from ..db import Base

TRUCK_AVAILABLE = "available"
TRUCK_ON_JOB = "on_job"


class Truck(Base):
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    name = Column(Text, nullable=False)

    # available | on_job | maintenance | out_of_service
    status = Column(Text, nullable=False, default=TRUCK_AVAILABLE, index=True)

    # Driver this truck is normally handed to; optional
    assigned_driver_id = Column(Text)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
