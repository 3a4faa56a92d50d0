from sqlalchemy import (
    Column,
    BigInteger,
    Integer,
    Text,
    DateTime,
    Float,
    UniqueConstraint,
    func,
)
from ..db import Base

# SQLite only autoincrements INTEGER PRIMARY KEY
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(ID_TYPE, primary_key=True, index=True)

    # Natural key: (source, external_id)
    source = Column(Text, nullable=False)
    external_id = Column(Text, nullable=False)

    # accident | disabled_vehicle | hazard
    category = Column(Text, nullable=False)
    description = Column(Text)

    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    road = Column(Text)
    city = Column(Text)
    state = Column(Text)

    # Real-world event time, not ingestion time
    occurred_at = Column(DateTime(timezone=True), index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "source",
            "external_id",
            name="uc_incidents_source_external_id",
        ),
    )
