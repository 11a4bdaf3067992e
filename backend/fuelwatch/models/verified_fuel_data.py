import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Float, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from fuelwatch.db.postgres import Base, utcnow


class VerifiedFuelData(Base):
    """Published belief about one fuel type at one station.

    Derived from crowdsourced reports by consensus; at most one row per
    (station_id, fuel_type), written with an upsert.
    """
    __tablename__ = "verified_fuel_data"
    __table_args__ = (
        UniqueConstraint("station_id", "fuel_type", name="uq_verified_station_fuel"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    station_id = Column(UUID(as_uuid=True), ForeignKey("fuel_stations.id"), nullable=False, index=True)
    fuel_type = Column(String, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    confidence_score = Column(Float, nullable=False)
    verified_by_count = Column(Integer, nullable=False, default=0)
    last_verified_at = Column(DateTime, nullable=False, default=utcnow)
