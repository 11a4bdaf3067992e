import uuid

from sqlalchemy import Column, String, DateTime, Float
from sqlalchemy.dialects.postgresql import UUID

from fuelwatch.db.postgres import Base, utcnow


class FuelStation(Base):
    """Baseline station record.

    Loaded by an external process; the verification engine only reads it.
    A station without both coordinates cannot be scored against.
    """
    __tablename__ = "fuel_stations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    brand = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
