"""Crowdsourced fuel-availability report.

Every submission is persisted, accepted or not.  The scoring inputs are
snapshotted at submission time so the admin view can explain a score later
even after the submitter's trust has moved.

Lifecycle: pending -> verified (set once, by consensus) or rejected (at
submission).  The two terminal flags are mutually exclusive.
"""
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Float, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID

from fuelwatch.db.postgres import Base, utcnow

# Well-known labels.  Not enforced: new fuel types are stored as-is.
KNOWN_FUEL_TYPES = ("E10", "E20", "Pure Petrol", "Diesel", "CNG")


class CrowdsourcedReport(Base):
    __tablename__ = "crowdsourced_reports"
    __table_args__ = (
        Index("idx_reports_station_timestamp", "station_id", "timestamp"),
        CheckConstraint("NOT (is_verified AND is_rejected)", name="ck_reports_verified_xor_rejected"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    station_id = Column(UUID(as_uuid=True), ForeignKey("fuel_stations.id"), nullable=False)
    anonymous_user_id = Column(String, nullable=False, index=True)
    fuel_type = Column(String, nullable=False)
    user_lat = Column(Float, nullable=False)
    user_lon = Column(Float, nullable=False)
    is_manual_location = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    # Snapshot of the scoring inputs
    trust_score_at_submission = Column(Float, nullable=True)
    time_decay_factor = Column(Float, nullable=True)
    location_factor = Column(Float, nullable=True)
    distance_km = Column(Float, nullable=True)
    dve_score = Column(Float, nullable=False, default=0.0)

    is_verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime, nullable=True)
    is_rejected = Column(Boolean, nullable=False, default=False)
    rejection_reason = Column(String, nullable=True)
