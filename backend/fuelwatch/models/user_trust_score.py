"""Per-submitter reputation.

One row per anonymous user id, created lazily on first submission.  The
trust score multiplies every report the user submits, and moves as their
reports are corroborated (verified) or rejected.
"""
import uuid

from sqlalchemy import Column, String, DateTime, Float, Integer
from sqlalchemy.dialects.postgresql import UUID

from fuelwatch.db.postgres import Base, utcnow


class UserTrustScore(Base):
    __tablename__ = "user_trust_scores"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    anonymous_user_id = Column(String, unique=True, nullable=False, index=True)

    trust_score = Column(Float, nullable=False, default=0.5)
    total_reports = Column(Integer, nullable=False, default=0)
    correct_reports = Column(Integer, nullable=False, default=0)    # Verified by consensus
    incorrect_reports = Column(Integer, nullable=False, default=0)  # Rejected at submission
    last_outcome_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
