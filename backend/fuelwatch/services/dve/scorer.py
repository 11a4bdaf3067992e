"""
Report scorer: turns one submission into a persisted, scored report.

    dve_score = trust_score * time_decay * location_factor

Each factor lies in [0, 1], so the score does too, and any weak factor drags
the whole score down.  A submitter beyond MAX_DISTANCE_KM is rejected
outright with a score of 0.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fuelwatch.db.postgres import utcnow
from fuelwatch.models.crowdsourced_report import CrowdsourcedReport
from fuelwatch.services.dve.consensus import ConsensusDecision, ConsensusEngine
from fuelwatch.services.dve.decay import TemporalDecayModel
from fuelwatch.services.dve.exceptions import ReportValidationError, StationNotFoundError
from fuelwatch.services.dve.location import LocationAssessment, LocationTrustModel
from fuelwatch.services.dve.policy import DVEPolicy
from fuelwatch.services.dve.repository import DVERepository
from fuelwatch.services.dve.trust_ledger import TrustScoreLedger

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("station_id", "fuel_type", "anonymous_user_id", "user_lat", "user_lon")


@dataclass(frozen=True)
class ReportSubmission:
    station_id: Any
    fuel_type: Any
    anonymous_user_id: Any
    user_lat: Any
    user_lon: Any
    is_manual_location: bool = False


@dataclass(frozen=True)
class ScoreResult:
    score: float
    trust_score: float
    time_decay: float
    location_factor: float
    distance_km: float
    is_rejected: bool
    rejection_reason: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "trustScore": self.trust_score,
            "timeDecay": self.time_decay,
            "locationFactor": self.location_factor,
            "isRejected": self.is_rejected,
            "rejectionReason": self.rejection_reason,
        }


@dataclass(frozen=True)
class SubmissionResult:
    report_id: uuid.UUID
    station_id: uuid.UUID
    result: ScoreResult
    published: list[ConsensusDecision] = field(default_factory=list)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_coordinate(name: str, value: Any, bound: float) -> float:
    try:
        coord = float(value)
    except (TypeError, ValueError):
        raise ReportValidationError(f"{name} must be a number", [name])
    if math.isnan(coord) or not -bound <= coord <= bound:
        raise ReportValidationError(f"{name} must be between {-bound:g} and {bound:g}", [name])
    return coord


class ReportScorer:
    def __init__(
        self,
        policy: DVEPolicy,
        ledger: TrustScoreLedger,
        consensus: ConsensusEngine,
        decay_model: TemporalDecayModel | None = None,
        location_model: LocationTrustModel | None = None,
    ):
        self.policy = policy
        self.ledger = ledger
        self.consensus = consensus
        self.decay_model = decay_model or TemporalDecayModel(policy)
        self.location_model = location_model or LocationTrustModel(policy)

    # ------------------------------------------------------------------
    # Pure scoring
    # ------------------------------------------------------------------

    def score(
        self, trust_score: float, time_decay: float, location: LocationAssessment
    ) -> ScoreResult:
        if not location.is_valid:
            return ScoreResult(
                score=0.0,
                trust_score=trust_score,
                time_decay=time_decay,
                location_factor=location.factor,
                distance_km=location.distance_km,
                is_rejected=True,
                rejection_reason=f"User too far from station ({location.distance_km:.2f}km)",
            )
        return ScoreResult(
            score=trust_score * time_decay * location.factor,
            trust_score=trust_score,
            time_decay=time_decay,
            location_factor=location.factor,
            distance_km=location.distance_km,
            is_rejected=False,
        )

    def validate(self, submission: ReportSubmission) -> tuple[str, str, str, float, float]:
        missing = [name for name in REQUIRED_FIELDS if _is_missing(getattr(submission, name))]
        if missing:
            raise ReportValidationError("Missing required fields: " + ", ".join(missing), missing)

        user_lat = _as_coordinate("user_lat", submission.user_lat, 90.0)
        user_lon = _as_coordinate("user_lon", submission.user_lon, 180.0)
        return (
            str(submission.station_id).strip(),
            str(submission.fuel_type).strip(),
            str(submission.anonymous_user_id).strip(),
            user_lat,
            user_lon,
        )

    # ------------------------------------------------------------------
    # Submission flow
    # ------------------------------------------------------------------

    async def submit(
        self,
        repo: DVERepository,
        submission: ReportSubmission,
        now: datetime | None = None,
    ) -> SubmissionResult:
        """Validate, score, persist, then run consensus for the station.

        Raises ``ReportValidationError`` or ``StationNotFoundError`` before
        anything is written, and ``StorageError`` if the store fails.
        """
        raw_station_id, fuel_type, user_id, user_lat, user_lon = self.validate(submission)
        now = now or utcnow()

        try:
            station_id = uuid.UUID(raw_station_id)
        except ValueError:
            raise StationNotFoundError(raw_station_id)

        station = await repo.get_station(station_id)
        if station is None or not station.has_coordinates:
            raise StationNotFoundError(raw_station_id)

        trust = await self.ledger.get_or_create(repo, user_id)
        trust_score = trust.trust_score if trust.trust_score is not None else self.policy.INITIAL_TRUST_SCORE

        time_decay = self.decay_model.decay(now, now)
        location = self.location_model.evaluate(user_lat, user_lon, station.latitude, station.longitude)
        result = self.score(trust_score, time_decay, location)

        report = CrowdsourcedReport(
            id=uuid.uuid4(),
            station_id=station_id,
            anonymous_user_id=user_id,
            fuel_type=fuel_type,
            user_lat=user_lat,
            user_lon=user_lon,
            is_manual_location=bool(submission.is_manual_location),
            timestamp=now,
            trust_score_at_submission=trust_score,
            time_decay_factor=time_decay,
            location_factor=result.location_factor,
            distance_km=result.distance_km,
            dve_score=result.score,
            is_verified=False,
            is_rejected=result.is_rejected,
            rejection_reason=result.rejection_reason,
        )
        await repo.add_report(report)
        await self.ledger.record_submission(repo, user_id, rejected=result.is_rejected, now=now)
        # Report must be durable before consensus reads the window
        await repo.commit()

        if result.is_rejected:
            logger.info(
                "Rejected report %s from %s at station %s: %s",
                report.id, user_id, station_id, result.rejection_reason,
            )
            return SubmissionResult(report_id=report.id, station_id=station_id, result=result)

        logger.info(
            "Accepted report %s (%s) at station %s: score=%.3f trust=%.3f decay=%.3f location=%.3f",
            report.id, fuel_type, station_id, result.score, trust_score, time_decay,
            result.location_factor,
        )
        published = await self.consensus.evaluate_station(repo, station_id, now=now)
        return SubmissionResult(
            report_id=report.id, station_id=station_id, result=result, published=published
        )
