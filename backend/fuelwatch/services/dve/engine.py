"""
Data Verification Engine facade.

Wires one ``DVEPolicy`` into every component and exposes the operations the
API and the background tasks call: submit a report, read the admin view,
sweep stale verified entries.
"""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from fuelwatch.config import Settings, get_settings
from fuelwatch.models.crowdsourced_report import CrowdsourcedReport
from fuelwatch.models.user_trust_score import UserTrustScore
from fuelwatch.models.verified_fuel_data import VerifiedFuelData
from fuelwatch.services.dve.consensus import ConsensusEngine
from fuelwatch.services.dve.policy import DVEPolicy
from fuelwatch.services.dve.repository import DVERepository
from fuelwatch.services.dve.scorer import ReportScorer, ReportSubmission, SubmissionResult
from fuelwatch.services.dve.trust_ledger import TrustScoreLedger

logger = logging.getLogger(__name__)

ADMIN_REPORT_LIMIT = 100


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def report_to_dict(report: CrowdsourcedReport, station_name: str | None = None) -> dict[str, Any]:
    return {
        "id": str(report.id),
        "station_id": str(report.station_id),
        "station_name": station_name,
        "anonymous_user_id": report.anonymous_user_id,
        "fuel_type": report.fuel_type,
        "user_lat": report.user_lat,
        "user_lon": report.user_lon,
        "is_manual_location": report.is_manual_location,
        "timestamp": _iso(report.timestamp),
        "trust_score_at_submission": report.trust_score_at_submission,
        "time_decay_factor": report.time_decay_factor,
        "location_factor": report.location_factor,
        "distance_km": report.distance_km,
        "dve_score": report.dve_score,
        "is_verified": report.is_verified,
        "verified_at": _iso(report.verified_at),
        "is_rejected": report.is_rejected,
        "rejection_reason": report.rejection_reason,
    }


def trust_score_to_dict(trust: UserTrustScore) -> dict[str, Any]:
    return {
        "id": str(trust.id),
        "anonymous_user_id": trust.anonymous_user_id,
        "trust_score": trust.trust_score,
        "total_reports": trust.total_reports,
        "correct_reports": trust.correct_reports,
        "incorrect_reports": trust.incorrect_reports,
        "last_outcome_at": _iso(trust.last_outcome_at),
        "created_at": _iso(trust.created_at),
        "updated_at": _iso(trust.updated_at),
    }


def verified_entry_to_dict(entry: VerifiedFuelData, station_name: str | None = None) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "station_id": str(entry.station_id),
        "station_name": station_name,
        "fuel_type": entry.fuel_type,
        "is_available": entry.is_available,
        "confidence_score": entry.confidence_score,
        "verified_by_count": entry.verified_by_count,
        "last_verified_at": _iso(entry.last_verified_at),
    }


class DataVerificationEngine:
    def __init__(
        self,
        policy: DVEPolicy,
        repository_factory: Callable[[AsyncSession], DVERepository] = DVERepository,
    ):
        self.policy = policy
        self.repository_factory = repository_factory
        self.ledger = TrustScoreLedger(policy)
        self.consensus = ConsensusEngine(policy, self.ledger)
        self.scorer = ReportScorer(policy, self.ledger, self.consensus)

    async def submit_report(
        self,
        db: AsyncSession,
        submission: ReportSubmission,
        now: datetime | None = None,
    ) -> SubmissionResult:
        return await self.scorer.submit(self.repository_factory(db), submission, now=now)

    async def get_admin_data(self, db: AsyncSession, report_limit: int = ADMIN_REPORT_LIMIT) -> dict[str, Any]:
        """Read-only snapshot for dashboards, including the active policy."""
        repo = self.repository_factory(db)
        reports = await repo.list_recent_reports(limit=report_limit)
        trust_scores = await repo.list_trust_scores()
        verified = await repo.list_verified_entries()
        return {
            "reports": [report_to_dict(report, name) for report, name in reports],
            "trustScores": [trust_score_to_dict(trust) for trust in trust_scores],
            "verifiedData": [verified_entry_to_dict(entry, name) for entry, name in verified],
            "config": self.config_snapshot(),
        }

    async def sweep_stale_entries(self, db: AsyncSession, now: datetime | None = None) -> int:
        return await self.consensus.sweep_stale_entries(self.repository_factory(db), now=now)

    def config_snapshot(self) -> dict[str, Any]:
        return self.policy.model_dump()


def build_engine(settings: Settings | None = None) -> DataVerificationEngine:
    settings = settings or get_settings()
    policy = DVEPolicy.from_settings(settings)
    logger.info("DVE policy: %s", policy.model_dump())
    return DataVerificationEngine(policy)


@lru_cache()
def get_dve_engine() -> DataVerificationEngine:
    return build_engine()
