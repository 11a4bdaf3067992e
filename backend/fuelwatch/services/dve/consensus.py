"""
Consensus engine: promotes corroborated reports to verified fuel entries.

For one station, the live window is every non-rejected report younger than
MAX_REPORT_AGE_HOURS.  Reports are grouped by fuel type; a group qualifies
when it has at least MIN_REPORTS_FOR_CONSENSUS *distinct* submitters, and it
is published when

    min(1.0, mean(dve_score) + CONSENSUS_BONUS) >= VERIFICATION_THRESHOLD

Publishing upserts the (station, fuel type) entry and flags the group's
reports verified.  Each group is committed on its own; a failure in a later
group does not undo earlier ones.  Consensus never demotes an entry; stale
entries are removed by ``sweep_stale_entries``.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from fuelwatch.db.postgres import utcnow
from fuelwatch.models.crowdsourced_report import CrowdsourcedReport
from fuelwatch.services.dve.policy import DVEPolicy
from fuelwatch.services.dve.repository import DVERepository
from fuelwatch.services.dve.trust_ledger import TrustScoreLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsensusDecision:
    station_id: uuid.UUID
    fuel_type: str
    report_ids: tuple[uuid.UUID, ...]
    distinct_users: int
    mean_score: float
    confidence: float
    verified: bool

    def to_dict(self) -> dict:
        return {
            "station_id": str(self.station_id),
            "fuel_type": self.fuel_type,
            "is_available": True,
            "confidence_score": self.confidence,
            "verified_by_count": self.distinct_users,
        }


class ConsensusEngine:
    def __init__(self, policy: DVEPolicy, ledger: TrustScoreLedger):
        self.policy = policy
        self.ledger = ledger

    def window_start(self, now: datetime) -> datetime:
        return now - timedelta(hours=self.policy.MAX_REPORT_AGE_HOURS)

    def decide(
        self, station_id: uuid.UUID, reports: Iterable[CrowdsourcedReport]
    ) -> list[ConsensusDecision]:
        """Score every fuel-type group that has enough distinct submitters.

        Pure: no store access.  Groups short of distinct submitters are
        left out; the rest carry ``verified`` according to the threshold.
        """
        reports = list(reports)
        if len(reports) < self.policy.MIN_REPORTS_FOR_CONSENSUS:
            return []

        groups: dict[str, list[CrowdsourcedReport]] = defaultdict(list)
        for report in reports:
            groups[report.fuel_type].append(report)

        decisions: list[ConsensusDecision] = []
        # Fixed order keeps row locks consistent across concurrent runs
        for fuel_type, group in sorted(groups.items()):
            distinct_users = len({r.anonymous_user_id for r in group})
            if distinct_users < self.policy.MIN_REPORTS_FOR_CONSENSUS:
                logger.debug(
                    "Station %s %s: %d distinct submitter(s), consensus skipped",
                    station_id, fuel_type, distinct_users,
                )
                continue

            # Mean over reports, not users: repeat reports weigh in
            mean_score = sum(r.dve_score or 0.0 for r in group) / len(group)
            confidence = min(1.0, mean_score + self.policy.CONSENSUS_BONUS)
            decisions.append(
                ConsensusDecision(
                    station_id=station_id,
                    fuel_type=fuel_type,
                    report_ids=tuple(r.id for r in group),
                    distinct_users=distinct_users,
                    mean_score=mean_score,
                    confidence=confidence,
                    verified=confidence >= self.policy.VERIFICATION_THRESHOLD,
                )
            )
        return decisions

    async def evaluate_station(
        self,
        repo: DVERepository,
        station_id: uuid.UUID,
        now: datetime | None = None,
    ) -> list[ConsensusDecision]:
        """Re-run consensus over a station's live window.

        Returns the decisions that were published.
        """
        now = now or utcnow()
        reports = await repo.fetch_window_reports(station_id, self.window_start(now))
        published: list[ConsensusDecision] = []

        for decision in self.decide(station_id, reports):
            if not decision.verified:
                logger.info(
                    "Station %s %s below threshold (confidence=%.3f < %.3f), reports stay pending",
                    station_id, decision.fuel_type, decision.confidence,
                    self.policy.VERIFICATION_THRESHOLD,
                )
                continue

            await repo.upsert_verified_entry(
                station_id,
                decision.fuel_type,
                confidence_score=decision.confidence,
                verified_by_count=decision.distinct_users,
                verified_at=now,
            )
            flipped = await repo.mark_reports_verified(decision.report_ids, now)
            if flipped:
                await self.ledger.record_corroborated(repo, [user_id for _, user_id in flipped], now)
            await repo.commit()

            logger.info(
                "Verified %s at station %s: confidence=%.3f, users=%d, newly verified reports=%d",
                decision.fuel_type, station_id, decision.confidence,
                decision.distinct_users, len(flipped),
            )
            published.append(decision)

        return published

    async def sweep_stale_entries(self, repo: DVERepository, now: datetime | None = None) -> int:
        """Delete verified entries not refreshed within the consensus window."""
        now = now or utcnow()
        deleted = await repo.delete_verified_entries_before(self.window_start(now))
        await repo.commit()
        if deleted:
            logger.info("Swept %d stale verified fuel entries", deleted)
        return deleted
