"""
Trust score ledger: per-submitter reputation.

Rows are created lazily on a user's first submission at INITIAL_TRUST_SCORE.
Outcomes move the score:

- a report flipped to verified by consensus is *correct*: +TRUST_INCREMENT,
  applied once per user per consensus group however many of their reports
  were in it
- a report rejected at submission (too far from the station) is
  *incorrect*: -TRUST_DECREMENT

Every value is clamped to [MIN_TRUST_SCORE, MAX_TRUST_SCORE].
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Iterable

from fuelwatch.db.postgres import utcnow
from fuelwatch.models.user_trust_score import UserTrustScore
from fuelwatch.services.dve.exceptions import StorageError
from fuelwatch.services.dve.policy import DVEPolicy
from fuelwatch.services.dve.repository import DVERepository

logger = logging.getLogger(__name__)


class TrustScoreLedger:
    def __init__(self, policy: DVEPolicy):
        self.policy = policy

    def clamp(self, value: float) -> float:
        return max(self.policy.MIN_TRUST_SCORE, min(self.policy.MAX_TRUST_SCORE, value))

    async def get_or_create(self, repo: DVERepository, anonymous_user_id: str) -> UserTrustScore:
        """Return the user's trust row, inserting one at the initial value if absent.

        The insert is ``ON CONFLICT DO NOTHING`` on the unique user id, so two
        concurrent first submissions end up sharing one row.
        """
        trust = await repo.get_trust_score(anonymous_user_id)
        if trust is not None:
            return trust

        await repo.insert_trust_score_if_absent(anonymous_user_id, self.policy.INITIAL_TRUST_SCORE)
        trust = await repo.get_trust_score(anonymous_user_id)
        if trust is None:
            raise StorageError(f"Trust score row for {anonymous_user_id!r} vanished after insert")
        logger.info("Created trust score for new submitter %s", anonymous_user_id)
        return trust

    async def record_submission(
        self,
        repo: DVERepository,
        anonymous_user_id: str,
        *,
        rejected: bool,
        now: datetime | None = None,
    ) -> UserTrustScore | None:
        trust = await repo.get_trust_score(anonymous_user_id, for_update=True)
        if trust is None:
            logger.warning("No trust score for %s; submission not recorded", anonymous_user_id)
            return None

        trust.total_reports = (trust.total_reports or 0) + 1
        if rejected:
            trust.incorrect_reports = (trust.incorrect_reports or 0) + 1
            self._apply_delta(trust, -self.policy.TRUST_DECREMENT, now)
        await repo.flush()
        return trust

    async def record_corroborated(
        self,
        repo: DVERepository,
        anonymous_user_ids: Iterable[str],
        now: datetime | None = None,
    ) -> list[UserTrustScore]:
        """Credit the submitters of reports consensus just verified.

        ``anonymous_user_ids`` holds one entry per flipped report.  Rows are
        locked in user-id order so concurrent runs cannot deadlock.
        """
        per_user = Counter(anonymous_user_ids)
        updated: list[UserTrustScore] = []
        for user_id, report_count in sorted(per_user.items()):
            trust = await repo.get_trust_score(user_id, for_update=True)
            if trust is None:
                logger.warning("No trust score for %s; corroboration not recorded", user_id)
                continue
            trust.correct_reports = (trust.correct_reports or 0) + report_count
            self._apply_delta(trust, self.policy.TRUST_INCREMENT, now)
            updated.append(trust)

        if updated:
            await repo.flush()
        return updated

    def _apply_delta(self, trust: UserTrustScore, delta: float, now: datetime | None) -> None:
        current = trust.trust_score if trust.trust_score is not None else self.policy.INITIAL_TRUST_SCORE
        trust.trust_score = self.clamp(current + delta)
        trust.last_outcome_at = now or utcnow()
        logger.debug(
            "Trust for %s: %.3f -> %.3f", trust.anonymous_user_id, current, trust.trust_score
        )
