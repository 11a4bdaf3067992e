from __future__ import annotations

from datetime import datetime

from fuelwatch.db.postgres import utcnow
from fuelwatch.services.dve.policy import DVEPolicy


class TemporalDecayModel:
    """Exponential discount on a report's weight as it ages.

    ``0.5 ** (age_hours / TIME_DECAY_HALF_LIFE)`` up to MAX_REPORT_AGE_HOURS,
    then zero.
    """

    def __init__(self, policy: DVEPolicy):
        self.policy = policy

    def decay_for_age(self, age_hours: float) -> float:
        if age_hours > self.policy.MAX_REPORT_AGE_HOURS:
            return 0.0
        # Clock skew can put a report slightly in the future
        age_hours = max(0.0, age_hours)
        return 0.5 ** (age_hours / self.policy.TIME_DECAY_HALF_LIFE)

    def decay(self, report_time: datetime, now: datetime | None = None) -> float:
        now = now or utcnow()
        age_hours = (now - report_time).total_seconds() / 3600.0
        return self.decay_for_age(age_hours)
