"""
Tunable constants of the Data Verification Engine.

A single frozen ``DVEPolicy`` is built once (normally from ``Settings``) and
handed to every DVE component at construction, so tests can run the same
logic under a different policy.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fuelwatch.config import Settings


class DVEPolicy(BaseModel):
    INITIAL_TRUST_SCORE: float = Field(default=0.5, ge=0.0, le=1.0)
    TRUST_INCREMENT: float = Field(default=0.05, ge=0.0)
    TRUST_DECREMENT: float = Field(default=0.1, ge=0.0)
    MIN_TRUST_SCORE: float = Field(default=0.1, ge=0.0, le=1.0)
    MAX_TRUST_SCORE: float = Field(default=1.0, ge=0.0, le=1.0)
    TIME_DECAY_HALF_LIFE: float = Field(default=24.0, gt=0.0)  # hours
    MAX_REPORT_AGE_HOURS: float = Field(default=168.0, gt=0.0)
    MAX_DISTANCE_KM: float = Field(default=2.0, gt=0.0)
    OPTIMAL_DISTANCE_KM: float = Field(default=0.5, ge=0.0)
    MIN_REPORTS_FOR_CONSENSUS: int = Field(default=2, ge=1)
    CONSENSUS_BONUS: float = Field(default=0.2, ge=0.0)
    VERIFICATION_THRESHOLD: float = Field(default=0.4, ge=0.0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_ranges(self) -> "DVEPolicy":
        if not self.MIN_TRUST_SCORE <= self.INITIAL_TRUST_SCORE <= self.MAX_TRUST_SCORE:
            raise ValueError(
                "INITIAL_TRUST_SCORE must lie within [MIN_TRUST_SCORE, MAX_TRUST_SCORE]"
            )
        if self.OPTIMAL_DISTANCE_KM >= self.MAX_DISTANCE_KM:
            raise ValueError("OPTIMAL_DISTANCE_KM must be smaller than MAX_DISTANCE_KM")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "DVEPolicy":
        """Build the policy from the ``DVE_*`` settings."""
        return cls(
            INITIAL_TRUST_SCORE=settings.DVE_INITIAL_TRUST_SCORE,
            TRUST_INCREMENT=settings.DVE_TRUST_INCREMENT,
            TRUST_DECREMENT=settings.DVE_TRUST_DECREMENT,
            MIN_TRUST_SCORE=settings.DVE_MIN_TRUST_SCORE,
            MAX_TRUST_SCORE=settings.DVE_MAX_TRUST_SCORE,
            TIME_DECAY_HALF_LIFE=settings.DVE_TIME_DECAY_HALF_LIFE,
            MAX_REPORT_AGE_HOURS=settings.DVE_MAX_REPORT_AGE_HOURS,
            MAX_DISTANCE_KM=settings.DVE_MAX_DISTANCE_KM,
            OPTIMAL_DISTANCE_KM=settings.DVE_OPTIMAL_DISTANCE_KM,
            MIN_REPORTS_FOR_CONSENSUS=settings.DVE_MIN_REPORTS_FOR_CONSENSUS,
            CONSENSUS_BONUS=settings.DVE_CONSENSUS_BONUS,
            VERIFICATION_THRESHOLD=settings.DVE_VERIFICATION_THRESHOLD,
        )
