from fuelwatch.services.dve.policy import DVEPolicy
from fuelwatch.services.dve.exceptions import (
    DVEError,
    ReportValidationError,
    StationNotFoundError,
    StorageError,
)
from fuelwatch.services.dve.scorer import ReportSubmission, ScoreResult, SubmissionResult
from fuelwatch.services.dve.consensus import ConsensusDecision
from fuelwatch.services.dve.engine import DataVerificationEngine, build_engine, get_dve_engine

__all__ = [
    "DVEPolicy",
    "DVEError",
    "ReportValidationError",
    "StationNotFoundError",
    "StorageError",
    "ReportSubmission",
    "ScoreResult",
    "SubmissionResult",
    "ConsensusDecision",
    "DataVerificationEngine",
    "build_engine",
    "get_dve_engine",
]
