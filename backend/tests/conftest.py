"""Pytest fixtures for FuelWatch tests."""

import math
import os
import uuid
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

# Route tests must not reach Redis for rate limiting
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from fuelwatch.models.crowdsourced_report import CrowdsourcedReport  # noqa: E402
from fuelwatch.models.fuel_station import FuelStation  # noqa: E402
from fuelwatch.models.user_trust_score import UserTrustScore  # noqa: E402
from fuelwatch.services.dve.consensus import ConsensusEngine  # noqa: E402
from fuelwatch.services.dve.policy import DVEPolicy  # noqa: E402
from fuelwatch.services.dve.repository import DVERepository  # noqa: E402
from fuelwatch.services.dve.scorer import ReportScorer  # noqa: E402
from fuelwatch.services.dve.trust_ledger import TrustScoreLedger  # noqa: E402

# Kilometres per degree of latitude on the haversine sphere
KM_PER_DEG_LAT = 6371.0 * math.pi / 180.0

NOW = datetime(2026, 3, 1, 12, 0, 0)
STATION_LAT = 28.6139
STATION_LON = 77.2090


def north_of(lat: float, km: float) -> float:
    """Latitude ``km`` kilometres due north of ``lat``."""
    return lat + km / KM_PER_DEG_LAT


def make_report(
    station_id: uuid.UUID,
    anonymous_user_id: str = "user_a",
    fuel_type: str = "Diesel",
    dve_score: float = 0.5,
    **kwargs,
) -> CrowdsourcedReport:
    """Helper to create a pending report with sensible defaults."""
    return CrowdsourcedReport(
        id=kwargs.pop("id", uuid.uuid4()),
        station_id=station_id,
        anonymous_user_id=anonymous_user_id,
        fuel_type=fuel_type,
        user_lat=kwargs.pop("user_lat", STATION_LAT),
        user_lon=kwargs.pop("user_lon", STATION_LON),
        is_manual_location=kwargs.pop("is_manual_location", False),
        timestamp=kwargs.pop("timestamp", NOW - timedelta(hours=1)),
        trust_score_at_submission=kwargs.pop("trust_score_at_submission", 0.5),
        time_decay_factor=kwargs.pop("time_decay_factor", 1.0),
        location_factor=kwargs.pop("location_factor", 1.0),
        dve_score=dve_score,
        is_verified=kwargs.pop("is_verified", False),
        is_rejected=kwargs.pop("is_rejected", False),
        **kwargs,
    )


def make_trust(anonymous_user_id: str = "user_a", trust_score: float = 0.5, **kwargs) -> UserTrustScore:
    return UserTrustScore(
        id=kwargs.pop("id", uuid.uuid4()),
        anonymous_user_id=anonymous_user_id,
        trust_score=trust_score,
        total_reports=kwargs.pop("total_reports", 0),
        correct_reports=kwargs.pop("correct_reports", 0),
        incorrect_reports=kwargs.pop("incorrect_reports", 0),
        **kwargs,
    )


@pytest.fixture
def policy() -> DVEPolicy:
    return DVEPolicy()


@pytest.fixture
def ledger(policy) -> TrustScoreLedger:
    return TrustScoreLedger(policy)


@pytest.fixture
def consensus(policy, ledger) -> ConsensusEngine:
    return ConsensusEngine(policy, ledger)


@pytest.fixture
def scorer(policy, ledger, consensus) -> ReportScorer:
    return ReportScorer(policy, ledger, consensus)


@pytest.fixture
def station() -> FuelStation:
    return FuelStation(
        id=uuid.uuid4(),
        name="Connaught Place Fuels",
        brand="IndianOil",
        latitude=STATION_LAT,
        longitude=STATION_LON,
    )


@pytest.fixture
def trust_rows() -> dict[str, UserTrustScore]:
    """Trust rows keyed by user id; the mock repository serves from here."""
    return {}


@pytest.fixture
def mock_repo(station, trust_rows):
    """DVERepository double backed by in-test state."""
    repo = AsyncMock(spec=DVERepository)

    async def _get_station(station_id):
        return station if station_id == station.id else None

    async def _get_trust(user_id, for_update=False):
        return trust_rows.get(user_id)

    async def _insert_trust(user_id, initial):
        trust_rows.setdefault(user_id, make_trust(user_id, initial))

    repo.get_station.side_effect = _get_station
    repo.get_trust_score.side_effect = _get_trust
    repo.insert_trust_score_if_absent.side_effect = _insert_trust
    repo.add_report.side_effect = lambda report: report
    repo.fetch_window_reports.return_value = []
    repo.mark_reports_verified.return_value = []
    repo.delete_verified_entries_before.return_value = 0
    return repo
