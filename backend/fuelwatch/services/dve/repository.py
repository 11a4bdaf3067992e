"""
Store operations used by the Data Verification Engine.

All reads and writes the engine performs against stations, reports, trust
scores and verified entries go through ``DVERepository``.  Any driver or ORM
failure surfaces as ``StorageError``; nothing here retries.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import select, update, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fuelwatch.db.postgres import utcnow
from fuelwatch.models.crowdsourced_report import CrowdsourcedReport
from fuelwatch.models.fuel_station import FuelStation
from fuelwatch.models.user_trust_score import UserTrustScore
from fuelwatch.models.verified_fuel_data import VerifiedFuelData
from fuelwatch.services.dve.exceptions import StorageError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Statement builders
# ---------------------------------------------------------------------------

def build_trust_insert(anonymous_user_id: str, initial_trust: float):
    """INSERT a fresh trust row, doing nothing if the user already has one."""
    now = utcnow()
    return (
        pg_insert(UserTrustScore)
        .values(
            id=uuid.uuid4(),
            anonymous_user_id=anonymous_user_id,
            trust_score=initial_trust,
            total_reports=0,
            correct_reports=0,
            incorrect_reports=0,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=[UserTrustScore.anonymous_user_id])
    )


def build_verified_upsert(
    station_id: uuid.UUID,
    fuel_type: str,
    *,
    is_available: bool,
    confidence_score: float,
    verified_by_count: int,
    verified_at: datetime,
):
    """INSERT … ON CONFLICT (station_id, fuel_type) DO UPDATE; last write wins."""
    stmt = pg_insert(VerifiedFuelData).values(
        id=uuid.uuid4(),
        station_id=station_id,
        fuel_type=fuel_type,
        is_available=is_available,
        confidence_score=confidence_score,
        verified_by_count=verified_by_count,
        last_verified_at=verified_at,
    )
    return stmt.on_conflict_do_update(
        index_elements=[VerifiedFuelData.station_id, VerifiedFuelData.fuel_type],
        set_={
            "is_available": stmt.excluded.is_available,
            "confidence_score": stmt.excluded.confidence_score,
            "verified_by_count": stmt.excluded.verified_by_count,
            "last_verified_at": stmt.excluded.last_verified_at,
        },
    )


def build_mark_verified(report_ids: Iterable[uuid.UUID], verified_at: datetime):
    """Flip still-pending reports to verified, returning the rows actually flipped."""
    return (
        update(CrowdsourcedReport)
        .where(
            CrowdsourcedReport.id.in_(list(report_ids)),
            CrowdsourcedReport.is_verified.is_(False),
            CrowdsourcedReport.is_rejected.is_(False),
        )
        .values(is_verified=True, verified_at=verified_at)
        .returning(CrowdsourcedReport.id, CrowdsourcedReport.anonymous_user_id)
        .execution_options(synchronize_session=False)
    )


def _storage_call(func):
    """Translate driver/ORM failures into ``StorageError``."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.error("DVE store call %s failed: %s", func.__name__, exc)
            raise StorageError(f"Store operation '{func.__name__}' failed") from exc

    return wrapper


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class DVERepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # -- transaction control ------------------------------------------------

    @_storage_call
    async def commit(self) -> None:
        await self.db.commit()

    @_storage_call
    async def flush(self) -> None:
        await self.db.flush()

    # -- stations -----------------------------------------------------------

    @_storage_call
    async def get_station(self, station_id: uuid.UUID) -> FuelStation | None:
        result = await self.db.execute(select(FuelStation).where(FuelStation.id == station_id))
        return result.scalar_one_or_none()

    @_storage_call
    async def list_stations(self, limit: int = 500, offset: int = 0) -> list[FuelStation]:
        result = await self.db.execute(
            select(FuelStation).order_by(FuelStation.name).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    # -- trust scores -------------------------------------------------------

    @_storage_call
    async def get_trust_score(
        self, anonymous_user_id: str, *, for_update: bool = False
    ) -> UserTrustScore | None:
        query = select(UserTrustScore).where(UserTrustScore.anonymous_user_id == anonymous_user_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    @_storage_call
    async def insert_trust_score_if_absent(self, anonymous_user_id: str, initial_trust: float) -> None:
        await self.db.execute(build_trust_insert(anonymous_user_id, initial_trust))

    @_storage_call
    async def list_trust_scores(self) -> list[UserTrustScore]:
        result = await self.db.execute(
            select(UserTrustScore)
            .order_by(UserTrustScore.trust_score.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # -- reports ------------------------------------------------------------

    @_storage_call
    async def add_report(self, report: CrowdsourcedReport) -> CrowdsourcedReport:
        self.db.add(report)
        await self.db.flush()
        return report

    @_storage_call
    async def fetch_window_reports(
        self, station_id: uuid.UUID, since: datetime
    ) -> list[CrowdsourcedReport]:
        """Non-rejected reports for a station submitted at or after ``since``."""
        result = await self.db.execute(
            select(CrowdsourcedReport).where(
                CrowdsourcedReport.station_id == station_id,
                CrowdsourcedReport.is_rejected.is_(False),
                CrowdsourcedReport.timestamp >= since,
            )
            .order_by(CrowdsourcedReport.id)
        )
        return list(result.scalars().all())

    @_storage_call
    async def mark_reports_verified(
        self, report_ids: Iterable[uuid.UUID], verified_at: datetime
    ) -> list[tuple[uuid.UUID, str]]:
        ids = list(report_ids)
        if not ids:
            return []
        result = await self.db.execute(build_mark_verified(ids, verified_at))
        return [(row[0], row[1]) for row in result.all()]

    @_storage_call
    async def list_recent_reports(self, limit: int = 100) -> list[tuple[CrowdsourcedReport, str | None]]:
        result = await self.db.execute(
            select(CrowdsourcedReport, FuelStation.name)
            .outerjoin(FuelStation, FuelStation.id == CrowdsourcedReport.station_id)
            .order_by(CrowdsourcedReport.timestamp.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [(row[0], row[1]) for row in result.all()]

    # -- verified entries ---------------------------------------------------

    @_storage_call
    async def upsert_verified_entry(
        self,
        station_id: uuid.UUID,
        fuel_type: str,
        *,
        confidence_score: float,
        verified_by_count: int,
        verified_at: datetime,
        is_available: bool = True,
    ) -> None:
        await self.db.execute(
            build_verified_upsert(
                station_id,
                fuel_type,
                is_available=is_available,
                confidence_score=confidence_score,
                verified_by_count=verified_by_count,
                verified_at=verified_at,
            )
        )

    @_storage_call
    async def list_verified_entries(
        self, station_id: uuid.UUID | None = None
    ) -> list[tuple[VerifiedFuelData, str | None]]:
        query = (
            select(VerifiedFuelData, FuelStation.name)
            .outerjoin(FuelStation, FuelStation.id == VerifiedFuelData.station_id)
            .order_by(VerifiedFuelData.last_verified_at.desc())
            .execution_options(populate_existing=True)
        )
        if station_id is not None:
            query = query.where(VerifiedFuelData.station_id == station_id)
        result = await self.db.execute(query)
        return [(row[0], row[1]) for row in result.all()]

    @_storage_call
    async def delete_verified_entries_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(VerifiedFuelData)
            .where(VerifiedFuelData.last_verified_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
