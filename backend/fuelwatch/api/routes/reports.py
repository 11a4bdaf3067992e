"""
Fuel report API routes.

Endpoints:
    POST /reports      - Submit a fuel-availability report for scoring
    POST /dve-process  - Action-dispatch endpoint (submit_report, get_admin_data)
"""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from fuelwatch.api.middleware.rate_limit import rate_limit
from fuelwatch.api.websocket.handler import broadcast_verified_fuel
from fuelwatch.config import get_settings
from fuelwatch.db.postgres import get_db
from fuelwatch.services.dve import (
    DataVerificationEngine,
    ReportSubmission,
    ReportValidationError,
    StationNotFoundError,
    StorageError,
    SubmissionResult,
    get_dve_engine,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class ReportSubmitRequest(BaseModel):
    # All optional so a missing field is answered with 400, not 422
    station_id: Optional[str] = None
    fuel_type: Optional[str] = None
    anonymous_user_id: Optional[str] = None
    user_lat: Optional[float] = None
    user_lon: Optional[float] = None
    is_manual_location: bool = False


class DVEResultResponse(BaseModel):
    score: float
    trust_score: float
    time_decay: float
    location_factor: float
    is_rejected: bool
    rejection_reason: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReportSubmitResponse(BaseModel):
    success: bool = True
    report_id: UUID
    dve_result: DVEResultResponse

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DVEProcessRequest(BaseModel):
    action: str
    report: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_response(outcome: SubmissionResult) -> ReportSubmitResponse:
    result = outcome.result
    return ReportSubmitResponse(
        report_id=outcome.report_id,
        dve_result=DVEResultResponse(
            score=result.score,
            trust_score=result.trust_score,
            time_decay=result.time_decay,
            location_factor=result.location_factor,
            is_rejected=result.is_rejected,
            rejection_reason=result.rejection_reason,
        ),
    )


async def _submit(
    db: AsyncSession,
    engine: DataVerificationEngine,
    submission: ReportSubmission,
) -> ReportSubmitResponse:
    try:
        outcome = await engine.submit_report(db, submission)
    except ReportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except StationNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Station not found or missing coordinates",
        )
    except StorageError as exc:
        logger.error("Report submission failed in storage: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage error; the report may not have been saved",
        )

    if outcome.published:
        try:
            await broadcast_verified_fuel([decision.to_dict() for decision in outcome.published])
        except Exception as exc:
            logger.warning("Could not push verified fuel update: %s", exc)

    return _to_response(outcome)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/reports",
    response_model=ReportSubmitResponse,
    dependencies=[rate_limit(
        max_requests=settings.REPORT_RATE_LIMIT_PER_MINUTE, window_seconds=60, key_prefix="reports",
    )],
)
async def submit_report(
    payload: ReportSubmitRequest,
    db: AsyncSession = Depends(get_db),
    engine: DataVerificationEngine = Depends(get_dve_engine),
):
    """
    Score and store a fuel report.

    A report from too far away is still stored and returned with
    ``isRejected: true``; that is a successful response, not an error.
    """
    submission = ReportSubmission(
        station_id=payload.station_id,
        fuel_type=payload.fuel_type,
        anonymous_user_id=payload.anonymous_user_id,
        user_lat=payload.user_lat,
        user_lon=payload.user_lon,
        is_manual_location=payload.is_manual_location,
    )
    return await _submit(db, engine, submission)


@router.post(
    "/dve-process",
    dependencies=[rate_limit(
        max_requests=settings.REPORT_RATE_LIMIT_PER_MINUTE, window_seconds=60, key_prefix="dve",
    )],
)
async def dve_process(
    payload: DVEProcessRequest,
    db: AsyncSession = Depends(get_db),
    engine: DataVerificationEngine = Depends(get_dve_engine),
):
    """Single entry point dispatching on ``action``."""
    if payload.action == "submit_report":
        report = payload.report or {}
        submission = ReportSubmission(
            station_id=report.get("station_id"),
            fuel_type=report.get("fuel_type"),
            anonymous_user_id=report.get("anonymous_user_id"),
            user_lat=report.get("user_lat"),
            user_lon=report.get("user_lon"),
            is_manual_location=bool(report.get("is_manual_location", False)),
        )
        response = await _submit(db, engine, submission)
        return response.model_dump(by_alias=True, mode="json")

    if payload.action == "get_admin_data":
        try:
            return await engine.get_admin_data(db)
        except StorageError:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Storage error while reading admin data",
            )

    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
