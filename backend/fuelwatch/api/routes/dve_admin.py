"""
DVE admin API routes.

Endpoints:
    GET /admin/dve - Reports, trust scores, verified entries and active policy
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fuelwatch.db.postgres import get_db
from fuelwatch.services.dve import DataVerificationEngine, StorageError, get_dve_engine

router = APIRouter()


@router.get("/admin/dve")
async def get_admin_data(
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    engine: DataVerificationEngine = Depends(get_dve_engine),
):
    """Read-only snapshot of the engine state for dashboards."""
    try:
        return await engine.get_admin_data(db, report_limit=limit)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage error while reading admin data",
        )
