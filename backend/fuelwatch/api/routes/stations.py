"""
Station API routes.

Endpoints:
    GET /stations            - List stations
    GET /stations/{id}/fuel  - Verified fuel availability for one station
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fuelwatch.db.postgres import get_db
from fuelwatch.services import station_service
from fuelwatch.services.dve import StorageError

router = APIRouter()


@router.get("/stations")
async def list_stations(
    limit: int = Query(500, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    try:
        stations = await station_service.list_stations(db, limit=limit, offset=offset)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage error while reading stations",
        )
    return {"stations": stations, "total": len(stations)}


@router.get("/stations/{station_id}/fuel")
async def get_station_fuel(
    station_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        status_payload = await station_service.get_station_fuel_status(db, station_id)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage error while reading station fuel status",
        )
    if status_payload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Station not found")
    return status_payload
