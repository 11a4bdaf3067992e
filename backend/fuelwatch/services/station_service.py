"""
Station service: read side of the verified-data projection.

Stations are loaded by an external process; this module only lists them and
reports the currently published fuel availability for one station.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fuelwatch.models.fuel_station import FuelStation
from fuelwatch.services.dve.engine import verified_entry_to_dict
from fuelwatch.services.dve.repository import DVERepository

logger = logging.getLogger(__name__)


def _station_to_dict(station: FuelStation) -> dict[str, Any]:
    return {
        "id": str(station.id),
        "name": station.name,
        "brand": station.brand,
        "address": station.address,
        "city": station.city,
        "state": station.state,
        "latitude": station.latitude,
        "longitude": station.longitude,
    }


async def list_stations(db: AsyncSession, *, limit: int = 500, offset: int = 0) -> list[dict[str, Any]]:
    """Stations ordered by name."""
    stations = await DVERepository(db).list_stations(limit=limit, offset=offset)
    return [_station_to_dict(s) for s in stations]


async def get_station_fuel_status(db: AsyncSession, station_id: uuid.UUID) -> dict[str, Any] | None:
    """The station plus every verified fuel entry currently published for it."""
    repo = DVERepository(db)
    station = await repo.get_station(station_id)
    if station is None:
        return None

    entries = await repo.list_verified_entries(station_id=station_id)
    payload = _station_to_dict(station)
    payload["verified_fuel"] = [verified_entry_to_dict(entry, station.name) for entry, _ in entries]
    return payload
