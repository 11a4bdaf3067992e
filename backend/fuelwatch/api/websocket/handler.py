import logging

import socketio

from fuelwatch.config import get_settings

logger = logging.getLogger(__name__)
_settings = get_settings()

# Use Redis manager so Celery workers can emit events via the same bus
_redis_mgr = socketio.AsyncRedisManager(_settings.REDIS_URL)
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    client_manager=_redis_mgr,
)


@sio.event
async def connect(sid, environ):
    logger.info("Socket.IO client connected: %s", sid)


@sio.event
async def disconnect(sid):
    logger.info("Socket.IO client disconnected: %s", sid)


@sio.event
async def join_map(sid, data=None):
    """Join the live map room for every verified-fuel update."""
    await sio.enter_room(sid, "livemap")
    await sio.emit("joined", {"room": "livemap"}, to=sid)


@sio.event
async def join_station(sid, data):
    """Follow a single station's verified-fuel updates."""
    station_id = (data or {}).get("station_id")
    if station_id:
        await sio.enter_room(sid, f"station_{station_id}")
        await sio.emit("joined", {"room": f"station_{station_id}"}, to=sid)


# --- Broadcast functions (called from routes and tasks) ---

async def broadcast_verified_fuel(entries: list[dict]):
    """Push published/refreshed verified fuel entries to map and station rooms."""
    for entry in entries:
        await sio.emit("fuel_verified", entry, room="livemap")
        station_id = entry.get("station_id")
        if station_id:
            await sio.emit("fuel_verified", entry, room=f"station_{station_id}")


async def broadcast_fuel_expired(deleted_count: int):
    """Tell map clients that stale verified entries were swept."""
    await sio.emit("fuel_expired", {"deleted": deleted_count}, room="livemap")
