"""Celery tasks for verified-fuel maintenance.

Consensus only ever publishes or refreshes entries.  This sweep removes
entries whose supporting reports have all aged out of the consensus window,
so the map stops showing availability nobody has confirmed for a week.
"""
import asyncio
import logging

from fuelwatch.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _task_session():
    """Fresh engine and session factory for one task run.

    Each ``_run_async()`` call gets a new event loop and asyncpg connections
    are bound to the loop that opened them, so the pooled engine in
    ``fuelwatch.db.postgres`` cannot be shared across runs.
    """
    from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
    from fuelwatch.config import get_settings

    settings = get_settings()
    eng = create_async_engine(
        settings.DATABASE_URL,
        pool_size=2,
        max_overflow=0,
        connect_args={"command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS},
    )
    factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    return eng, factory


async def _sweep() -> int:
    from fuelwatch.services.dve import get_dve_engine
    from fuelwatch.api.websocket.handler import broadcast_fuel_expired

    eng, Session = _task_session()
    try:
        async with Session() as db:
            deleted = await get_dve_engine().sweep_stale_entries(db)
    finally:
        await eng.dispose()

    if deleted:
        try:
            await broadcast_fuel_expired(deleted)
        except Exception as exc:
            logger.warning("Could not push fuel expiry notice: %s", exc)
    return deleted


@celery_app.task(name="fuelwatch.tasks.verification_tasks.sweep_stale_verified_fuel")
def sweep_stale_verified_fuel():
    """Delete verified fuel entries older than the consensus window."""
    logger.info("Starting verified-fuel sweep")
    deleted = _run_async(_sweep())
    logger.info("Verified-fuel sweep complete: %d entries removed", deleted)
    return {"deleted": deleted}
