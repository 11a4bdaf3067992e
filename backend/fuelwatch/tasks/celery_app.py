from celery import Celery

from fuelwatch.config import get_settings

settings = get_settings()

celery_app = Celery(
    "fuelwatch",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "fuelwatch.tasks.verification_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "fuelwatch.tasks.verification_tasks.*": {"queue": "verification"},
    },
    beat_schedule={
        "sweep-stale-verified-fuel": {
            "task": "fuelwatch.tasks.verification_tasks.sweep_stale_verified_fuel",
            "schedule": settings.VERIFIED_SWEEP_INTERVAL_SECONDS,
        },
    },
)
