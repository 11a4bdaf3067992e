import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import socketio

from fuelwatch.config import get_settings
from fuelwatch.db.postgres import engine, Base
import fuelwatch.models  # noqa: F401 (registers ORM models with Base.metadata)
from fuelwatch.api.middleware.rate_limit import RateLimitMiddleware
from fuelwatch.api.routes import reports, dve_admin, stations
from fuelwatch.api.websocket.handler import sio

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Rate limiting (must be added before CORS so it runs after CORS in the middleware stack)
app.add_middleware(
    RateLimitMiddleware,
    max_requests=settings.GLOBAL_RATE_LIMIT_PER_MINUTE,
    window_seconds=60,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(reports.router, prefix=settings.API_PREFIX, tags=["Reports"])
app.include_router(stations.router, prefix=settings.API_PREFIX, tags=["Stations"])
app.include_router(dve_admin.router, prefix=settings.API_PREFIX, tags=["Admin"])


@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")


@app.on_event("shutdown")
async def shutdown():
    await engine.dispose()


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.APP_NAME}


# ASGI entry point: Socket.IO wrapped around the API (uvicorn fuelwatch.main:asgi_app)
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
