import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from shared.config import settings
from shared.database import init_db, close_db, check_db
from shared.exceptions import LeaseEngineError
from shared.redis_client import RedisClient
from shared.event_bus import event_bus
from services.lease_service.api import routes

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_TITLE = "Lease Service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, seed payment types and connect the event bus."""
    logger.info(f"Starting {SERVICE_TITLE} ({settings.environment})")
    await init_db()

    try:
        await event_bus.initialize()
    except Exception as e:
        # Lifecycle events are still persisted to lease_events without Redis
        logger.warning(f"Event bus unavailable, publishing disabled: {e}")

    yield

    logger.info(f"Shutting down {SERVICE_TITLE}")
    event_bus.reset()
    await close_db()
    await RedisClient.close()


app = FastAPI(
    title=SERVICE_TITLE,
    description="Lease terms, e-signatures, status transitions and reminders",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(routes.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": SERVICE_TITLE}


@app.get("/ready")
async def readiness_check():
    """Ready once the database answers; the event bus is reported, not required."""
    database = await check_db()
    body = {
        "status": "ready" if database else "not_ready",
        "service": SERVICE_TITLE,
        "database": database,
        "event_bus": event_bus.initialized and await RedisClient.is_available(),
    }
    return JSONResponse(status_code=200 if database else 503, content=body)


@app.get("/")
async def root():
    return {
        "service": SERVICE_TITLE,
        "version": "1.0.0",
        "docs": "/docs",
        "api": f"{settings.api_v1_prefix}/leases",
    }


@app.exception_handler(LeaseEngineError)
async def engine_error_handler(request, exc: LeaseEngineError):
    logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.service_port,
    )
