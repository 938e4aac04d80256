import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from shared.config import settings
from shared.database import init_db, close_db, check_db
from shared.exceptions import LeaseEngineError
from services.reporting_service.api import routes

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_TITLE = "Reporting Service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Reports are read-only; only the database is needed."""
    logger.info(f"Starting {SERVICE_TITLE} ({settings.environment})")
    await init_db()

    yield

    logger.info(f"Shutting down {SERVICE_TITLE}")
    await close_db()


app = FastAPI(
    title=SERVICE_TITLE,
    description="Rent roll and arrears aging reports with CSV export",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(routes.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": SERVICE_TITLE}


@app.get("/ready")
async def readiness_check():
    database = await check_db()
    return JSONResponse(
        status_code=200 if database else 503,
        content={
            "status": "ready" if database else "not_ready",
            "service": SERVICE_TITLE,
            "database": database,
        },
    )


@app.get("/")
async def root():
    return {
        "service": SERVICE_TITLE,
        "version": "1.0.0",
        "docs": "/docs",
        "api": f"{settings.api_v1_prefix}/properties/{{property_id}}/reports",
        "default_tax_multiplier": str(settings.report_tax_multiplier),
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
