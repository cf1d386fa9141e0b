"""
FastAPI application initialization
"""

from fastapi import FastAPI
import uvicorn

from api.routes import collection_jobs, health, jobs, stats
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import async_session_maker, engine
from core.logging import setup_logging
from importer.engine import ImporterStep
from importer.gate import JobLauncher
from importer.repository import BillingDB
from importer.scheduler import HealthMonitor, ImportScheduler
from importer.step_service import StepService
from importer.vendor_mapper import load_vendor_mapper
from schemas.billing import ImporterOptions
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Usage Importer Service",
    description="Imports transformed usage files into the vendor usage tables",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(jobs.router)
app.include_router(health.router)
app.include_router(stats.router)
app.include_router(collection_jobs.router)


@app.on_event("startup")
async def startup_event():
    """
    Wire the importer. Any configuration problem (vendor mapping, options)
    aborts startup.
    """
    logger.info("Starting Usage Importer Service")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    vendor_mapper = load_vendor_mapper(settings.VENDOR_MAPPER_PATH)

    options = ImporterOptions.from_settings(settings)
    billing_db = BillingDB(async_session_maker)
    step_service = StepService(billing_db, options)
    importer_step = ImporterStep(step_service, options, billing_db, batch_size=settings.IMPORT_BATCH_SIZE)

    launcher = JobLauncher(lambda: importer_step.execute_import_step(vendor_mapper))
    health_monitor = HealthMonitor({"BillingDB": billing_db})
    scheduler = ImportScheduler(
        health_monitor,
        launcher=launcher,
        health_interval_seconds=settings.HEALTH_CHECK_INTERVAL_SECONDS,
        import_interval_minutes=settings.IMPORT_SCHEDULE_MINUTES
    )

    app.state.billing_db = billing_db
    app.state.launcher = launcher
    app.state.health_monitor = health_monitor
    app.state.scheduler = scheduler

    scheduler.start()
    logger.info(
        f"Importer ready: source_id={options.source_id}, step_type_id={options.step_type_id}, "
        f"input_folder={options.input_folder}, vendor={vendor_mapper.vendor_name}"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Usage Importer Service")

    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()

    launcher = getattr(app.state, "launcher", None)
    if launcher is not None:
        await launcher.wait_idle()

    await engine.dispose()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Usage Importer Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "start_job": "/start-job",
            "metrics": "/metrics",
            "collection_jobs": "/collection-jobs/{collection_job_id}"
        }
    }


if __name__ == "__main__":
    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT)
