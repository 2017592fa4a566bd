"""Courtside Recorder - FastAPI Application"""
from datetime import datetime
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os

from courtside.config import get_settings
from courtside.database import init_db, close_db
from courtside.routes import cameras, recordings
from courtside.routes import settings as settings_routes
from courtside.models.schemas import HealthResponse
from courtside.pipeline.orchestrator import build_orchestrator
from courtside.pipeline.pool import RecordingWorkerPool

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    await init_db()

    # Seed runtime pipeline settings from the environment on first boot
    from courtside.services.settings_service import settings_service
    env_settings = {
        k: os.environ[k]
        for k in [
            "SEGMENT_MINUTES", "MAX_RETRIES", "POLL_TIMEOUT_SECONDS",
            "CONSOLIDATION_METHOD", "DELETE_LOCAL_AFTER_UPLOAD",
        ]
        if k in os.environ and os.environ[k]
    }
    if env_settings:
        await settings_service.seed_from_environment(env_settings)

    orchestrator = build_orchestrator(settings)
    app.state.orchestrator = orchestrator
    pool = None
    if settings.dispatch_mode == "celery":
        from courtside.worker import CeleryDispatcher, resume_recordings
        orchestrator.dispatcher = CeleryDispatcher()
        resume_recordings.delay()
    else:
        pool = RecordingWorkerPool(
            orchestrator,
            concurrency=settings.worker_concurrency,
            rescan_interval=settings.rescan_interval_seconds,
        )
        await pool.start()
    app.state.pool = pool
    yield
    # Shutdown
    if pool is not None:
        await pool.stop()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Match recording pipeline: camera export, consolidation and archive",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["root"])
async def root():
    """API information and available endpoints"""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "endpoints": {
            "GET /health": "Health check",
            "GET /api/recordings": "List recordings",
            "GET /api/recordings/stats": "Recording counts by status",
            "GET /api/recordings/{id}": "Recording detail with chunks",
            "POST /api/recordings": "Create recording (booking system)",
            "POST /api/recordings/manual": "Create manual recording",
            "POST /api/recordings/{id}/retry": "Retry a failed recording",
            "POST /api/recordings/{id}/associate": "Link recording to a user/booking",
            "GET /api/recordings/{id}/download": "Download consolidated recording",
            "GET /api/cameras": "List court cameras",
            "POST /api/cameras": "Create or update a court camera",
            "GET /api/cameras/{court_id}/availability": "Camera availability",
            "GET /api/settings/pipeline": "Pipeline settings",
            "PUT /api/settings/pipeline": "Update pipeline settings",
        },
    }


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(request: Request):
    """Health check endpoint"""
    pool = getattr(request.app.state, "pool", None)
    return HealthResponse(
        status="ok",
        timestamp=datetime.utcnow(),
        workers=pool.in_flight if pool else 0,
    )


app.include_router(recordings.router)
app.include_router(cameras.router)
app.include_router(settings_routes.router)


# Exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "courtside.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
