"""
Tunecast - Drive to YouTube Render & Publish Service
Main FastAPI Application Entry Point
"""

from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .utils.logger import setup_logger
from .utils.exceptions import ErrorKind, InvalidSpecError, TunecastError
from .routers import job_queue_router, render_jobs_router, upload_jobs_router
from .services.job_store import get_job_store
from .services.scheduler import get_scheduler


# Set up logging
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings = get_settings()

    # Create required directories
    Path(settings.temp_dir).mkdir(parents=True, exist_ok=True)
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)

    await get_job_store().initialize()

    logger.info("=" * 60)
    logger.info("Tunecast - Drive to YouTube Render & Publish Service")
    logger.info("=" * 60)
    logger.info(f"Instance: {settings.instance_id}")
    logger.info(f"Temp directory: {settings.temp_dir}")
    logger.info(f"Database: {settings.database_path}")
    logger.info(f"Render isolation: {settings.render_isolation} ({settings.render_worker_memory_mb} MB cap)")
    logger.info(
        f"Ceilings: {settings.max_running_render_jobs} renders / "
        f"{settings.max_running_upload_jobs} uploads per user"
    )

    if Path(settings.google_token_file).exists():
        logger.info("[OK] Google OAuth token found")
    else:
        logger.warning(f"[!] Google token file not found: {settings.google_token_file}")

    if settings.api_key:
        logger.info("[OK] API key authentication enabled")
    else:
        logger.warning("[!] API key authentication disabled")

    logger.info("=" * 60)

    scheduler = get_scheduler()
    if settings.scheduler_enabled:
        # Kick the scheduler once on boot so sync starts before traffic arrives
        await scheduler.start()
        scheduler.touch_activity()
        logger.info(f"[OK] Scheduler {scheduler.state.value} ({settings.scheduler_lease_name})")
    else:
        logger.info("[-] Scheduler disabled")

    yield

    if settings.scheduler_enabled:
        await scheduler.shutdown()
    logger.info("Shutting down Tunecast...")


# Create FastAPI app
app = FastAPI(
    title="Tunecast",
    description="Render Drive audio and images into videos and publish them to YouTube",
    version=get_settings().app_version,
    lifespan=lifespan
)

# CORS middleware
settings = get_settings()
cors_origins = settings.cors_allowed_origins or ["http://localhost:8000", "http://127.0.0.1:8000"]
cors_allow_credentials = "*" not in cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Middleware
# ============================================================================

PUBLIC_PATHS = {
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
}
ACTIVITY_PREFIX = "/api/"


def _extract_api_key(request: Request) -> str:
    api_key = request.headers.get("x-api-key", "").strip()
    if api_key:
        return api_key

    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return ""


@app.middleware("http")
async def api_key_auth_middleware(request: Request, call_next):
    settings = get_settings()
    if not settings.api_key:
        return await call_next(request)

    if request.url.path in PUBLIC_PATHS:
        return await call_next(request)

    provided_key = _extract_api_key(request)
    if provided_key != settings.api_key:
        return JSONResponse(
            status_code=401,
            content={"detail": "Unauthorized: invalid or missing API key"},
        )

    return await call_next(request)


@app.middleware("http")
async def scheduler_activity_middleware(request: Request, call_next):
    """API traffic keeps the scheduler alive; idle instances stop ticking."""
    settings = get_settings()
    if (
        settings.scheduler_enabled
        and request.method != "OPTIONS"
        and request.url.path.startswith(ACTIVITY_PREFIX)
    ):
        get_scheduler().touch_activity()
    return await call_next(request)


# ============================================================================
# Global Exception Handlers
# ============================================================================

_NOT_FOUND_CODES = {ErrorKind.NOT_FOUND.value}
_BAD_REQUEST_CODES = {ErrorKind.INVALID_MIME_TYPE.value}


def _status_for(exc: TunecastError) -> int:
    if isinstance(exc, InvalidSpecError):
        return 422
    if exc.code in _NOT_FOUND_CODES:
        return 404
    if exc.code in _BAD_REQUEST_CODES:
        return 400
    return 400 if exc.recoverable else 500


@app.exception_handler(TunecastError)
async def tunecast_exception_handler(request: Request, exc: TunecastError):
    """Handle all Tunecast custom exceptions"""
    logger.error(f"TunecastError [{exc.code}]: {exc.message}")
    return JSONResponse(
        status_code=_status_for(exc),
        content=exc.to_dict()
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle any unhandled exceptions"""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again.",
            "recoverable": True,
            "recovery_hint": "If this persists, check the server logs for details."
        }
    )


# Include routers
app.include_router(job_queue_router)
app.include_router(render_jobs_router)
app.include_router(upload_jobs_router)


@app.get("/health")
async def health():
    """Health check endpoint"""
    scheduler = get_scheduler()
    return {
        "status": "healthy",
        "app": "Tunecast",
        "version": get_settings().app_version,
        "scheduler": scheduler.state.value,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tunecast.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
