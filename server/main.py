"""
FastAPI backend for guest photo downloads.

Issues signed download links by email and serves zip archives of the
selected photos, built on demand and cached on local disk.
"""

# Performance: Install uvloop if available (Linux/macOS only)
try:
    import uvloop
    uvloop.install()
except ImportError:
    pass  # Windows - uvloop not available, use default asyncio

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from core.container import container
from core.config import Settings
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import downloads

# Initialize settings and logging
settings = Settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting photo download service")
    set_startup_time()

    await container.database().startup()

    store = container.archive_store()
    store.ensure_dirs()
    logger.info("Archive cache ready",
               cache_dir=str(store.cache_dir),
               retention_seconds=store.retention_seconds,
               **store.stats())

    # Preflight only; a missing bucket degrades downloads, not startup
    await container.object_store().check_connection()
    container.mailer()  # logs which mail backend is active

    janitor = container.janitor()
    await janitor.start()

    logger.info("Services started successfully")
    yield

    # Shutdown
    await janitor.stop()
    await container.build_coordinator().shutdown(timeout=10)
    await container.object_store().close()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Photo Download Service",
    version="1.0.0",
    description="Signed download links and on-demand photo archives",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)

# Add exception handler middleware BEFORE CORS to catch all errors
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware

class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception",
                         path=request.url.path,
                         error=f"{type(e).__name__}: {str(e)}",
                         exc_info=True)
            return ORJSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": "server_error",
                    "message": "Internal server error"
                }
            )

app.add_middleware(CatchAllExceptionsMiddleware)

# Add CORS middleware (must be AFTER exception middleware)
logger.info("Configuring CORS middleware",
           origins_count=len(settings.cors_origins),
           origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Content-Length", "Retry-After"],
)

# Include routers
app.include_router(downloads.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    health = await get_health_status(
        database=container.database(),
        store=container.archive_store(),
        coordinator=container.build_coordinator(),
        janitor=container.janitor(),
    )
    return {
        **health,
        "service": "photo-downloads",
        "version": "1.0.0",
        "environment": "development" if settings.debug else "production",
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting photo download service",
               host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db", "*.zip"] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )
