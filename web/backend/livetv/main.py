"""
LiveTV Resolver - FastAPI Backend

Resolves live TV channels to playable HLS streams across several upstream
providers and proxies the playlists and segments with the headers they need.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from livetv.config import get_settings
from livetv.errors import LiveTVError
from livetv.rate_limit import limiter
from livetv.routers import livetv, stream_proxy
from livetv.services.channel_router import get_channel_router
from livetv.services.stream_proxy import CORS_HEADERS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Starting LiveTV Resolver...")

    # Load the channel table up front so a broken file fails startup
    channel_router = get_channel_router()
    logger.info(
        f"Channel table ready: {len(channel_router.list_channels())} channels, "
        f"priority {[kind.value for kind in channel_router.priority]}"
    )

    yield

    logger.info("Shutting down LiveTV Resolver...")


# Create FastAPI app
settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Live TV channel routing and HLS stream proxy",
    lifespan=lifespan
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(livetv.router)
app.include_router(stream_proxy.router)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Error handlers
@app.exception_handler(LiveTVError)
async def livetv_exception_handler(request: Request, exc: LiveTVError):
    """Expected failures: ``{"success": false, "error": ...}`` with the mapped status."""
    if exc.status_code >= 500:
        logger.warning(f"{request.url.path} failed ({exc.status_code}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
        headers=CORS_HEADERS,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
        headers=CORS_HEADERS,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "livetv.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
