"""CityPaper API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import get_config
from ..models.style import MAP_STYLES
from .routers import places, tasks, wallpapers
from .schemas import StyleInfo
from .session import surface_session
from .tasks import task_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    config = get_config()
    config.ensure_directories()

    yield

    # Shutdown
    await task_manager.drain()
    await surface_session.close()


app = FastAPI(
    title="CityPaper API",
    description="API for the CityPaper map wallpaper renderer",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware - allow all origins in development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(wallpapers.router, prefix="/api/wallpapers", tags=["wallpapers"])
app.include_router(places.router, prefix="/api/places", tags=["places"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/api/config")
async def get_api_config():
    """Get API configuration (non-sensitive)."""
    config = get_config()
    return {
        "cache_dir": str(config.cache_dir),
        "output_dir": str(config.output_dir),
        "settle_delay": config.settle_delay,
        "pixel_ratio": config.pixel_ratio,
        "geocoder_locale": config.geocoder_locale,
        "gemini_model": config.gemini_model,
        "has_google_api_key": bool(config.google_api_key),
    }


@app.get("/api/styles", response_model=list[StyleInfo])
async def list_styles():
    """List the map style catalog."""
    return [StyleInfo.from_style(style) for style in MAP_STYLES]
