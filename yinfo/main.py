"""
yinfo service - FastAPI application entry point.

Exposes video info and search over HTTP, backed by one shared Innertube
instance created for the application's lifetime.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .innertube import Innertube
from .routes.api import router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    settings = get_settings()
    logger.info("yinfo starting up...")
    logger.info("Debug mode: %s", settings.debug)

    app.state.innertube = Innertube(settings)
    logger.info("Client order: %s", ", ".join(p.name for p in app.state.innertube.profiles))

    yield

    logger.info("yinfo shutting down...")
    await app.state.innertube.close()
    app.state.innertube.cache.sandbox.shutdown()


app = FastAPI(
    title="yinfo",
    description=(
        "Video metadata and stream URLs through the Innertube API, with "
        "multi-client fallback and signature deciphering."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: use CORS_ORIGINS env (comma-separated) for explicit origins; empty = "*" without credentials
_origins = [o.strip() for o in get_settings().cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins if _origins else ["*"],
    allow_credentials=bool(_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/", tags=["root"])
async def root():
    return {
        "name": "yinfo",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "info": "/api/info",
            "search": "/api/search",
            "clients": "/api/clients",
            "health": "/api/health",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "yinfo.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
