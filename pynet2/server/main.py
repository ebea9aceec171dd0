"""
pyNet2 Server - FastAPI Application

Serves the cached Net2 data and relays commands for every configured site.

    Environment variables (see pynet2.config):
        NET2_CLIENT_ID=00000000-0000-0000-0000-000000000000
        NET2_CONFIG=/etc/pynet2/sites.json
        NET2_PORT=8000

    Run:
        python3 -m pynet2 serve
        uvicorn pynet2.server.main:create_app --factory

Routing Structure:
    - GET  /api/v1/                       -> index
    - GET  /api/v1/update/now|trigger     -> refresh all sites
    - *    /api/v1/sites/...              -> sites
    - *    /api/v1/sites/{id}/doors/...   -> doors
    - *    /api/v1/sites/{id}/users/...   -> users

Errors:
    NotFoundError (site, door, user, department) -> 404 {"error": ...}
    Any other Net2Error                          -> 500 {"error": ...}
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pynet2 import __version__
from pynet2.config import Settings
from pynet2.exceptions import Net2Error, NotFoundError
from pynet2.server.api import doors, sites, update, users
from pynet2.server.models import MessageResponse
from pynet2.site_manager import SiteManager, build_sites

logger = logging.getLogger(__name__)


def configure_logging(debug: bool):
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the site manager unless one was supplied, stop it on shutdown."""
    settings: Settings = app.state.settings
    owned = app.state.manager is None
    if owned:
        logger.info(f"Starting pyNet2 Server v{__version__}...")
        logger.info(f"Configured for {len(settings.sites)} site(s)")
        logger.info(f"Polling interval (NET2_POLL_INTERVAL): {settings.poll_interval}s")
        logger.info(f"Server listening on {settings.server_host}:{settings.server_port}")
        manager = SiteManager()
        manager.start(build_sites(settings))
        app.state.manager = manager
        for site in manager.get_sites().values():
            logger.info(f"  - {site.id}: {site.name} ({site.base_url})")

    yield

    if owned:
        logger.info("Shutting down pyNet2 Server...")
        app.state.manager.stop()
        app.state.manager = None


async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


async def net2_error_handler(request: Request, exc: Net2Error):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


def create_app(manager: Optional[SiteManager] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; without a manager the lifespan creates and owns one."""
    settings = settings or Settings()
    configure_logging(settings.debug)

    app = FastAPI(
        title="pyNet2 Server",
        description="REST proxy for Paxton Net2 access-control sites",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(Net2Error, net2_error_handler)

    app.include_router(update.router, prefix="/api/v1/update", tags=["Update"])
    app.include_router(sites.router, prefix="/api/v1/sites", tags=["Sites"])
    app.include_router(doors.router, prefix="/api/v1/sites/{site_id}/doors", tags=["Doors"])
    app.include_router(users.router, prefix="/api/v1/sites/{site_id}/users", tags=["Users"])

    @app.get("/api/v1/", response_model=MessageResponse, tags=["Index"])
    async def index():
        return MessageResponse(message="Net2 Proxy API Index")

    return app
