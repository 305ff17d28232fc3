"""
LiveMap API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups, builds the
Dashboard (aggregation engine + data source) and manages its lifecycle.

Run:
    uvicorn livemap.main:app --reload

Extension points:
  - Add new route groups with app.include_router() in create_app()
  - Choose the data source with DATA_SOURCE=poll|collection|inserts|demo|none
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from livemap import __version__
from livemap.core.config import Settings, settings
from livemap.core.database import close_mongo_connection, connect_to_mongo
from livemap.core.rate_limit import limiter
from livemap.routes.auth import router as auth_router
from livemap.routes.dashboard import router as dashboard_router
from livemap.routes.health import router as health_router
from livemap.services.dashboard import Dashboard

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the data source on startup; tear everything down on shutdown.

    MongoDB is only contacted when the configured source reads from it.
    """
    cfg: Settings = app.state.settings
    dashboard: Dashboard = app.state.dashboard
    needs_db = dashboard.source is not None and dashboard.source.needs_database
    logger.info(
        "Starting LiveMap API (env: %s, source: %s)",
        cfg.environment,
        dashboard.data_source,
    )
    if needs_db:
        await connect_to_mongo(cfg)
    await dashboard.start()
    yield
    logger.info("Shutting down LiveMap API")
    await dashboard.close()
    if needs_db:
        await close_mongo_connection()


# ─── App factory ───────────────────────────────────────────────────────────────
def create_app(cfg: Settings = settings, dashboard: Optional[Dashboard] = None) -> FastAPI:
    """Build the FastAPI app and the Dashboard it owns."""
    app = FastAPI(
        title="LiveMap API",
        description=(
            "Realtime per-region user and play counts for the live access map. "
            "Regions are inferred from each player's system language."
        ),
        version=__version__,
        lifespan=lifespan,
        # Disable docs in production to reduce attack surface
        docs_url="/docs" if cfg.environment != "production" else None,
        redoc_url="/redoc" if cfg.environment != "production" else None,
    )

    app.state.settings = cfg
    app.state.dashboard = dashboard or Dashboard.from_settings(cfg)

    # Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router, prefix="/health", tags=["health"])
    app.include_router(auth_router)
    app.include_router(dashboard_router)

    @app.get("/", tags=["root"])
    async def root():
        """API root — basic metadata."""
        return {
            "name": "LiveMap API",
            "version": __version__,
            "status": "running",
            "environment": cfg.environment,
            "data_source": app.state.dashboard.data_source,
            "docs": "/docs",
        }

    return app


app = create_app()
