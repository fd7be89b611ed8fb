"""
RiskIntel — FastAPI Application.

Run: uvicorn riskintel.main:app --host 0.0.0.0 --port 8000 --reload

All /api/v1 routes are tenant-scoped by the X-Organization-ID header;
X-User-ID (optional) is recorded as the actor on audit fields.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text

from riskintel.api.routers.heatmap import router as heatmap_router
from riskintel.api.routers.intelligence import router as intelligence_router
from riskintel.api.routers.organizations import router as organizations_router
from riskintel.api.routers.periods import router as periods_router
from riskintel.api.routers.risks import controls_router, router as risks_router
from riskintel.api.routers.treatment_log import router as treatment_log_router
from riskintel.config import settings
from riskintel.db.engine import close_db, get_engine, init_db
from riskintel.errors import register_exception_handlers
from riskintel.logging_config import configure_logging
from riskintel.middleware.error_handler import ErrorHandlerMiddleware
from riskintel.middleware.request_context import RequestContextMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    logger.info(
        "riskintel_starting",
        version=settings.app_version,
        environment=settings.environment,
        residual_formula=settings.residual_formula,
    )
    await init_db()
    yield
    await close_db()
    logger.info("riskintel_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Risk scoring and intelligence-driven adjustment engine.\n\n"
            "- **Register**: risks, DIME-rated controls, residual scores\n"
            "- **Intelligence**: external events → classifier → alerts → apply / undo\n"
            "- **Audit**: hash-chained treatment log\n"
            "- **Periods**: quarterly snapshots, trends, migrations, comparisons\n"
            "- **Heatmap**: likelihood × impact grids\n"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness and readiness probes"},
            {"name": "organizations", "description": "Tenants"},
            {"name": "risks", "description": "Risk register"},
            {"name": "controls", "description": "Controls and residual recalculation"},
            {"name": "intelligence", "description": "Events, scan, alert lifecycle"},
            {"name": "treatment-log", "description": "Audit trail with hash chain integrity"},
            {"name": "periods", "description": "Period commits and analytics"},
            {"name": "heatmap", "description": "Likelihood × impact grids"},
        ],
    )

    # ── Middleware (last added = outermost) ──────────────────────────
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(organizations_router)
    app.include_router(risks_router)
    app.include_router(controls_router)
    app.include_router(intelligence_router)
    app.include_router(treatment_log_router)
    app.include_router(periods_router)
    app.include_router(heatmap_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe. Does not check dependencies."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "riskintel",
        }

    @app.get("/ready", tags=["health"])
    async def readiness():
        """Readiness probe. The database is the only hard dependency."""
        try:
            async with get_engine().connect() as conn:
                await asyncio.wait_for(conn.execute(text("SELECT 1")), timeout=5)
            database = "ok"
        except Exception as exc:
            logger.warning("readiness_database_unavailable", error=str(exc))
            database = "unavailable"

        ok = database == "ok"
        return JSONResponse(
            status_code=200 if ok else 503,
            content={
                "status": "ok" if ok else "unavailable",
                "version": settings.app_version,
                "checks": {"api": "ok", "database": database},
            },
        )

    return app


app = create_app()
