"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify DB connectivity, run today's daily cost analysis.
  • On shutdown: dispose the engine cleanly.

Routers:
  • /ingest — security reports and usage logs
  • /jobs   — scheduled analysis / alerting jobs
  • /events, /alerts — read side for dashboards and exports
  • /health — shallow liveness probe
"""

import datetime
import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from sqlalchemy import text

from secwatch.core.config import settings
from secwatch.core.database import async_session_factory, engine
from secwatch.models.enums import PeriodType
from secwatch.routers.events import router as events_router
from secwatch.routers.ingest import router as ingest_router
from secwatch.routers.jobs import router as jobs_router
from secwatch.services.cost_analyzer import analyze_costs

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
async def _database_reachable() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.warning(
            "Database unreachable at startup; ingest and jobs will fail "
            "until it is available."
        )
        return False
    logger.info("Database connection verified ✓")
    return True


async def _startup_cost_analysis() -> None:
    """Today's daily analysis, so dashboards have data before the first scheduled job."""
    today = datetime.datetime.now(datetime.timezone.utc).date()
    try:
        async with async_session_factory() as session:
            analysis = await analyze_costs(session, today, PeriodType.DAILY)
    except Exception:
        logger.exception("Startup cost analysis for %s failed (non-fatal)", today)
        return
    logger.info(
        "Startup cost analysis for %s: %d calls, %s total",
        today, analysis.total_calls, analysis.total_cost,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    if not settings.SECURITY_MONITORING_ENABLED:
        logger.info("Security monitoring disabled: CSP reports will be discarded")

    if await _database_reachable() and settings.STARTUP_COST_ANALYSIS:
        await _startup_cost_analysis()

    yield

    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    description=(
        "Security & cost telemetry — event ingest, cost analysis, "
        "anomaly detection, alerting and forecasting."
    ),
    lifespan=lifespan,
)

# Mount routers
app.include_router(ingest_router, prefix="/ingest")
app.include_router(jobs_router, prefix="/jobs")
app.include_router(events_router)


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, str]:
    """Shallow health check — confirms the process is alive."""
    return {"status": "healthy", "environment": settings.ENVIRONMENT}
