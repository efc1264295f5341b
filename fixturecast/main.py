"""FastAPI trigger surface for fixturecast (ingest, forecast, grade)."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from fixturecast.config import ConfigurationError, get_settings
from fixturecast.database import close_db, get_async_session, init_db
from fixturecast.etl.sources import MODE_UPCOMING, MODES
from fixturecast.jobs.runs import run_forecast_generation, run_ingestion, run_result_grading
from fixturecast.jobs.tracking import get_last_success_at, get_recent_runs
from fixturecast.telemetry import get_metrics_text

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


class HealthResponse(BaseModel):
    status: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting fixturecast...")
    await init_db()
    yield
    logger.info("Shutting down fixturecast...")
    await close_db()


app = FastAPI(
    title="fixturecast",
    description="Fixture ingestion, oracle forecasts and result grading",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint (providers, oracle, grading, jobs)."""
    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)


@app.post("/jobs/ingest")
async def trigger_ingestion(mode: str = Query(MODE_UPCOMING)):
    """Run one ingestion pass: mode is upcoming, results or history."""
    if mode not in MODES:
        raise HTTPException(status_code=400, detail=f"mode must be one of {', '.join(MODES)}")
    try:
        return await run_ingestion(mode, deadline_seconds=settings.JOB_DEADLINE_SECONDS)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.post("/jobs/forecast")
async def trigger_forecast(skip_existing: bool = Query(False)):
    """Generate forecasts for upcoming fixtures."""
    try:
        return await run_forecast_generation(
            deadline_seconds=settings.JOB_DEADLINE_SECONDS, skip_existing=skip_existing
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.post("/jobs/grade")
async def trigger_grading():
    """Grade pending forecasts of finished fixtures."""
    return await run_result_grading(deadline_seconds=settings.JOB_DEADLINE_SECONDS)


@app.get("/jobs/runs")
async def list_job_runs(
    limit: int = Query(20, ge=1, le=200),
    session: AsyncSession = Depends(get_async_session),
):
    """Recent job runs, plus the last success per job seen in that list."""
    runs = await get_recent_runs(session, limit=limit)
    last_success = {}
    for job_name in sorted({r.job_name for r in runs}):
        ts = await get_last_success_at(session, job_name)
        last_success[job_name] = ts.isoformat() if ts else None
    return {
        "runs": [
            {
                "job_name": r.job_name,
                "status": r.status,
                "started_at": r.started_at.isoformat(),
                "finished_at": r.finished_at.isoformat(),
                "duration_ms": r.duration_ms,
                "error": r.error_message,
                "metrics": r.metrics,
            }
            for r in runs
        ],
        "last_success_at": last_success,
    }
