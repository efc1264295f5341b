"""
Externally triggered runs.

Each run builds its components from settings (or takes injected ones),
applies an optional deadline over the whole run, persists a JobRun row and
returns a summary dict. Failures are reported in the summary under "error";
only ConfigurationError propagates to the caller.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixturecast.audit.grader import ResultGrader
from fixturecast.config import ConfigurationError, Settings, get_settings
from fixturecast.database import get_session_factory, get_session_with_retry
from fixturecast.etl.base import STATUS_FINISHED, UPCOMING_STATUSES
from fixturecast.etl.pipeline import IngestionOrchestrator
from fixturecast.etl.sources import MODE_HISTORY, MODE_RESULTS, MODE_UPCOMING, MODES
from fixturecast.etl.store import FixtureStore
from fixturecast.jobs.tracking import record_job_run
from fixturecast.llm.forecast_generator import ForecastGenerator, ForecastUnavailable
from fixturecast.llm.gemini_client import GeminiClient
from fixturecast.telemetry import record_job_outcome

logger = logging.getLogger(__name__)

# Settled records handed to the generator as head-to-head candidates
HISTORY_CONTEXT_LIMIT = 1000


async def _tracked(
    job_name: str,
    body: Callable[[], Awaitable[dict]],
    deadline_seconds: Optional[float],
    session_factory: Optional[async_sessionmaker[AsyncSession]],
) -> dict:
    """Run body under a deadline, then record the outcome (DB row + metric)."""
    start = datetime.now(timezone.utc)
    error: Optional[str] = None
    summary: dict = {}

    try:
        if deadline_seconds:
            summary = await asyncio.wait_for(body(), timeout=deadline_seconds)
        else:
            summary = await body()
    except ConfigurationError as e:
        logger.error(f"[{job_name.upper()}] Configuration error: {e}")
        await _persist(job_name, "error", start, str(e), None, session_factory)
        raise
    except asyncio.TimeoutError:
        error = f"deadline of {deadline_seconds}s exceeded"
        logger.error(f"[{job_name.upper()}] {error}")
    except Exception as e:
        error = str(e)
        logger.exception(f"[{job_name.upper()}] Run failed: {e}")

    if error:
        summary = {**summary, "error": error}
        status = "error"
    else:
        status = summary.get("status", "ok")

    await _persist(job_name, status, start, error, summary, session_factory)
    return summary


async def _persist(
    job_name: str,
    status: str,
    start: datetime,
    error: Optional[str],
    summary: Optional[dict],
    session_factory: Optional[async_sessionmaker[AsyncSession]],
) -> None:
    duration_ms = (datetime.now(timezone.utc) - start).total_seconds() * 1000
    record_job_outcome(job_name, status, duration_ms)
    try:
        async with get_session_with_retry(session_factory) as session:
            await record_job_run(session, job_name, status, start, error=error, metrics=summary)
    except Exception as e:
        logger.warning(f"[JOB_TRACKING] Failed to record {job_name} run: {e}")


async def run_ingestion(
    mode: str = MODE_UPCOMING,
    *,
    settings: Optional[Settings] = None,
    store: Optional[FixtureStore] = None,
    orchestrator: Optional[IngestionOrchestrator] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    deadline_seconds: Optional[float] = None,
) -> dict:
    """
    Trigger one ingestion run.

    Args:
        mode: "upcoming", "results" or "history".
        deadline_seconds: Upper bound for the whole run (None = no bound).

    Returns:
        IngestionResult as a dict, plus "error" when the run crashed or timed out.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown ingestion mode: {mode}")
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    store = store or FixtureStore(session_factory)
    orchestrator = orchestrator or IngestionOrchestrator(store, settings)

    async def body() -> dict:
        if mode == MODE_RESULTS:
            result = await orchestrator.run_results()
        elif mode == MODE_HISTORY:
            result = await orchestrator.run_history()
        else:
            result = await orchestrator.run_upcoming()
        return result.to_dict()

    return await _tracked(f"ingest_{mode}", body, deadline_seconds, session_factory)


async def _history_context(store: FixtureStore) -> list:
    """History-feed records plus finished fixtures, deduplicated by key."""
    records = {}
    for record in await store.find_history(limit=HISTORY_CONTEXT_LIMIT):
        records[record.fixture_key] = record
    for match in await store.find_fixtures_by_status(STATUS_FINISHED, limit=HISTORY_CONTEXT_LIMIT):
        records.setdefault(match.fixture_key, match)
    return list(records.values())


async def run_forecast_generation(
    *,
    settings: Optional[Settings] = None,
    store: Optional[FixtureStore] = None,
    generator: Optional[ForecastGenerator] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    deadline_seconds: Optional[float] = None,
    skip_existing: bool = False,
) -> dict:
    """
    Generate and store forecasts for upcoming fixtures inside the window.

    Pending forecasts are regenerated in place; skip_existing=True leaves
    fixtures that already carry forecasts alone.
    A fixture whose models all fail is counted as unavailable; the run
    carries on with the next fixture.
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    store = store or FixtureStore(session_factory)
    oracle = None
    if generator is None:
        oracle = GeminiClient(settings)
        generator = ForecastGenerator(oracle, settings)

    async def body() -> dict:
        generator.check_configured()
        summary = {
            "fixtures": 0, "created": 0, "updated": 0, "unchanged": 0,
            "skipped_existing": 0, "no_forecast": 0, "unavailable": 0, "errors": 0,
        }
        now = datetime.now(timezone.utc)
        fixtures = await store.find_fixtures_by_status_and_window(
            UPCOMING_STATUSES, now, now + timedelta(hours=settings.RETENTION_WINDOW_HOURS)
        )
        history = await _history_context(store)
        logger.info(f"[FORECAST] {len(fixtures)} upcoming fixtures, {len(history)} settled records")

        for fixture in fixtures:
            summary["fixtures"] += 1
            label = f"match {fixture.id}"
            try:
                existing = await store.find_forecasts_by_fixture(fixture.id)
                if existing and skip_existing:
                    summary["skipped_existing"] += 1
                    continue

                forecasts = await generator.generate(fixture, history)
                if not forecasts:
                    summary["no_forecast"] += 1
                    continue

                analysis = None
                if settings.FORECAST_SUMMARY_ENABLED:
                    try:
                        analysis = await generator.summarize(fixture)
                    except ForecastUnavailable as e:
                        logger.warning(f"[FORECAST] No analysis for {label}: {e}")

                for forecast in forecasts:
                    prediction, created = await store.upsert_forecast(
                        fixture.id, forecast, version=settings.FORECAST_VERSION, analysis=analysis
                    )
                    if created:
                        summary["created"] += 1
                    elif prediction.status == "pending":
                        summary["updated"] += 1
                    else:
                        summary["unchanged"] += 1
            except ForecastUnavailable as e:
                summary["unavailable"] += 1
                logger.warning(f"[FORECAST] No forecast this cycle for {label}: {e}")
            except ConfigurationError:
                raise
            except Exception as e:
                summary["errors"] += 1
                logger.error(f"[FORECAST] Error forecasting {label}: {e}")

        logger.info(f"[FORECAST] Complete: {summary}")
        return summary

    try:
        return await _tracked("forecast", body, deadline_seconds, session_factory)
    finally:
        if oracle is not None:
            await oracle.close()


async def run_result_grading(
    *,
    store: Optional[FixtureStore] = None,
    grader: Optional[ResultGrader] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    deadline_seconds: Optional[float] = None,
) -> dict:
    """Grade pending forecasts of finished fixtures."""
    session_factory = session_factory or get_session_factory()
    store = store or FixtureStore(session_factory)
    grader = grader or ResultGrader(store)

    async def body() -> dict:
        return await grader.run()

    return await _tracked("grade", body, deadline_seconds, session_factory)
