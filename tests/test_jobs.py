"""Tests for triggered runs and job tracking."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from fixturecast.config import ConfigurationError
from fixturecast.etl.pipeline import IngestionResult
from fixturecast.etl.store import to_canonical
from fixturecast.jobs.runs import run_forecast_generation, run_ingestion, run_result_grading
from fixturecast.jobs.tracking import get_last_success_at, get_recent_runs, record_job_run
from fixturecast.llm.forecast_generator import ForecastGenerator, validate_forecasts
from fixturecast.llm.gemini_client import GeminiError

pytestmark = pytest.mark.anyio


def forecast_json(bucket="vip", confidence=95.0):
    return json.dumps([
        {
            "oneXTwo": {"home": 0.6, "draw": 0.25, "away": 0.15},
            "doubleChance": {"homeOrDraw": 0.85, "homeOrAway": 0.75, "drawOrAway": 0.4},
            "over05": 0.95,
            "over15": 0.8,
            "over25": 0.55,
            "bttsYes": 0.5,
            "bttsNo": 0.5,
            "confidence": confidence,
            "bucket": bucket,
        }
    ])


class StubOracle:
    is_configured = True

    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.calls = 0

    async def generate_structured_content(self, prompt, model_id):
        self.calls += 1
        if self.error:
            raise self.error
        return self.answer

    async def generate_text(self, prompt, model_id):
        return "Short analysis."


class StubOrchestrator:
    def __init__(self, result=None, delay=0.0):
        self.result = result
        self.delay = delay

    async def _run(self, mode):
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result or IngestionResult(mode=mode, source="goalserve", created=3)

    async def run_upcoming(self):
        return await self._run("upcoming")

    async def run_results(self):
        return await self._run("results")

    async def run_history(self):
        return await self._run("history")


async def recent_runs(session_factory):
    async with session_factory() as session:
        return await get_recent_runs(session)


def upcoming_raw(make_raw, external_id="1001", hours_ahead=3):
    kickoff = datetime.now(timezone.utc) + timedelta(hours=hours_ahead)
    return make_raw(external_id=external_id, date=kickoff.strftime("%Y-%m-%dT%H:%M:00Z"), time=None, status="NS")


class TestTracking:
    async def test_record_and_query(self, session_factory):
        start = datetime.now(timezone.utc) - timedelta(seconds=2)
        async with session_factory() as session:
            run = await record_job_run(session, "grade", "ok", start, metrics={"graded": 2})
            await record_job_run(session, "grade", "error", start, error="boom")

        assert run.duration_ms >= 2000
        assert run.started_at.tzinfo is None

        async with session_factory() as session:
            last = await get_last_success_at(session, "grade")
            runs = await get_recent_runs(session, limit=10)
            missing = await get_last_success_at(session, "forecast")

        assert last == run.finished_at
        assert len(runs) == 2
        assert missing is None


class TestRunIngestion:
    async def test_success_recorded(self, settings, store, session_factory):
        summary = await run_ingestion(
            "upcoming", settings=settings, store=store,
            orchestrator=StubOrchestrator(), session_factory=session_factory,
        )
        assert summary["created"] == 3
        assert summary["source"] == "goalserve"

        runs = await recent_runs(session_factory)
        assert [(r.job_name, r.status) for r in runs] == [("ingest_upcoming", "ok")]
        assert runs[0].metrics["created"] == 3

    async def test_all_providers_failed_status(self, settings, store, session_factory):
        failed = IngestionResult(mode="results", status="failed", errors=["all providers failed"])
        summary = await run_ingestion(
            "results", settings=settings, store=store,
            orchestrator=StubOrchestrator(result=failed), session_factory=session_factory,
        )
        assert summary["status"] == "failed"
        runs = await recent_runs(session_factory)
        assert runs[0].job_name == "ingest_results"
        assert runs[0].status == "failed"

    async def test_deadline_exceeded(self, settings, store, session_factory):
        summary = await run_ingestion(
            "upcoming", settings=settings, store=store,
            orchestrator=StubOrchestrator(delay=5.0), session_factory=session_factory,
            deadline_seconds=0.05,
        )
        assert "deadline" in summary["error"]
        runs = await recent_runs(session_factory)
        assert runs[0].status == "error"

    async def test_crash_reported_in_summary(self, settings, store, session_factory):
        orchestrator = AsyncMock()
        orchestrator.run_history.side_effect = RuntimeError("db gone")
        summary = await run_ingestion(
            "history", settings=settings, store=store,
            orchestrator=orchestrator, session_factory=session_factory,
        )
        assert summary["error"] == "db gone"
        orchestrator.run_history.assert_awaited_once()

    async def test_configuration_error_propagates(self, settings, store, session_factory):
        orchestrator = AsyncMock()
        orchestrator.run_upcoming.side_effect = ConfigurationError("no providers")
        with pytest.raises(ConfigurationError):
            await run_ingestion(
                "upcoming", settings=settings, store=store,
                orchestrator=orchestrator, session_factory=session_factory,
            )
        runs = await recent_runs(session_factory)
        assert runs[0].status == "error"
        assert runs[0].error_message == "no providers"

    async def test_unknown_mode(self, settings, store, session_factory):
        with pytest.raises(ValueError):
            await run_ingestion("weekly", settings=settings, store=store, session_factory=session_factory)


class TestRunForecastGeneration:
    async def test_forecasts_stored_for_upcoming_fixtures(self, settings, store, session_factory, make_raw):
        match, _ = await store.upsert_fixture(to_canonical(upcoming_raw(make_raw)))
        await store.upsert_fixture(to_canonical(upcoming_raw(make_raw, external_id="far", hours_ahead=72)))

        generator = ForecastGenerator(StubOracle(forecast_json()), settings=settings)
        summary = await run_forecast_generation(
            settings=settings, store=store, generator=generator, session_factory=session_factory
        )

        assert summary["fixtures"] == 1
        assert summary["created"] == 1
        rows = await store.find_forecasts_by_fixture(match.id)
        assert [(r.bucket, r.model_id, r.version) for r in rows] == [("vip", "model-a", "ai-2x")]

        runs = await recent_runs(session_factory)
        assert runs[0].job_name == "forecast"
        assert runs[0].status == "ok"

    async def test_later_run_regenerates_in_place(self, settings, store, session_factory, make_raw):
        match, _ = await store.upsert_fixture(to_canonical(upcoming_raw(make_raw)))
        oracle = StubOracle(forecast_json(confidence=95.0))
        generator = ForecastGenerator(oracle, settings=settings)
        kwargs = dict(settings=settings, store=store, generator=generator, session_factory=session_factory)

        first = await run_forecast_generation(**kwargs)
        assert first["created"] == 1

        oracle.answer = forecast_json(confidence=98.0)
        second = await run_forecast_generation(**kwargs)
        assert second["updated"] == 1
        assert oracle.calls == 2

        rows = await store.find_forecasts_by_fixture(match.id)
        assert len(rows) == 1
        assert rows[0].confidence == 98.0

    async def test_skip_existing_is_opt_in(self, settings, store, session_factory, make_raw):
        await store.upsert_fixture(to_canonical(upcoming_raw(make_raw)))
        oracle = StubOracle(forecast_json())
        generator = ForecastGenerator(oracle, settings=settings)
        kwargs = dict(settings=settings, store=store, generator=generator, session_factory=session_factory)

        await run_forecast_generation(**kwargs)
        second = await run_forecast_generation(skip_existing=True, **kwargs)
        assert second["skipped_existing"] == 1
        assert oracle.calls == 1

    async def test_unavailable_counted_and_run_continues(self, settings, store, session_factory, make_raw):
        await store.upsert_fixture(to_canonical(upcoming_raw(make_raw)))
        generator = ForecastGenerator(StubOracle(error=GeminiError("down")), settings=settings)
        summary = await run_forecast_generation(
            settings=settings, store=store, generator=generator, session_factory=session_factory
        )
        assert summary["unavailable"] == 1
        assert summary["created"] == 0

    async def test_low_confidence_only(self, settings, store, session_factory, make_raw):
        await store.upsert_fixture(to_canonical(upcoming_raw(make_raw)))
        generator = ForecastGenerator(StubOracle(forecast_json(confidence=50.0)), settings=settings)
        summary = await run_forecast_generation(
            settings=settings, store=store, generator=generator, session_factory=session_factory
        )
        assert summary["no_forecast"] == 1

    async def test_analysis_attached_when_enabled(self, settings, store, session_factory, make_raw):
        settings.FORECAST_SUMMARY_ENABLED = True
        match, _ = await store.upsert_fixture(to_canonical(upcoming_raw(make_raw)))
        generator = ForecastGenerator(StubOracle(forecast_json()), settings=settings)
        await run_forecast_generation(
            settings=settings, store=store, generator=generator, session_factory=session_factory
        )
        rows = await store.find_forecasts_by_fixture(match.id)
        assert rows[0].analysis == "Short analysis."

    async def test_unconfigured_oracle_raises(self, settings, store, session_factory):
        oracle = StubOracle(forecast_json())
        oracle.is_configured = False
        with pytest.raises(ConfigurationError):
            await run_forecast_generation(
                settings=settings, store=store,
                generator=ForecastGenerator(oracle, settings=settings),
                session_factory=session_factory,
            )


class TestRunResultGrading:
    async def test_grades_and_records(self, store, session_factory, make_raw):
        match, _ = await store.upsert_fixture(to_canonical(make_raw()))

        forecasts, _ = validate_forecasts(json.loads(forecast_json()))
        await store.upsert_forecast(match.id, forecasts[0])
        await store.upsert_fixture(to_canonical(make_raw(status="FT", home_goals=0, away_goals=2)))

        summary = await run_result_grading(store=store, session_factory=session_factory)
        assert summary["graded"] == 1
        assert summary["lost"] == 1

        runs = await recent_runs(session_factory)
        assert runs[0].job_name == "grade"
        assert runs[0].metrics["lost"] == 1
