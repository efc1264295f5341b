"""Shared fixtures: in-memory database, settings and fixture builders."""

from datetime import datetime, timezone

import pytest

from fixturecast.config import Settings
from fixturecast.database import create_engine_for_url, create_session_factory, init_db
from fixturecast.etl.base import RawFixture, RawTeam
from fixturecast.etl.store import FixtureStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    """Settings isolated from the environment and any local .env file."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite:///:memory:",
        GOALSERVE_TOKEN="gs-token",
        FOOTBALL_DATA_API_KEY="fd-key",
        RAPIDAPI_KEY="",
        PROVIDER_PRIORITY="goalserve,football_data,api_football",
        PROVIDER_MAX_RETRIES=2,
        PROVIDER_BACKOFF_SECONDS=0.0,
        RETENTION_WINDOW_HOURS=24,
        RESULTS_LOOKBACK_HOURS=24,
        HISTORY_LOOKBACK_DAYS=2,
        GEMINI_API_KEY="gm-key",
        FORECAST_MODELS="model-a,model-b",
        FORECAST_BACKOFF_SECONDS=0.0,
        FORECAST_MIN_CONFIDENCE=90.0,
    )


@pytest.fixture
async def session_factory():
    engine = create_engine_for_url("sqlite:///:memory:")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return FixtureStore(session_factory)


@pytest.fixture
def make_raw():
    """Builder for RawFixture with sensible defaults."""

    def _make(
        external_id="1001",
        home="Real Madrid",
        away="FC Barcelona",
        date="01.05.2024",
        time="18:00",
        status="18:00",
        source="goalserve",
        **kwargs,
    ) -> RawFixture:
        home_team = home if isinstance(home, RawTeam) else RawTeam(name=home)
        away_team = away if isinstance(away, RawTeam) else RawTeam(name=away)
        return RawFixture(
            source=source,
            external_id=external_id,
            home=home_team,
            away=away_team,
            date=date,
            time=time,
            status=status,
            league=kwargs.pop("league", "La Liga"),
            **kwargs,
        )

    return _make
