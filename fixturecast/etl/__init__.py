"""ETL module: provider adapters, identity resolution and ingestion runs."""

from fixturecast.etl.api_football import APIFootballAdapter
from fixturecast.etl.base import ProviderAdapter, RawFixture, RawTeam
from fixturecast.etl.football_data import FootballDataAdapter
from fixturecast.etl.goalserve import GoalserveAdapter
from fixturecast.etl.pipeline import IngestionOrchestrator, IngestionResult
from fixturecast.etl.store import FixtureStore

__all__ = [
    "ProviderAdapter",
    "RawFixture",
    "RawTeam",
    "GoalserveAdapter",
    "FootballDataAdapter",
    "APIFootballAdapter",
    "FixtureStore",
    "IngestionOrchestrator",
    "IngestionResult",
]
