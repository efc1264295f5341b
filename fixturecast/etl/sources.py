"""
Provider source definitions.

A ProviderSource knows how to reach one provider (base URL, credentials,
headers) and which requests make up each ingestion mode. It performs no I/O
itself: the orchestrator feeds each planned request through the provider's
ProviderHTTPClient and hands the payloads to the source's adapter.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from fixturecast.config import Settings
from fixturecast.etl.api_football import APIFootballAdapter
from fixturecast.etl.base import ProviderAdapter
from fixturecast.etl.football_data import FootballDataAdapter
from fixturecast.etl.goalserve import GoalserveAdapter
from fixturecast.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

MODE_UPCOMING = "upcoming"
MODE_RESULTS = "results"
MODE_HISTORY = "history"
MODES = (MODE_UPCOMING, MODE_RESULTS, MODE_HISTORY)

# Goalserve day feeds only reach one week in either direction
GOALSERVE_MAX_DAY_OFFSET = 7
# football-data.org rejects dateFrom/dateTo spans longer than 10 days
FOOTBALL_DATA_MAX_SPAN_DAYS = 10


@dataclass
class ProviderRequest:
    """One GET in a provider's plan for a mode."""

    url: str
    params: dict = field(default_factory=dict)


def _days_covering(hours: int) -> int:
    return max(1, math.ceil(hours / 24))


def _day_chunks(start: date, end: date, max_days: int) -> list[tuple[date, date]]:
    """Split [start, end] into inclusive spans of at most max_days days."""
    chunks = []
    cursor = start
    while cursor <= end:
        chunk_end = min(cursor + timedelta(days=max_days - 1), end)
        chunks.append((cursor, chunk_end))
        cursor = chunk_end + timedelta(days=1)
    return chunks


class ProviderSource(ABC):
    """Reachability and request plan for one provider."""

    name: str = ""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.adapter = self.build_adapter()

    @abstractmethod
    def build_adapter(self) -> ProviderAdapter:
        pass

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """False when credentials are missing (the provider is skipped)."""

    def headers(self) -> dict:
        return {}

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.settings.PROVIDER_MAX_RETRIES,
            base_delay=self.settings.PROVIDER_BACKOFF_SECONDS,
            backoff=self.settings.PROVIDER_BACKOFF_MODE,
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
        )

    def plan(self, mode: str, now: datetime) -> list[ProviderRequest]:
        """Requests to issue for a mode, relative to `now` (UTC)."""
        if mode == MODE_UPCOMING:
            return self.upcoming_requests(now)
        if mode == MODE_RESULTS:
            return self.results_requests(now)
        if mode == MODE_HISTORY:
            return self.history_requests(now)
        raise ValueError(f"Unknown ingestion mode: {mode}")

    @abstractmethod
    def upcoming_requests(self, now: datetime) -> list[ProviderRequest]:
        pass

    @abstractmethod
    def results_requests(self, now: datetime) -> list[ProviderRequest]:
        pass

    @abstractmethod
    def history_requests(self, now: datetime) -> list[ProviderRequest]:
        pass


class GoalserveSource(ProviderSource):
    """
    Goalserve `soccernew` day feeds: `home` is today, `d1`..`d7` the coming
    days and `d-1`..`d-7` the past ones. The token is part of the URL path.
    """

    name = "goalserve"

    def build_adapter(self) -> ProviderAdapter:
        return GoalserveAdapter()

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.GOALSERVE_TOKEN)

    def _feed(self, day: str) -> ProviderRequest:
        base = self.settings.GOALSERVE_BASE_URL.rstrip("/")
        return ProviderRequest(
            url=f"{base}/{self.settings.GOALSERVE_TOKEN}/soccernew/{day}",
            params={"json": "true"},
        )

    def upcoming_requests(self, now: datetime) -> list[ProviderRequest]:
        days = min(_days_covering(self.settings.RETENTION_WINDOW_HOURS), GOALSERVE_MAX_DAY_OFFSET)
        return [self._feed("home")] + [self._feed(f"d{i}") for i in range(1, days + 1)]

    def results_requests(self, now: datetime) -> list[ProviderRequest]:
        days = min(_days_covering(self.settings.RESULTS_LOOKBACK_HOURS), GOALSERVE_MAX_DAY_OFFSET)
        return [self._feed("home")] + [self._feed(f"d-{i}") for i in range(1, days + 1)]

    def history_requests(self, now: datetime) -> list[ProviderRequest]:
        days = min(max(1, self.settings.HISTORY_LOOKBACK_DAYS), GOALSERVE_MAX_DAY_OFFSET)
        return [self._feed(f"d-{i}") for i in range(1, days + 1)]


class FootballDataSource(ProviderSource):
    """football-data.org v4 `/matches` with dateFrom/dateTo windows."""

    name = "football_data"

    def build_adapter(self) -> ProviderAdapter:
        return FootballDataAdapter()

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.FOOTBALL_DATA_API_KEY)

    def headers(self) -> dict:
        return {"X-Auth-Token": self.settings.FOOTBALL_DATA_API_KEY}

    def _matches(self, start: date, end: date, status: Optional[str] = None) -> list[ProviderRequest]:
        url = f"{self.settings.FOOTBALL_DATA_BASE_URL.rstrip('/')}/matches"
        requests = []
        for chunk_start, chunk_end in _day_chunks(start, end, FOOTBALL_DATA_MAX_SPAN_DAYS):
            params = {"dateFrom": chunk_start.isoformat(), "dateTo": chunk_end.isoformat()}
            if status:
                params["status"] = status
            requests.append(ProviderRequest(url=url, params=params))
        return requests

    def upcoming_requests(self, now: datetime) -> list[ProviderRequest]:
        end = now + timedelta(hours=self.settings.RETENTION_WINDOW_HOURS)
        return self._matches(now.date(), end.date())

    def results_requests(self, now: datetime) -> list[ProviderRequest]:
        start = now - timedelta(hours=self.settings.RESULTS_LOOKBACK_HOURS)
        return self._matches(start.date(), now.date())

    def history_requests(self, now: datetime) -> list[ProviderRequest]:
        start = now - timedelta(days=self.settings.HISTORY_LOOKBACK_DAYS)
        return self._matches(start.date(), now.date(), status="FINISHED")


class APIFootballSource(ProviderSource):
    """API-Football v3 `fixtures?date=` per UTC day (RapidAPI or API-Sports)."""

    name = "api_football"

    def build_adapter(self) -> ProviderAdapter:
        return APIFootballAdapter()

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.RAPIDAPI_KEY and self.settings.RAPIDAPI_HOST)

    @property
    def base_url(self) -> str:
        host = self.settings.RAPIDAPI_HOST
        if "api-sports.io" in host:
            # API-Sports direct
            return f"https://{host}"
        # RapidAPI
        return f"https://{host}/v3"

    def headers(self) -> dict:
        host = self.settings.RAPIDAPI_HOST
        if "api-sports.io" in host:
            return {"x-apisports-key": self.settings.RAPIDAPI_KEY}
        return {
            "X-RapidAPI-Key": self.settings.RAPIDAPI_KEY,
            "X-RapidAPI-Host": host,
        }

    def _by_date(self, start: date, end: date, status: Optional[str] = None) -> list[ProviderRequest]:
        requests = []
        day = start
        while day <= end:
            params = {"date": day.isoformat()}
            if status:
                params["status"] = status
            requests.append(ProviderRequest(url=f"{self.base_url}/fixtures", params=params))
            day += timedelta(days=1)
        return requests

    def upcoming_requests(self, now: datetime) -> list[ProviderRequest]:
        end = now + timedelta(hours=self.settings.RETENTION_WINDOW_HOURS)
        return self._by_date(now.date(), end.date())

    def results_requests(self, now: datetime) -> list[ProviderRequest]:
        start = now - timedelta(hours=self.settings.RESULTS_LOOKBACK_HOURS)
        return self._by_date(start.date(), now.date())

    def history_requests(self, now: datetime) -> list[ProviderRequest]:
        start = now - timedelta(days=self.settings.HISTORY_LOOKBACK_DAYS)
        return self._by_date(start.date(), now.date(), status="FT-AET-PEN")


SOURCE_CLASSES: dict[str, type[ProviderSource]] = {
    GoalserveSource.name: GoalserveSource,
    FootballDataSource.name: FootballDataSource,
    APIFootballSource.name: APIFootballSource,
}


def build_sources(settings: Settings) -> list[ProviderSource]:
    """Sources in PROVIDER_PRIORITY order. Unknown names are logged and ignored."""
    sources = []
    for name in settings.provider_priority:
        cls = SOURCE_CLASSES.get(name)
        if cls is None:
            logger.warning(f"[INGEST] Unknown provider in PROVIDER_PRIORITY: {name}")
            continue
        sources.append(cls(settings))
    return sources
