"""
Ingestion orchestrator.

Per run: Idle -> Fetching(source N) -> Success | Failure -> Fetching(N+1).
Providers are tried in PROVIDER_PRIORITY order and the first one that
delivers fixtures wins. A provider fails when any of its HTTP calls fails
after retries, or when its payloads parse to zero fixtures. All of a
provider's requests are fetched and parsed before anything is written, so a
failed provider leaves the store untouched.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from fixturecast.config import ConfigurationError, Settings, get_settings
from fixturecast.etl.base import STATUS_FINISHED, MalformedFixture, RawFixture
from fixturecast.etl.dates import to_naive_utc
from fixturecast.etl.http_client import ProviderHTTPClient, ProviderHTTPError, TransientProviderError
from fixturecast.etl.sources import (
    MODE_HISTORY,
    MODE_RESULTS,
    MODE_UPCOMING,
    ProviderSource,
    build_sources,
)
from fixturecast.etl.store import CanonicalFixture, FixtureStore, to_canonical
from fixturecast.telemetry import record_ingestion_run

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestionResult:
    """Outcome of one ingestion run."""

    mode: str
    source: Optional[str] = None  # Provider that delivered; None when all failed
    created: int = 0
    updated: int = 0
    skipped: int = 0
    history_imported: int = 0
    errors: list[str] = field(default_factory=list)
    status: str = "ok"  # ok | failed

    def to_dict(self) -> dict:
        return asdict(self)


class ProviderFailed(RuntimeError):
    """One provider could not deliver fixtures (the chain moves on)."""


class IngestionOrchestrator:
    """Runs the provider fallback chain and writes through FixtureStore."""

    def __init__(
        self,
        store: FixtureStore,
        settings: Optional[Settings] = None,
        sources: Optional[list[ProviderSource]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.sources = sources if sources is not None else build_sources(self.settings)
        self.http_client = http_client
        self.clock = clock

    async def run_upcoming(self) -> IngestionResult:
        """Fixtures kicking off within [now, now + RETENTION_WINDOW_HOURS]."""
        now = to_naive_utc(self.clock())
        end = now + timedelta(hours=self.settings.RETENTION_WINDOW_HOURS)
        return await self._run(MODE_UPCOMING, lambda f: now <= f.match_date_utc <= end)

    async def run_results(self) -> IngestionResult:
        """Fixtures that kicked off within [now - RESULTS_LOOKBACK_HOURS, now]."""
        now = to_naive_utc(self.clock())
        start = now - timedelta(hours=self.settings.RESULTS_LOOKBACK_HOURS)
        return await self._run(MODE_RESULTS, lambda f: start <= f.match_date_utc <= now)

    async def run_history(self) -> IngestionResult:
        """Finished fixtures from the last HISTORY_LOOKBACK_DAYS into the history table."""
        now = to_naive_utc(self.clock())
        start = now - timedelta(days=self.settings.HISTORY_LOOKBACK_DAYS)
        return await self._run(
            MODE_HISTORY,
            lambda f: f.status == STATUS_FINISHED and start <= f.match_date_utc <= now,
        )

    async def _run(self, mode: str, keep: Callable[[CanonicalFixture], bool]) -> IngestionResult:
        result = IngestionResult(mode=mode)

        configured = [s for s in self.sources if s.is_configured]
        for source in self.sources:
            if not source.is_configured:
                logger.info(f"[INGEST] mode={mode} source={source.name} skipped: no credentials")
        if not configured:
            raise ConfigurationError("No fixture provider is configured (set GOALSERVE_TOKEN, "
                                     "FOOTBALL_DATA_API_KEY or RAPIDAPI_KEY)")

        for source in configured:
            logger.info(f"[INGEST] mode={mode} source={source.name} fetching")
            try:
                raw_fixtures = await self._fetch(source, mode)
            except ProviderFailed as e:
                logger.warning(f"[INGEST] mode={mode} source={source.name} failed: {e}")
                result.errors.append(f"{source.name}: {e}")
                continue

            result.source = source.name
            await self._store(raw_fixtures, mode, keep, result)
            logger.info(
                f"[INGEST] mode={mode} source={source.name} done: created={result.created} "
                f"updated={result.updated} skipped={result.skipped} history={result.history_imported}"
            )
            record_ingestion_run(mode, source.name, result.status, result.created, result.updated, result.skipped)
            return result

        result.status = "failed"
        result.errors.append("all providers failed")
        logger.error(f"[INGEST] mode={mode} all providers failed: {result.errors}")
        record_ingestion_run(mode, None, result.status)
        return result

    async def _fetch(self, source: ProviderSource, mode: str) -> list[RawFixture]:
        """Fetch and parse every planned request of one provider, or raise ProviderFailed."""
        requests = source.plan(mode, self.clock())
        client = ProviderHTTPClient(
            source.name, source.retry_policy(), headers=source.headers(), client=self.http_client
        )
        fixtures: list[RawFixture] = []
        try:
            for request in requests:
                try:
                    payload = await client.get_json(request.url, params=request.params)
                except (ProviderHTTPError, TransientProviderError) as e:
                    raise ProviderFailed(str(e)) from e
                fixtures.extend(source.adapter.parse(payload))
        finally:
            await client.close()

        if not fixtures:
            raise ProviderFailed("no fixtures in payload")
        return fixtures

    async def _store(
        self,
        raw_fixtures: list[RawFixture],
        mode: str,
        keep: Callable[[CanonicalFixture], bool],
        result: IngestionResult,
    ) -> None:
        # Day feeds overlap (e.g. "home" and "d1" around midnight): last copy wins
        batch: dict[str, CanonicalFixture] = {}
        for raw in raw_fixtures:
            try:
                fixture = to_canonical(raw)
            except MalformedFixture as e:
                result.skipped += 1
                logger.warning(f"[INGEST] mode={mode} source={raw.source} skipping fixture: {e}")
                continue
            except Exception as e:
                result.skipped += 1
                logger.warning(
                    f"[INGEST] mode={mode} source={raw.source} skipping fixture "
                    f"{raw.external_id}: {type(e).__name__}: {e}"
                )
                continue
            if keep(fixture):
                batch[fixture.fixture_key] = fixture

        for fixture in batch.values():
            try:
                if mode == MODE_HISTORY:
                    _, created = await self.store.upsert_history(fixture)
                    if created:
                        result.history_imported += 1
                    else:
                        result.updated += 1
                else:
                    _, created = await self.store.upsert_fixture(fixture)
                    if created:
                        result.created += 1
                    else:
                        result.updated += 1
            except MalformedFixture as e:
                result.skipped += 1
                logger.warning(f"[INGEST] mode={mode} skipping {fixture.fixture_key}: {e}")
            except Exception as e:
                result.skipped += 1
                result.errors.append(f"{fixture.fixture_key}: {e}")
                logger.error(f"[INGEST] Error storing {fixture.fixture_key}: {e}")
