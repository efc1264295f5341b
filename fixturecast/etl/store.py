"""
Identity resolver and upsert store.

Turns provider-level RawFixture objects into canonical rows:

- canonicalization (kickoff parsing, status vocabulary, fixture key)
- team identity: provider external id, then normalized name, then create
- fixture identity: "{source}:{external_id}", or a derived key for feeds
  without stable ids
- forecast persistence keyed by (match_id, bucket)

Every public operation runs in its own session and transaction. Unique
constraints decide concurrent inserts of the same key: the losing writer
gets IntegrityError, rolls back and re-runs the find-then-update path.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixturecast.database import get_session_factory, get_session_with_retry
from fixturecast.etl.base import (
    STATUS_FINISHED,
    STATUS_RANK,
    TERMINAL_STATUSES,
    MalformedFixture,
    RawFixture,
    RawTeam,
    canonical_status,
)
from fixturecast.etl.dates import parse_kickoff, to_naive_utc
from fixturecast.etl.name_normalization import normalize_label, normalize_team_name
from fixturecast.llm.forecast_schema import ForecastPayload
from fixturecast.models import History, Match, Prediction, Team, TeamExternalRef, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TEAM_METADATA = ("short_name", "code", "country", "logo_url")
_MATCH_METADATA = ("static_id", "league", "country", "season", "stage")
_MATCH_SCORES = (
    "home_goals", "away_goals",
    "home_et_goals", "away_et_goals",
    "home_pen_goals", "away_pen_goals",
)


@dataclass
class CanonicalFixture:
    """Fixture after date/status/identity canonicalization, ready to store."""

    source: str
    fixture_key: str
    match_date_utc: datetime  # naive UTC
    status: str
    home: RawTeam
    away: RawTeam
    external_id: Optional[str] = None
    static_id: Optional[int] = None
    league: Optional[str] = None
    country: Optional[str] = None
    season: Optional[str] = None
    stage: Optional[str] = None
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    home_et_goals: Optional[int] = None
    away_et_goals: Optional[int] = None
    home_pen_goals: Optional[int] = None
    away_pen_goals: Optional[int] = None
    payload: dict = field(default_factory=dict)


def fixture_key_for(
    source: str,
    external_id: Optional[str],
    league: Optional[str],
    kickoff: datetime,
    home_name: Optional[str],
    away_name: Optional[str],
) -> str:
    """
    Canonical identity string for a fixture.

    Providers with stable ids: "goalserve:1234567".
    Otherwise: "derived:{league}|{YYYY-MM-DDTHH:MM}|{home}|{away}" over
    normalized names. The derived form is a last resort: a provider that
    spells a team differently between polls produces a second fixture.
    """
    if external_id:
        return f"{source}:{external_id}"
    return "derived:{}|{}|{}|{}".format(
        normalize_label(league),
        kickoff.strftime("%Y-%m-%dT%H:%M"),
        normalize_team_name(home_name),
        normalize_team_name(away_name),
    )


def to_canonical(raw: RawFixture) -> CanonicalFixture:
    """
    Canonicalize one parsed fixture.

    Raises MalformedFixture when the fixture cannot be stored: no team
    names, unparseable kickoff, or finished without a score.
    """
    if not normalize_team_name(raw.home.name) or not normalize_team_name(raw.away.name):
        raise MalformedFixture(f"missing team name ({raw.label})")

    kickoff = parse_kickoff(raw.date, raw.time)
    if kickoff is None:
        raise MalformedFixture(f"unparseable date {raw.date!r} {raw.time or ''} ({raw.label})")
    kickoff = to_naive_utc(kickoff)

    status = canonical_status(raw.status)
    if status == STATUS_FINISHED and (raw.home_goals is None or raw.away_goals is None):
        raise MalformedFixture(f"finished without score ({raw.label})")

    return CanonicalFixture(
        source=raw.source,
        fixture_key=fixture_key_for(
            raw.source, raw.external_id, raw.league, kickoff, raw.home.name, raw.away.name
        ),
        match_date_utc=kickoff,
        status=status,
        home=raw.home,
        away=raw.away,
        external_id=raw.external_id,
        static_id=raw.static_id,
        league=raw.league,
        country=raw.country,
        season=raw.season,
        stage=raw.stage,
        home_goals=raw.home_goals,
        away_goals=raw.away_goals,
        home_et_goals=raw.home_et_goals,
        away_et_goals=raw.away_et_goals,
        home_pen_goals=raw.home_pen_goals,
        away_pen_goals=raw.away_pen_goals,
        payload=dict(raw.payload or {}),
    )


def _is_empty(value) -> bool:
    return value is None or value == [] or value == {} or value == ""


class FixtureStore:
    """Canonical record store over SQLModel tables."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        integrity_retries: int = 2,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.integrity_retries = integrity_retries

    async def _transaction(self, label: str, op: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run op in a fresh session and commit; re-run on a lost insert race."""
        for attempt in range(self.integrity_retries + 1):
            async with get_session_with_retry(self.session_factory) as session:
                try:
                    result = await op(session)
                    await session.commit()
                    return result
                except IntegrityError as e:
                    await session.rollback()
                    if attempt >= self.integrity_retries:
                        raise
                    logger.info(f"[STORE] {label}: concurrent insert detected, retrying ({e.orig})")
        raise RuntimeError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def upsert_team(self, source: str, descriptor: RawTeam) -> Team:
        """Resolve (or create) the canonical team for a provider descriptor."""
        return await self._transaction(
            "upsert_team", lambda session: self._upsert_team_in(session, source, descriptor)
        )

    async def _upsert_team_in(self, session: AsyncSession, source: str, descriptor: RawTeam) -> Team:
        normalized = normalize_team_name(descriptor.name)
        if not normalized:
            raise MalformedFixture("team without a name")

        team = None
        ref = None
        if descriptor.external_id:
            result = await session.execute(
                select(TeamExternalRef).where(
                    TeamExternalRef.source == source,
                    TeamExternalRef.external_id == descriptor.external_id,
                )
            )
            ref = result.scalar_one_or_none()
            if ref is not None:
                team = await session.get(Team, ref.team_id)

        if team is None:
            result = await session.execute(select(Team).where(Team.normalized_name == normalized))
            team = result.scalar_one_or_none()

        if team is None:
            team = Team(
                name=descriptor.name.strip(),
                normalized_name=normalized,
                short_name=descriptor.short_name,
                code=descriptor.code,
                country=descriptor.country,
                logo_url=descriptor.logo_url,
            )
            session.add(team)
            await session.flush()
            logger.info(f"[STORE] Created team: {team.name} (ID: {team.id})")
        else:
            changed = False
            for attr in _TEAM_METADATA:
                incoming = getattr(descriptor, attr)
                if getattr(team, attr) is None and incoming:
                    setattr(team, attr, incoming)
                    changed = True
            if changed:
                team.updated_at = utcnow()

        if descriptor.external_id and ref is None:
            session.add(TeamExternalRef(source=source, external_id=descriptor.external_id, team_id=team.id))
            await session.flush()

        return team

    # ------------------------------------------------------------------
    # Fixtures
    # ------------------------------------------------------------------

    async def upsert_fixture(self, fixture: CanonicalFixture) -> tuple[Match, bool]:
        """
        Insert or update a fixture by its canonical key.

        Returns (match, created). Re-applying the same fixture is a no-op
        apart from updated_at.
        """
        return await self._transaction(
            "upsert_fixture", lambda session: self._upsert_fixture_in(session, fixture)
        )

    async def _upsert_fixture_in(self, session: AsyncSession, fixture: CanonicalFixture) -> tuple[Match, bool]:
        home = await self._upsert_team_in(session, fixture.source, fixture.home)
        away = await self._upsert_team_in(session, fixture.source, fixture.away)

        result = await session.execute(select(Match).where(Match.fixture_key == fixture.fixture_key))
        existing = result.scalar_one_or_none()

        if existing is not None:
            self._merge_fixture(existing, fixture)
            return existing, False

        match = Match(
            fixture_key=fixture.fixture_key,
            source=fixture.source,
            external_id=fixture.external_id,
            static_id=fixture.static_id,
            league=fixture.league,
            country=fixture.country,
            season=fixture.season,
            stage=fixture.stage,
            match_date_utc=fixture.match_date_utc,
            status=fixture.status,
            home_team_id=home.id,
            away_team_id=away.id,
            home_goals=fixture.home_goals,
            away_goals=fixture.away_goals,
            home_et_goals=fixture.home_et_goals,
            away_et_goals=fixture.away_et_goals,
            home_pen_goals=fixture.home_pen_goals,
            away_pen_goals=fixture.away_pen_goals,
            payload={k: v for k, v in fixture.payload.items() if not _is_empty(v)},
            finished_at=utcnow() if fixture.status == STATUS_FINISHED else None,
        )
        session.add(match)
        await session.flush()
        return match, True

    def _merge_fixture(self, existing: Match, fixture: CanonicalFixture) -> None:
        old_status = existing.status
        new_status = fixture.status
        old_rank = STATUS_RANK.get(old_status, 0)
        new_rank = STATUS_RANK.get(new_status, 0)

        # Status never regresses; terminal states stay terminal
        accept_status = old_status not in TERMINAL_STATUSES and new_rank >= old_rank
        if accept_status and new_status != old_status:
            existing.status = new_status
            if new_status == STATUS_FINISHED and existing.finished_at is None:
                existing.finished_at = utcnow()
                logger.info(f"[STORE] Match {existing.id} finished: {old_status} -> {new_status}")
        elif new_rank < old_rank:
            logger.debug(
                f"[STORE] Ignoring status regression for match {existing.id}: {old_status} -> {new_status}"
            )

        # Scores follow the status: a stale (lower-rank) snapshot never rewrites them
        if new_rank >= old_rank:
            for attr in _MATCH_SCORES:
                incoming = getattr(fixture, attr)
                if incoming is not None:
                    setattr(existing, attr, incoming)

        for attr in _MATCH_METADATA:
            incoming = getattr(fixture, attr)
            if incoming is not None:
                setattr(existing, attr, incoming)

        if fixture.payload:
            merged = dict(existing.payload or {})
            merged.update({k: v for k, v in fixture.payload.items() if not _is_empty(v)})
            existing.payload = merged

        existing.updated_at = utcnow()

    async def find_fixtures_by_status_and_window(
        self, statuses: Iterable[str], start: datetime, end: datetime
    ) -> list[Match]:
        """Fixtures with status in statuses and start <= kickoff <= end, soonest first."""
        start, end = to_naive_utc(start), to_naive_utc(end)
        statuses = list(statuses)

        async def op(session: AsyncSession) -> list[Match]:
            result = await session.execute(
                select(Match)
                .where(Match.status.in_(statuses))
                .where(Match.match_date_utc >= start)
                .where(Match.match_date_utc <= end)
                .order_by(Match.match_date_utc)
            )
            return list(result.scalars().all())

        return await self._transaction("find_fixtures_by_status_and_window", op)

    async def find_fixtures_by_status(self, status: str, limit: Optional[int] = None) -> list[Match]:
        """Fixtures in a status, most recent kickoff first."""

        async def op(session: AsyncSession) -> list[Match]:
            query = select(Match).where(Match.status == status).order_by(Match.match_date_utc.desc())
            if limit is not None:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

        return await self._transaction("find_fixtures_by_status", op)

    async def find_finished_fixtures_with_pending_forecasts(self, limit: Optional[int] = None) -> list[Match]:
        """Finished fixtures that still carry at least one pending forecast."""

        async def op(session: AsyncSession) -> list[Match]:
            pending = (
                select(Prediction.id)
                .where(Prediction.match_id == Match.id, Prediction.status == "pending")
                .exists()
            )
            query = (
                select(Match)
                .where(Match.status == STATUS_FINISHED, pending)
                .order_by(Match.match_date_utc.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

        return await self._transaction("find_finished_fixtures_with_pending_forecasts", op)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def upsert_history(self, fixture: CanonicalFixture) -> tuple[History, bool]:
        """Insert or refresh a settled record from a history feed."""
        if fixture.home_goals is None or fixture.away_goals is None:
            raise MalformedFixture(f"history record without score ({fixture.fixture_key})")

        async def op(session: AsyncSession) -> tuple[History, bool]:
            home = await self._upsert_team_in(session, fixture.source, fixture.home)
            away = await self._upsert_team_in(session, fixture.source, fixture.away)
            result = await session.execute(select(History).where(History.fixture_key == fixture.fixture_key))
            existing = result.scalar_one_or_none()
            odds = fixture.payload.get("odds") or None

            if existing is not None:
                existing.home_goals = fixture.home_goals
                existing.away_goals = fixture.away_goals
                if fixture.league:
                    existing.league = fixture.league
                if odds:
                    existing.odds = odds
                return existing, False

            record = History(
                fixture_key=fixture.fixture_key,
                source=fixture.source,
                external_id=fixture.external_id,
                league=fixture.league,
                match_date_utc=fixture.match_date_utc,
                status=STATUS_FINISHED,
                home_team_id=home.id,
                away_team_id=away.id,
                home_goals=fixture.home_goals,
                away_goals=fixture.away_goals,
                odds=odds,
            )
            session.add(record)
            await session.flush()
            return record, True

        return await self._transaction("upsert_history", op)

    async def find_history(self, limit: int = 500) -> list[History]:
        """Most recent settled history records."""

        async def op(session: AsyncSession) -> list[History]:
            result = await session.execute(
                select(History).order_by(History.match_date_utc.desc()).limit(limit)
            )
            return list(result.scalars().all())

        return await self._transaction("find_history", op)

    # ------------------------------------------------------------------
    # Forecasts
    # ------------------------------------------------------------------

    async def upsert_forecast(
        self,
        match_id: int,
        forecast: ForecastPayload,
        version: str = "ai-2x",
        analysis: Optional[str] = None,
    ) -> tuple[Prediction, bool]:
        """
        Insert or refresh the forecast for (match_id, bucket).

        A graded forecast is frozen: it is returned unchanged.
        """

        async def op(session: AsyncSession) -> tuple[Prediction, bool]:
            result = await session.execute(
                select(Prediction).where(
                    Prediction.match_id == match_id,
                    Prediction.bucket == forecast.bucket,
                )
            )
            existing = result.scalar_one_or_none()

            if existing is not None:
                if existing.status != "pending":
                    logger.debug(f"[STORE] Forecast {existing.id} already graded, not overwritten")
                    return existing, False
                existing.outcomes = forecast.outcomes()
                existing.confidence = forecast.confidence
                existing.model_id = forecast.model_id
                existing.version = version
                if analysis:
                    existing.analysis = analysis
                existing.updated_at = utcnow()
                return existing, False

            prediction = Prediction(
                match_id=match_id,
                bucket=forecast.bucket,
                version=version,
                model_id=forecast.model_id,
                outcomes=forecast.outcomes(),
                confidence=forecast.confidence,
                analysis=analysis,
            )
            session.add(prediction)
            await session.flush()
            return prediction, True

        return await self._transaction("upsert_forecast", op)

    async def find_forecasts_by_fixture(self, match_id: int) -> list[Prediction]:
        async def op(session: AsyncSession) -> list[Prediction]:
            result = await session.execute(
                select(Prediction).where(Prediction.match_id == match_id).order_by(Prediction.id)
            )
            return list(result.scalars().all())

        return await self._transaction("find_forecasts_by_fixture", op)

    async def mark_forecast_graded(self, forecast_id: int, status: str) -> bool:
        """
        Set a pending forecast to won/lost.

        Returns False when the forecast is missing or no longer pending.
        """
        if status not in ("won", "lost"):
            raise ValueError(f"Invalid grade status: {status}")

        async def op(session: AsyncSession) -> bool:
            now = utcnow()
            # Only a pending row matches; a concurrent grader sees rowcount 0
            result = await session.execute(
                update(Prediction)
                .where(Prediction.id == forecast_id)
                .where(Prediction.status == "pending")
                .values(status=status, graded_at=now, updated_at=now)
            )
            return result.rowcount == 1

        return await self._transaction("mark_forecast_graded", op)
