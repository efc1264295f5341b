"""API-Football v3 adapter (RapidAPI or API-Sports direct)."""

import logging
from typing import Any, Optional

from fixturecast.etl.base import ProviderAdapter, RawFixture, RawTeam, as_list, to_int, to_str
from fixturecast.etl.dates import parse_kickoff

logger = logging.getLogger(__name__)


def _pair(score: dict, key: str) -> tuple[Optional[int], Optional[int]]:
    part = score.get(key)
    if not isinstance(part, dict):
        return None, None
    return to_int(part.get("home")), to_int(part.get("away"))


def _kickoff_text(fixture_info: dict) -> Optional[str]:
    """ISO date when it parses, else the epoch timestamp."""
    date = to_str(fixture_info.get("date"))
    timestamp = to_str(fixture_info.get("timestamp"))
    if date and parse_kickoff(date) is not None:
        return date
    return timestamp or date


def parse_stats(statistics: list) -> dict:
    """Parse match statistics from API response.

    API returns stats in order: [home_team, away_team]
    Each item has team info and statistics array.
    """
    stats = {"home": {}, "away": {}}

    for i, team_stats in enumerate(as_list(statistics)[:2]):
        team_key = "home" if i == 0 else "away"
        for stat in as_list(team_stats.get("statistics")):
            stat_type = str(stat.get("type", "")).lower().replace(" ", "_")
            value = stat.get("value")
            if stat_type and value is not None:
                stats[team_key][stat_type] = value

    return stats


class APIFootballAdapter(ProviderAdapter):
    """
    Parses `GET /fixtures` responses.

    Shape: {"errors": [...], "response": [{"fixture", "league", "teams",
    "goals", "score"}]}. A non-empty `errors` means the whole payload is
    unusable (quota, auth), which the caller treats as a provider failure.
    """

    SOURCE = "api_football"

    def _iter_fixtures(self, payload: Any) -> list[Any]:
        if not isinstance(payload, dict):
            raise ValueError(f"expected object, got {type(payload).__name__}")
        if payload.get("errors"):
            raise ValueError(f"API error: {payload['errors']}")
        return as_list(payload.get("response"))

    def _parse_fixture(self, item: Any) -> Optional[RawFixture]:
        if not isinstance(item, dict):
            raise ValueError("fixture entry is not an object")

        fixture_info = item.get("fixture") or {}
        league = item.get("league") or {}
        teams = item.get("teams") or {}
        goals = item.get("goals") or {}
        score = item.get("score") or {}
        venue = fixture_info.get("venue") or {}
        status_info = fixture_info.get("status") or {}

        # score.fulltime is regular time; goals includes extra time
        home_goals, away_goals = _pair(score, "fulltime")
        if home_goals is None or away_goals is None:
            home_goals, away_goals = to_int(goals.get("home")), to_int(goals.get("away"))
        home_et, away_et = _pair(score, "extratime")
        home_pen, away_pen = _pair(score, "penalty")

        stats = None
        if item.get("statistics"):
            stats = parse_stats(item["statistics"])

        def team(side: str) -> RawTeam:
            t = teams.get(side) or {}
            return RawTeam(
                name=to_str(t.get("name")),
                external_id=to_str(t.get("id")),
                logo_url=to_str(t.get("logo")),
                country=to_str(league.get("country")),
            )

        return RawFixture(
            source=self.SOURCE,
            external_id=to_str(fixture_info.get("id")),
            static_id=to_int(fixture_info.get("id")),
            league=to_str(league.get("name")),
            country=to_str(league.get("country")),
            season=to_str(league.get("season")),
            stage=to_str(league.get("round")),
            date=_kickoff_text(fixture_info),
            status=to_str(status_info.get("short")),
            home=team("home"),
            away=team("away"),
            home_goals=home_goals,
            away_goals=away_goals,
            home_et_goals=home_et,
            away_et_goals=away_et,
            home_pen_goals=home_pen,
            away_pen_goals=away_pen,
            payload={
                "league_id": to_int(league.get("id")),
                "elapsed": to_int(status_info.get("elapsed")),
                "venue": {"name": to_str(venue.get("name")), "city": to_str(venue.get("city"))},
                "halftime": score.get("halftime"),
                "stats": stats,
            },
        )
