"""football-data.org v4 adapter."""

import logging
from typing import Any, Optional

from fixturecast.etl.base import ProviderAdapter, RawFixture, RawTeam, as_list, to_int, to_str

logger = logging.getLogger(__name__)


def _team(obj: Any) -> RawTeam:
    obj = obj if isinstance(obj, dict) else {}
    return RawTeam(
        name=to_str(obj.get("name")),
        external_id=to_str(obj.get("id")),
        logo_url=to_str(obj.get("crest")),
        short_name=to_str(obj.get("shortName")),
        code=to_str(obj.get("tla")),
    )


def _pair(score: dict, key: str) -> tuple[Optional[int], Optional[int]]:
    part = score.get(key)
    if not isinstance(part, dict):
        return None, None
    return to_int(part.get("home")), to_int(part.get("away"))


class FootballDataAdapter(ProviderAdapter):
    """
    Parses `GET /v4/matches` (and competition match lists).

    Shape: {"matches": [{"id", "utcDate", "status", "competition", "homeTeam",
    "awayTeam", "score": {"fullTime", "regularTime", "extraTime", "penalties"}}]}
    """

    SOURCE = "football_data"

    def _iter_fixtures(self, payload: Any) -> list[Any]:
        if not isinstance(payload, dict):
            raise ValueError(f"expected object, got {type(payload).__name__}")
        if payload.get("errorCode") or (payload.get("message") and "matches" not in payload):
            raise ValueError(f"provider error: {payload.get('message')}")
        return as_list(payload.get("matches"))

    def _parse_fixture(self, item: Any) -> Optional[RawFixture]:
        if not isinstance(item, dict):
            raise ValueError("match entry is not an object")

        competition = item.get("competition") or {}
        area = item.get("area") or {}
        season = item.get("season") or {}
        score = item.get("score") or {}

        # fullTime is cumulative when a match went to extra time
        home_goals, away_goals = _pair(score, "regularTime")
        if home_goals is None or away_goals is None:
            home_goals, away_goals = _pair(score, "fullTime")
        home_et, away_et = _pair(score, "extraTime")
        home_pen, away_pen = _pair(score, "penalties")

        start_date = to_str(season.get("startDate")) if isinstance(season, dict) else None
        return RawFixture(
            source=self.SOURCE,
            external_id=to_str(item.get("id")),
            static_id=to_int(item.get("id")),
            league=to_str(competition.get("name")),
            country=to_str(area.get("name")),
            season=start_date[:4] if start_date else None,
            stage=to_str(item.get("stage")),
            date=to_str(item.get("utcDate")),
            status=to_str(item.get("status")),
            home=_team(item.get("homeTeam")),
            away=_team(item.get("awayTeam")),
            home_goals=home_goals,
            away_goals=away_goals,
            home_et_goals=home_et,
            away_et_goals=away_et,
            home_pen_goals=home_pen,
            away_pen_goals=away_pen,
            payload={
                "competition_code": to_str(competition.get("code")),
                "matchday": to_int(item.get("matchday")),
                "group": to_str(item.get("group")),
                "winner": score.get("winner"),
                "duration": score.get("duration"),
                "odds": item.get("odds"),
                "referees": as_list(item.get("referees")),
            },
        )
